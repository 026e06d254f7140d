import asyncio
import os
import signal
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, HTTPException

from core.config import Settings
from core.dependencies import create_redis_client, get_settings, verify_api_key
from dispatch.base import AbstractBackend
from dispatch.exceptions import BackendInitError, PluginLoadError
from dispatch.factory import get_backend
from logging_config import setup_root_logging, get_logger
from services.bus_service import BusSubscriber

setup_root_logging()
logger = get_logger("main_api")


def _on_listen_done(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.critical(f"The dispatch loop stopped: {exc}", exc_info=exc)
        # Nothing can be dispatched anymore, take the whole process down
        os.kill(os.getpid(), signal.SIGTERM)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_root_logging(verbose=settings.VERBOSE)
    logger.info("=" * 80)
    logger.info(f"Starting controller with the '{settings.EXECUTION_BACKEND}' backend.")

    try:
        backend = get_backend(settings)
    except (BackendInitError, PluginLoadError) as e:
        logger.critical(f"Wasn't able to initialize the execution backend: {e}")
        raise
    redis_client = create_redis_client(settings)
    subscriber = BusSubscriber(redis_client)
    listen_task = asyncio.create_task(backend.listen(subscriber))
    listen_task.add_done_callback(_on_listen_done)

    logger.info("Controller started and waiting for VODs.")
    logger.info("=" * 80)
    yield
    logger.info("Controller shutting down...")
    listen_task.cancel()
    try:
        await listen_task
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.warning(f"Dispatch loop ended with an error: {e}")
    await subscriber.close()
    await redis_client.aclose()
    backend.close()
    logger.info("Cleanup done.")


app = FastAPI(
    title="dggarchiver controller",
    description="Launches archive workers for VODs published on the bus.",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/", tags=["Status"])
def read_root(settings: Settings = Depends(get_settings)):
    return {
        "message": "Controller is running.",
        "backend": settings.EXECUTION_BACKEND,
        "subject": settings.job_subject,
        "plugins_enabled": settings.PLUGINS_ENABLED,
    }


@app.get("/workers", tags=["Workers"], dependencies=[Depends(verify_api_key)])
async def list_workers(
    settings: Settings = Depends(get_settings),
    backend: AbstractBackend = Depends(get_backend),
):
    """Lists the archive workers currently known to the backend."""
    try:
        workers = await backend.list_workers()
    except Exception as e:
        logger.error(f"Wasn't able to list workers: {e}")
        raise HTTPException(status_code=502, detail=f"Wasn't able to list workers: {e}")

    return {
        "backend": settings.EXECUTION_BACKEND,
        "supported": backend.supports_listing,
        "workers": [w.model_dump() for w in workers],
    }


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
