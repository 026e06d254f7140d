import asyncio
import sys

from pydantic import ValidationError

from core.config import Settings
from core.dependencies import create_redis_client
from dispatch.exceptions import BackendInitError, PluginLoadError, SubscriptionError
from dispatch.factory import get_backend
from logging_config import setup_root_logging, get_logger
from services.bus_service import BusSubscriber

logger = get_logger("controller")


class Controller:
    """
    A standalone controller that launches archive workers for VODs
    published on the bus.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.redis_client = None
        self.subscriber = None
        self.backend = None

    async def run(self):
        """Runs the dispatch loop until the subscription ends."""
        if self.settings.EXECUTION_BACKEND == "k8s":
            logger.info("Running in Kubernetes mode.")
        else:
            logger.info("Running in Docker mode.")

        try:
            self.backend = get_backend(self.settings)
            self.redis_client = create_redis_client(self.settings)
            self.subscriber = BusSubscriber(self.redis_client)
            await self.backend.listen(self.subscriber)
        finally:
            await self.shutdown()

    async def shutdown(self):
        if self.subscriber is not None:
            await self.subscriber.close()
        if self.redis_client is not None:
            await self.redis_client.aclose()
        if self.backend is not None:
            self.backend.close()


async def main():
    """Entry point for the controller script."""
    try:
        settings = Settings()
    except ValidationError as e:
        setup_root_logging()
        logger.critical(f"Invalid configuration: {e}")
        sys.exit(1)

    setup_root_logging(verbose=settings.VERBOSE)
    controller = Controller(settings)
    try:
        await controller.run()
    except PluginLoadError as e:
        logger.critical(str(e))
        sys.exit(1)
    except BackendInitError as e:
        logger.critical(
            f"Wasn't able to initialize the {settings.EXECUTION_BACKEND} execution backend: {e}"
        )
        sys.exit(1)
    except SubscriptionError as e:
        logger.critical(str(e))
        sys.exit(1)
    except Exception as e:
        logger.critical(f"The controller stopped unexpectedly: {e}", exc_info=True)
        sys.exit(1)


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Controller shutting down...")


if __name__ == "__main__":
    run()
