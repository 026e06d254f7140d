from typing import TYPE_CHECKING

from core.models import VOD, DispatchContext
from logging_config import get_logger
from services.bus_service import BusSubscriber
from .exceptions import DecodeError, LaunchError

if TYPE_CHECKING:
    from .base import AbstractBackend

logger = get_logger("dispatch_loop")


def decode_vod(data: bytes) -> VOD:
    """
    Decodes a bus payload into a VOD.

    Raises:
        DecodeError: If the payload is not valid JSON or lacks an id.
    """
    try:
        return VOD.model_validate_json(data)
    except ValueError as e:
        raise DecodeError(data, e) from e


class DispatchLoop:
    """
    Turns inbound bus messages into worker launches.

    For every message: decode, run the pre-dispatch hook, start the worker,
    run the post-dispatch hook with the outcome. Failures are contained to
    the message that caused them.
    """

    def __init__(self, backend: "AbstractBackend", subscriber: BusSubscriber):
        self.backend = backend
        self.subscriber = subscriber
        self.plugins = backend.plugins

    async def run(self) -> None:
        subject = self.backend.settings.job_subject
        await self.subscriber.subscribe(subject, self.handle)
        logger.info("Waiting for VODs...")
        await self.subscriber.wait()

    async def handle(self, data: bytes) -> DispatchContext:
        ctx = DispatchContext(data=data)
        try:
            ctx.vod = decode_vod(data)
        except DecodeError as e:
            logger.error(f"Wasn't able to decode the VOD, skipping: {e}")
            return ctx

        logger.info(f"Received a VOD: {ctx.vod!r}")

        if self.plugins is not None:
            await self.plugins.on_receive(ctx.vod)

        try:
            await self.backend.start_worker(ctx.data, ctx.vod)
            ctx.success = True
            logger.info(f"Started a worker for VOD '{ctx.vod.id}'.")
        except LaunchError as e:
            logger.error(f"Error occurred while starting the worker, skipping: {e}")

        if self.plugins is not None:
            await self.plugins.on_container(ctx.vod, ctx.success)

        return ctx
