import asyncio
from typing import Awaitable, Callable, Optional, Set

import redis.asyncio as redis

from dispatch.exceptions import SubscriptionError
from logging_config import get_logger

logger = get_logger("bus_service")

MessageHandler = Callable[[bytes], Awaitable[object]]


class BusSubscriber:
    """
    Subscribes to a Redis pub/sub channel and hands every message to a handler.

    Each message is handled in its own task, so a slow launch does not hold
    up the next message and handlers must not assume they run one at a time.
    A handler that raises only loses its own message.
    """

    def __init__(self, redis_client: redis.Redis):
        """
        Initializes the subscriber with a Redis client.

        Args:
            redis_client: An asynchronous Redis client. Payloads are handed
                to the handler as bytes, whatever the client's decoding.
        """
        self.redis = redis_client
        self._pubsub = None
        self._reader: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    async def subscribe(self, subject: str, handler: MessageHandler) -> None:
        """
        Subscribes to `subject` and starts delivering its messages.

        Raises:
            SubscriptionError: If the subscription cannot be established.
        """
        try:
            self._pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
            await self._pubsub.subscribe(subject)
        except Exception as e:
            raise SubscriptionError(
                f"An error occurred when subscribing to '{subject}': {e}"
            ) from e

        logger.info(f"Subscribed to '{subject}'.")
        self._reader = asyncio.create_task(self._read(handler))

    async def _read(self, handler: MessageHandler) -> None:
        async for message in self._pubsub.listen():
            if message.get("type") != "message":
                continue
            data = message["data"]
            if isinstance(data, str):
                data = data.encode("utf-8")
            task = asyncio.create_task(self._deliver(handler, data))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _deliver(self, handler: MessageHandler, data: bytes) -> None:
        try:
            await handler(data)
        except Exception as e:
            logger.error(f"Unhandled error while processing a message: {e}", exc_info=True)

    async def wait(self) -> None:
        """Blocks for as long as the subscription is alive."""
        if self._reader is None:
            raise SubscriptionError("Not subscribed")
        await self._reader

    async def close(self) -> None:
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Subscription reader ended with an error: {e}")
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._pubsub is not None:
            await self._pubsub.aclose()
        logger.info("Subscription closed.")
