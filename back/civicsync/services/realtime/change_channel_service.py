# Standard library imports
import asyncio
from dataclasses import dataclass, field
from enum import Enum
import json
from typing import Any

# Third-party imports
import redis.asyncio as redis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

# Local application imports
from civicsync.core.monitoring.logging import get_contextual_logger
from civicsync.schemas.reports import Report
from civicsync.settings import settings
from civicsync.sync.exceptions import TransportError
from civicsync.sync.interfaces import DisconnectCallback, RecordCallback

logger = get_contextual_logger(__name__)


class ChangeEvent(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"


@dataclass
class RedisSubscription:
    pubsub: PubSub
    on_insert: RecordCallback
    on_update: RecordCallback
    on_disconnect: DisconnectCallback
    task: asyncio.Task[None] | None = field(default=None, repr=False)


class RedisChangeChannel:
    """
    Report change channel over Redis pub/sub.

    Messages are ``{"event": "INSERT" | "UPDATE", "record": {...}}``. Pub/sub
    is fire-and-forget: anything published while a subscriber is disconnected
    is lost, which the change feed covers with a bulk fetch.
    """

    def __init__(self, client: redis.Redis | None = None, channel_name: str | None = None):
        if client is None:
            # Local application imports
            from civicsync.core.caching.redis import redis_client

            client = redis_client
        self._client = client
        self.channel_name = channel_name or settings.REPORTS_CHANGE_CHANNEL

    async def subscribe(
        self,
        on_insert: RecordCallback,
        on_update: RecordCallback,
        on_disconnect: DisconnectCallback,
    ) -> RedisSubscription:
        pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        try:
            await pubsub.subscribe(self.channel_name)
        except RedisError as e:
            await self._close(pubsub)
            raise TransportError(f"Could not subscribe to {self.channel_name}: {e}") from e

        subscription = RedisSubscription(pubsub, on_insert, on_update, on_disconnect)
        subscription.task = asyncio.get_running_loop().create_task(self._listen(subscription))
        logger.bind(channel=self.channel_name).info("Subscribed to report changes")
        return subscription

    async def unsubscribe(self, handle: RedisSubscription) -> None:
        task, handle.task = handle.task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        try:
            await handle.pubsub.unsubscribe(self.channel_name)
        except RedisError as e:
            logger.debug(f"Unsubscribe on a dead connection: {e}")
        finally:
            await self._close(handle.pubsub)
        logger.bind(channel=self.channel_name).info("Unsubscribed from report changes")

    async def publish(self, event: ChangeEvent, record: Report) -> int:
        """Broadcast a changed record; returns the number of receiving subscribers."""
        message = json.dumps({"event": event.value, "record": record.model_dump(mode="json")})
        try:
            return await self._client.publish(self.channel_name, message)
        except RedisError as e:
            raise TransportError(f"Could not publish {event.value} for report {record.id}: {e}") from e

    async def _listen(self, subscription: RedisSubscription) -> None:
        error: BaseException | None = None
        try:
            async for message in subscription.pubsub.listen():
                if message.get("type") == "message":
                    self._dispatch(subscription, message.get("data"))
        except RedisError as e:
            error = e
        # Reaching here means the connection is gone without anyone unsubscribing
        subscription.on_disconnect(error)

    def _dispatch(self, subscription: RedisSubscription, data: Any) -> None:
        try:
            payload = json.loads(data)
            event = ChangeEvent(payload["event"])
            record = payload["record"]
        except (TypeError, ValueError, KeyError) as e:
            logger.bind(channel=self.channel_name).warning(f"Dropping unreadable change message: {e}")
            return

        if not isinstance(record, dict):
            logger.bind(channel=self.channel_name).warning("Dropping change message without a record")
            return
        if event is ChangeEvent.INSERT:
            subscription.on_insert(record)
        else:
            subscription.on_update(record)

    @staticmethod
    async def _close(pubsub: PubSub) -> None:
        try:
            await pubsub.aclose()
        except RedisError as e:
            logger.debug(f"Closing pub/sub connection failed: {e}")
