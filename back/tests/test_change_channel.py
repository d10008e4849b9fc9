"""
Tests for the Redis pub/sub change channel, against an in-memory client.
"""

# Standard library imports
import asyncio
import json

# Third-party imports
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

# Local application imports
from civicsync.services.realtime import ChangeEvent, RedisChangeChannel
from civicsync.sync import TransportError
from tests.conftest import make_report


class MemoryPubSub:
    def __init__(self, server: "MemoryRedis"):
        self.server = server
        self.queue: asyncio.Queue = asyncio.Queue()
        self.channels: set[str] = set()
        self.closed = False

    async def subscribe(self, name: str) -> None:
        self.channels.add(name)
        self.server.pubsubs.append(self)

    async def unsubscribe(self, name: str) -> None:
        self.channels.discard(name)

    async def aclose(self) -> None:
        self.closed = True
        if self in self.server.pubsubs:
            self.server.pubsubs.remove(self)

    async def listen(self):
        while True:
            item = await self.queue.get()
            if isinstance(item, Exception):
                raise item
            yield item


class MemoryRedis:
    def __init__(self):
        self.pubsubs: list[MemoryPubSub] = []
        self.fail_publish = False

    def pubsub(self, ignore_subscribe_messages: bool = False) -> MemoryPubSub:
        return MemoryPubSub(self)

    async def publish(self, name: str, message: str) -> int:
        if self.fail_publish:
            raise RedisConnectionError("connection refused")
        receivers = [p for p in self.pubsubs if name in p.channels]
        for pubsub in receivers:
            pubsub.queue.put_nowait({"type": "message", "channel": name, "data": message})
        return len(receivers)


@pytest.fixture
def redis_server():
    return MemoryRedis()


@pytest.fixture
def change_channel(redis_server):
    return RedisChangeChannel(redis_server, channel_name="test-changes")


class Recorder:
    def __init__(self):
        self.inserts = []
        self.updates = []
        self.disconnects = []

    async def subscribe(self, change_channel):
        return await change_channel.subscribe(self.inserts.append, self.updates.append, self.disconnects.append)


async def settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


async def test_published_changes_reach_subscribers(change_channel):
    recorder = Recorder()
    handle = await recorder.subscribe(change_channel)

    received = await change_channel.publish(ChangeEvent.UPDATE, make_report("r1", status="closed"))
    await change_channel.publish(ChangeEvent.INSERT, make_report("r2"))
    await settle()

    assert received == 1
    assert recorder.updates[0]["status"] == "closed"
    assert recorder.inserts[0]["id"] == "r2"
    await change_channel.unsubscribe(handle)


async def test_unreadable_messages_are_dropped(change_channel, redis_server):
    recorder = Recorder()
    handle = await recorder.subscribe(change_channel)
    pubsub = handle.pubsub

    pubsub.queue.put_nowait({"type": "message", "data": "not json"})
    pubsub.queue.put_nowait({"type": "message", "data": json.dumps({"event": "DELETE", "record": {}})})
    pubsub.queue.put_nowait({"type": "message", "data": json.dumps({"event": "INSERT", "record": "r1"})})
    await settle()

    assert recorder.inserts == []
    assert recorder.updates == []
    assert recorder.disconnects == []
    await change_channel.unsubscribe(handle)


async def test_connection_loss_fires_disconnect(change_channel):
    recorder = Recorder()
    handle = await recorder.subscribe(change_channel)

    handle.pubsub.queue.put_nowait(RedisConnectionError("connection reset"))
    await settle()

    assert len(recorder.disconnects) == 1
    assert isinstance(recorder.disconnects[0], RedisConnectionError)
    await change_channel.unsubscribe(handle)


async def test_unsubscribe_closes_the_connection(change_channel, redis_server):
    recorder = Recorder()
    handle = await recorder.subscribe(change_channel)
    task = handle.task

    await change_channel.unsubscribe(handle)

    assert task.cancelled()
    assert handle.pubsub.closed
    assert redis_server.pubsubs == []
    assert recorder.disconnects == []


async def test_publish_failure_is_a_transport_error(change_channel, redis_server):
    redis_server.fail_publish = True

    with pytest.raises(TransportError):
        await change_channel.publish(ChangeEvent.UPDATE, make_report("r1"))
