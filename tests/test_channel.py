import asyncio
import json

import pytest

from listtable.services.channel import MessageChannel


def test_publish_rejects_unknown_topics():
    channel = MessageChannel()
    with pytest.raises(ValueError):
        channel.publish("toasts", "hello")


def test_on_rejects_unknown_events():
    channel = MessageChannel()
    with pytest.raises(ValueError):
        channel.on("delete-watched", lambda payload: None)


def test_listeners_see_every_publish_in_order():
    channel = MessageChannel()
    seen = []
    remove = channel.add_listener(lambda topic, payload: seen.append((topic, payload)))
    channel.publish("loading", True)
    channel.publish("error", "")
    remove()
    channel.publish("loading", False)
    assert seen == [("loading", True), ("error", "")]
    assert channel.snapshot() == {"loading": False, "error": ""}


def test_subscribe_replays_snapshot_then_streams():
    channel = MessageChannel()
    channel.publish("cover-size", 42)

    async def scenario():
        stream = channel.subscribe()
        first = await stream.__anext__()
        channel.publish("loading", False)
        second = await stream.__anext__()
        await stream.aclose()
        return first, second

    first, second = asyncio.run(scenario())
    assert json.loads(first[len("data: "):]) == {"topic": "cover-size", "payload": 42}
    assert json.loads(second[len("data: "):]) == {"topic": "loading", "payload": False}


def test_dispatch_awaits_async_handlers():
    channel = MessageChannel()
    calls = []

    async def on_refresh(payload):
        await asyncio.sleep(0)
        calls.append(payload)

    channel.on("refresh", on_refresh)
    asyncio.run(channel.dispatch("refresh", {"requestedAt": 5}))
    assert calls == [{"requestedAt": 5}]
