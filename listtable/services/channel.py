import asyncio
import inspect
import json
import uuid
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, List, Optional, Union

TOPICS = (
    "rows",
    "loading",
    "enrichment-loading",
    "error",
    "debug-logs",
    "column-visibility",
    "cover-size",
)

EVENTS = (
    "refresh",
    "load-enriched-episodes",
    "open-title",
    "set-column-visibility",
    "set-cover-size",
)

Listener = Callable[[str, Any], None]
Handler = Callable[[Any], Union[None, Awaitable[None]]]


class MessageChannel:
    """Typed message boundary between the controller and a presentation surface.

    State flows out on :data:`TOPICS`; commands flow in on :data:`EVENTS`.
    Publishing never suspends, so a state change and its broadcast stay
    together.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, asyncio.Queue] = {}
        self._listeners: List[Listener] = []
        self._handlers: Dict[str, Handler] = {}
        self._latest: Dict[str, Any] = {}

    def publish(self, topic: str, payload: Any) -> None:
        if topic not in TOPICS:
            raise ValueError(f"Unknown topic: {topic}")
        self._latest[topic] = payload
        for listener in list(self._listeners):
            listener(topic, payload)
        if not self._subscribers:
            return
        message = json.dumps({"topic": topic, "payload": payload})
        for queue in list(self._subscribers.values()):
            queue.put_nowait(message)

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._latest)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def subscribe(self) -> AsyncGenerator[str, None]:
        queue: asyncio.Queue = asyncio.Queue()
        subscriber_id = str(uuid.uuid4())
        for topic, payload in self._latest.items():
            queue.put_nowait(json.dumps({"topic": topic, "payload": payload}))
        self._subscribers[subscriber_id] = queue
        try:
            while True:
                payload = await queue.get()
                yield f"data: {payload}\n\n"
        finally:
            self._subscribers.pop(subscriber_id, None)

    def on(self, event: str, handler: Handler) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown event: {event}")
        self._handlers[event] = handler

    async def dispatch(self, event: str, payload: Optional[Any] = None) -> None:
        handler = self._handlers.get(event)
        if handler is None:
            raise KeyError(event)
        result = handler(payload)
        if inspect.isawaitable(result):
            await result
