# ===== core/events.py =====
"""
In-process publish/subscribe used between adapters, the AI responder and the router.

Listeners may be plain callables or coroutine functions. `emit` never awaits:
coroutine listeners are scheduled on the running loop and tracked so tests and
shutdown can wait for them. `emit_async` awaits them in registration order.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from loguru import logger

from utils.helpers import generate_correlation_id, utcnow

Listener = Callable[..., Any]


@dataclass
class ErrorEvent:
    """Payload of every `error` event"""
    source: str
    error: BaseException
    correlation_id: str = field(default_factory=generate_correlation_id)
    conversation_id: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "error": str(self.error),
            "errorType": type(self.error).__name__,
            "correlationId": self.correlation_id,
            "conversationId": self.conversation_id,
            "timestamp": self.timestamp.isoformat(),
        }


class EventEmitter:
    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}
        self._once: Set[Tuple[str, int]] = set()
        self._pending: Set[asyncio.Task] = set()

    def on(self, event: str, listener: Listener) -> Listener:
        self._listeners.setdefault(event, []).append(listener)
        return listener

    def once(self, event: str, listener: Listener) -> Listener:
        self.on(event, listener)
        self._once.add((event, id(listener)))
        return listener

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)
        if listener not in listeners:
            self._once.discard((event, id(listener)))

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def _take_listeners(self, event: str) -> List[Listener]:
        listeners = list(self._listeners.get(event, []))
        for listener in listeners:
            if (event, id(listener)) in self._once:
                self.off(event, listener)
        return listeners

    def emit(self, event: str, *args: Any) -> bool:
        """Notify listeners; returns False when nobody is listening"""
        listeners = self._take_listeners(event)
        for listener in listeners:
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    self._schedule(event, result)
            except Exception as e:
                logger.exception(f"❌ Listener for '{event}' failed: {e}")
        return bool(listeners)

    async def emit_async(self, event: str, *args: Any) -> bool:
        listeners = self._take_listeners(event)
        for listener in listeners:
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.exception(f"❌ Listener for '{event}' failed: {e}")
        return bool(listeners)

    def _schedule(self, event: str, awaitable) -> None:
        async def runner():
            try:
                await awaitable
            except Exception as e:
                logger.exception(f"❌ Async listener for '{event}' failed: {e}")

        task = asyncio.ensure_future(runner())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def wait_pending(self) -> None:
        """Wait for listener tasks scheduled by emit()"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
