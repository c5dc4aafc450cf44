"""
Event bus: typed publish/subscribe with explicit unsubscribe handles.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger(__name__)

type Handler[Ev] = Callable[[Ev], None]


@dataclass(slots=True)
class Subscription:
    """Handle returned by subscribe(). Call unsubscribe() to detach."""

    _detach: Callable[[], None]
    active: bool = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._detach()


class EventBus[Ev]:
    """
    Synchronous typed event bus.

    Handlers run in subscription order. A failing handler is logged and
    does not stop delivery to the others.

    Example:
        bus = EventBus[SessionEvent]()
        sub = bus.subscribe(lambda ev: print(ev))
        bus.publish(SignedOut())
        sub.unsubscribe()
    """

    def __init__(self) -> None:
        self._handlers: dict[int, Handler[Ev]] = {}
        self._next_id = 0

    def subscribe(self, handler: Handler[Ev]) -> Subscription:
        handler_id = self._next_id
        self._next_id += 1
        self._handlers[handler_id] = handler
        return Subscription(lambda: self._handlers.pop(handler_id, None))

    def publish(self, event: Ev) -> None:
        for handler in list(self._handlers.values()):
            try:
                handler(event)
            except Exception:
                logger.exception("event.handler_failed", event=type(event).__name__)

    def __len__(self) -> int:
        return len(self._handlers)


__all__ = ("Handler", "Subscription", "EventBus")
