"""Event hub used by the scheduler to report to the outside world."""

import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable, Dict, List, Union


class EventKind(Enum):
    """Events emitted by the scheduler.

    Payloads:
        START: none
        PROGRESS: ProgressSnapshot
        LOAD: ResourceDescriptor
        ERROR: (ResourceDescriptor, Exception)
        RETRY: (ResourceDescriptor, attempt number starting at 1)
        COMPLETE: CompletionReport
        EXIT: none (run paused)
    """

    START = "start"
    PROGRESS = "progress"
    LOAD = "load"
    ERROR = "error"
    RETRY = "retry"
    COMPLETE = "complete"
    EXIT = "exit"


Subscriber = Callable[..., Any]


def _event_kind(kind: Union[str, EventKind]) -> EventKind:
    if isinstance(kind, EventKind):
        return kind
    try:
        return EventKind(str(kind).lower())
    except ValueError:
        raise ValueError(f"Unknown event: {kind!r}")


class EventHub:
    """Synchronous fan-out of scheduler events to subscribers."""

    def __init__(self, logger: logging.Logger = None):
        self._subscribers: Dict[EventKind, List[Subscriber]] = defaultdict(list)
        self.logger = logger or logging.getLogger(__name__)

    def on(self, kind: Union[str, EventKind], callback: Subscriber) -> Subscriber:
        """Subscribe to an event. Returns the callback so it can be used as a decorator."""
        if not callable(callback):
            raise TypeError("callback must be callable")
        self._subscribers[_event_kind(kind)].append(callback)
        return callback

    def off(self, kind: Union[str, EventKind], callback: Subscriber) -> bool:
        """Remove a subscription. Returns False if it was not present."""
        subscribers = self._subscribers.get(_event_kind(kind), [])
        if callback in subscribers:
            subscribers.remove(callback)
            return True
        return False

    def emit(self, kind: Union[str, EventKind], *payload: Any) -> None:
        """Invoke every subscriber of ``kind`` in subscription order."""
        kind = _event_kind(kind)
        for callback in list(self._subscribers.get(kind, [])):
            try:
                callback(*payload)
            except Exception as e:
                self.logger.exception(f"Subscriber {callback!r} failed on {kind.value}: {e}")

    def subscriber_count(self, kind: Union[str, EventKind]) -> int:
        return len(self._subscribers.get(_event_kind(kind), []))
