"""Ordered hand-off of recognition events from a backend adapter to its consumer.

Adapters push events from whatever thread the engine calls back on. The
channel serialises them so the consumer sees exactly the emission order,
one event at a time, even when a handler itself causes a new emit.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable, Deque

from models import RecognitionEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[RecognitionEvent], None]


class EventChannel:
    def __init__(self, handler: EventHandler, held: bool = True) -> None:
        self._handler = handler
        self._pending: Deque[RecognitionEvent] = deque()
        self._cond = threading.Condition()
        self._held = held
        self._open = True
        self._drainer: threading.Thread | None = None

    @property
    def is_open(self) -> bool:
        return self._open

    def emit(self, event: RecognitionEvent) -> bool:
        """Queue an event and deliver it unless the channel is held.

        Returns False if the channel is already closed and the event was dropped.
        """
        with self._cond:
            if not self._open:
                logger.debug("dropping %s event on closed channel", event.kind.value)
                return False
            self._pending.append(event)
        self.drain()
        return True

    def release(self) -> None:
        """Stop buffering and deliver everything queued so far."""
        with self._cond:
            self._held = False
        self.drain()

    def drain(self) -> None:
        current = threading.current_thread()
        while True:
            with self._cond:
                if self._held or not self._pending:
                    self._cond.notify_all()
                    return
                if self._drainer is not None:
                    # Another thread (or an outer frame of this one) is delivering.
                    return
                self._drainer = current
                event = self._pending.popleft()
            try:
                self._handler(event)
            finally:
                with self._cond:
                    self._drainer = None
                    self._cond.notify_all()

    def is_draining_on_current_thread(self) -> bool:
        with self._cond:
            return self._drainer is threading.current_thread()

    def close(self, wait: bool = True, timeout: float | None = 5.0) -> None:
        """Reject further events.

        With ``wait`` the remaining queued events are delivered first and the
        call returns once nothing is being handled. From inside the handler
        there is nothing to wait for, so ``wait`` is ignored there.
        """
        with self._cond:
            self._open = False
            self._held = False
            if self._drainer is threading.current_thread():
                wait = False
        if not wait:
            return
        self.drain()
        with self._cond:
            done = self._cond.wait_for(
                lambda: self._drainer is None and not self._pending, timeout=timeout
            )
        if not done:
            logger.warning("event channel did not drain within %.1fs", timeout or 0.0)

    def discard_pending(self) -> int:
        with self._cond:
            count = len(self._pending)
            self._pending.clear()
        if count:
            logger.debug("discarded %d pending events", count)
        return count
