from __future__ import annotations

import threading
import time

from event_channel import EventChannel
from models import RecognitionEvent


def test_held_channel_buffers_until_release() -> None:
    seen: list[str] = []
    channel = EventChannel(lambda e: seen.append(e.text))

    channel.emit(RecognitionEvent.interim("a"))
    channel.emit(RecognitionEvent.interim("b"))
    assert seen == []

    channel.release()
    assert seen == ["a", "b"]


def test_reentrant_emit_is_delivered_after_current_event() -> None:
    seen: list[str] = []
    channel = EventChannel(lambda e: None, held=False)

    def handler(event: RecognitionEvent) -> None:
        seen.append(event.text)
        if event.text == "first":
            channel.emit(RecognitionEvent.final("second"))
            seen.append("first-done")

    channel._handler = handler
    channel.emit(RecognitionEvent.interim("first"))

    assert seen == ["first", "first-done", "second"]


def test_closed_channel_drops_events() -> None:
    seen: list[str] = []
    channel = EventChannel(lambda e: seen.append(e.text), held=False)

    channel.close()

    assert channel.emit(RecognitionEvent.final("late")) is False
    assert seen == []
    assert channel.is_open is False


def test_close_delivers_pending_events() -> None:
    seen: list[str] = []
    channel = EventChannel(lambda e: seen.append(e.text))
    channel.emit(RecognitionEvent.final("queued"))

    channel.close(wait=True)

    assert seen == ["queued"]


def test_discard_pending() -> None:
    seen: list[str] = []
    channel = EventChannel(lambda e: seen.append(e.text))
    channel.emit(RecognitionEvent.final("x"))

    channel.close(wait=False)

    assert channel.discard_pending() == 1
    channel.drain()
    assert seen == []


def test_order_is_preserved_across_threads() -> None:
    seen: list[int] = []
    channel = EventChannel(lambda e: seen.append(int(e.text)), held=False)

    def produce(offset: int) -> None:
        for i in range(100):
            channel.emit(RecognitionEvent.interim(str(offset + i)))

    threads = [threading.Thread(target=produce, args=(n * 1000,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    channel.close(wait=True)

    assert len(seen) == 400
    for n in range(4):
        mine = [v for v in seen if n * 1000 <= v < n * 1000 + 100]
        assert mine == sorted(mine)


def test_close_from_inside_handler_does_not_wait() -> None:
    channel = EventChannel(lambda e: None, held=False)
    draining: list[bool] = []

    def handler(event: RecognitionEvent) -> None:
        draining.append(channel.is_draining_on_current_thread())
        channel.close(wait=True, timeout=5.0)

    channel._handler = handler
    started = time.monotonic()
    channel.emit(RecognitionEvent.final("done"))

    assert time.monotonic() - started < 1.0
    assert draining == [True]
    assert channel.is_draining_on_current_thread() is False
    assert channel.is_open is False
