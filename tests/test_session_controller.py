from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from errors import (
    ABORTED,
    ALREADY_RECORDING,
    BACKEND_UNAVAILABLE,
    PERMISSION_DENIED,
    RECOGNITION_ERROR,
    BackendError,
)
from event_channel import EventChannel
from models import BackendKind, FlushPolicy, RecognitionEvent, SessionState
from session_controller import SessionController


class FakeAdapter:
    kind = BackendKind.LOCAL

    def __init__(
        self,
        on_start: Optional[Callable[["FakeAdapter"], None]] = None,
        on_stop: Optional[Callable[["FakeAdapter"], None]] = None,
    ) -> None:
        self.on_start = on_start
        self.on_stop = on_stop
        self.channel: EventChannel | None = None
        self.started = False
        self.stop_calls = 0

    def start(self, channel: EventChannel) -> None:
        self.started = True
        self.channel = channel
        if self.on_start:
            self.on_start(self)

    def stop(self) -> None:
        self.stop_calls += 1
        if self.on_stop:
            self.on_stop(self)

    def emit(self, event: RecognitionEvent) -> bool:
        assert self.channel is not None
        return self.channel.emit(event)


class FakePermissionProbe:
    def __init__(self, granted: bool = True) -> None:
        self.granted = granted
        self.calls = 0
        self.hook: Optional[Callable[[], None]] = None

    def request_microphone_access(self) -> bool:
        self.calls += 1
        if self.hook:
            self.hook()
        return self.granted


class Harness:
    def __init__(
        self,
        flush_policy: FlushPolicy = FlushPolicy.INCREMENTAL,
        granted: bool = True,
        make_adapter: Callable[[], FakeAdapter] = FakeAdapter,
    ) -> None:
        self.adapters: list[FakeAdapter] = []
        self.interims: list[str] = []
        self.finals: list[str] = []
        self.errors: list[tuple[str, str]] = []
        self.transitions: list[tuple[SessionState, SessionState]] = []
        self.permission = FakePermissionProbe(granted)

        def factory() -> FakeAdapter:
            adapter = make_adapter()
            self.adapters.append(adapter)
            return adapter

        self.controller = SessionController(
            adapter_factories={BackendKind.LOCAL: factory},
            permission_probe=self.permission,
            flush_policy=flush_policy,
            on_interim_update=self.interims.append,
            on_final_result=self.finals.append,
            on_error=lambda c, m: self.errors.append((c, m)),
            on_state_change=lambda f, t: self.transitions.append((f, t)),
        )

    @property
    def adapter(self) -> FakeAdapter:
        return self.adapters[-1]

    def start(self) -> None:
        result = self.controller.start(BackendKind.LOCAL)
        assert result.success is True


def test_start_transitions_to_active() -> None:
    h = Harness()
    h.start()

    assert h.controller.state == SessionState.ACTIVE
    assert h.adapter.started is True
    assert h.transitions == [
        (SessionState.IDLE, SessionState.ACQUIRING_PERMISSION),
        (SessionState.ACQUIRING_PERMISSION, SessionState.ACTIVE),
    ]


def test_interim_then_final_preview_sequence() -> None:
    h = Harness()
    h.start()

    h.adapter.emit(RecognitionEvent.interim("hel"))
    h.adapter.emit(RecognitionEvent.interim("hello"))
    h.adapter.emit(RecognitionEvent.final("hello world. "))

    assert h.interims == ["hel", "hello", "hello world."]
    assert h.finals == ["hello world."]


def test_interim_replaces_previous_interim() -> None:
    h = Harness()
    h.start()

    h.adapter.emit(RecognitionEvent.final("one"))
    h.adapter.emit(RecognitionEvent.interim("tw"))
    h.adapter.emit(RecognitionEvent.interim("two"))

    assert h.controller.preview == "one two"
    assert h.interims == ["one", "one tw", "one two"]


def test_unchanged_preview_is_not_repeated() -> None:
    h = Harness()
    h.start()

    h.adapter.emit(RecognitionEvent.interim("same"))
    h.adapter.emit(RecognitionEvent.interim("same"))

    assert h.interims == ["same"]


def test_start_while_active_is_rejected() -> None:
    h = Harness()
    h.start()

    result = h.controller.start(BackendKind.LOCAL)

    assert result.success is False
    assert result.code == ALREADY_RECORDING
    assert len(h.adapters) == 1
    assert h.controller.state == SessionState.ACTIVE


def test_start_while_acquiring_permission_is_rejected() -> None:
    h = Harness()
    nested: list = []
    h.permission.hook = lambda: nested.append(h.controller.start(BackendKind.LOCAL))

    h.start()

    assert nested[0].code == ALREADY_RECORDING
    assert len(h.adapters) == 1


def test_permission_denied_returns_to_idle() -> None:
    h = Harness(granted=False)

    result = h.controller.start(BackendKind.LOCAL)

    assert result.success is False
    assert result.code == PERMISSION_DENIED
    assert h.controller.state == SessionState.IDLE
    assert h.adapters == []
    assert [c for c, _ in h.errors] == [PERMISSION_DENIED]
    assert h.controller.last_error is not None
    assert h.controller.last_error.code == PERMISSION_DENIED
    assert h.interims == []
    assert h.finals == []


def test_unknown_backend_is_unavailable_without_prompt() -> None:
    h = Harness()

    result = h.controller.start(BackendKind.CLOUD)

    assert result.code == BACKEND_UNAVAILABLE
    assert h.permission.calls == 0
    assert h.controller.state == SessionState.IDLE


def test_adapter_start_failure_reports_backend_unavailable() -> None:
    def fail(adapter: FakeAdapter) -> None:
        raise BackendError(BACKEND_UNAVAILABLE, "no credentials")

    h = Harness(make_adapter=lambda: FakeAdapter(on_start=fail))

    result = h.controller.start(BackendKind.LOCAL)

    assert result.success is False
    assert result.code == BACKEND_UNAVAILABLE
    assert h.errors == [(BACKEND_UNAVAILABLE, "no credentials")]
    assert h.adapter.stop_calls == 1
    assert h.controller.state == SessionState.IDLE


def test_events_emitted_during_start_are_delivered_once_active() -> None:
    h = Harness(make_adapter=lambda: FakeAdapter(on_start=lambda a: a.emit(RecognitionEvent.interim("early"))))

    h.start()

    assert h.interims == ["early"]


def test_incremental_policy_delivers_each_fragment_once() -> None:
    h = Harness()
    h.start()

    h.adapter.emit(RecognitionEvent.final("a "))
    h.adapter.emit(RecognitionEvent.final("b "))
    h.controller.stop()

    assert h.finals == ["a", "b"]
    assert h.interims[-1] == ""
    assert h.interims.count("") == 1
    assert h.controller.state == SessionState.IDLE
    assert h.adapter.stop_calls == 1


def test_on_stop_policy_flushes_once_on_stop() -> None:
    h = Harness(flush_policy=FlushPolicy.ON_STOP)
    h.start()

    h.adapter.emit(RecognitionEvent.final("a"))
    h.adapter.emit(RecognitionEvent.final("b"))
    assert h.finals == []
    assert h.interims == ["a", "a b"]

    h.controller.stop()

    assert h.finals == ["a b"]
    assert h.interims == ["a", "a b", ""]


def test_stop_twice_is_noop() -> None:
    h = Harness()
    h.start()
    h.controller.stop()
    interims, finals, transitions = list(h.interims), list(h.finals), list(h.transitions)

    h.controller.stop()

    assert h.interims == interims
    assert h.finals == finals
    assert h.transitions == transitions
    assert h.errors == []


def test_stop_when_idle_is_noop() -> None:
    h = Harness()

    h.controller.stop()

    assert h.interims == []
    assert h.transitions == []


def test_final_emitted_while_stopping_is_delivered_before_clear() -> None:
    h = Harness(make_adapter=lambda: FakeAdapter(on_stop=lambda a: a.emit(RecognitionEvent.final("tail"))))
    h.start()
    h.adapter.emit(RecognitionEvent.interim("ta"))

    h.controller.stop()

    assert h.finals == ["tail"]
    assert h.interims == ["ta", "tail", ""]


def test_events_after_stop_are_dropped() -> None:
    h = Harness()
    h.start()
    adapter = h.adapter
    h.controller.stop()

    accepted = adapter.emit(RecognitionEvent.final("late"))

    assert accepted is False
    assert h.finals == []


def test_recognition_error_flushes_and_reports() -> None:
    h = Harness()
    h.start()

    h.adapter.emit(RecognitionEvent.final("partial text"))
    h.adapter.emit(RecognitionEvent.error(RECOGNITION_ERROR, "network drop"))

    assert h.controller.state == SessionState.IDLE
    assert h.finals == ["partial text"]
    assert h.errors == [(RECOGNITION_ERROR, "network drop")]
    assert h.interims[-1] == ""
    assert h.adapter.stop_calls == 1
    assert h.controller.last_error is not None
    assert h.controller.last_error.message == "network drop"


def test_recognition_error_with_buffered_text_flushes_it() -> None:
    h = Harness(flush_policy=FlushPolicy.ON_STOP)
    h.start()

    h.adapter.emit(RecognitionEvent.final("partial text"))
    h.adapter.emit(RecognitionEvent.error(RECOGNITION_ERROR, "network drop"))

    assert h.finals == ["partial text"]
    assert h.errors == [(RECOGNITION_ERROR, "network drop")]
    assert h.controller.state == SessionState.IDLE


def test_events_after_error_do_not_change_transcript() -> None:
    def emit_after_error(adapter: FakeAdapter) -> None:
        adapter.emit(RecognitionEvent.final("ignored"))

    h = Harness(make_adapter=lambda: FakeAdapter(on_stop=emit_after_error))
    h.start()

    h.adapter.emit(RecognitionEvent.error(RECOGNITION_ERROR, "boom"))

    assert h.finals == []
    assert h.controller.state == SessionState.IDLE


def test_benign_abort_is_not_reported() -> None:
    h = Harness()
    h.start()

    h.adapter.emit(RecognitionEvent.error(ABORTED, "stopped"))

    assert h.errors == []
    assert h.controller.state == SessionState.ACTIVE


def test_recoverable_error_keeps_session_active() -> None:
    h = Harness()
    h.start()

    h.adapter.emit(RecognitionEvent.error(RECOGNITION_ERROR, "blip", recoverable=True))

    assert h.errors == []
    assert h.controller.state == SessionState.ACTIVE


def test_session_ended_by_backend_tears_down_without_restart() -> None:
    h = Harness(flush_policy=FlushPolicy.ON_STOP)
    h.start()

    h.adapter.emit(RecognitionEvent.final("said before silence"))
    h.adapter.emit(RecognitionEvent.session_ended())

    assert h.controller.state == SessionState.IDLE
    assert h.finals == ["said before silence"]
    assert h.interims[-1] == ""
    assert len(h.adapters) == 1
    assert h.errors == []


def test_new_session_starts_with_empty_transcript() -> None:
    h = Harness()
    h.start()
    h.adapter.emit(RecognitionEvent.final("first"))
    h.controller.stop()

    h.start()
    h.adapter.emit(RecognitionEvent.interim("second"))

    assert h.interims[-1] == "second"
    assert len(h.adapters) == 2


def test_is_backend_available() -> None:
    h = Harness()
    controller = SessionController(
        adapter_factories={BackendKind.LOCAL: FakeAdapter, BackendKind.CLOUD: FakeAdapter},
        permission_probe=h.permission,
        availability={BackendKind.CLOUD: lambda: False},
    )

    assert controller.is_backend_available(BackendKind.LOCAL) is True
    assert controller.is_backend_available(BackendKind.CLOUD) is False
    assert h.controller.is_backend_available(BackendKind.CLOUD) is False


def test_stop_from_final_callback_on_delivery_thread_returns_promptly() -> None:
    h = Harness()
    h.start()
    h.controller._on_final_result = lambda text: (h.finals.append(text), h.controller.stop())

    worker = threading.Thread(target=h.adapter.emit, args=(RecognitionEvent.final("done"),))
    started = time.monotonic()
    worker.start()
    worker.join(timeout=10)

    assert time.monotonic() - started < 1.0
    assert h.finals == ["done"]
    assert h.controller.state == SessionState.IDLE
    assert h.adapter.stop_calls == 1
    assert h.interims[-1] == ""


def test_raising_final_callback_does_not_wedge_stop() -> None:
    h = Harness(flush_policy=FlushPolicy.ON_STOP)

    def failing_paste(text: str) -> None:
        raise RuntimeError("paste failed")

    h.controller._on_final_result = failing_paste
    h.start()
    h.adapter.emit(RecognitionEvent.final("hello"))

    h.controller.stop()

    assert h.controller.state == SessionState.IDLE
    assert h.interims[-1] == ""
    assert h.controller.start(BackendKind.LOCAL).success is True


def test_raising_interim_and_error_callbacks_are_contained() -> None:
    h = Harness()

    def boom(*args: object) -> None:
        raise RuntimeError("ui gone")

    h.controller._on_interim_update = boom
    h.controller._on_error = boom
    h.start()
    h.adapter.emit(RecognitionEvent.interim("partial"))
    h.adapter.emit(RecognitionEvent.error(RECOGNITION_ERROR, "network"))

    assert h.controller.state == SessionState.IDLE
    assert h.controller.last_error is not None
    assert h.controller.last_error.code == RECOGNITION_ERROR
