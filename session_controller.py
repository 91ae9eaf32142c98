"""State-machine based dictation session orchestration."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Mapping, Optional

from errors import (
    ALREADY_RECORDING,
    BACKEND_UNAVAILABLE,
    ERROR_MESSAGES,
    PERMISSION_DENIED,
    RECOGNITION_ERROR,
    BackendError,
    is_benign_abort,
)
from event_channel import EventChannel
from interfaces import BackendAdapter, PermissionProbe
from models import (
    BackendKind,
    FlushPolicy,
    RecognitionEvent,
    RecognitionKind,
    Session,
    SessionError,
    SessionState,
    StartResult,
)
from transcript import TranscriptAccumulator

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionState, SessionState], None]
TextCallback = Callable[[str], None]
ErrorCallback = Callable[[str, str], None]
AdapterFactory = Callable[[], BackendAdapter]
AvailabilityCheck = Callable[[], bool]


class SessionController:
    def __init__(
        self,
        adapter_factories: Mapping[BackendKind, AdapterFactory],
        permission_probe: PermissionProbe,
        flush_policy: FlushPolicy = FlushPolicy.INCREMENTAL,
        availability: Optional[Mapping[BackendKind, AvailabilityCheck]] = None,
        on_interim_update: Optional[TextCallback] = None,
        on_final_result: Optional[TextCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_state_change: Optional[StateCallback] = None,
    ) -> None:
        self._adapter_factories = dict(adapter_factories)
        self._permission_probe = permission_probe
        self._availability = dict(availability or {})
        self._accumulator = TranscriptAccumulator(flush_policy)
        self._on_interim_update = on_interim_update
        self._on_final_result = on_final_result
        self._on_error = on_error
        self._on_state_change = on_state_change

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._session: Optional[Session] = None
        self._adapter: Optional[BackendAdapter] = None
        self._channel: Optional[EventChannel] = None
        self._last_error: Optional[SessionError] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def last_error(self) -> Optional[SessionError]:
        return self._last_error

    @property
    def preview(self) -> str:
        with self._lock:
            if self._session is None:
                return ""
            return self._accumulator.preview(self._session)

    @property
    def flush_policy(self) -> FlushPolicy:
        return self._accumulator.flush_policy

    def is_backend_available(self, kind: BackendKind) -> bool:
        if kind not in self._adapter_factories:
            return False
        check = self._availability.get(kind)
        if check is None:
            return True
        try:
            return bool(check())
        except Exception:
            logger.exception("availability check for %s failed", kind.value)
            return False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, backend_kind: BackendKind) -> StartResult:
        with self._lock:
            if self._state != SessionState.IDLE:
                logger.info("start(%s) rejected: state is %s", backend_kind.value, self._state.value)
                return StartResult(False, ALREADY_RECORDING, ERROR_MESSAGES[ALREADY_RECORDING])
            factory = self._adapter_factories.get(backend_kind)
            if factory is None:
                return self._reject_start(BACKEND_UNAVAILABLE, f"no {backend_kind.value} backend configured")
            self._last_error = None
            session = Session(backend_kind=backend_kind)
            self._session = session
            self._transition(SessionState.ACQUIRING_PERMISSION)

        if not self._request_permission():
            return self._abort_start(session, PERMISSION_DENIED, ERROR_MESSAGES[PERMISSION_DENIED])

        channel = EventChannel(self._handle_event)
        adapter: Optional[BackendAdapter] = None
        try:
            adapter = factory()
            adapter.start(channel)
        except BackendError as exc:
            channel.close(wait=False)
            self._safe_stop_adapter(adapter)
            return self._abort_start(session, exc.code, exc.message)
        except Exception as exc:
            logger.exception("%s backend failed to start", backend_kind.value)
            channel.close(wait=False)
            self._safe_stop_adapter(adapter)
            return self._abort_start(session, BACKEND_UNAVAILABLE, f"start failed: {exc}")

        with self._lock:
            self._accumulator.reset(session)
            self._adapter = adapter
            self._channel = channel
            self._transition(SessionState.ACTIVE)
        logger.info("dictation started with %s backend", backend_kind.value)
        # Events emitted while the adapter was starting are delivered now.
        channel.release()
        return StartResult(True)

    def stop(self) -> None:
        """Stop the active session, flush remaining text and return to Idle.

        Blocks until the backend acknowledged the stop.
        """
        with self._lock:
            if self._state != SessionState.ACTIVE or self._session is None:
                return
            session = self._session
            adapter = self._adapter
            channel = self._channel
            self._transition(SessionState.STOPPING)

        self._safe_stop_adapter(adapter)
        if channel is not None:
            if channel.is_draining_on_current_thread():
                # Called from a callback; events still queued behind it are dropped.
                channel.close(wait=False)
                channel.discard_pending()
            else:
                # Deliver whatever the backend produced before acknowledging the stop.
                channel.close(wait=True)
        self._finish(session)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _handle_event(self, event: RecognitionEvent) -> None:
        teardown = False
        with self._lock:
            session = self._session
            if session is None or self._state not in (SessionState.ACTIVE, SessionState.STOPPING):
                logger.debug("ignoring %s event in state %s", event.kind.value, self._state.value)
                return

            if event.kind == RecognitionKind.ERROR:
                if is_benign_abort(event.code):
                    logger.debug("backend aborted: %s", event.message)
                    return
                if not event.recoverable:
                    self._record_error(session, event.code or RECOGNITION_ERROR, event.message)

            if event.kind == RecognitionKind.SESSION_ENDED and self._state == SessionState.ACTIVE:
                logger.info("backend ended the session")

            reduction = self._accumulator.apply(session, event)
            if reduction.preview is not None:
                self._emit_interim(reduction.preview)
            if reduction.committed:
                self._emit_final(reduction.committed)
            if reduction.terminal and self._state == SessionState.ACTIVE:
                self._transition(SessionState.STOPPING)
                teardown = True

        if teardown:
            self._teardown_from_event(session)

    def _teardown_from_event(self, session: Session) -> None:
        # Runs on the thread that delivered the event; never wait on the channel here.
        with self._lock:
            adapter = self._adapter
            channel = self._channel
        if channel is not None:
            channel.close(wait=False)
            channel.discard_pending()
        self._safe_stop_adapter(adapter)
        self._finish(session)

    def _finish(self, session: Session) -> None:
        with self._lock:
            if self._session is not session or self._state != SessionState.STOPPING:
                return
            remaining = self._accumulator.take_unflushed(session)
            if remaining:
                self._emit_final(remaining)
            self._accumulator.reset(session)
            self._emit_interim("")
            self._session = None
            self._adapter = None
            self._channel = None
            self._transition(SessionState.IDLE)
        logger.info("dictation session finished")

    def _request_permission(self) -> bool:
        try:
            return bool(self._permission_probe.request_microphone_access())
        except Exception:
            logger.exception("microphone permission request failed")
            return False

    def _reject_start(self, code: str, message: str) -> StartResult:
        self._last_error = SessionError(code, message)
        self._emit_error(code, message)
        return StartResult(False, code, message)

    def _abort_start(self, session: Session, code: str, message: str) -> StartResult:
        with self._lock:
            self._record_error(session, code, message)
            self._session = None
            self._transition(SessionState.IDLE)
        logger.warning("dictation start failed: %s: %s", code, message)
        return StartResult(False, code, message)

    def _record_error(self, session: Session, code: str, message: str) -> None:
        error = SessionError(code, message)
        session.last_error = error
        self._last_error = error
        self._emit_error(code, message)

    def _emit_interim(self, text: str) -> None:
        if not self._on_interim_update:
            return
        try:
            self._on_interim_update(text)
        except Exception:
            logger.exception("interim update callback failed")

    def _emit_final(self, text: str) -> None:
        if not self._on_final_result:
            return
        try:
            self._on_final_result(text)
        except Exception:
            logger.exception("final result callback failed")

    def _emit_error(self, code: str, message: str) -> None:
        if not self._on_error:
            return
        try:
            self._on_error(code, message)
        except Exception:
            logger.exception("error callback failed")

    def _safe_stop_adapter(self, adapter: Optional[BackendAdapter]) -> None:
        if adapter is None:
            return
        try:
            adapter.stop()
        except Exception:
            logger.exception("backend stop failed")

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._session is not None:
            self._session.status = to_state
        logger.debug("session state %s -> %s", from_state.value, to_state.value)
        if self._on_state_change:
            try:
                self._on_state_change(from_state, to_state)
            except Exception:
                logger.exception("state change callback failed")
