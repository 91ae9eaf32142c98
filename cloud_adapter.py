"""Cloud streaming recognition using DashScope realtime ASR.

Credentials are resolved right before the stream is opened. Microphone
frames are pushed to the service from a feeder thread while the SDK calls
back on its own websocket thread:

* a sentence that is still growing      -> interim event
* a sentence marked as ended with text  -> final event
* ``on_error``                          -> unrecoverable error event
* ``on_complete``                       -> end of session
"""

from __future__ import annotations

import logging
import threading
from queue import Empty, Queue
from typing import Any, Optional

from errors import BACKEND_UNAVAILABLE, RECOGNITION_ERROR, BackendError
from event_channel import EventChannel
from interfaces import CredentialResolver, Recorder
from models import AudioFrame, BackendKind, RecognitionEvent, SpeechCredentials
from recorder import MicrophoneRecorder

try:
    import dashscope
    from dashscope.audio.asr import Recognition, RecognitionCallback, RecognitionResult
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore
    Recognition = None  # type: ignore
    RecognitionResult = None  # type: ignore
    RecognitionCallback = object  # type: ignore

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "paraformer-realtime-v2"

REGION_ENDPOINTS = {
    "cn-beijing": "wss://dashscope.aliyuncs.com/api-ws/v1/inference",
    "ap-southeast-1": "wss://dashscope-intl.aliyuncs.com/api-ws/v1/inference",
}


def configure_sdk(credentials: SpeechCredentials) -> None:
    """Point the SDK at the key and regional endpoint. Safe to repeat."""
    if dashscope is None:
        raise BackendError(BACKEND_UNAVAILABLE, "dashscope is not installed")
    dashscope.api_key = credentials.subscription_key
    endpoint = REGION_ENDPOINTS.get(credentials.region.lower())
    if endpoint:
        dashscope.base_websocket_api_url = endpoint
    else:
        logger.warning("unknown region %r, keeping default endpoint", credentials.region)


class _CallbackBridge(RecognitionCallback):
    def __init__(self, adapter: "DashscopeCloudAdapter") -> None:
        super().__init__()
        self._adapter = adapter

    def on_open(self) -> None:
        logger.debug("cloud recognition stream opened")

    def on_event(self, result: Any) -> None:
        self._adapter._on_result(result)

    def on_error(self, result: Any) -> None:
        self._adapter._on_canceled(result)

    def on_complete(self) -> None:
        self._adapter._on_session_stopped()

    def on_close(self) -> None:
        logger.debug("cloud recognition stream closed")


class DashscopeCloudAdapter:
    kind = BackendKind.CLOUD

    def __init__(
        self,
        credential_resolver: CredentialResolver,
        recorder: Optional[Recorder] = None,
        language: str = "en-US",
        model: str = DEFAULT_MODEL,
        sample_rate: int = 16000,
        dictation: bool = True,
        queue_maxsize: int = 50,
        stop_timeout_s: float = 2.0,
    ) -> None:
        self._credential_resolver = credential_resolver
        self._recorder: Recorder = recorder or MicrophoneRecorder(sample_rate=sample_rate)
        self.language = language
        self._model = model
        self._sample_rate = sample_rate
        self._dictation = dictation
        self._queue_maxsize = queue_maxsize
        self._stop_timeout_s = stop_timeout_s
        self._channel: Optional[EventChannel] = None
        self._recognition: Any = None
        self._audio_queue: Optional[Queue[AudioFrame | None]] = None
        self._feeder: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._stream_open = False

    def start(self, channel: EventChannel) -> None:
        if self._stream_open:
            return
        try:
            credentials = self._credential_resolver.resolve()
        except BackendError:
            raise
        except Exception as exc:
            raise BackendError(BACKEND_UNAVAILABLE, f"credentials unavailable: {exc}") from exc
        configure_sdk(credentials)

        self._channel = channel
        self._recognition = Recognition(
            model=self._model,
            callback=_CallbackBridge(self),
            format="pcm",
            sample_rate=self._sample_rate,
            **self._recognition_options(),
        )
        try:
            self._recognition.start()
        except Exception as exc:
            self._channel = None
            raise BackendError(BACKEND_UNAVAILABLE, f"could not open recognition stream: {exc}") from exc
        self._stream_open = True

        self._audio_queue = Queue(maxsize=self._queue_maxsize)
        try:
            self._recorder.start(self._audio_queue)
        except Exception as exc:
            self._recorder.stop()
            self._close_stream()
            self._channel = None
            raise BackendError(BACKEND_UNAVAILABLE, f"microphone unavailable: {exc}") from exc
        self._feeder = threading.Thread(target=self._feed_audio, name="dashscope-feeder", daemon=True)
        self._feeder.start()
        logger.debug("cloud recognition started (%s, region %s)", self.language, credentials.region)

    def stop(self) -> None:
        self._recorder.stop()
        feeder = self._feeder
        if feeder is not None and feeder is not threading.current_thread() and feeder.is_alive():
            feeder.join(timeout=self._stop_timeout_s)
            if feeder.is_alive():
                logger.warning(
                    "audio feed did not finish within %.1fs, last utterance may be lost",
                    self._stop_timeout_s,
                )
        self._close_stream()
        self._channel = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _recognition_options(self) -> dict:
        options: dict = {"language_hints": [self.language.split("-")[0].lower()]}
        if self._dictation:
            options["punctuation_prediction_enabled"] = True
            options["inverse_text_normalization_enabled"] = True
        return options

    def _feed_audio(self) -> None:
        audio_queue = self._audio_queue
        recognition = self._recognition
        if audio_queue is None or recognition is None:
            return
        try:
            while self._stream_open:
                try:
                    frame = audio_queue.get(timeout=0.2)
                except Empty:
                    continue
                if frame is None:
                    break
                recognition.send_audio_frame(frame.pcm16_bytes)
        except Exception as exc:
            logger.exception("sending audio to the recognition service failed")
            self._emit(RecognitionEvent.error(RECOGNITION_ERROR, str(exc), recoverable=False))
            self._recorder.stop()
            return
        # Audio source is gone; flush the service so it reports the last sentence.
        self._close_stream()

    def _close_stream(self) -> None:
        with self._lock:
            if not self._stream_open:
                return
            self._stream_open = False
            recognition = self._recognition
        try:
            recognition.stop()
        except Exception as exc:
            logger.warning("closing recognition stream failed: %s", exc)

    def _on_result(self, result: Any) -> None:
        sentence = result.get_sentence()
        if not isinstance(sentence, dict) or sentence.get("heartbeat"):
            return
        text = str(sentence.get("text", ""))
        if RecognitionResult.is_sentence_end(sentence):
            if text.strip():
                self._emit(RecognitionEvent.final(text))
        elif text:
            self._emit(RecognitionEvent.interim(text))

    def _on_canceled(self, result: Any) -> None:
        message = str(getattr(result, "message", "") or result)
        status = getattr(result, "status_code", "")
        logger.warning("cloud recognition canceled (%s): %s", status, message)
        self._emit(RecognitionEvent.error(RECOGNITION_ERROR, message, recoverable=False))

    def _on_session_stopped(self) -> None:
        self._emit(RecognitionEvent.session_ended())

    def _emit(self, event: RecognitionEvent) -> None:
        channel = self._channel
        if channel is not None:
            channel.emit(event)
