"""Local continuous recognition backed by a Vosk model.

Microphone frames are fed to a ``KaldiRecognizer`` on a worker thread.
Partial hypotheses become interim events, completed utterances become
final events. When the audio stream ends (caller stop or device loss) the
recognizer is asked for its last hypothesis and the adapter reports the
end of the session.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from queue import Empty, Queue
from typing import Any, Dict, Optional

from errors import ABORTED, BACKEND_UNAVAILABLE, RECOGNITION_ERROR, BackendError, is_benign_abort
from event_channel import EventChannel
from interfaces import Recorder
from models import AudioFrame, BackendKind, RecognitionEvent
from recorder import MicrophoneRecorder

try:
    import vosk
except Exception:  # pragma: no cover
    vosk = None  # type: ignore

logger = logging.getLogger(__name__)

_models: Dict[str, Any] = {}
_models_lock = threading.Lock()


def load_model(model_path: str | Path) -> Any:
    """Load a Vosk model once per path and reuse it afterwards."""
    key = str(Path(model_path).expanduser())
    with _models_lock:
        model = _models.get(key)
        if model is not None:
            return model
        if vosk is None:
            raise BackendError(BACKEND_UNAVAILABLE, "vosk is not installed")
        if not Path(key).is_dir():
            raise BackendError(BACKEND_UNAVAILABLE, f"speech model not found at {key}")
        vosk.SetLogLevel(-1)
        logger.info("loading speech model from %s", key)
        model = vosk.Model(key)
        _models[key] = model
        return model


def _text_field(payload: str, field: str) -> str:
    try:
        data = json.loads(payload or "{}")
    except json.JSONDecodeError:
        return ""
    return str(data.get(field, "")).strip()


class VoskLocalAdapter:
    """Local recognition with a Vosk model.

    Vosk models are single-language, so the recognized language is the one
    of the model at ``model_path`` (by default the small en-us model from
    ``config.DEFAULT_MODEL_PATH``). ``language`` is only a label for logs;
    pick a model for another language to change it.
    """

    kind = BackendKind.LOCAL

    def __init__(
        self,
        model_path: str | Path,
        recorder: Optional[Recorder] = None,
        language: str = "en-US",
        sample_rate: int = 16000,
        queue_maxsize: int = 50,
        stop_timeout_s: float = 2.0,
    ) -> None:
        self._model_path = model_path
        self._recorder: Recorder = recorder or MicrophoneRecorder(sample_rate=sample_rate)
        self.language = language
        self._sample_rate = sample_rate
        self._queue_maxsize = queue_maxsize
        self._stop_timeout_s = stop_timeout_s
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._channel: Optional[EventChannel] = None
        self._audio_queue: Optional[Queue[AudioFrame | None]] = None
        self._recognizer: Any = None

    def start(self, channel: EventChannel) -> None:
        if self._thread and self._thread.is_alive():
            return
        model = load_model(self._model_path)
        self._recognizer = vosk.KaldiRecognizer(model, self._sample_rate)
        self._audio_queue = Queue(maxsize=self._queue_maxsize)
        self._stop_event.clear()
        try:
            self._recorder.start(self._audio_queue)
        except Exception as exc:
            self._recorder.stop()
            raise BackendError(BACKEND_UNAVAILABLE, f"microphone unavailable: {exc}") from exc
        self._channel = channel
        self._thread = threading.Thread(target=self._worker, name="vosk-recognizer", daemon=True)
        self._thread.start()
        logger.debug("local recognition started (%s)", self.language)

    def stop(self) -> None:
        # Closing the microphone lets the worker finish the last utterance.
        self._recorder.stop()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=self._stop_timeout_s)
            if thread.is_alive():
                logger.warning(
                    "local recognition did not finish within %.1fs, last utterance dropped",
                    self._stop_timeout_s,
                )
                self._stop_event.set()
                thread.join(timeout=0.5)
        self._channel = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _worker(self) -> None:
        recognizer = self._recognizer
        audio_queue = self._audio_queue
        if recognizer is None or audio_queue is None:
            return
        last_partial = ""
        try:
            while not self._stop_event.is_set():
                try:
                    frame = audio_queue.get(timeout=0.2)
                except Empty:
                    continue
                if frame is None:
                    break
                if recognizer.AcceptWaveform(frame.pcm16_bytes):
                    last_partial = ""
                    text = _text_field(recognizer.Result(), "text")
                    if text:
                        self._emit(RecognitionEvent.final(text))
                else:
                    partial = _text_field(recognizer.PartialResult(), "partial")
                    if partial and partial != last_partial:
                        last_partial = partial
                        self._emit(RecognitionEvent.interim(partial))

            if self._stop_event.is_set():
                self._emit_error(ABORTED, "recognition interrupted")
                return
            text = _text_field(recognizer.FinalResult(), "text")
            if text:
                self._emit(RecognitionEvent.final(text))
        except Exception as exc:
            logger.exception("local recognition failed")
            self._emit_error(RECOGNITION_ERROR, str(exc))
        finally:
            self._recorder.stop()
            self._emit(RecognitionEvent.session_ended())

    def _emit_error(self, code: str, message: str) -> None:
        if is_benign_abort(code):
            logger.debug("local recognition aborted: %s", message)
            return
        self._emit(RecognitionEvent.error(code, message, recoverable=False))

    def _emit(self, event: RecognitionEvent) -> None:
        channel = self._channel
        if channel is not None:
            channel.emit(event)
