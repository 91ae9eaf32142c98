"""Microphone capture feeding PCM frames into a queue."""

from __future__ import annotations

import logging
import threading
import time
from queue import Full, Queue
from typing import Any, Optional

from models import AudioFrame

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


class MicrophoneRecorder:
    """Owns the input stream for the duration of one session.

    ``None`` is put on the queue exactly once per started stream, when the
    stream is stopped or ends by itself, so consumers can tell the audio
    source is gone.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
        device: Optional[int | str] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.device = device
        self.dropped_chunks = 0
        self._stream: Any = None
        self._running = False
        self._sentinel_sent = False
        self._lock = threading.Lock()
        self._audio_queue: Queue[AudioFrame | None] | None = None

    def start(self, audio_queue: Queue[AudioFrame | None]) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise RuntimeError("sounddevice is not installed")
            self._audio_queue = audio_queue
            self._sentinel_sent = False
            self.dropped_chunks = 0
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=blocksize,
                device=self.device,
                callback=self._on_audio,
                finished_callback=self._on_finished,
            )
            try:
                stream.start()
            except Exception:
                stream.close()
                raise
            self._stream = stream
            self._running = True
            logger.debug("microphone opened at %d Hz", self.sample_rate)

    def stop(self) -> None:
        with self._lock:
            stream = self._stream
            self._stream = None
            self._running = False
        if stream is not None:
            try:
                stream.stop()
            finally:
                stream.close()
            logger.debug("microphone closed, %d chunks dropped", self.dropped_chunks)
        self._emit_sentinel()

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running or self._audio_queue is None:
            return
        if status:
            logger.debug("input stream status: %s", status)
        if np is None:
            return
        payload = np.asarray(indata, dtype=np.int16).tobytes()
        frame = AudioFrame(
            pcm16_bytes=payload,
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
        )
        try:
            self._audio_queue.put_nowait(frame)
        except Full:
            self.dropped_chunks += 1

    def _on_finished(self) -> None:
        if self._running:
            logger.warning("input stream ended unexpectedly")
            self._running = False
        self._emit_sentinel()

    def _emit_sentinel(self) -> None:
        with self._lock:
            if self._audio_queue is None or self._sentinel_sent:
                return
            self._sentinel_sent = True
            queue = self._audio_queue
        try:
            queue.put_nowait(None)
        except Full:
            # Make room: the consumer only needs to learn that the stream ended.
            try:
                queue.get_nowait()
                queue.put_nowait(None)
            except Exception:
                logger.warning("could not signal end of audio stream")
