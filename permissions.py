"""Microphone permission probe."""

from __future__ import annotations

import logging
from typing import Optional

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


class SoundDevicePermissionProbe:
    """Asks for microphone access by briefly opening an input stream.

    Opening the stream is what makes the OS show its permission prompt; a
    refusal surfaces as a PortAudio error.
    """

    def __init__(self, sample_rate: int = 16000, device: Optional[int | str] = None) -> None:
        self._sample_rate = sample_rate
        self._device = device

    def request_microphone_access(self) -> bool:
        if sd is None:
            logger.warning("sounddevice is not installed")
            return False
        try:
            sd.check_input_settings(
                device=self._device, channels=1, dtype="int16", samplerate=self._sample_rate
            )
            with sd.InputStream(
                samplerate=self._sample_rate,
                channels=1,
                dtype="int16",
                device=self._device,
            ):
                pass
        except Exception as exc:
            logger.warning("microphone access refused: %s", exc)
            return False
        return True
