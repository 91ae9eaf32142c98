"""Delivers finalized dictation fragments into the focused document."""

from __future__ import annotations

import logging
import sys
import threading
import time

from errors import NO_ACTIVE_TARGET
from models import InsertResult

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

try:
    from pynput.keyboard import Controller, Key
except Exception:  # pragma: no cover
    Controller = None  # type: ignore
    Key = None  # type: ignore

logger = logging.getLogger(__name__)


class ClipboardTextSink:
    """Pastes text at the cursor through the clipboard.

    Consecutive fragments of one dictation session are joined with a single
    space; ``reset()`` starts a new session.
    """

    def __init__(self, restore_delay_s: float = 0.1) -> None:
        self._restore_delay_s = restore_delay_s
        self._lock = threading.Lock()
        self._has_inserted = False

    def reset(self) -> None:
        with self._lock:
            self._has_inserted = False

    def insert_text(self, text: str) -> InsertResult:
        text = text.strip()
        if not text:
            return InsertResult(success=False, reason="empty text", clipboard_restored=True)
        if pyperclip is None or Controller is None or Key is None:
            return InsertResult(
                success=False,
                reason="clipboard/keyboard dependency missing",
                clipboard_restored=False,
            )

        with self._lock:
            payload = f" {text}" if self._has_inserted else text
            result = self._paste(payload)
            if result.success:
                self._has_inserted = True
        if not result.success:
            logger.warning("text insertion failed: %s", result.reason)
        return result

    def _paste(self, payload: str) -> InsertResult:
        old_clip: str | None = None
        try:
            old_clip = pyperclip.paste()
            pyperclip.copy(payload)
            keyboard = Controller()
            modifier = Key.cmd if sys.platform == "darwin" else Key.ctrl
            with keyboard.pressed(modifier):
                keyboard.press("v")
                keyboard.release("v")
            time.sleep(self._restore_delay_s)
            pyperclip.copy(old_clip)
            return InsertResult(success=True, reason="ok", clipboard_restored=True)
        except Exception as exc:
            restored = False
            if old_clip is not None:
                try:
                    pyperclip.copy(old_clip)
                    restored = True
                except Exception:
                    logger.warning("could not restore clipboard")
            return InsertResult(
                success=False,
                reason=f"{NO_ACTIVE_TARGET}: {exc}",
                clipboard_restored=restored,
            )
