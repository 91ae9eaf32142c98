"""Shared error codes and user-facing messages."""

from __future__ import annotations

PERMISSION_DENIED = "PERMISSION_DENIED"
BACKEND_UNAVAILABLE = "BACKEND_UNAVAILABLE"
RECOGNITION_ERROR = "RECOGNITION_ERROR"
ALREADY_RECORDING = "ALREADY_RECORDING"
NO_ACTIVE_TARGET = "NO_ACTIVE_TARGET"

# Native code a backend reports when it was stopped on purpose. Never surfaced.
ABORTED = "aborted"

ERROR_MESSAGES = {
    PERMISSION_DENIED: "Microphone access was denied.",
    BACKEND_UNAVAILABLE: "Speech recognition backend is not available.",
    RECOGNITION_ERROR: "Speech recognition failed.",
    ALREADY_RECORDING: "A recording session is already running.",
    NO_ACTIVE_TARGET: "No active input target, result kept in clipboard.",
}


class BackendError(RuntimeError):
    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or ERROR_MESSAGES.get(code, code))
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, code)


def is_benign_abort(code: str) -> bool:
    return code.lower() == ABORTED
