"""Core data models for dictation sessions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SessionState(str, Enum):
    IDLE = "IDLE"
    ACQUIRING_PERMISSION = "ACQUIRING_PERMISSION"
    ACTIVE = "ACTIVE"
    STOPPING = "STOPPING"


class BackendKind(str, Enum):
    LOCAL = "local"
    CLOUD = "cloud"


class RecognitionKind(str, Enum):
    INTERIM = "interim"
    FINAL = "final"
    ERROR = "error"
    SESSION_ENDED = "session_ended"


class FlushPolicy(str, Enum):
    INCREMENTAL = "incremental"
    ON_STOP = "on_stop"


@dataclass(frozen=True)
class RecognitionEvent:
    kind: RecognitionKind
    text: str = ""
    code: str = ""
    message: str = ""
    recoverable: bool = False

    @classmethod
    def interim(cls, text: str) -> "RecognitionEvent":
        return cls(kind=RecognitionKind.INTERIM, text=text)

    @classmethod
    def final(cls, text: str) -> "RecognitionEvent":
        return cls(kind=RecognitionKind.FINAL, text=text)

    @classmethod
    def error(cls, code: str, message: str, recoverable: bool = False) -> "RecognitionEvent":
        return cls(kind=RecognitionKind.ERROR, code=code, message=message, recoverable=recoverable)

    @classmethod
    def session_ended(cls) -> "RecognitionEvent":
        return cls(kind=RecognitionKind.SESSION_ENDED)


@dataclass(frozen=True)
class SessionError:
    code: str
    message: str


@dataclass
class Session:
    """One start-to-stop recording attempt, owned by a SessionController."""

    backend_kind: BackendKind
    status: SessionState = SessionState.IDLE
    accumulated_final: str = ""
    current_interim: str = ""
    last_error: Optional[SessionError] = None
    # Length of accumulated_final already handed to on_final_result.
    delivered_chars: int = 0
    last_preview: str = ""
    closed: bool = False


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass(frozen=True)
class SpeechCredentials:
    subscription_key: str
    region: str


@dataclass
class StartResult:
    success: bool
    code: str = ""
    message: str = ""


@dataclass
class InsertResult:
    success: bool
    reason: str
    clipboard_restored: bool
