"""Protocol interfaces used by SessionController and the backend adapters."""

from __future__ import annotations

from queue import Queue
from typing import Protocol

from event_channel import EventChannel
from models import AudioFrame, BackendKind, InsertResult, SpeechCredentials


class Recorder(Protocol):
    def start(self, audio_queue: Queue[AudioFrame | None]) -> None: ...

    def stop(self) -> None: ...


class BackendAdapter(Protocol):
    kind: BackendKind

    def start(self, channel: EventChannel) -> None: ...

    def stop(self) -> None: ...


class PermissionProbe(Protocol):
    def request_microphone_access(self) -> bool: ...


class CredentialResolver(Protocol):
    def resolve(self) -> SpeechCredentials: ...

    def is_configured(self) -> bool: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_region(self) -> str: ...


class TextSink(Protocol):
    def reset(self) -> None: ...

    def insert_text(self, text: str) -> InsertResult: ...
