"""Simple JSON-based config store."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from models import BackendKind, FlushPolicy

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "voice_dictation"
DEFAULT_MODEL_PATH = CONFIG_DIR / "models" / "vosk-model-small-en-us-0.15"


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or CONFIG_DIR / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._path.parent

    def get_api_key(self) -> str:
        return str(self._read_all().get("api_key", ""))

    def set_api_key(self, key: str) -> None:
        self._update("api_key", key)

    def get_region(self) -> str:
        return str(self._read_all().get("region", ""))

    def set_region(self, region: str) -> None:
        self._update("region", region)

    def get_hotkey(self) -> str:
        return str(self._read_all().get("hotkey", "Key.f9"))

    def set_hotkey(self, hotkey: str) -> None:
        self._update("hotkey", hotkey)

    def get_backend(self) -> BackendKind:
        value = self._read_all().get("backend", BackendKind.LOCAL.value)
        try:
            return BackendKind(value)
        except ValueError:
            return BackendKind.LOCAL

    def set_backend(self, backend: BackendKind) -> None:
        self._update("backend", backend.value)

    def get_model_path(self) -> Path:
        value = self._read_all().get("model_path")
        return Path(value).expanduser() if value else DEFAULT_MODEL_PATH

    def set_model_path(self, path: Path) -> None:
        self._update("model_path", str(path))

    def get_flush_policy(self) -> FlushPolicy:
        value = self._read_all().get("flush_policy", FlushPolicy.INCREMENTAL.value)
        try:
            return FlushPolicy(value)
        except ValueError:
            return FlushPolicy.INCREMENTAL

    def _update(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("ignoring unreadable config %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
