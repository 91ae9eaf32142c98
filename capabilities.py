"""Side-effect free checks for whether a backend can be offered."""

from __future__ import annotations

import logging
from pathlib import Path

import cloud_adapter
import local_adapter
import recorder
from interfaces import CredentialResolver

logger = logging.getLogger(__name__)


def has_input_device() -> bool:
    sd = recorder.sd
    if sd is None:
        return False
    try:
        return bool(sd.query_devices(kind="input"))
    except Exception as exc:
        logger.debug("no input device: %s", exc)
        return False


def local_backend_available(model_path: str | Path) -> bool:
    if local_adapter.vosk is None:
        return False
    if not Path(model_path).expanduser().is_dir():
        return False
    return has_input_device()


def cloud_backend_available(credential_resolver: CredentialResolver) -> bool:
    if cloud_adapter.dashscope is None:
        return False
    if not credential_resolver.is_configured():
        return False
    return has_input_device()
