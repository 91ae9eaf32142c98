"""Resolution of transient credentials for the cloud backend."""

from __future__ import annotations

import logging
import os
import re

from errors import BACKEND_UNAVAILABLE, BackendError
from interfaces import ConfigStore
from models import SpeechCredentials

logger = logging.getLogger(__name__)

DEFAULT_REGION = "cn-beijing"

_INTL_HOST = re.compile(r"^(?:wss|https)://dashscope-intl\.", re.IGNORECASE)
_CN_HOST = re.compile(r"^(?:wss|https)://dashscope\.", re.IGNORECASE)


def region_from_endpoint(endpoint: str) -> str:
    """Derive the service region from an endpoint URL, '' if unknown."""
    if _INTL_HOST.match(endpoint):
        return "ap-southeast-1"
    if _CN_HOST.match(endpoint):
        return "cn-beijing"
    return ""


class ConfigCredentialResolver:
    def __init__(
        self,
        config_store: ConfigStore,
        key_env: str = "DASHSCOPE_API_KEY",
        endpoint_env: str = "DASHSCOPE_ENDPOINT",
    ) -> None:
        self._config_store = config_store
        self._key_env = key_env
        self._endpoint_env = endpoint_env

    def is_configured(self) -> bool:
        return bool(self._subscription_key())

    def resolve(self) -> SpeechCredentials:
        key = self._subscription_key()
        if not key:
            raise BackendError(BACKEND_UNAVAILABLE, "No API key configured")
        return SpeechCredentials(subscription_key=key, region=self._region())

    def _subscription_key(self) -> str:
        return self._config_store.get_api_key() or os.getenv(self._key_env, "")

    def _region(self) -> str:
        region = self._config_store.get_region()
        if region:
            return region
        endpoint = os.getenv(self._endpoint_env, "")
        if endpoint:
            region = region_from_endpoint(endpoint)
            if not region:
                logger.warning("cannot derive region from %s, using %s", endpoint, DEFAULT_REGION)
        return region or DEFAULT_REGION
