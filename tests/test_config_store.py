from __future__ import annotations

from pathlib import Path

from config import DEFAULT_MODEL_PATH, JsonConfigStore
from models import BackendKind, FlushPolicy


def test_config_read_write(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    store = JsonConfigStore(path=path)

    assert store.get_api_key() == ""
    assert store.get_region() == ""
    assert store.get_hotkey() == "Key.f9"
    assert store.get_backend() == BackendKind.LOCAL
    assert store.get_model_path() == DEFAULT_MODEL_PATH
    assert store.get_flush_policy() == FlushPolicy.INCREMENTAL

    store.set_api_key("abc")
    store.set_region("ap-southeast-1")
    store.set_hotkey("Key.f8")
    store.set_backend(BackendKind.CLOUD)
    store.set_model_path(tmp_path / "model")

    reloaded = JsonConfigStore(path=path)
    assert reloaded.get_api_key() == "abc"
    assert reloaded.get_region() == "ap-southeast-1"
    assert reloaded.get_hotkey() == "Key.f8"
    assert reloaded.get_backend() == BackendKind.CLOUD
    assert reloaded.get_model_path() == tmp_path / "model"
    assert reloaded.directory == tmp_path


def test_config_invalid_json_fallback(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{invalid", encoding="utf-8")

    store = JsonConfigStore(path=path)
    assert store.get_api_key() == ""
    assert store.get_backend() == BackendKind.LOCAL


def test_config_unknown_enum_values_fall_back(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text('{"backend": "quantum", "flush_policy": "sometimes"}', encoding="utf-8")

    store = JsonConfigStore(path=path)
    assert store.get_backend() == BackendKind.LOCAL
    assert store.get_flush_policy() == FlushPolicy.INCREMENTAL


def test_config_reads_flush_policy(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text('{"flush_policy": "on_stop"}', encoding="utf-8")

    assert JsonConfigStore(path=path).get_flush_policy() == FlushPolicy.ON_STOP
