from __future__ import annotations

from unittest.mock import MagicMock

import text_sink
from text_sink import ClipboardTextSink


def _install_fakes(monkeypatch) -> tuple[MagicMock, MagicMock]:  # noqa: ANN001
    clipboard = MagicMock()
    clipboard.paste.return_value = "previous"
    keyboard_controller = MagicMock()
    monkeypatch.setattr(text_sink, "pyperclip", clipboard)
    monkeypatch.setattr(text_sink, "Controller", MagicMock(return_value=keyboard_controller))
    monkeypatch.setattr(text_sink, "Key", MagicMock())
    return clipboard, keyboard_controller


def test_insert_returns_failure_when_dependencies_missing(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(text_sink, "pyperclip", None)
    monkeypatch.setattr(text_sink, "Controller", None)
    monkeypatch.setattr(text_sink, "Key", None)

    result = ClipboardTextSink().insert_text("hello")

    assert result.success is False
    assert result.clipboard_restored is False


def test_insert_returns_failure_on_empty_text() -> None:
    result = ClipboardTextSink().insert_text("   ")

    assert result.success is False
    assert result.clipboard_restored is True


def test_fragments_are_space_separated_and_clipboard_restored(monkeypatch) -> None:  # noqa: ANN001
    clipboard, keyboard = _install_fakes(monkeypatch)
    sink = ClipboardTextSink(restore_delay_s=0)

    assert sink.insert_text("hello world.").success is True
    assert sink.insert_text("second").success is True

    copied = [c.args[0] for c in clipboard.copy.call_args_list]
    assert copied == ["hello world.", "previous", " second", "previous"]
    assert keyboard.press.call_count == 2


def test_reset_starts_without_separator(monkeypatch) -> None:  # noqa: ANN001
    clipboard, _ = _install_fakes(monkeypatch)
    sink = ClipboardTextSink(restore_delay_s=0)
    sink.insert_text("one")

    sink.reset()
    sink.insert_text("two")

    assert clipboard.copy.call_args_list[2].args[0] == "two"


def test_paste_failure_restores_clipboard(monkeypatch) -> None:  # noqa: ANN001
    clipboard, keyboard = _install_fakes(monkeypatch)
    keyboard.pressed.side_effect = RuntimeError("no focus")
    sink = ClipboardTextSink(restore_delay_s=0)

    result = sink.insert_text("text")

    assert result.success is False
    assert result.reason.startswith("NO_ACTIVE_TARGET")
    assert result.clipboard_restored is True
    assert clipboard.copy.call_args_list[-1].args[0] == "previous"
