"""Application entrypoint."""

from __future__ import annotations

import argparse
import logging
import sys
import threading

from capabilities import cloud_backend_available, local_backend_available
from cloud_adapter import REGION_ENDPOINTS, DashscopeCloudAdapter
from config import JsonConfigStore
from credentials import ConfigCredentialResolver
from errors import ERROR_MESSAGES, NO_ACTIVE_TARGET
from hotkey import ToggleHotkeyListener
from interfaces import TextSink
from local_adapter import VoskLocalAdapter
from logging_setup import setup_logging
from models import BackendKind, SessionState
from overlay import PreviewOverlay
from permissions import SoundDevicePermissionProbe
from recorder import MicrophoneRecorder
from session_controller import SessionController
from text_sink import ClipboardTextSink

try:
    from PySide6.QtCore import QObject, QSize, Signal
    from PySide6.QtGui import QAction, QActionGroup, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_IDLE = "#888888"
ICON_BUSY = "#FFCC00"
ICON_RECORDING = "#FF4444"

BACKEND_LABELS = {
    BackendKind.LOCAL: "Local recognition",
    BackendKind.CLOUD: "Cloud recognition",
}


class UIBridge(QObject):
    preview_signal = Signal(str)
    error_signal = Signal(str)
    state_signal = Signal(str)


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = JsonConfigStore()
        self.overlay = PreviewOverlay()
        self.text_sink: TextSink = ClipboardTextSink()
        self.ui = UIBridge()
        self.ui.preview_signal.connect(self.overlay.set_preview)
        self.ui.error_signal.connect(self.overlay.show_error)
        self.ui.state_signal.connect(self._on_state_change_ui)

        resolver = ConfigCredentialResolver(self.config_store)
        model_path = self.config_store.get_model_path()
        self.controller = SessionController(
            adapter_factories={
                BackendKind.LOCAL: lambda: VoskLocalAdapter(model_path, recorder=MicrophoneRecorder()),
                BackendKind.CLOUD: lambda: DashscopeCloudAdapter(resolver, recorder=MicrophoneRecorder()),
            },
            permission_probe=SoundDevicePermissionProbe(),
            flush_policy=self.config_store.get_flush_policy(),
            availability={
                BackendKind.LOCAL: lambda: local_backend_available(model_path),
                BackendKind.CLOUD: lambda: cloud_backend_available(resolver),
            },
            on_interim_update=self.ui.preview_signal.emit,
            on_final_result=self._on_final_result,
            on_error=self._on_error,
            on_state_change=self._on_state_change,
        )
        self.hotkey = ToggleHotkeyListener(hotkey_name=self.config_store.get_hotkey())

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_IDLE))
        self.tray.setToolTip("Dictation — Ready")
        self._backend_actions: dict[BackendKind, QAction] = {}
        self._setup_menu()
        self.tray.show()

    def _setup_menu(self) -> None:
        menu = QMenu()

        self._toggle_action = QAction("Start dictation", menu)
        self._toggle_action.triggered.connect(self.toggle_dictation)
        menu.addAction(self._toggle_action)
        menu.addSeparator()

        group = QActionGroup(menu)
        group.setExclusive(True)
        selected = self.config_store.get_backend()
        for kind, label in BACKEND_LABELS.items():
            action = QAction(label, menu, checkable=True)
            action.setChecked(kind == selected)
            action.triggered.connect(lambda _checked=False, k=kind: self.config_store.set_backend(k))
            group.addAction(action)
            menu.addAction(action)
            self._backend_actions[kind] = action
        menu.aboutToShow.connect(self._refresh_backend_actions)

        menu.addSeparator()
        api_action = QAction("Set API Key", menu)
        api_action.triggered.connect(self._set_api_key)
        menu.addAction(api_action)

        region_action = QAction("Set Cloud Region", menu)
        region_action.triggered.connect(self._set_region)
        menu.addAction(region_action)

        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    def _refresh_backend_actions(self) -> None:
        for kind, action in self._backend_actions.items():
            action.setEnabled(self.controller.is_backend_available(kind))

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "DashScope API Key")
        if not ok:
            return
        self.config_store.set_api_key(value)
        QMessageBox.information(None, "Saved", "API Key saved, used by the next cloud session.")

    def _set_region(self) -> None:
        regions = sorted(REGION_ENDPOINTS)
        current = self.config_store.get_region()
        index = regions.index(current) if current in regions else 0
        value, ok = QInputDialog.getItem(None, "Cloud Region", "DashScope region", regions, index, False)
        if not ok:
            return
        self.config_store.set_region(value)

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_final_result(self, text: str) -> None:
        result = self.text_sink.insert_text(text)
        if not result.success and result.reason != "empty text":
            self.ui.error_signal.emit(ERROR_MESSAGES[NO_ACTIVE_TARGET])

    def _on_error(self, code: str, message: str) -> None:
        self.ui.error_signal.emit(message or ERROR_MESSAGES.get(code, code))

    def _on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        self.ui.state_signal.emit(to_state.value)

    def _on_state_change_ui(self, to_state: str) -> None:
        if to_state == SessionState.ACTIVE.value:
            self.tray.setIcon(_create_icon(ICON_RECORDING))
            self.tray.setToolTip("Dictation — Listening...")
            self._toggle_action.setText("Stop dictation")
            self.overlay.show_status("🎙️ Listening...")
        elif to_state in (SessionState.ACQUIRING_PERMISSION.value, SessionState.STOPPING.value):
            self.tray.setIcon(_create_icon(ICON_BUSY))
        elif to_state == SessionState.IDLE.value:
            self.tray.setIcon(_create_icon(ICON_IDLE))
            self.tray.setToolTip("Dictation — Ready")
            self._toggle_action.setText("Start dictation")

    # ------------------------------------------------------------------
    # Dictation control
    # ------------------------------------------------------------------

    def toggle_dictation(self) -> None:
        # start() waits for the permission prompt and stop() for the backend,
        # so neither may run on the Qt main thread or the hotkey listener.
        if self.controller.state == SessionState.IDLE:
            target = self._start_dictation
        else:
            target = self.controller.stop
        threading.Thread(target=target, daemon=True).start()

    def _start_dictation(self) -> None:
        self.text_sink.reset()
        result = self.controller.start(self.config_store.get_backend())
        if not result.success:
            logger.info("dictation not started: %s", result.code)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        if not any(self.controller.is_backend_available(kind) for kind in BackendKind):
            self.overlay.show_error("No speech recognition backend is available.", hide_after_ms=5000)
        try:
            self.hotkey.start(on_toggle=self.toggle_dictation)
        except Exception as exc:
            self.overlay.show_error(f"Hotkey disabled: {exc}")
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.controller.stop()
        self.app.quit()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Dictate into any text field.")
    parser.add_argument("-v", "--verbose", action="store_true", help="log at DEBUG level")
    args = parser.parse_args(argv)
    setup_logging(JsonConfigStore().directory / "logs", verbose=args.verbose)
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
