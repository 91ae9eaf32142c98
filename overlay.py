"""Overlay window showing the live dictation preview."""

from __future__ import annotations

try:
    from PySide6.QtCore import Qt, QTimer
    from PySide6.QtWidgets import QApplication, QLabel, QVBoxLayout, QWidget
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QTimer = None  # type: ignore
    QApplication = None  # type: ignore
    QLabel = object  # type: ignore
    QWidget = object  # type: ignore
    QVBoxLayout = object  # type: ignore

_PREVIEW_STYLE = (
    "color: white; font-size: 18px; padding: 16px;"
    "background: rgba(0,0,0,190); border-radius: 12px;"
)
_ERROR_STYLE = (
    "color: #FF6B6B; font-size: 18px; padding: 16px;"
    "background: rgba(0,0,0,210); border-radius: 12px;"
)
_MAX_PREVIEW_CHARS = 400


class PreviewOverlay(QWidget):
    def __init__(self) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowFlags(Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool)
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setAttribute(Qt.WA_ShowWithoutActivating, True)
        self.setFixedWidth(640)

        self._label = QLabel("")
        self._label.setWordWrap(True)
        self._label.setStyleSheet(_PREVIEW_STYLE)

        layout = QVBoxLayout()
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self._label)
        self.setLayout(layout)

        self._hide_timer = QTimer(self)
        self._hide_timer.setSingleShot(True)
        self._hide_timer.timeout.connect(self.hide)

    def set_preview(self, text: str) -> None:
        """Show the preview; an empty preview hides the overlay shortly after."""
        if not text:
            self.hide_with_delay(400)
            return
        self._hide_timer.stop()
        self._label.setStyleSheet(_PREVIEW_STYLE)
        # Long dictations only show their tail.
        if len(text) > _MAX_PREVIEW_CHARS:
            text = "…" + text[-_MAX_PREVIEW_CHARS:]
        self._label.setText(text)
        self._place_bottom_center()
        self.show()

    def show_status(self, text: str) -> None:
        self.set_preview(text)

    def show_error(self, text: str, hide_after_ms: int = 2500) -> None:
        self._hide_timer.stop()
        self._label.setStyleSheet(_ERROR_STYLE)
        self._label.setText(f"⚠️ {text}")
        self._place_bottom_center()
        self.show()
        self.hide_with_delay(hide_after_ms)

    def hide_with_delay(self, delay_ms: int) -> None:
        self._hide_timer.start(delay_ms)

    def _place_bottom_center(self) -> None:
        screen = QApplication.primaryScreen() if QApplication is not None else None
        if screen is None:
            return
        geom = screen.availableGeometry()
        self.adjustSize()
        x = geom.x() + (geom.width() - self.width()) // 2
        y = geom.y() + geom.height() - self.height() - 80
        self.move(x, y)
