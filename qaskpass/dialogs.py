"""
PyQt6 askpass dialogs.
"""

from __future__ import annotations
import logging
import sys
from dataclasses import dataclass, fields
from typing import Optional

from PyQt6.QtWidgets import (
    QApplication, QDialog, QVBoxLayout, QHBoxLayout,
    QLabel, QLineEdit, QPushButton, QCheckBox, QMessageBox, QWidget,
)
from PyQt6.QtCore import Qt

from .classifier import RequestKind
from .presenter import Answer, Presenter, PromptRequest

logger = logging.getLogger(__name__)


@dataclass
class AskpassTheme:
    """Theme configuration for the askpass dialogs."""
    background_color: str = "#1e1e2e"
    foreground_color: str = "#cdd6f4"
    border_color: str = "#313244"
    accent_color: str = "#89b4fa"
    input_background: str = "#313244"
    button_background: str = "#45475a"
    button_hover: str = "#585b70"
    font_family: str = "JetBrains Mono, Cascadia Code, Consolas, monospace"
    font_size: int = 12

    @classmethod
    def from_dict(cls, data: dict) -> AskpassTheme:
        """Build from settings, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})

    def to_stylesheet(self) -> str:
        """Generate Qt stylesheet from theme."""
        return f"""
            QWidget {{
                background-color: {self.background_color};
                color: {self.foreground_color};
                font-family: {self.font_family};
                font-size: {self.font_size}px;
            }}

            QLineEdit {{
                background-color: {self.input_background};
                border: 1px solid {self.border_color};
                border-radius: 4px;
                padding: 6px 10px;
                color: {self.foreground_color};
                selection-background-color: {self.accent_color};
            }}

            QLineEdit:focus {{
                border-color: {self.accent_color};
            }}

            QPushButton {{
                background-color: {self.button_background};
                border: 1px solid {self.border_color};
                border-radius: 4px;
                padding: 8px 16px;
                color: {self.foreground_color};
                min-width: 80px;
            }}

            QPushButton:hover {{
                background-color: {self.button_hover};
                border-color: {self.accent_color};
            }}

            QPushButton[primary="true"] {{
                background-color: {self.accent_color};
                color: {self.background_color};
                font-weight: bold;
            }}

            QCheckBox {{
                spacing: 8px;
            }}

            QCheckBox::indicator {{
                width: 18px;
                height: 18px;
                border: 1px solid {self.border_color};
                border-radius: 3px;
                background-color: {self.input_background};
            }}

            QCheckBox::indicator:checked {{
                background-color: {self.accent_color};
                border-color: {self.accent_color};
            }}
        """


class SecretDialog(QDialog):
    """Dialog for typing a password, passphrase or username."""

    def __init__(
        self,
        prompt: str,
        parent: QWidget = None,
        theme: AskpassTheme = None,
        visible: bool = False,
        show_remember: bool = False,
        title: str = "qaskpass",
    ):
        super().__init__(parent)
        self.prompt = prompt
        self.theme = theme or AskpassTheme()
        self.visible = visible
        self.show_remember = show_remember
        self._setup_ui(title)

    def _setup_ui(self, title: str):
        self.setWindowTitle(title)
        self.setMinimumWidth(420)
        self.setStyleSheet(self.theme.to_stylesheet())

        layout = QVBoxLayout(self)
        layout.setSpacing(16)
        layout.setContentsMargins(24, 24, 24, 24)

        label = QLabel(self.prompt)
        label.setWordWrap(True)
        label.setTextFormat(Qt.TextFormat.PlainText)
        layout.addWidget(label)

        self.secret_input = QLineEdit()
        if not self.visible:
            self.secret_input.setEchoMode(QLineEdit.EchoMode.Password)
        layout.addWidget(self.secret_input)

        # Remember checkbox (only if a store is open)
        if self.show_remember:
            self.remember_check = QCheckBox("Remember in credential store")
            self.remember_check.setChecked(False)
            layout.addWidget(self.remember_check)
        else:
            self.remember_check = None

        btn_layout = QHBoxLayout()
        btn_layout.addStretch()

        cancel_btn = QPushButton("Cancel")
        cancel_btn.clicked.connect(self.reject)
        btn_layout.addWidget(cancel_btn)

        ok_btn = QPushButton("OK")
        ok_btn.setProperty("primary", True)
        ok_btn.setDefault(True)
        ok_btn.clicked.connect(self.accept)
        btn_layout.addWidget(ok_btn)

        layout.addLayout(btn_layout)

        # Enter key triggers OK
        self.secret_input.returnPressed.connect(self.accept)
        self.secret_input.setFocus()

    def get_secret(self) -> str:
        return self.secret_input.text()

    def should_remember(self) -> bool:
        return self.remember_check.isChecked() if self.remember_check else False


class QtPresenter(Presenter):
    """Asks through Qt dialogs. Creates the QApplication on first use."""

    def __init__(self, theme: AskpassTheme = None, app_name: str = "qaskpass"):
        self.theme = theme or AskpassTheme()
        self.app_name = app_name
        self._app: Optional[QApplication] = None

    def _ensure_app(self) -> None:
        if self._app is None:
            self._app = QApplication.instance() or QApplication(sys.argv[:1])
            self._app.setApplicationName(self.app_name)
            self._app.setStyle("Fusion")

    def ask(self, request: PromptRequest) -> Answer:
        self._ensure_app()

        if request.kind is RequestKind.CONFIRMATION:
            return self._confirm(request)

        # QLineEdit has no "visible but secret" mode; usernames just echo
        dialog = SecretDialog(
            request.display_text,
            theme=self.theme,
            visible=request.kind is RequestKind.SECRET_VISIBLE,
            show_remember=request.allow_remember,
            title=request.title,
        )
        if dialog.exec() != QDialog.DialogCode.Accepted:
            logger.debug("Secret dialog cancelled")
            return Answer.cancelled()
        return Answer.accept(dialog.get_secret(), remember=dialog.should_remember())

    def _confirm(self, request: PromptRequest) -> Answer:
        box = QMessageBox()
        box.setIcon(QMessageBox.Icon.Question)
        box.setWindowTitle(request.title)
        box.setText(request.display_text)
        box.setStyleSheet(self.theme.to_stylesheet())

        accept_btn = box.addButton("Accept", QMessageBox.ButtonRole.AcceptRole)
        box.addButton(QMessageBox.StandardButton.Cancel)
        box.exec()

        if box.clickedButton() is not accept_btn:
            logger.debug("Confirmation declined")
            return Answer.cancelled()
        return Answer.confirmed()

    def ask_master_password(self) -> Optional[str]:
        """Prompt for the vault master password; None if cancelled."""
        answer = self.ask(PromptRequest(
            kind=RequestKind.SECRET_HIDDEN,
            display_text="Enter the credential vault master password",
            title=self.app_name,
        ))
        return answer.value if answer.accepted else None
