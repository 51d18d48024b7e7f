"""
Presenter Interface - abstraction over whatever asks the human.

The askpass flow only sees Presenter. The Qt dialogs implement it for
real use; tests plug in a scripted one.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass

from .classifier import RequestKind

# Value handed back for an accepted confirmation
CONFIRM_SENTINEL = "yes\n"


@dataclass(frozen=True)
class PromptRequest:
    """What to ask and how."""
    kind: RequestKind
    display_text: str
    allow_remember: bool = False   # Only when a credential store is open
    title: str = "qaskpass"


@dataclass(frozen=True)
class Answer:
    """
    Result of asking the user.

    For secrets, value is what was typed. For confirmations it is
    CONFIRM_SENTINEL.
    """
    accepted: bool
    value: str = ""
    remember: bool = False

    @classmethod
    def cancelled(cls) -> Answer:
        return cls(accepted=False)

    @classmethod
    def accept(cls, value: str, remember: bool = False) -> Answer:
        return cls(accepted=True, value=value, remember=remember)

    @classmethod
    def confirmed(cls) -> Answer:
        return cls(accepted=True, value=CONFIRM_SENTINEL)


class Presenter(ABC):
    """Collects a secret or a yes/no decision from the user."""

    @abstractmethod
    def ask(self, request: PromptRequest) -> Answer:
        """
        Ask the user.

        Args:
            request: Kind of answer wanted and the text to show

        Returns:
            Answer; Answer.cancelled() if the user backed out
        """
        ...
