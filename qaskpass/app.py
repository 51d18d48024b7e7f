"""
Askpass flow - classify, look up, ask, remember.

One prompt per process: the caller (ssh, ssh-add, git...) starts us with
the prompt, reads the answer from stdout and checks the exit code.
"""

from __future__ import annotations
import logging
import resource
from dataclasses import dataclass
from typing import Callable, Optional

from .classifier import Classification, RequestKind, classify, describe
from .config import AppSettings
from .presenter import Presenter, PromptRequest
from .vault import CredentialBackend, CredentialResolver

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CANCELLED = 1

StoreOpener = Callable[[AppSettings], Optional[CredentialBackend]]


@dataclass(frozen=True)
class AskpassResult:
    """What to write to stdout and how to exit."""
    exit_code: int
    output: str = ""


def disable_core_dumps() -> None:
    """A core dump taken while a secret dialog is open could contain the secret."""
    try:
        resource.setrlimit(resource.RLIMIT_CORE, (0, 0))
    except (ValueError, OSError) as e:
        logger.debug(f"Could not disable core dumps: {e}")


def classify_request(prompt: Optional[str], settings: AppSettings) -> tuple[str, Classification]:
    """
    Work out display text and classification.

    Without a prompt the default text is shown and the rule table is
    never consulted.
    """
    if prompt is None:
        return settings.default_prompt, Classification(RequestKind.SECRET_HIDDEN)
    return prompt, classify(prompt)


def run(
    prompt: Optional[str],
    settings: AppSettings,
    presenter: Presenter,
    open_store: StoreOpener,
) -> AskpassResult:
    """
    Answer one askpass request.

    Args:
        prompt: Prompt text from the command line, if any
        settings: Application settings
        presenter: Asks the user when nothing is stored
        open_store: Opens the credential backend; only called when the
            classification allows a lookup

    Returns:
        AskpassResult. A stored secret is returned as-is, a freshly
        entered answer gets a trailing newline.
    """
    display_text, classification = classify_request(prompt, settings)
    logger.debug(f"Request: {describe(classification)}")

    store = open_store(settings) if classification.allow_store_lookup else None
    try:
        resolver = CredentialResolver(store, settings.folder)

        secret = resolver.resolve(classification)
        if secret:
            return AskpassResult(EXIT_OK, secret)

        if classification.kind.is_secret:
            disable_core_dumps()

        answer = presenter.ask(PromptRequest(
            kind=classification.kind,
            display_text=display_text,
            allow_remember=store is not None,
            title=settings.dialog_title,
        ))
        if not answer.accepted:
            return AskpassResult(EXIT_CANCELLED)

        if answer.remember and classification.kind.is_secret:
            resolver.store_secret(classification.identifier, answer.value)

        return AskpassResult(EXIT_OK, answer.value + "\n")
    finally:
        if store is not None:
            store.close()
