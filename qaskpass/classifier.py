"""
Prompt classification - works out what an askpass caller is asking for.

The askpass interface passes nothing but the prompt text, so the request
type and the name of the credential have to be recovered from the phrase
itself. OpenSSH, git, git-lfs and mercurial do not translate these
prompts, so the rules below match the exact upstream strings.

Rules are tried in order, first match wins. Several rules are
specializations of later ones (e.g. the "Bad passphrase" retry prompt
must never reuse a stored passphrase), so the order is part of the table.
"""

from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class RequestKind(Enum):
    """What kind of answer the caller expects."""
    SECRET_HIDDEN = "hidden"        # password/passphrase, no echo
    SECRET_VISIBLE = "visible"      # username, typed with echo
    CONFIRMATION = "confirm"        # yes/no decision

    @property
    def is_secret(self) -> bool:
        return self is not RequestKind.CONFIRMATION


@dataclass(frozen=True)
class Classification:
    """Result of classifying a single prompt."""
    kind: RequestKind
    identifier: Optional[str] = None
    allow_store_lookup: bool = False

    @property
    def has_identifier(self) -> bool:
        return self.identifier is not None


@dataclass(frozen=True)
class PromptPattern:
    """A single prompt rule."""
    regex: re.Pattern
    identifier_group: Optional[int]
    kind: RequestKind
    allow_store_lookup: bool
    source: str = ""

    def match(self, prompt: str) -> Optional[Classification]:
        """Return a classification if the rule accounts for the whole prompt."""
        m = self.regex.fullmatch(prompt)
        if m is None:
            return None

        identifier = None
        if self.identifier_group is not None:
            identifier = m.group(self.identifier_group)

        return Classification(
            kind=self.kind,
            identifier=identifier,
            allow_store_lookup=self.allow_store_lookup,
        )


def _rule(
    pattern: str,
    group: Optional[int],
    kind: RequestKind,
    lookup: bool,
    source: str,
) -> PromptPattern:
    return PromptPattern(
        regex=re.compile(pattern),
        identifier_group=group,
        kind=kind,
        allow_store_lookup=lookup,
        source=source,
    )


_HIDDEN = RequestKind.SECRET_HIDDEN
_VISIBLE = RequestKind.SECRET_VISIBLE
_CONFIRM = RequestKind.CONFIRMATION


# ── Rule table ───────────────────────────────────────────────────────

PROMPT_PATTERNS: tuple[PromptPattern, ...] = (
    # Password for authentication on a remote ssh server
    _rule(r"(.*@.*)'s password( \(JPAKE\))?: ", 1, _HIDDEN, True,
          "openssh sshconnect2.c"),
    # Password change request - the stored password is the old one
    _rule(r"(Enter|Retype) (.*@.*)'s (old|new) password: ", 2, _HIDDEN, False,
          "openssh sshconnect2.c"),
    # Passphrase for a key file
    _rule(r"Enter passphrase for( RSA)? key '(.*)': ", 2, _HIDDEN, True,
          "openssh sshconnect2.c"),
    # ssh-add asking for the first time
    _rule(r"Enter passphrase for (.*?)( \(will confirm each use\))?: ", 1, _HIDDEN, True,
          "openssh ssh-add.c"),
    # ssh-add asking again; a stored passphrase was probably just rejected
    _rule(r"Bad passphrase, try again for (.*?)( \(will confirm each use\))?: ", 1, _HIDDEN, False,
          "openssh ssh-add.c"),
    # PIN for a PKCS#11 token label
    _rule(r"Enter PIN for '(.*)': ", 1, _HIDDEN, True,
          "openssh ssh-pkcs11.c"),
    _rule(r"(Allow|Terminate) shared connection to (.*)\? ", 2, _CONFIRM, False,
          "openssh mux.c"),
    _rule(r"Open (.* on .*)?", 1, _CONFIRM, False,
          "openssh mux.c"),
    _rule(r"Allow forward to (.*:.*)\? ", 1, _CONFIRM, False,
          "openssh mux.c"),
    _rule(r"Disable further multiplexing on shared connection to (.*)? ", 1, _CONFIRM, False,
          "openssh mux.c"),
    # Two-line prompt; '.' never crosses the line break
    _rule(r"Allow use of key (.*)?\nKey fingerprint .*\.", 1, _CONFIRM, False,
          "openssh ssh-agent.c"),
    _rule(r"Add key (.*) \(.*\) to agent\?", 1, _CONFIRM, False,
          "openssh sshconnect.c"),
    _rule(r"Password \((.*@.*)\): ", 1, _HIDDEN, True,
          "git imap-send.c"),
    # Anonymous git prompts - nothing to key a stored credential by
    _rule(r"Username: ", None, _VISIBLE, False,
          "git credential.c"),
    _rule(r"Password: ", None, _HIDDEN, False,
          "git credential.c"),
    _rule(r"Username for '(.*)': ", 1, _VISIBLE, True,
          "git credential.c"),
    _rule(r"Password for '(.*)': ", 1, _HIDDEN, True,
          "git credential.c"),
    _rule(r'Username for "(.*?)"', 1, _VISIBLE, True,
          "git-lfs"),
    _rule(r'Password for "(.*?)"', 1, _HIDDEN, True,
          "git-lfs"),
    # Looser form of the first rule, e.g. mercurial without a user@ part
    _rule(r"(.*?)'s password: ", 1, _HIDDEN, True,
          "mercurial"),
)

UNRECOGNIZED = Classification(
    kind=RequestKind.SECRET_HIDDEN,
    identifier=None,
    allow_store_lookup=False,
)


def classify(prompt: str, patterns: tuple[PromptPattern, ...] = PROMPT_PATTERNS) -> Classification:
    """
    Classify an askpass prompt.

    Args:
        prompt: Raw prompt text as passed by the calling process
        patterns: Ordered rule table (defaults to PROMPT_PATTERNS)

    Returns:
        Classification of the first matching rule. Unrecognized prompts
        get a hidden-secret classification without identifier and with
        store lookup disabled.
    """
    for pattern in patterns:
        result = pattern.match(prompt)
        if result is not None:
            logger.debug(f"Prompt matched rule from {pattern.source}: {describe(result)}")
            return result

    # Custom prompt from a script, or an upstream string changed
    logger.warning(f"Unable to parse phrase {prompt!r}")
    return UNRECOGNIZED


def describe(classification: Classification) -> str:
    """Short human-readable label for logging."""
    label = f"{classification.kind.value} {'secret' if classification.kind.is_secret else 'request'}"
    if classification.identifier is not None:
        label += f" for {classification.identifier}"
    if classification.allow_store_lookup:
        label += " (lookup)"
    return label
