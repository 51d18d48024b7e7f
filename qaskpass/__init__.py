"""
qaskpass - Qt askpass helper with credential store lookup.
"""

__version__ = "1.0.0"

from .classifier import (
    Classification,
    PromptPattern,
    PROMPT_PATTERNS,
    RequestKind,
    classify,
)

__all__ = [
    "Classification",
    "PromptPattern",
    "PROMPT_PATTERNS",
    "RequestKind",
    "classify",
]
