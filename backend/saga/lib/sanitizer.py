"""User-supplied text is stored as plain text: tags are stripped with nh3."""

import re
from typing import Optional

import nh3

_BLANK_LINES = re.compile(r"\n\s*\n+")
_SINGLE_NEWLINE = re.compile(r"(?<!\n)\n(?!\n)")
_WHITESPACE = re.compile(r"\s+")


def _strip_tags(text: str) -> str:
    return nh3.clean(text, tags=set())


def sanitize_user_text(text: Optional[str]) -> str:
    if not text:
        return ""
    return _strip_tags(text).strip()


def sanitize_user_content(text: Optional[str]) -> str:
    """Strip tags, then normalize paragraph and line breaks to single spaces."""
    if not text:
        return ""
    cleaned = _strip_tags(text).strip()
    cleaned = _BLANK_LINES.sub("\n\n", cleaned)
    cleaned = _SINGLE_NEWLINE.sub(" ", cleaned)
    return _WHITESPACE.sub(" ", cleaned).strip()
