"""Text normalisation applied to segment bodies before composition."""

from __future__ import annotations

import re
from typing import Optional

_INVISIBLE = dict.fromkeys(
    map(ord, "\u200b\u200c\u200d\u2060\ufeff\u00ad"), None
)
_SPACES = {ord(ch): " " for ch in "\u00a0\u202f\u2007"}
_TRANSLATION = {**_INVISIBLE, **_SPACES}

_TRAILING_SPACE = re.compile(r"[ \t]+$", re.MULTILINE)
_BLANK_RUN = re.compile(r"\n{3,}")


def normalize_text(value: Optional[str], *, trim: bool = True) -> str:
    """Normalise line endings and whitespace without touching indentation.

    Zero-width characters and soft hyphens are removed, non-breaking spaces
    become plain spaces, trailing spaces are stripped from each line, and runs
    of blank lines collapse to one. A bare ``null`` counts as empty.
    """

    if not value:
        return ""
    text = value.replace("\r\n", "\n").replace("\r", "\n")
    text = text.translate(_TRANSLATION)
    text = _TRAILING_SPACE.sub("", text)
    text = _BLANK_RUN.sub("\n\n", text)
    if trim:
        text = text.strip("\n").rstrip()
        if not text.strip():
            return ""
    elif not text.strip():
        return ""
    if text.strip().lower() == "null":
        return ""
    return text


def collapse_lines(value: Optional[str]) -> str:
    """Join all lines of ``value`` into one space-separated line."""

    if not value:
        return ""
    return " ".join(value.split())


__all__ = ["collapse_lines", "normalize_text"]
