"""Inline artifact reference tokens.

Converters place ``{{table:N}}`` or ``{{image:N}}`` in a segment body where an
artifact belongs. The composer swaps each token for the rendered artifact.
"""

from __future__ import annotations

import re
from typing import Callable, Iterator, Optional

from .artifacts import AbsorbOffsets

TABLE = "table"
IMAGE = "image"

_PATTERN = re.compile(r"\{\{(table|image):(\d+)\}\}")
_LINE_PATTERN = re.compile(r"^\s*\{\{(?:table|image):\d+\}\}\s*$")


def table_token(ordinal: int) -> str:
    return f"{{{{{TABLE}:{ordinal}}}}}"


def image_token(ordinal: int) -> str:
    return f"{{{{{IMAGE}:{ordinal}}}}}"


def iter_references(text: str) -> Iterator[tuple[str, int]]:
    for match in _PATTERN.finditer(text):
        yield match.group(1), int(match.group(2))


def is_reference_line(line: str) -> bool:
    return bool(_LINE_PATTERN.match(line))


def substitute(
    text: str, render: Callable[[str, int], Optional[str]]
) -> str:
    """Replace each token with ``render(kind, ordinal)``.

    Tokens for which ``render`` returns None are left untouched.
    """

    def _replace(match: re.Match[str]) -> str:
        rendered = render(match.group(1), int(match.group(2)))
        return match.group(0) if rendered is None else rendered

    return _PATTERN.sub(_replace, text)


def rebase(text: str, offsets: AbsorbOffsets) -> str:
    """Shift token ordinals after a collection absorbed another one."""

    def _shift(match: re.Match[str]) -> str:
        kind = match.group(1)
        shift = offsets.tables if kind == TABLE else offsets.images
        return f"{{{{{kind}:{int(match.group(2)) + shift}}}}}"

    if not (offsets.tables or offsets.images):
        return text
    return _PATTERN.sub(_shift, text)


__all__ = [
    "IMAGE",
    "TABLE",
    "image_token",
    "is_reference_line",
    "iter_references",
    "rebase",
    "substitute",
    "table_token",
]
