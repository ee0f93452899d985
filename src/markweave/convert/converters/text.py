"""Plain text and Markdown."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, BinaryIO

from ..descriptor import InputDescriptor
from ..errors import UnsupportedFormatError
from ..segments import Segment, SegmentType
from .base import GENERIC_FORMAT, BaseConverter, ConverterOutput, peek

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..pipeline import ConversionContext

_MARKDOWN_EXTENSIONS = frozenset({".md", ".markdown"})
_HEADING = re.compile(r"^#{1,2}\s+\S", re.MULTILINE)


def decode_text(data: bytes, charset: str | None) -> str:
    """Decode with the declared charset, else UTF-8 (BOM tolerated)."""

    encoding = charset or "utf-8-sig"
    try:
        return data.decode(encoding)
    except (LookupError, UnicodeDecodeError) as exc:
        if charset is None:
            raise UnsupportedFormatError(
                "Input is not valid UTF-8 text and declares no charset."
            ) from exc
        return data.decode(charset, errors="replace")


class PlainTextConverter(BaseConverter):
    """Catch-all for textual input.

    Markdown is split into sections at level-1 and level-2 headings; any
    other text becomes a single section.
    """

    name = "plain-text"
    priority = GENERIC_FORMAT
    extensions = frozenset(
        {".txt", ".text", ".log", ".md", ".markdown", ".xml", ".json"}
    )
    mime_types = frozenset(
        {"text/plain", "text/markdown", "application/xml", "application/json"}
    )
    mime_prefixes = ("text/",)

    def accepts(self, stream: BinaryIO, descriptor: InputDescriptor) -> bool:
        return b"\x00" not in peek(stream, 8192)

    def convert(
        self,
        stream: BinaryIO,
        descriptor: InputDescriptor,
        context: "ConversionContext",
    ) -> ConverterOutput:
        text = decode_text(stream.read(), descriptor.charset)
        is_markdown = (
            descriptor.extension in _MARKDOWN_EXTENSIONS
            or descriptor.mime_type == "text/markdown"
        )
        chunks = split_sections(text) if is_markdown else [text]
        segments = [
            Segment(markdown=chunk, type=SegmentType.SECTION, number=index)
            for index, chunk in enumerate(chunks, start=1)
        ]
        return ConverterOutput(segments=segments)


def split_sections(text: str) -> list[str]:
    """Split Markdown before each level-1/level-2 heading outside fences."""

    sections: list[list[str]] = [[]]
    in_fence = False
    for line in text.splitlines():
        if line.lstrip().startswith(("```", "~~~")):
            in_fence = not in_fence
        elif not in_fence and _HEADING.match(line) and any(
            part.strip() for part in sections[-1]
        ):
            sections.append([])
        sections[-1].append(line)
    kept = [lines for lines in sections if any(line.strip() for line in lines)]
    return ["\n".join(lines) for lines in kept] or [text]


__all__ = ["PlainTextConverter", "decode_text", "split_sections"]
