"""JSON documents rendered as a fenced code block."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, BinaryIO

from ..descriptor import InputDescriptor
from ..errors import UnsupportedFormatError
from ..segments import Segment, SegmentType
from .base import BaseConverter, ConverterOutput
from .text import decode_text

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..pipeline import ConversionContext


class JsonConverter(BaseConverter):
    name = "json"
    extensions = frozenset({".json", ".jsonl", ".ndjson"})
    mime_types = frozenset({"application/json"})

    def convert(
        self,
        stream: BinaryIO,
        descriptor: InputDescriptor,
        context: "ConversionContext",
    ) -> ConverterOutput:
        text = decode_text(stream.read(), descriptor.charset)
        try:
            if descriptor.extension in (".jsonl", ".ndjson"):
                value = [json.loads(line) for line in text.splitlines() if line.strip()]
            else:
                value = json.loads(text)
        except json.JSONDecodeError as exc:
            raise UnsupportedFormatError(f"Input is not valid JSON: {exc}") from exc

        pretty = json.dumps(value, indent=2, ensure_ascii=False)
        segment = Segment(
            markdown=f"```json\n{pretty}\n```",
            type=SegmentType.SECTION,
            number=1,
        )
        title = value.get("title") if isinstance(value, dict) else None
        return ConverterOutput(
            segments=[segment],
            title=title if isinstance(title, str) else None,
        )


__all__ = ["JsonConverter"]
