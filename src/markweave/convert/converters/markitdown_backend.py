"""Office documents, PDF and HTML through the ``markitdown`` library."""

from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, BinaryIO, Callable, Optional

from ..descriptor import InputDescriptor
from ..errors import ConversionFailedError
from ..segments import MetadataKeys, Segment, SegmentType
from .base import BaseConverter, ConverterOutput, import_optional

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..pipeline import ConversionContext

_SLIDE_MARKER = re.compile(r"^<!--\s*Slide number:\s*(\d+)\s*-->\s*$", re.MULTILINE)
_SHEET_HEADING = re.compile(r"^##\s+(.+?)\s*$", re.MULTILINE)


def _default_engine() -> Any:
    module = import_optional("markitdown", attribute="MarkItDown")
    return module.MarkItDown()


class MarkItDownConverter(BaseConverter):
    """Delegates to ``markitdown`` and splits its output into segments.

    PDF form-feed page breaks become page segments, PowerPoint slide markers
    become slide segments, and Excel sheet headings become sheet segments.
    Other formats produce a single section.
    """

    name = "markitdown"
    extensions = frozenset(
        {
            ".pdf",
            ".docx",
            ".pptx",
            ".xlsx",
            ".xls",
            ".html",
            ".htm",
            ".msg",
            ".ipynb",
            ".rss",
            ".atom",
        }
    )
    mime_types = frozenset(
        {
            "application/pdf",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "application/vnd.openxmlformats-officedocument.presentationml.presentation",
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            "application/vnd.ms-excel",
            "application/vnd.ms-outlook",
            "application/x-ipynb+json",
            "application/rss+xml",
            "application/atom+xml",
            "text/html",
        }
    )

    def __init__(self, engine_factory: Optional[Callable[[], Any]] = None) -> None:
        super().__init__()
        self._engine_factory = engine_factory or _default_engine
        self._engine: Any = None
        self._engine_lock = threading.Lock()

    def engine(self) -> Any:
        """Return the shared engine, creating it on first use."""

        with self._engine_lock:
            if self._engine is None:
                self._engine = self._engine_factory()
            return self._engine

    def convert(
        self,
        stream: BinaryIO,
        descriptor: InputDescriptor,
        context: "ConversionContext",
    ) -> ConverterOutput:
        source = _source_with_extension(descriptor, context)
        result = self.engine().convert(str(source))
        markdown = coerce_markdown_result(result)
        if markdown is None:
            raise ConversionFailedError(
                "markitdown returned an unsupported response; expected "
                "Markdown text."
            )

        title = getattr(result, "title", None)
        extension = descriptor.extension
        if extension == ".pdf" or descriptor.mime_type == "application/pdf":
            segments = split_pages(markdown)
        elif extension == ".pptx":
            segments = split_slides(markdown)
        elif extension in (".xlsx", ".xls"):
            segments = split_sheets(markdown)
        else:
            segments = [Segment(markdown=markdown, type=SegmentType.SECTION, number=1)]
        return ConverterOutput(
            segments=segments,
            title=title if isinstance(title, str) and title.strip() else None,
        )


def _source_with_extension(
    descriptor: InputDescriptor,
    context: "ConversionContext",
) -> Path:
    """Staged file carrying the candidate's extension.

    ``markitdown`` picks its parser from the file suffix, so a candidate
    whose extension differs from the staged name gets its own copy.
    """

    staged = context.source_path
    if staged is None:
        raise ConversionFailedError("markitdown conversion needs a staged file.")
    extension = descriptor.extension or ""
    if staged.suffix.lower() == extension:
        return staged
    return context.workspace.persist_file(staged, f"markitdown/source{extension}")


def coerce_markdown_result(result: Any) -> Optional[str]:
    for attribute in ("markdown", "text_content"):
        value = getattr(result, attribute, None)
        if isinstance(value, str):
            return value

    if isinstance(result, dict):
        for key in ("markdown", "text_content"):
            value = result.get(key)
            if isinstance(value, str):
                return value

    if isinstance(result, str):
        return result

    return None


def split_pages(markdown: str) -> list[Segment]:
    pages = markdown.split("\f")
    if len(pages) > 1 and not pages[-1].strip():
        pages.pop()
    return [
        Segment(
            markdown=body,
            type=SegmentType.PAGE,
            number=number,
            metadata={MetadataKeys.PAGE: number},
        )
        for number, body in enumerate(pages, start=1)
    ]


def split_slides(markdown: str) -> list[Segment]:
    markers = list(_SLIDE_MARKER.finditer(markdown))
    if not markers:
        return [Segment(markdown=markdown, type=SegmentType.SECTION, number=1)]

    segments: list[Segment] = []
    preamble = markdown[: markers[0].start()]
    if preamble.strip():
        segments.append(Segment(markdown=preamble, type=SegmentType.SECTION, number=1))
    for index, marker in enumerate(markers):
        end = markers[index + 1].start() if index + 1 < len(markers) else len(markdown)
        segments.append(
            Segment(
                markdown=markdown[marker.end():end],
                type=SegmentType.SLIDE,
                number=index + 1,
                metadata={MetadataKeys.SLIDE: marker.group(1)},
            )
        )
    return segments


def split_sheets(markdown: str) -> list[Segment]:
    headings = list(_SHEET_HEADING.finditer(markdown))
    if not headings:
        return [Segment(markdown=markdown, type=SegmentType.SECTION, number=1)]

    segments: list[Segment] = []
    for index, heading in enumerate(headings):
        end = headings[index + 1].start() if index + 1 < len(headings) else len(markdown)
        name = heading.group(1)
        segments.append(
            Segment(
                markdown=markdown[heading.end():end],
                type=SegmentType.SHEET,
                number=index + 1,
                label=name,
                metadata={MetadataKeys.SHEET: name},
            )
        )
    return segments


__all__ = [
    "MarkItDownConverter",
    "coerce_markdown_result",
    "split_pages",
    "split_sheets",
    "split_slides",
]
