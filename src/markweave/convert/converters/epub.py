"""EPUB books through ``unstructured``."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, BinaryIO, Callable, Iterable, Optional

from ..descriptor import InputDescriptor
from ..errors import ConversionFailedError, UnsupportedFormatError
from ..segments import Segment, SegmentType
from .base import BaseConverter, ConverterOutput, import_optional

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..pipeline import ConversionContext

Partition = Callable[..., Iterable[Any]]


def load_epub_partition() -> Partition:
    module = import_optional(
        "unstructured.partition.epub", attribute="partition_epub", extra="epub"
    )
    return module.partition_epub


class EpubConverter(BaseConverter):
    """Each ``Title`` element opens a new chapter segment."""

    name = "epub"
    extensions = frozenset({".epub"})
    mime_types = frozenset({"application/epub+zip"})

    def __init__(self, partition: Optional[Partition] = None) -> None:
        super().__init__()
        self._partition = partition

    def convert(
        self,
        stream: BinaryIO,
        descriptor: InputDescriptor,
        context: "ConversionContext",
    ) -> ConverterOutput:
        partition = self._partition or load_epub_partition()
        source = context.source_path
        if source is None:
            raise ConversionFailedError("EPUB conversion needs a staged file.")
        elements = list(partition(filename=str(source)))
        if not elements:
            raise UnsupportedFormatError("EPUB contained no readable elements.")
        chapters, title = group_chapters(elements)
        return ConverterOutput(segments=chapters, title=title)


def group_chapters(elements: Iterable[Any]) -> tuple[list[Segment], Optional[str]]:
    """Group partitioned elements into chapters and pick the first title."""

    chapters: list[tuple[Optional[str], list[str]]] = []
    first_title: Optional[str] = None
    for element in elements:
        text = _element_markdown(element)
        if not text:
            continue
        if _is_title(element):
            first_title = first_title or text
            chapters.append((text, [f"## {text}"]))
            continue
        if not chapters:
            chapters.append((None, []))
        chapters[-1][1].append(text)

    segments = [
        Segment(
            markdown="\n\n".join(parts),
            type=SegmentType.CHAPTER,
            number=index,
            label=label,
        )
        for index, (label, parts) in enumerate(chapters, start=1)
    ]
    return segments, first_title


def _is_title(element: Any) -> bool:
    category = getattr(element, "category", None)
    if category is None:
        category = type(element).__name__
    return category == "Title"


def _element_markdown(element: Any) -> str:
    if element is None:
        return ""
    if hasattr(element, "to_markdown"):
        candidate = element.to_markdown()
    elif hasattr(element, "text"):
        candidate = element.text
    else:
        candidate = str(element)
    return candidate.strip() if isinstance(candidate, str) else ""


__all__ = ["EpubConverter", "group_chapters", "load_epub_partition"]
