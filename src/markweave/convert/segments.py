"""Segments: ordered units of composed output."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, MutableMapping, Optional, Sequence


class SegmentType(Enum):
    """Structural kind of a segment."""

    PAGE = "page"
    SLIDE = "slide"
    SHEET = "sheet"
    SECTION = "section"
    TABLE = "table"
    CHAPTER = "chapter"
    AUDIO = "audio"
    IMAGE = "image"
    METADATA = "metadata"

    @property
    def token(self) -> str:
        """Tag used for this type in annotation lines."""

        return _TOKENS.get(self, self.value)

    @classmethod
    def from_value(cls, value: str) -> "SegmentType":
        normalized = value.strip().lower()
        for member in cls:
            if member.value == normalized or member.token == normalized:
                return member
        expected = ", ".join(member.value for member in cls)
        raise ValueError(
            f"Unknown segment type '{value}'. Expected one of: {expected}."
        )


_TOKENS = {
    SegmentType.AUDIO: "segment",
    SegmentType.METADATA: "meta",
}


class MetadataKeys:
    """Canonical metadata keys shared by converters and the composer."""

    PAGE = "page"
    SLIDE = "slide"
    SHEET = "sheet"
    FIRST_PAGE = "first-page"
    LAST_PAGE = "last-page"
    PAGE_RANGE = "page-range"
    TABLE_INDEX = "table-index"
    ARTIFACT_PATH = "artifact-path"
    ARTIFACT_FILE_NAME = "artifact-file-name"
    ARTIFACT_RELATIVE_PATH = "artifact-relative-path"
    CAPTION = "caption"
    DESCRIPTION = "description"
    OCR_TEXT = "ocr-text"
    IMAGE_ENRICHED = "image-enriched"
    ARCHIVE_ENTRY = "archive-entry"
    CONTENT_TYPE = "content-type"
    SOURCE_NUMBER = "source-number"


class SegmentOrderError(ValueError):
    """Raised when numbered segments of one type skip or repeat ordinals."""


@dataclass(frozen=True)
class Segment:
    """One logical unit of output text, already in Markdown form."""

    markdown: str
    type: SegmentType = SegmentType.SECTION
    number: Optional[int] = None
    label: Optional[str] = None
    start_time: Optional[timedelta] = None
    end_time: Optional[timedelta] = None
    source: Optional[str] = None
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.number is not None:
            if isinstance(self.number, bool) or not isinstance(self.number, int):
                raise ValueError("Segment number must be an integer.")
            if self.number <= 0:
                raise ValueError(
                    f"Segment number must be positive, got {self.number}."
                )
        if (
            self.start_time is not None
            and self.end_time is not None
            and self.end_time < self.start_time
        ):
            raise ValueError("Segment end_time precedes start_time.")
        cleaned = {
            str(key): str(value)
            for key, value in self.metadata.items()
            if value is not None
        }
        object.__setattr__(self, "metadata", MappingProxyType(cleaned))

    @property
    def is_timed(self) -> bool:
        return self.start_time is not None or self.end_time is not None

    def with_markdown(self, markdown: str) -> "Segment":
        return replace(self, markdown=markdown)

    def with_metadata(self, **values: object) -> "Segment":
        merged = dict(self.metadata)
        merged.update(
            {key: str(value) for key, value in values.items() if value is not None}
        )
        return replace(self, metadata=merged)


def canonical_page(value: object) -> Optional[int]:
    """Return ``value`` as a page number, or None for display labels.

    Only positive integers and digit strings qualify; "Page 3" does not.
    """

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isdigit():
            number = int(stripped)
            return number if number > 0 else None
    return None


def page_reference(segment: Segment) -> Optional[int]:
    """Page a segment belongs to, for cross-referencing tables and images."""

    from_metadata = canonical_page(segment.metadata.get(MetadataKeys.PAGE))
    if from_metadata is not None:
        return from_metadata
    if segment.type is SegmentType.PAGE:
        return segment.number
    return None


def validate_ordering(segments: Sequence[Segment]) -> None:
    """Check numbered segments of each type run 1..N in source order."""

    expected: dict[SegmentType, int] = {}
    for position, segment in enumerate(segments):
        if segment.number is None:
            continue
        want = expected.get(segment.type, 1)
        if segment.number != want:
            raise SegmentOrderError(
                "Segment {0} ({1}) has number {2}; expected {3}.".format(
                    position,
                    segment.type.value,
                    segment.number,
                    want,
                )
            )
        expected[segment.type] = want + 1


def count_by_type(segments: Iterable[Segment], kind: SegmentType) -> int:
    return sum(1 for segment in segments if segment.type is kind)


def renumber(
    segments: Iterable[Segment],
    counters: MutableMapping[SegmentType, int],
) -> list[Segment]:
    """Continue each type's numbering from ``counters``.

    ``counters`` holds the last number used per type and is updated in place.
    The original number is kept under ``source-number``.
    """

    result: list[Segment] = []
    for segment in segments:
        if segment.number is None:
            result.append(segment)
            continue
        number = counters.get(segment.type, 0) + 1
        counters[segment.type] = number
        if number == segment.number:
            result.append(segment)
            continue
        updated = segment.with_metadata(
            **{MetadataKeys.SOURCE_NUMBER: segment.number}
        )
        result.append(replace(updated, number=number))
    return result


__all__ = [
    "MetadataKeys",
    "Segment",
    "SegmentOrderError",
    "SegmentType",
    "canonical_page",
    "count_by_type",
    "page_reference",
    "renumber",
    "validate_ordering",
]
