"""Artifacts extracted alongside segments: images, tables, and text blocks."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterable, Mapping, MutableMapping, Optional, Sequence

from .segments import MetadataKeys, canonical_page


@dataclass
class ImageArtifact:
    """An image payload, held in memory or persisted to the workspace."""

    content_type: str
    data: Optional[bytes] = None
    file_path: Optional[Path] = None
    page_number: Optional[int] = None
    source: Optional[str] = None
    label: Optional[str] = None
    description: Optional[str] = None
    recognized_text: Optional[str] = None
    diagram_code: Optional[str] = None
    segment_index: Optional[int] = None
    metadata: MutableMapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.data is None and self.file_path is None:
            raise ValueError("Image artifact needs data or a file path.")
        if not self.content_type or not self.content_type.strip():
            raise ValueError("Image artifact needs a content type.")
        self.content_type = self.content_type.strip().lower()
        if self.file_path is not None:
            self.file_path = Path(self.file_path)

    @property
    def is_persisted(self) -> bool:
        return self.file_path is not None

    @property
    def is_enriched(self) -> bool:
        return self.metadata.get(MetadataKeys.IMAGE_ENRICHED) == "true"

    def read_bytes(self) -> bytes:
        if self.data is not None:
            return self.data
        assert self.file_path is not None
        return self.file_path.read_bytes()

    def open(self) -> BinaryIO:
        """Open the payload for reading, preferring the in-memory bytes."""

        if self.data is not None:
            return io.BytesIO(self.data)
        assert self.file_path is not None
        return self.file_path.open("rb")


@dataclass
class TableArtifact:
    """A rectangular table of string cells.

    Ragged input rows are padded with empty strings, so every row has
    :attr:`column_count` cells.
    """

    rows: list[list[str]]
    page_number: Optional[int] = None
    source: Optional[str] = None
    label: Optional[str] = None
    title: Optional[str] = None
    metadata: MutableMapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.rows = normalize_rows(self.rows)

    @property
    def column_count(self) -> int:
        return len(self.rows[0]) if self.rows else 0

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def header(self) -> list[str]:
        return list(self.rows[0]) if self.rows else []

    @property
    def table_index(self) -> Optional[int]:
        return canonical_page(self.metadata.get(MetadataKeys.TABLE_INDEX))

    @property
    def first_page(self) -> Optional[int]:
        value = canonical_page(self.metadata.get(MetadataKeys.FIRST_PAGE))
        return value if value is not None else self.page_number

    @property
    def last_page(self) -> Optional[int]:
        value = canonical_page(self.metadata.get(MetadataKeys.LAST_PAGE))
        return value if value is not None else self.first_page

    @property
    def spans_pages(self) -> bool:
        first, last = self.first_page, self.last_page
        return first is not None and last is not None and last > first

    @property
    def page_range(self) -> Optional[str]:
        recorded = self.metadata.get(MetadataKeys.PAGE_RANGE)
        if recorded:
            return recorded
        first, last = self.first_page, self.last_page
        if first is None:
            return None
        if last is None or last == first:
            return str(first)
        return f"{first}-{last}"


@dataclass
class TextArtifact:
    """A free-standing text block (e.g. a sidebar or an OCR result)."""

    text: str
    page_number: Optional[int] = None
    source: Optional[str] = None
    label: Optional[str] = None


@dataclass(frozen=True)
class AbsorbOffsets:
    """Ordinal shifts applied when one collection absorbs another."""

    images: int
    tables: int
    text_blocks: int


@dataclass
class ArtifactCollection:
    """Per-conversion container for artifacts and document metadata."""

    images: list[ImageArtifact] = field(default_factory=list)
    tables: list[TableArtifact] = field(default_factory=list)
    text_blocks: list[TextArtifact] = field(default_factory=list)
    metadata: MutableMapping[str, str] = field(default_factory=dict)

    def add_image(self, image: ImageArtifact) -> int:
        """Append ``image`` and return its 1-based ordinal."""

        self.images.append(image)
        return len(self.images)

    def add_table(self, table: TableArtifact) -> int:
        self.tables.append(table)
        return len(self.tables)

    def add_text(self, block: TextArtifact) -> int:
        self.text_blocks.append(block)
        return len(self.text_blocks)

    def image(self, ordinal: int) -> Optional[ImageArtifact]:
        return _by_ordinal(self.images, ordinal)

    def table(self, ordinal: int) -> Optional[TableArtifact]:
        return _by_ordinal(self.tables, ordinal)

    def set_metadata(self, values: Mapping[str, object]) -> None:
        for key, value in values.items():
            if value is None:
                continue
            text = str(value).strip()
            if text:
                self.metadata[str(key)] = text

    def absorb(self, other: "ArtifactCollection") -> AbsorbOffsets:
        """Append ``other``'s artifacts; existing ordinals stay valid."""

        offsets = AbsorbOffsets(
            images=len(self.images),
            tables=len(self.tables),
            text_blocks=len(self.text_blocks),
        )
        self.images.extend(other.images)
        self.tables.extend(other.tables)
        self.text_blocks.extend(other.text_blocks)
        return offsets

    def __len__(self) -> int:
        return len(self.images) + len(self.tables) + len(self.text_blocks)


def normalize_rows(rows: Iterable[Sequence[object]]) -> list[list[str]]:
    """Coerce cells to strings and pad every row to the widest one."""

    materialized = [
        ["" if cell is None else str(cell) for cell in row] for row in rows
    ]
    width = max((len(row) for row in materialized), default=0)
    for row in materialized:
        if len(row) < width:
            row.extend([""] * (width - len(row)))
    return materialized


def _by_ordinal(items: Sequence, ordinal: int):
    if 1 <= ordinal <= len(items):
        return items[ordinal - 1]
    return None


__all__ = [
    "AbsorbOffsets",
    "ArtifactCollection",
    "ImageArtifact",
    "TableArtifact",
    "TextArtifact",
    "normalize_rows",
]
