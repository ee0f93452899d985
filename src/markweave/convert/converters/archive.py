"""ZIP archives, converted entry by entry through the same dispatcher."""

from __future__ import annotations

import zipfile
from dataclasses import replace
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, BinaryIO, MutableMapping

from .. import references
from ..artifacts import AbsorbOffsets, ArtifactCollection
from ..cancellation import check_cancelled
from ..descriptor import InputDescriptor
from ..errors import ConversionFailedError, UnsupportedFormatError
from ..segments import (
    MetadataKeys,
    Segment,
    SegmentType,
    canonical_page,
    renumber,
)
from ..tables import format_page_range
from .base import BaseConverter, ConverterOutput

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..pipeline import ConversionContext

SKIPPED_KEY = "archive.skipped"
ENTRIES_KEY = "archive.entries"
_IGNORED_PREFIXES = ("__MACOSX/",)
_IGNORED_NAMES = frozenset({".DS_Store", "Thumbs.db"})


class ZipConverter(BaseConverter):
    """Each entry is staged in its own child workspace and dispatched again.

    Entries that no converter handles are logged and listed under
    ``archive.skipped``; authorization failures and cancellation stop the
    whole archive.
    """

    name = "zip"
    extensions = frozenset({".zip"})
    mime_types = frozenset({"application/zip", "application/x-zip-compressed"})

    def convert(
        self,
        stream: BinaryIO,
        descriptor: InputDescriptor,
        context: "ConversionContext",
    ) -> ConverterOutput:
        limit = context.options.max_archive_depth
        if context.depth >= limit:
            raise UnsupportedFormatError(
                f"Archive nesting exceeds the configured depth of {limit}."
            )
        try:
            archive = zipfile.ZipFile(stream)
        except zipfile.BadZipFile as exc:
            raise UnsupportedFormatError(f"Not a readable ZIP archive: {exc}") from exc

        segments: list[Segment] = []
        artifacts = ArtifactCollection()
        counters: dict[SegmentType, int] = {}
        converted: list[str] = []
        skipped: list[str] = []
        with archive:
            for info in archive.infolist():
                if _ignored(info):
                    continue
                check_cancelled(context.cancellation, "archive entry")
                entry_path = PurePosixPath(info.filename)
                child = context.workspace.child(entry_path.stem)
                with archive.open(info) as handle:
                    staged = child.stage_stream(
                        handle, extension=entry_path.suffix or None
                    )
                entry_descriptor = InputDescriptor(
                    extension=entry_path.suffix or None,
                    file_name=entry_path.name,
                    local_path=str(staged),
                ).with_inferred_fields()
                try:
                    result = context.convert_nested(staged, entry_descriptor, child)
                except (UnsupportedFormatError, ConversionFailedError) as exc:
                    context.logger.warning(
                        "Skipped archive entry",
                        extra={"entry": info.filename, "error": str(exc)},
                    )
                    skipped.append(info.filename)
                    continue

                segments.append(
                    Segment(
                        markdown=f"## {info.filename}",
                        metadata={MetadataKeys.ARCHIVE_ENTRY: info.filename},
                    )
                )
                segments.extend(
                    merge_entry(
                        info.filename, result.output, artifacts, counters
                    )
                )
                converted.append(info.filename)

        if not converted:
            raise UnsupportedFormatError(
                "Archive contained no convertible entries"
                + (f" (skipped: {', '.join(skipped)})." if skipped else ".")
            )
        artifacts.set_metadata(
            {
                ENTRIES_KEY: len(converted),
                SKIPPED_KEY: ", ".join(skipped) if skipped else None,
            }
        )
        return ConverterOutput(segments=segments, artifacts=artifacts)


def merge_entry(
    entry_name: str,
    output: ConverterOutput,
    artifacts: ArtifactCollection,
    counters: MutableMapping[SegmentType, int],
) -> list[Segment]:
    """Fold one entry's output into the archive-wide collection.

    Artifact tokens are rebased onto the shared collection, page numbers on
    tables and segments shift past the pages already emitted, and segment
    numbers continue each type's running count.
    """

    page_offset = counters.get(SegmentType.PAGE, 0)
    offsets = artifacts.absorb(output.artifacts)
    _shift_artifact_pages(artifacts, offsets, page_offset)

    rebased: list[Segment] = []
    for segment in output.segments:
        updated = segment.with_markdown(references.rebase(segment.markdown, offsets))
        page = canonical_page(updated.metadata.get(MetadataKeys.PAGE))
        if page is not None and page_offset:
            updated = updated.with_metadata(**{MetadataKeys.PAGE: page + page_offset})
        updated = updated.with_metadata(**{MetadataKeys.ARCHIVE_ENTRY: entry_name})
        if updated.source is None:
            updated = replace(updated, source=entry_name)
        rebased.append(updated)
    return renumber(rebased, counters)


def _shift_artifact_pages(
    artifacts: ArtifactCollection, offsets: AbsorbOffsets, page_offset: int
) -> None:
    for ordinal, table in enumerate(
        artifacts.tables[offsets.tables:], start=offsets.tables + 1
    ):
        table.metadata[MetadataKeys.TABLE_INDEX] = str(ordinal)
        if not page_offset:
            continue
        first, last = table.first_page, table.last_page
        if table.page_number is not None:
            table.page_number += page_offset
        if first is not None:
            table.metadata[MetadataKeys.FIRST_PAGE] = str(first + page_offset)
        if last is not None:
            table.metadata[MetadataKeys.LAST_PAGE] = str(last + page_offset)
        if first is not None and MetadataKeys.PAGE_RANGE in table.metadata:
            table.metadata[MetadataKeys.PAGE_RANGE] = format_page_range(
                first + page_offset,
                (last if last is not None else first) + page_offset,
            )
    if page_offset:
        for image in artifacts.images[offsets.images:]:
            if image.page_number is not None:
                image.page_number += page_offset


def _ignored(info: zipfile.ZipInfo) -> bool:
    if info.is_dir() or info.filename.startswith(_IGNORED_PREFIXES):
        return True
    return PurePosixPath(info.filename).name in _IGNORED_NAMES


__all__ = ["ENTRIES_KEY", "SKIPPED_KEY", "ZipConverter", "merge_entry"]
