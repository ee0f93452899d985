"""Delimited text tables (CSV/TSV)."""

from __future__ import annotations

import csv
import io
from typing import TYPE_CHECKING, BinaryIO

from ..artifacts import ArtifactCollection, TableArtifact
from ..descriptor import InputDescriptor
from ..errors import UnsupportedFormatError
from ..references import table_token
from ..segments import MetadataKeys, Segment, SegmentType
from ..tables import flatten_merged_cells
from .base import BaseConverter, ConverterOutput
from .text import decode_text

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..pipeline import ConversionContext


class CsvConverter(BaseConverter):
    """One table artifact referenced by a single table segment.

    Short rows are padded and blank cells receive the ``N/A`` placeholder.
    Spreadsheets exported to CSV carry no merge information, so blanks are
    never filled from the row above.
    """

    name = "csv"
    extensions = frozenset({".csv", ".tsv"})
    mime_types = frozenset({"text/csv", "text/tab-separated-values"})

    def convert(
        self,
        stream: BinaryIO,
        descriptor: InputDescriptor,
        context: "ConversionContext",
    ) -> ConverterOutput:
        text = decode_text(stream.read(), descriptor.charset)
        if not text.strip():
            raise UnsupportedFormatError("CSV input is empty.")

        dialect = _sniff_dialect(text, descriptor)
        rows = [row for row in csv.reader(io.StringIO(text), dialect) if row]
        if not rows:
            raise UnsupportedFormatError("CSV input has no rows.")

        no_merges = [[False] * len(row) for row in rows]
        table = TableArtifact(
            rows=flatten_merged_cells(
                rows, merged=no_merges, header_rows=1, expand_banner=False
            ),
            source=descriptor.source_identifier,
            metadata={MetadataKeys.TABLE_INDEX: "1"},
        )
        artifacts = ArtifactCollection()
        ordinal = artifacts.add_table(table)
        segment = Segment(
            markdown=table_token(ordinal),
            type=SegmentType.TABLE,
            number=ordinal,
            source=descriptor.file_name,
        )
        return ConverterOutput(segments=[segment], artifacts=artifacts)


def _sniff_dialect(text: str, descriptor: InputDescriptor) -> type[csv.Dialect] | csv.Dialect:
    if descriptor.extension == ".tsv":
        return csv.excel_tab
    try:
        return csv.Sniffer().sniff(text[:8192], delimiters=",;\t|")
    except csv.Error:
        return csv.excel


__all__ = ["CsvConverter"]
