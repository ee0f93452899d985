"""Layout analysis through the configured document intelligence provider."""

from __future__ import annotations

from typing import TYPE_CHECKING, BinaryIO, Sequence

from ..artifacts import ArtifactCollection, TableArtifact
from ..descriptor import InputDescriptor
from ..errors import UnsupportedFormatError
from ..references import table_token
from ..segments import MetadataKeys, Segment, SegmentType
from ..tables import TableFragment, flatten_merged_cells, stitch_fragments
from .base import SPECIFIC_FORMAT, BaseConverter, ConverterOutput

if TYPE_CHECKING:  # pragma: no cover - typing only
    from markweave.intelligence.providers import AnalyzedPage

    from ..pipeline import ConversionContext

ANALYSIS_PRIORITY = SPECIFIC_FORMAT - 1


class DocumentAnalysisConverter(BaseConverter):
    """Pages become page segments; tables are reconciled, then referenced
    from the page on which they start.

    Only registered when a document provider is configured, ahead of every
    other converter for the formats it covers.
    """

    name = "document-analysis"
    priority = ANALYSIS_PRIORITY
    extensions = frozenset(
        {".pdf", ".docx", ".pptx", ".xlsx", ".html", ".png", ".jpg", ".jpeg", ".tiff", ".bmp"}
    )
    mime_types = frozenset(
        {
            "application/pdf",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "application/vnd.openxmlformats-officedocument.presentationml.presentation",
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            "text/html",
            "image/png",
            "image/jpeg",
            "image/tiff",
            "image/bmp",
        }
    )

    def convert(
        self,
        stream: BinaryIO,
        descriptor: InputDescriptor,
        context: "ConversionContext",
    ) -> ConverterOutput:
        provider = context.providers.require_document()
        analysis = provider.analyze(stream, descriptor)
        if analysis is None or not analysis.pages:
            raise UnsupportedFormatError(
                f"Document provider could not analyze {descriptor.describe()}."
            )

        segments = page_segments(analysis.pages)
        artifacts = ArtifactCollection()
        tables = reconcile_tables(analysis.tables)
        segments = attach_tables(segments, tables, artifacts)
        return ConverterOutput(
            segments=segments, artifacts=artifacts, title=analysis.title
        )


def page_segments(pages: Sequence["AnalyzedPage"]) -> list[Segment]:
    ordered = sorted(pages, key=lambda page: page.number)
    return [
        Segment(
            markdown=page.markdown,
            type=SegmentType.PAGE,
            number=index,
            metadata={MetadataKeys.PAGE: page.number},
        )
        for index, page in enumerate(ordered, start=1)
    ]


def reconcile_tables(fragments: Sequence[TableFragment]) -> list[TableArtifact]:
    """Stitch continuations, then flatten merged cells in each whole table.

    Flattening after stitching lets a merged cell that crosses a page break
    inherit the value from the previous page.
    """

    tables = stitch_fragments(
        fragment for fragment in fragments if fragment.rows
    )
    for table in tables:
        table.rows = flatten_merged_cells(table.rows, header_rows=1)
    return tables


def attach_tables(
    segments: list[Segment],
    tables: Sequence[TableArtifact],
    artifacts: ArtifactCollection,
) -> list[Segment]:
    """Append each table's token to the segment of its first page.

    Tables without a matching page get a table segment of their own at the
    end of the document.
    """

    by_page = {
        segment.metadata.get(MetadataKeys.PAGE): position
        for position, segment in enumerate(segments)
    }
    result = list(segments)
    trailing: list[Segment] = []
    for table in tables:
        ordinal = artifacts.add_table(table)
        token = table_token(ordinal)
        position = by_page.get(str(table.first_page)) if table.first_page else None
        if position is None:
            trailing.append(
                Segment(
                    markdown=token,
                    type=SegmentType.TABLE,
                    number=len(trailing) + 1,
                )
            )
            continue
        segment = result[position]
        result[position] = segment.with_markdown(f"{segment.markdown}\n\n{token}")
    return result + trailing


__all__ = [
    "ANALYSIS_PRIORITY",
    "DocumentAnalysisConverter",
    "attach_tables",
    "page_segments",
    "reconcile_tables",
]
