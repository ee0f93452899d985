"""Table reconciliation: merged-cell flattening and multi-page stitching.

Both operations are pure functions over grids that an extractor already
produced. Deciding which fragments belong to one logical table stays with the
extractor: fragments are only joined when they are flagged as continuations,
share a column count, and sit on the same or the next page.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from .artifacts import TableArtifact, normalize_rows
from .segments import MetadataKeys

DEFAULT_PLACEHOLDER = "N/A"


def flatten_merged_cells(
    rows: Iterable[Sequence[object]],
    *,
    merged: Optional[Sequence[Sequence[bool]]] = None,
    placeholder: str = DEFAULT_PLACEHOLDER,
    header_rows: int = 0,
    expand_banner: bool = True,
) -> list[list[str]]:
    """Return a copy of ``rows`` with no blank cells.

    A blank body cell takes the last non-blank value above it in the same
    column. With a ``merged`` mask only cells flagged True inherit; other
    blanks are genuine gaps. Every cell still blank afterwards gets
    ``placeholder``. A final row whose only non-blank value sits in the first
    column of a multi-column grid is a banner and is repeated across all
    columns, unless ``merged`` marks its blank cells as vertical merges.
    Header rows never feed values into the body.
    """

    grid = normalize_rows(rows)
    if not grid:
        return []
    width = len(grid[0])

    banner_row: Optional[int] = None
    if expand_banner and width > 1 and len(grid) > max(header_rows, 1):
        last = len(grid) - 1
        if _is_banner(grid[last], last, merged):
            banner_row = last
            grid[banner_row] = [grid[last][0]] * width

    for column in range(width):
        last_value: Optional[str] = None
        for index, row in enumerate(grid):
            if index == banner_row:
                continue
            cell = row[column]
            if cell.strip():
                if index >= header_rows:
                    last_value = cell
                continue
            inherits = index >= header_rows and last_value is not None
            if inherits and merged is not None:
                inherits = _mask_value(merged, index, column)
            row[column] = last_value if inherits else placeholder  # type: ignore[assignment]
    return grid


def _is_banner(
    row: Sequence[str], index: int, merged: Optional[Sequence[Sequence[bool]]]
) -> bool:
    if not row[0].strip() or any(cell.strip() for cell in row[1:]):
        return False
    if merged is None:
        return True
    return not any(
        _mask_value(merged, index, column) for column in range(1, len(row))
    )


def _mask_value(
    merged: Sequence[Sequence[bool]], row: int, column: int
) -> bool:
    if row >= len(merged):
        return False
    mask_row = merged[row]
    return column < len(mask_row) and bool(mask_row[column])


@dataclass(frozen=True)
class TableFragment:
    """Part of a table as extracted from one page."""

    rows: Sequence[Sequence[object]]
    page_number: Optional[int] = None
    continuation: bool = False
    title: Optional[str] = None
    source: Optional[str] = None


@dataclass
class _OpenTable:
    rows: list[list[str]]
    first_page: Optional[int]
    last_page: Optional[int]
    title: Optional[str]
    source: Optional[str]
    header: list[str] = field(default_factory=list)

    @property
    def column_count(self) -> int:
        return len(self.header)

    def accepts(self, rows: list[list[str]], fragment: TableFragment) -> bool:
        if not fragment.continuation or not rows:
            return False
        if len(rows[0]) != self.column_count:
            return False
        page = fragment.page_number
        if page is None or self.last_page is None:
            return page is None and self.last_page is None
        return self.last_page <= page <= self.last_page + 1

    def extend(self, rows: list[list[str]], page: Optional[int]) -> None:
        if rows and rows[0] == self.header:
            rows = rows[1:]
        self.rows.extend(rows)
        if page is not None:
            self.last_page = page


def stitch_fragments(
    fragments: Iterable[TableFragment], *, start_index: int = 1
) -> list[TableArtifact]:
    """Merge continuation fragments into logical tables.

    Each returned table carries ``first-page``, ``last-page``, ``page-range``
    and a ``table-index`` numbered from ``start_index`` in document order.
    A continuation fragment whose column count differs from the open table
    is kept as a table of its own.
    """

    tables: list[TableArtifact] = []
    current: Optional[_OpenTable] = None

    for fragment in fragments:
        rows = normalize_rows(fragment.rows)
        if not rows:
            continue
        if current is not None and current.accepts(rows, fragment):
            current.extend(rows, fragment.page_number)
            continue
        if current is not None:
            tables.append(_close(current, start_index + len(tables)))
        current = _OpenTable(
            rows=rows,
            first_page=fragment.page_number,
            last_page=fragment.page_number,
            title=fragment.title,
            source=fragment.source,
            header=list(rows[0]),
        )

    if current is not None:
        tables.append(_close(current, start_index + len(tables)))
    return tables


def _close(table: _OpenTable, index: int) -> TableArtifact:
    metadata = {MetadataKeys.TABLE_INDEX: str(index)}
    if table.first_page is not None:
        last = table.last_page or table.first_page
        metadata[MetadataKeys.FIRST_PAGE] = str(table.first_page)
        metadata[MetadataKeys.LAST_PAGE] = str(last)
        metadata[MetadataKeys.PAGE_RANGE] = format_page_range(
            table.first_page, last
        )
    return TableArtifact(
        rows=table.rows,
        page_number=table.first_page,
        source=table.source,
        title=table.title,
        metadata=metadata,
    )


def format_page_range(first: int, last: int) -> str:
    return str(first) if last == first else f"{first}-{last}"


def span_marker(table: TableArtifact, ordinal: Optional[int] = None) -> Optional[str]:
    """Comment placed before a table that spans more than one page."""

    if not table.spans_pages:
        return None
    number = table.table_index or ordinal
    label = f"Table {number}" if number is not None else "Table"
    return f"<!-- {label} spans pages {table.page_range} -->"


def continuation_marker(
    table: TableArtifact, page: int, ordinal: Optional[int] = None
) -> str:
    """Comment placed on a later page that a multi-page table touches."""

    number = table.table_index or ordinal
    label = f"Table {number}" if number is not None else "Table"
    return (
        f"<!-- {label} continues on page {page} "
        f"(pages {table.page_range}) -->"
    )


def continuation_pages(table: TableArtifact) -> range:
    """Pages after the first that ``table`` reaches."""

    if not table.spans_pages:
        return range(0)
    assert table.first_page is not None and table.last_page is not None
    return range(table.first_page + 1, table.last_page + 1)


__all__ = [
    "DEFAULT_PLACEHOLDER",
    "TableFragment",
    "continuation_marker",
    "continuation_pages",
    "flatten_merged_cells",
    "format_page_range",
    "span_marker",
    "stitch_fragments",
]
