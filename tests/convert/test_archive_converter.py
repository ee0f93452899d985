from __future__ import annotations

import io

import pytest

from fixtures import StatusError, zip_bytes
from markweave.convert.converters.archive import (
    ENTRIES_KEY,
    SKIPPED_KEY,
    ZipConverter,
    merge_entry,
)
from markweave.convert.artifacts import ArtifactCollection, TableArtifact
from markweave.convert.converters.base import BaseConverter, ConverterOutput
from markweave.convert.descriptor import InputDescriptor
from markweave.convert.errors import AuthorizationFailedError, UnsupportedFormatError
from markweave.convert.pipeline import ConversionOptions
from markweave.convert.segments import Segment, SegmentType

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
ZIP = InputDescriptor(extension=".zip")


def test_entries_are_converted_in_order(make_engine, workspace):
    source = workspace.archive(
        "bundle.zip",
        {
            "docs/": "",
            "notes.txt": "Hello from notes.",
            "data.csv": "a,b\n1,2\n",
            "blob.qqz": b"\x00\x01\x02",
            "__MACOSX/._notes.txt": b"\x00",
            ".DS_Store": b"\x00",
        },
    )

    result = make_engine().convert_path(source)

    assert result.converter_name == "zip"
    assert result.artifacts.metadata[ENTRIES_KEY] == "2"
    assert result.artifacts.metadata[SKIPPED_KEY] == "blob.qqz"
    markdown = result.markdown
    assert markdown.index("## notes.txt") < markdown.index("Hello from notes.")
    assert markdown.index("Hello from notes.") < markdown.index("## data.csv")
    assert "| a | b |\n| --- | --- |\n| 1 | 2 |" in markdown
    assert "[table:1] [source:data.csv] [archive-entry:data.csv]" in markdown


def test_segment_numbers_continue_across_entries(make_engine, workspace):
    source = workspace.archive(
        "pair.zip", {"a.txt": "First entry.", "b.txt": "Second entry."}
    )

    result = make_engine().convert_path(source)

    numbered = [s.number for s in result.segments if s.number is not None]
    assert numbered == [1, 2]
    assert (
        "[section:2] [source:b.txt] [archive-entry:b.txt] [source-number:1]\n"
        "Second entry."
    ) in result.markdown


def test_images_inside_archives_are_persisted(make_engine, workspace):
    source = workspace.archive("pics.zip", {"chart.png": PNG})

    result = make_engine(ConversionOptions(keep_workspace=True)).convert_path(source)

    image = result.artifacts.images[0]
    assert image.file_path.is_file()
    assert image.file_path.is_relative_to(result.workspace_root / "entries")
    assert "](entries/" in result.markdown


def test_nested_archives_respect_depth_limit(make_engine, workspace):
    inner = zip_bytes({"deep.txt": "Deep text."})
    source = workspace.archive(
        "outer.zip", {"inner.zip": inner, "readme.txt": "Top level."}
    )

    nested = make_engine().convert_path(source)
    assert "## inner.zip" in nested.markdown
    assert "## deep.txt" in nested.markdown
    assert "Deep text." in nested.markdown

    shallow = make_engine(ConversionOptions(max_archive_depth=1)).convert_path(source)
    assert "Deep text." not in shallow.markdown
    assert shallow.artifacts.metadata[SKIPPED_KEY] == "inner.zip"


def test_archive_of_unsupported_entries_fails(make_engine, workspace):
    source = workspace.archive("junk.zip", {"blob.qqz": b"\x00\x01"})

    with pytest.raises(UnsupportedFormatError, match="no convertible entries"):
        make_engine().convert_path(source)


class _Rejecting(BaseConverter):
    name = "rejecting"
    extensions = frozenset({".locked"})

    def convert(self, stream, descriptor, context):
        raise StatusError("invalid api key", status_code=401)


def test_authorization_failure_stops_the_archive(make_engine, workspace):
    source = workspace.archive(
        "mixed.zip", {"secret.locked": "x", "open.txt": "readable"}
    )
    engine = make_engine()
    engine.register_converter(_Rejecting())

    with pytest.raises(AuthorizationFailedError):
        engine.convert_path(source)


def test_unreadable_zip_and_depth_are_declined(make_context):
    with pytest.raises(UnsupportedFormatError, match="Not a readable ZIP"):
        ZipConverter().convert(io.BytesIO(b"not a zip"), ZIP, make_context())

    deep = make_context(depth=3)
    with pytest.raises(UnsupportedFormatError, match="depth of 3"):
        ZipConverter().convert(io.BytesIO(zip_bytes({"a.txt": "a"})), ZIP, deep)


def test_merge_entry_rebases_tokens_and_pages():
    artifacts = ArtifactCollection()
    artifacts.add_table(TableArtifact(rows=[["existing"]]))
    counters = {SegmentType.PAGE: 2}
    entry_artifacts = ArtifactCollection()
    entry_artifacts.add_table(
        TableArtifact(
            rows=[["h"], ["v"]],
            page_number=1,
            metadata={"first-page": "1", "last-page": "2", "page-range": "1-2"},
        )
    )
    output = ConverterOutput(
        segments=[
            Segment("{{table:1}}", type=SegmentType.PAGE, number=1, metadata={"page": "1"}),
            Segment("tail", type=SegmentType.PAGE, number=2, metadata={"page": "2"}),
        ],
        artifacts=entry_artifacts,
    )

    merged = merge_entry("report.pdf", output, artifacts, counters)

    assert [s.markdown for s in merged] == ["{{table:2}}", "tail"]
    assert [s.number for s in merged] == [3, 4]
    assert [s.metadata["page"] for s in merged] == ["3", "4"]
    assert merged[0].source == "report.pdf"
    table = artifacts.tables[1]
    assert table.table_index == 2
    assert table.page_range == "3-4"
    assert counters[SegmentType.PAGE] == 4
