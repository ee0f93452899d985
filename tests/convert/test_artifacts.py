from __future__ import annotations

import pytest

from markweave.convert.artifacts import (
    ArtifactCollection,
    ImageArtifact,
    TableArtifact,
    TextArtifact,
)
from markweave.convert.segments import MetadataKeys


def test_image_requires_payload_and_content_type(tmp_path):
    with pytest.raises(ValueError):
        ImageArtifact(content_type="image/png")
    with pytest.raises(ValueError):
        ImageArtifact(content_type=" ", data=b"x")

    image = ImageArtifact(content_type=" Image/PNG ", data=b"x")
    assert image.content_type == "image/png"
    assert not image.is_persisted


def test_image_reads_from_file_when_persisted(tmp_path):
    path = tmp_path / "img.png"
    path.write_bytes(b"png-bytes")
    image = ImageArtifact(content_type="image/png", file_path=str(path))

    assert image.is_persisted
    assert image.read_bytes() == b"png-bytes"
    with image.open() as handle:
        assert handle.read() == b"png-bytes"


def test_table_rows_are_padded_to_rectangle():
    table = TableArtifact(rows=[["a", "b", "c"], ["1"], [None, 2]])

    assert table.rows == [["a", "b", "c"], ["1", "", ""], ["", "2", ""]]
    assert table.column_count == 3
    assert table.row_count == 3
    assert table.header == ["a", "b", "c"]


def test_table_page_span_from_metadata():
    table = TableArtifact(
        rows=[["h"]],
        page_number=2,
        metadata={MetadataKeys.FIRST_PAGE: "2", MetadataKeys.LAST_PAGE: "4"},
    )

    assert table.spans_pages
    assert table.page_range == "2-4"

    single = TableArtifact(rows=[["h"]], page_number=5)
    assert not single.spans_pages
    assert single.page_range == "5"
    assert TableArtifact(rows=[["h"]]).page_range is None


def test_collection_ordinals_and_absorb():
    first = ArtifactCollection()
    assert first.add_table(TableArtifact(rows=[["a"]])) == 1
    assert first.add_image(ImageArtifact(content_type="image/png", data=b"1")) == 1

    second = ArtifactCollection()
    second.add_table(TableArtifact(rows=[["b"]]))
    second.add_table(TableArtifact(rows=[["c"]]))
    second.add_text(TextArtifact(text="sidebar"))

    offsets = first.absorb(second)

    assert (offsets.images, offsets.tables, offsets.text_blocks) == (1, 1, 0)
    assert first.table(3).rows == [["c"]]
    assert first.table(4) is None
    assert first.image(0) is None
    assert len(first) == 5


def test_set_metadata_skips_blank_values():
    collection = ArtifactCollection()

    collection.set_metadata({"title": " Report ", "empty": "  ", "none": None, "n": 3})

    assert collection.metadata == {"title": "Report", "n": "3"}
