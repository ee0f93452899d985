from __future__ import annotations

from datetime import timedelta

import pytest

from markweave.convert.segments import (
    MetadataKeys,
    Segment,
    SegmentOrderError,
    SegmentType,
    canonical_page,
    page_reference,
    renumber,
    validate_ordering,
)


def test_segment_rejects_invalid_numbers_and_times():
    with pytest.raises(ValueError):
        Segment("x", number=0)
    with pytest.raises(ValueError):
        Segment("x", number=True)
    with pytest.raises(ValueError):
        Segment(
            "x",
            start_time=timedelta(seconds=5),
            end_time=timedelta(seconds=1),
        )


def test_segment_metadata_is_stringified_and_read_only():
    segment = Segment("x", metadata={"page": 3, "empty": None})

    assert dict(segment.metadata) == {"page": "3"}
    with pytest.raises(TypeError):
        segment.metadata["page"] = "4"  # type: ignore[index]


def test_with_metadata_returns_new_segment():
    original = Segment("x", metadata={"a": "1"})

    updated = original.with_metadata(b=2, c=None)

    assert dict(original.metadata) == {"a": "1"}
    assert dict(updated.metadata) == {"a": "1", "b": "2"}


def test_segment_type_tokens():
    assert SegmentType.AUDIO.token == "segment"
    assert SegmentType.METADATA.token == "meta"
    assert SegmentType.PAGE.token == "page"
    assert SegmentType.from_value("Segment") is SegmentType.AUDIO
    with pytest.raises(ValueError):
        SegmentType.from_value("paragraph")


@pytest.mark.parametrize(
    ("value", "expected"),
    [(3, 3), ("7", 7), (" 2 ", 2), ("Page 3", None), (0, None), (True, None)],
)
def test_canonical_page(value, expected):
    assert canonical_page(value) == expected


def test_page_reference_prefers_metadata():
    assert page_reference(Segment("x", type=SegmentType.PAGE, number=2)) == 2
    assert (
        page_reference(
            Segment("x", type=SegmentType.PAGE, number=1, metadata={"page": "9"})
        )
        == 9
    )
    assert page_reference(Segment("x", metadata={"page": "Page 3"})) is None


def test_validate_ordering_accepts_independent_sequences():
    validate_ordering(
        [
            Segment("a", type=SegmentType.PAGE, number=1),
            Segment("t", type=SegmentType.TABLE, number=1),
            Segment("heading"),
            Segment("b", type=SegmentType.PAGE, number=2),
        ]
    )


@pytest.mark.parametrize("numbers", [[1, 3], [1, 1], [2]])
def test_validate_ordering_rejects_gaps_and_repeats(numbers):
    segments = [Segment("x", type=SegmentType.SLIDE, number=n) for n in numbers]

    with pytest.raises(SegmentOrderError):
        validate_ordering(segments)


def test_renumber_continues_counters_and_records_source_number():
    counters = {SegmentType.PAGE: 2}
    segments = [
        Segment("a", type=SegmentType.PAGE, number=1),
        Segment("note"),
        Segment("b", type=SegmentType.PAGE, number=2),
        Segment("t", type=SegmentType.TABLE, number=1),
    ]

    result = renumber(segments, counters)

    assert [s.number for s in result] == [3, None, 4, 1]
    assert result[0].metadata[MetadataKeys.SOURCE_NUMBER] == "1"
    assert MetadataKeys.SOURCE_NUMBER not in result[3].metadata
    assert counters == {SegmentType.PAGE: 4, SegmentType.TABLE: 1}
