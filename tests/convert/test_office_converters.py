from __future__ import annotations

import io
from pathlib import Path
from types import SimpleNamespace

import pytest

from markweave.convert.converters.epub import EpubConverter, group_chapters
from markweave.convert.converters.markitdown_backend import (
    MarkItDownConverter,
    coerce_markdown_result,
)
from markweave.convert.descriptor import InputDescriptor
from markweave.convert.errors import ConversionFailedError, UnsupportedFormatError
from markweave.convert.segments import SegmentType


class FakeEngine:
    def __init__(self, result):
        self.result = result
        self.paths = []

    def convert(self, path):
        self.paths.append(path)
        return self.result


def _convert(engine, context, extension, payload=b"binary"):
    converter = MarkItDownConverter(engine_factory=lambda: engine)
    staged = context.workspace.stage_bytes(payload, extension=extension)
    descriptor = InputDescriptor(extension=extension, file_name=f"input{extension}")
    with staged.open("rb") as stream:
        return converter.convert(stream, descriptor, context)


def test_pdf_form_feeds_become_pages(make_context):
    engine = FakeEngine(SimpleNamespace(markdown="Page one\fPage two\f", title="Report"))

    output = _convert(engine, make_context(), ".pdf")

    assert [(s.type, s.number, s.markdown) for s in output.segments] == [
        (SegmentType.PAGE, 1, "Page one"),
        (SegmentType.PAGE, 2, "Page two"),
    ]
    assert output.segments[1].metadata["page"] == "2"
    assert output.title == "Report"


def test_slide_markers_become_slides(make_context):
    markdown = (
        "Deck notes\n"
        "<!-- Slide number: 1 -->\n# Welcome\n"
        "<!-- Slide number: 2 -->\n# Agenda"
    )
    engine = FakeEngine(SimpleNamespace(markdown=markdown, title=" "))

    output = _convert(engine, make_context(), ".pptx")

    assert [(s.type, s.number) for s in output.segments] == [
        (SegmentType.SECTION, 1),
        (SegmentType.SLIDE, 1),
        (SegmentType.SLIDE, 2),
    ]
    assert output.segments[1].markdown == "\n# Welcome\n"
    assert output.segments[2].metadata["slide"] == "2"
    assert output.title is None


def test_sheet_headings_become_sheets(make_context):
    markdown = "## Revenue\n| a |\n## Costs\n| b |"
    engine = FakeEngine(SimpleNamespace(markdown=markdown))

    output = _convert(engine, make_context(), ".xlsx")

    assert [(s.type, s.label) for s in output.segments] == [
        (SegmentType.SHEET, "Revenue"),
        (SegmentType.SHEET, "Costs"),
    ]
    assert output.segments[0].markdown == "\n| a |\n"


def test_other_formats_give_one_section(make_context):
    engine = FakeEngine({"text_content": "<p>converted</p>"})

    output = _convert(engine, make_context(), ".html")

    assert [(s.type, s.number) for s in output.segments] == [(SegmentType.SECTION, 1)]
    assert output.segments[0].markdown == "<p>converted</p>"


def test_mismatched_suffix_is_copied_before_conversion(make_context):
    engine = FakeEngine("# Memo")
    context = make_context()
    converter = MarkItDownConverter(engine_factory=lambda: engine)
    staged = context.workspace.stage_bytes(b"docx-bytes", extension=".bin")

    with staged.open("rb") as stream:
        converter.convert(stream, InputDescriptor(extension=".docx"), context)

    copied = engine.paths[0]
    assert copied.endswith("markitdown/source.docx")
    assert context.workspace.contains(Path(copied))
    assert Path(copied).read_bytes() == b"docx-bytes"
    assert staged.exists()


def test_markitdown_requires_a_staged_file(make_context):
    engine = FakeEngine("# Memo")
    converter = MarkItDownConverter(engine_factory=lambda: engine)

    with pytest.raises(ConversionFailedError, match="staged file"):
        converter.convert(
            io.BytesIO(b"docx-bytes"), InputDescriptor(extension=".docx"), make_context()
        )
    assert engine.paths == []


def test_engine_is_created_once(make_context):
    created = []

    def factory():
        created.append(1)
        return FakeEngine("text")

    converter = MarkItDownConverter(engine_factory=factory)
    context = make_context()
    staged = context.workspace.stage_bytes(b"x", extension=".html")
    for _ in range(2):
        with staged.open("rb") as stream:
            converter.convert(stream, InputDescriptor(extension=".html"), context)

    assert created == [1]


def test_unusable_engine_result_fails(make_context):
    with pytest.raises(ConversionFailedError, match="unsupported response"):
        _convert(FakeEngine(42), make_context(), ".docx")


def test_coerce_markdown_result_variants():
    assert coerce_markdown_result(SimpleNamespace(text_content="a")) == "a"
    assert coerce_markdown_result({"markdown": "b"}) == "b"
    assert coerce_markdown_result("c") == "c"
    assert coerce_markdown_result(None) is None


def _element(category, text):
    return SimpleNamespace(category=category, text=text)


def test_group_chapters_opens_a_chapter_per_title():
    elements = [
        _element("NarrativeText", "Preface words."),
        _element("Title", "One"),
        _element("NarrativeText", "alpha"),
        _element("NarrativeText", "   "),
        _element("Title", "Two"),
        _element("ListItem", "beta"),
    ]

    chapters, title = group_chapters(elements)

    assert title == "One"
    assert [(s.type, s.number, s.label) for s in chapters] == [
        (SegmentType.CHAPTER, 1, None),
        (SegmentType.CHAPTER, 2, "One"),
        (SegmentType.CHAPTER, 3, "Two"),
    ]
    assert chapters[1].markdown == "## One\n\nalpha"


def test_epub_converter_partitions_the_staged_file(make_context):
    seen = []

    def partition(filename):
        seen.append(filename)
        return [_element("Title", "Only"), _element("NarrativeText", "Body.")]

    context = make_context()
    staged = context.workspace.stage_bytes(b"PK", extension=".epub")
    with staged.open("rb") as stream:
        output = EpubConverter(partition=partition).convert(
            stream, InputDescriptor(extension=".epub"), context
        )

    assert seen == [str(staged)]
    assert output.title == "Only"
    assert output.segments[0].markdown == "## Only\n\nBody."


def test_epub_without_elements_is_unsupported(make_context):
    context = make_context()
    context.workspace.stage_bytes(b"PK", extension=".epub")

    with pytest.raises(UnsupportedFormatError):
        EpubConverter(partition=lambda filename: []).convert(
            io.BytesIO(b"PK"), InputDescriptor(extension=".epub"), context
        )


def test_epub_needs_a_staged_file(make_context):
    with pytest.raises(ConversionFailedError):
        EpubConverter(partition=lambda filename: []).convert(
            io.BytesIO(b"PK"), InputDescriptor(extension=".epub"), make_context()
        )
