from __future__ import annotations

import io

import pytest

from fixtures import FakeDocumentProvider, FakeImageProvider, FakeMediaProvider
from markweave.convert.cancellation import CancellationToken
from markweave.convert.composer import ComposeOptions
from markweave.convert.converters.base import BaseConverter, ConverterOutput
from markweave.convert.descriptor import InputDescriptor
from markweave.convert.errors import (
    ConfigurationError,
    ConversionCancelledError,
    ConversionError,
    ConversionFailedError,
    UnsupportedFormatError,
)
from markweave.convert.pipeline import MARKDOWN_FILENAME, ConversionOptions
from markweave.convert.segments import Segment, SegmentType
from markweave.intelligence.providers import (
    AnalyzedPage,
    DocumentAnalysis,
    ProviderHub,
)
from markweave.convert.tables import TableFragment

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def _leftover(artifacts_root):
    if not artifacts_root.exists():
        return []
    return list(artifacts_root.iterdir())


def test_convert_markdown_file(make_engine, workspace, artifacts_root):
    source = workspace.write(
        "notes.md", "# Intro\n\nHello.\n\n## Details\n\nMore.\n"
    )

    result = make_engine().convert_path(source)

    assert result.converter_name == "plain-text"
    assert result.title == "Intro"
    assert [s.number for s in result.segments] == [1, 2]
    assert result.descriptor.mime_type == "text/markdown"
    assert result.markdown.startswith(
        "---\n"
        'title: "Intro"\n'
        f'source: "{source}"\n'
        'mimeType: "text/markdown"\n'
        'fileName: "notes.md"\n'
        'generated: "2025-03-18T14:00:00Z"\n'
        "---\n\n"
        "[section:1]\n# Intro\n\nHello.\n\n"
        "[section:2]\n## Details\n\nMore."
    )
    assert result.markdown.endswith(
        "<!-- Document metadata:\n"
        "converter: plain-text\n"
        "generated: 2025-03-18T14:00:00Z\n"
        "segments: 2\n"
        "title: Intro\n"
        "-->"
    )
    assert _leftover(artifacts_root) == []


def test_recompose_is_stable_and_honours_new_options(make_engine, workspace):
    source = workspace.write("notes.txt", "Plain body text.")
    result = make_engine().convert_path(source)

    assert result.recompose() == result.markdown
    bare = result.recompose(
        ComposeOptions(include_annotations=False, include_front_matter=False)
    )
    assert bare.startswith("Plain body text.")


def test_title_argument_overrides_content(make_engine, workspace):
    source = workspace.write("notes.txt", "First line.")

    result = make_engine().convert_path(source, title="Custom Title")

    assert result.title == "Custom Title"
    assert 'title: "Custom Title"' in result.markdown


def test_missing_source_raises(make_engine, tmp_path):
    with pytest.raises(ConversionError, match="not found"):
        make_engine().convert_path(tmp_path / "absent.txt")


def test_convert_bytes_with_declared_csv(make_engine):
    result = make_engine().convert_bytes(
        b"name,score\nada,10\nbob,\n",
        InputDescriptor(mime_type="text/csv", file_name="scores.csv"),
    )

    assert result.converter_name == "csv"
    assert "| name | score |\n| --- | --- |\n| ada | 10 |\n| bob | N/A |" in (
        result.markdown
    )
    assert 'tables: "1"' in result.markdown


def test_convert_stream_sniffs_json(make_engine):
    stream = io.BytesIO(b'{"title": "Inventory", "items": [1, 2]}')

    result = make_engine().convert_stream(stream)

    assert result.converter_name == "json"
    assert result.title == "Inventory"
    assert '```json\n{\n  "title": "Inventory",' in result.markdown


def test_convert_data_and_file_uris(make_engine, workspace):
    engine = make_engine()

    from_data = engine.convert_uri("data:text/plain,hello%20there")
    assert "hello there" in from_data.markdown

    source = workspace.write("doc.txt", "from a file uri")
    from_file = engine.convert_uri(source.as_uri())
    assert from_file.descriptor.file_name == "doc.txt"

    with pytest.raises(UnsupportedFormatError):
        engine.convert_uri("https://example.com/doc.pdf")


def test_unsupported_input_releases_workspace(make_engine, workspace, artifacts_root):
    source = workspace.write("blob.qqz", b"\x00\x01\x02\x03\x04")

    with pytest.raises(UnsupportedFormatError):
        make_engine().convert_path(source)
    assert _leftover(artifacts_root) == []


def test_keep_workspace_and_persist_markdown(make_engine, workspace):
    source = workspace.write("notes.txt", "Keep me.")

    kept = make_engine(ConversionOptions(keep_workspace=True)).convert_path(source)
    assert kept.workspace_root.is_dir()
    assert (kept.workspace_root / "source.txt").read_text() == "Keep me."

    persisted = make_engine(ConversionOptions(persist_markdown=True)).convert_path(
        source
    )
    assert persisted.markdown_path.name == MARKDOWN_FILENAME
    assert persisted.markdown_path.read_text(encoding="utf-8") == (
        persisted.markdown + "\n"
    )


def test_cancelled_before_start_creates_no_workspace(make_engine, workspace, artifacts_root):
    token = CancellationToken()
    token.cancel("shutting down")
    source = workspace.write("notes.txt", "x")

    with pytest.raises(ConversionCancelledError):
        make_engine().convert_path(source, cancellation=token)
    assert _leftover(artifacts_root) == []


class _Scribbler(BaseConverter):
    """Writes scratch files into the workspace, then fails or cancels."""

    extensions = frozenset({".boom"})

    def __init__(self, name, *, token=None):
        self.name = name
        super().__init__()
        self.token = token
        self.workspace_roots = []

    def convert(self, stream, descriptor, context):
        self.workspace_roots.append(context.workspace.root)
        context.workspace.persist_text("scratch/partial.md", "half written")
        if self.token is not None:
            self.token.cancel("user pressed stop")
        raise RuntimeError("disk full")


def test_failing_converter_leaves_no_workspace(make_engine, workspace, artifacts_root):
    source = workspace.write("doc.boom", "payload")
    engine = make_engine(enable_builtins=False)
    scribbler = _Scribbler("scribbler")
    engine.register_converter(scribbler)

    with pytest.raises(UnsupportedFormatError, match="every attempt failed"):
        engine.convert_path(source)

    assert scribbler.workspace_roots
    assert not scribbler.workspace_roots[0].exists()
    assert _leftover(artifacts_root) == []


def test_cancelled_during_dispatch_releases_workspace(
    make_engine, workspace, artifacts_root
):
    token = CancellationToken()
    source = workspace.write("doc.boom", "payload")
    engine = make_engine(enable_builtins=False)
    cancelling = _Scribbler("cancelling", token=token)
    never_reached = _Scribbler("never-reached")
    engine.register_converter(cancelling)
    engine.register_converter(never_reached)

    with pytest.raises(ConversionCancelledError):
        engine.convert_path(source, cancellation=token)

    assert len(cancelling.workspace_roots) == 1
    assert never_reached.workspace_roots == []
    assert _leftover(artifacts_root) == []


class _OutOfOrder(BaseConverter):
    name = "out-of-order"
    extensions = frozenset({".bad"})

    def convert(self, stream, descriptor, context):
        return ConverterOutput(
            segments=[Segment("two", type=SegmentType.PAGE, number=2)]
        )


def test_out_of_order_segments_fail_validation(make_engine, workspace):
    source = workspace.write("doc.bad", "x")
    engine = make_engine(enable_builtins=False)
    engine.register_converter(_OutOfOrder())

    with pytest.raises(ConversionFailedError, match="out-of-order"):
        engine.convert_path(source)

    lenient = make_engine(ConversionOptions(validate_ordering=False), enable_builtins=False)
    lenient.register_converter(_OutOfOrder())
    assert lenient.convert_path(source).segments[0].number == 2


def test_image_is_persisted_and_enriched(make_engine, workspace):
    provider = FakeImageProvider()
    source = workspace.write("chart.png", PNG)

    result = make_engine(providers=ProviderHub(image=provider)).convert_path(source)

    assert result.converter_name == "image"
    assert len(provider.calls) == 1
    assert (
        "[image:1] [label:chart.png]\n"
        "![chart.png](images/image_0001.png)\n"
        "<!-- Image description:\n"
        "A bar chart of quarterly revenue.\n\n"
        "Visible text:\n- Q1\n- Q2\n"
        "-->"
    ) in result.markdown
    assert result.artifacts.metadata["enrichment.images.enriched"] == "1"


def test_image_payload_readable_after_workspace_release(
    make_engine, workspace, artifacts_root
):
    source = workspace.write("chart.png", PNG)

    result = make_engine(ConversionOptions(enrich_images=False)).convert_path(source)

    image = result.artifacts.images[0]
    assert _leftover(artifacts_root) == []
    assert not image.file_path.exists()
    assert image.read_bytes() == PNG
    with image.open() as handle:
        assert handle.read() == PNG


def test_enrichment_can_be_disabled(make_engine, workspace):
    provider = FakeImageProvider()
    source = workspace.write("chart.png", PNG)

    options = ConversionOptions(enrich_images=False)
    result = make_engine(options, providers=ProviderHub(image=provider)).convert_path(
        source
    )

    assert provider.calls == []
    assert "Image description" not in result.markdown


def test_document_provider_takes_precedence(make_engine, workspace):
    analysis = DocumentAnalysis(
        pages=(
            AnalyzedPage(number=2, markdown="Second page."),
            AnalyzedPage(number=1, markdown="# Annual Report\n\nFirst page."),
        ),
        tables=(
            TableFragment(rows=[["Year", "Revenue"], ["2023", "10"]], page_number=1),
            TableFragment(
                rows=[["2024", "12"]], page_number=2, continuation=True
            ),
        ),
    )
    provider = FakeDocumentProvider(analysis=analysis)
    source = workspace.write("annual.pdf", b"%PDF-1.4 fake body")

    result = make_engine(providers=ProviderHub(document=provider)).convert_path(source)

    assert result.converter_name == "document-analysis"
    assert result.title == "Annual Report"
    assert "<!-- Table 1 spans pages 1-2 -->" in result.markdown
    assert "| 2023 | 10 |\n| 2024 | 12 |" in result.markdown
    assert "<!-- Table 1 continues on page 2 (pages 1-2) -->" in result.markdown
    assert 'pages: "2"' in result.markdown


def test_audio_is_transcribed_into_timed_segments(make_engine, workspace):
    provider = FakeMediaProvider()
    source = workspace.write("lecture.mp3", b"ID3" + b"\x00" * 32)

    result = make_engine(providers=ProviderHub(media=provider)).convert_path(source)

    assert result.converter_name == "audio"
    assert (
        "[segment:1] [timecode:00:00-00:42]\n"
        "Welcome to the lecture. Today we cover tables."
    ) in result.markdown
    assert "[segment:2] [timecode:01:01-01:10]\nQuestions at the end." in (
        result.markdown
    )


def test_options_are_validated():
    with pytest.raises(ConfigurationError):
        ConversionOptions(max_parallel_enrichment=0)
    with pytest.raises(ConfigurationError):
        ConversionOptions(max_archive_depth=-1)
    with pytest.raises(ConfigurationError):
        ConversionOptions(audio_segment_seconds=0)
