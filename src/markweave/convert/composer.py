"""Compose segments and artifacts into the final Markdown document.

Composition is a pure projection: the same segments, artifacts, descriptor,
options, title hint and timestamp always give byte-identical text. The
composer only arranges and annotates; it never extracts content.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Mapping, Optional, Sequence

from . import references
from .artifacts import ArtifactCollection
from .descriptor import InputDescriptor
from .formatting import (
    image_comment,
    image_placeholder,
    metadata_comment,
    render_table,
)
from .segments import Segment, SegmentType, count_by_type, page_reference
from .tables import continuation_marker, continuation_pages, span_marker
from .text import collapse_lines, normalize_text

_IMAGE_PREFIXES = ("![", "**Image")
_RESERVED_TAGS = frozenset({"label", "source", "timecode", "start", "end"})


@dataclass(frozen=True)
class ComposeOptions:
    """Switches for the optional parts of the composed document."""

    include_annotations: bool = True
    include_front_matter: bool = True
    include_document_metadata: bool = True


@dataclass(frozen=True)
class ComposedDocument:
    markdown: str
    title: Optional[str]


def compose(
    segments: Sequence[Segment],
    artifacts: ArtifactCollection,
    descriptor: InputDescriptor,
    options: Optional[ComposeOptions] = None,
    *,
    title_hint: Optional[str] = None,
    generated_at: Optional[datetime] = None,
) -> ComposedDocument:
    """Render the document and return it with the resolved title."""

    options = options or ComposeOptions()
    title = resolve_title(segments, descriptor, title_hint)

    blocks: list[str] = []
    if options.include_front_matter:
        blocks.append(
            _front_matter(segments, artifacts, descriptor, title, generated_at)
        )

    body = "\n\n".join(
        _compose_body(segments, artifacts, options.include_annotations)
    )
    if body:
        blocks.append(body)

    if options.include_document_metadata:
        comment = metadata_comment(artifacts.metadata)
        if comment:
            blocks.append(comment)

    return ComposedDocument(markdown="\n\n".join(blocks).rstrip(), title=title)


def resolve_title(
    segments: Iterable[Segment],
    descriptor: InputDescriptor,
    hint: Optional[str] = None,
) -> Optional[str]:
    """Pick a title from the hint, the first content line, or the source."""

    if hint and hint.strip():
        return collapse_lines(hint)
    for segment in segments:
        if segment.type is SegmentType.IMAGE:
            continue
        line = first_content_line(segment.markdown)
        if line:
            return line
    stem = descriptor.stem
    if stem:
        return stem
    return descriptor.url


def first_content_line(text: str) -> Optional[str]:
    """First line that reads like prose or a heading.

    Comments, image placeholders, artifact tokens, quotes, fenced code, and
    indented lines are skipped. Headings lose their leading ``#`` marks.
    """

    in_comment = False
    in_fence = False
    for raw in text.splitlines():
        if in_comment:
            if "-->" in raw:
                in_comment = False
            continue
        stripped = raw.strip()
        if stripped.startswith(("```", "~~~")):
            in_fence = not in_fence
            continue
        if in_fence or not stripped:
            continue
        if raw.startswith(("\t", "    ")):
            continue
        if stripped.startswith("<!--"):
            in_comment = "-->" not in stripped
            continue
        if stripped.startswith(_IMAGE_PREFIXES) or stripped.startswith(">"):
            continue
        if references.is_reference_line(stripped):
            continue
        if stripped.startswith("#"):
            stripped = stripped.lstrip("#").strip()
            if not stripped:
                continue
        return stripped
    return None


def _compose_body(
    segments: Sequence[Segment],
    artifacts: ArtifactCollection,
    include_annotations: bool,
) -> Iterable[str]:
    continuations = _continuation_markers(artifacts)

    def render(kind: str, ordinal: int) -> Optional[str]:
        if kind == references.TABLE:
            table = artifacts.table(ordinal)
            if table is None:
                return None
            parts = [span_marker(table, ordinal), render_table(table)]
            return "\n\n".join(part for part in parts if part)
        image = artifacts.image(ordinal)
        if image is None:
            return None
        parts = [image_placeholder(image), image_comment(image)]
        return "\n".join(part for part in parts if part)

    for segment in segments:
        body = references.substitute(segment.markdown, render)
        page = page_reference(segment)
        if segment.type is SegmentType.PAGE and page in continuations:
            body = "\n".join(continuations[page]) + "\n\n" + body
        body = normalize_text(body)
        if not body:
            continue
        annotation = annotation_line(segment) if include_annotations else ""
        yield f"{annotation}\n{body}" if annotation else body


def _continuation_markers(
    artifacts: ArtifactCollection,
) -> Mapping[int, list[str]]:
    markers: dict[int, list[str]] = {}
    for ordinal, table in enumerate(artifacts.tables, start=1):
        for page in continuation_pages(table):
            markers.setdefault(page, []).append(
                continuation_marker(table, page, ordinal)
            )
    return markers


def annotation_line(segment: Segment) -> str:
    """Bracketed tags describing a segment's position and provenance."""

    tags: list[str] = []
    token = segment.type.token
    if segment.number is not None:
        tags.append(f"[{token}:{segment.number}]")
    if segment.is_timed:
        start = segment.start_time
        end = segment.end_time
        if segment.type is SegmentType.AUDIO:
            first = start if start is not None else end
            last = end if end is not None else start
            tags.append(
                f"[timecode:{format_offset(first)}-{format_offset(last)}]"
            )
        else:
            if start is not None:
                tags.append(f"[start:{format_offset(start)}]")
            if end is not None:
                tags.append(f"[end:{format_offset(end)}]")
    if segment.label and segment.label.strip():
        tags.append(f"[label:{sanitize_tag(segment.label)}]")
    if segment.source and segment.source.strip():
        tags.append(f"[source:{sanitize_tag(segment.source)}]")
    for key, value in segment.metadata.items():
        if key in _RESERVED_TAGS or key == token or not value.strip():
            continue
        tags.append(f"[{sanitize_tag(key)}:{sanitize_tag(value)}]")
    return " ".join(tags)


def sanitize_tag(value: str) -> str:
    cleaned = "_".join(value.split())
    return cleaned.replace("[", "-").replace("]", "-").replace(":", "-")


def format_offset(value: Optional[timedelta]) -> str:
    """``mm:ss``, or ``hh:mm:ss`` from one hour on."""

    seconds = max(int((value or timedelta()).total_seconds()), 0)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def _front_matter(
    segments: Sequence[Segment],
    artifacts: ArtifactCollection,
    descriptor: InputDescriptor,
    title: Optional[str],
    generated_at: Optional[datetime],
) -> str:
    file_name = descriptor.file_name
    if not file_name and descriptor.local_path:
        file_name = descriptor.local_path.replace("\\", "/").rsplit("/", 1)[-1]

    entries: list[tuple[str, object]] = [
        ("title", title),
        ("source", descriptor.source_identifier),
        ("mimeType", descriptor.resolve_mime_type()),
        ("fileName", file_name),
        ("generated", format_timestamp(generated_at) if generated_at else None),
    ]
    counts = (
        ("pages", count_by_type(segments, SegmentType.PAGE)),
        ("images", len(artifacts.images)),
        ("tables", len(artifacts.tables)),
    )
    entries.extend((key, count) for key, count in counts if count > 0)

    lines = ["---"]
    for key, value in entries:
        escaped = escape_front_matter(value)
        if escaped is not None:
            lines.append(f"{key}: {escaped}")
    lines.append("---")
    return "\n".join(lines)


def escape_front_matter(value: object) -> Optional[str]:
    """Quote a front-matter value; blank values return None."""

    if value is None:
        return None
    text = str(value).replace("\r\n", " ").replace("\r", " ").replace("\n", " ")
    text = text.strip()
    if not text:
        return None
    return '"' + text.replace('"', '""') + '"'


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


__all__ = [
    "ComposeOptions",
    "ComposedDocument",
    "annotation_line",
    "compose",
    "escape_front_matter",
    "first_content_line",
    "format_offset",
    "format_timestamp",
    "resolve_title",
    "sanitize_tag",
]
