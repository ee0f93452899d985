"""Markdown renderings for artifacts and metadata blocks."""

from __future__ import annotations

from pathlib import PurePath
from typing import Iterable, Mapping, Optional
from urllib.parse import quote

from .artifacts import ImageArtifact, TableArtifact
from .segments import MetadataKeys
from .text import collapse_lines, normalize_text


def render_table(table: TableArtifact) -> str:
    """Render ``table`` as a pipe table with its first row as header."""

    if not table.rows or table.column_count == 0:
        return ""
    header, *body = table.rows
    lines = [_table_row(header), _table_row(["---"] * table.column_count)]
    lines.extend(_table_row(row) for row in body)
    rendered = "\n".join(lines)
    if table.title:
        return f"**{collapse_lines(table.title)}**\n\n{rendered}"
    return rendered


def _table_row(cells: Iterable[str]) -> str:
    escaped = (collapse_lines(cell).replace("|", "\\|") for cell in cells)
    return "| " + " | ".join(escaped) + " |"


def image_placeholder(
    image: ImageArtifact,
    summary: Optional[str] = None,
    context_label: Optional[str] = None,
) -> str:
    """Markdown link to the persisted image, or a bold label without one."""

    alt = normalize_text(summary)
    context = normalize_text(context_label)
    if not alt:
        alt = _default_label(image)
    elif context:
        alt = f"{context}: {alt}"

    target = _artifact_target(image)
    if target:
        return f"![{_escape_alt(alt)}]({quote(target, safe='/')})"
    return f"**Image:** {alt}"


def _default_label(image: ImageArtifact) -> str:
    if image.page_number is not None:
        return f"Image on page {image.page_number}"
    page = (image.metadata.get(MetadataKeys.PAGE) or "").strip()
    if page:
        return f"Image on page {page}"
    if image.label and image.label.strip():
        return image.label.strip()
    return "Image"


def _artifact_target(image: ImageArtifact) -> Optional[str]:
    for key in (
        MetadataKeys.ARTIFACT_RELATIVE_PATH,
        MetadataKeys.ARTIFACT_FILE_NAME,
    ):
        value = (image.metadata.get(key) or "").strip()
        if value:
            return value.replace("\\", "/")
    if image.file_path is not None:
        return image.file_path.name
    absolute = (image.metadata.get(MetadataKeys.ARTIFACT_PATH) or "").strip()
    if absolute:
        return PurePath(absolute.replace("\\", "/")).name or absolute
    return None


def _escape_alt(value: str) -> str:
    if not value.strip():
        return "Image"
    escaped = []
    for ch in value:
        if ch in "[]\\":
            escaped.append("\\" + ch)
        elif ch in "\r\n":
            escaped.append(" ")
        else:
            escaped.append(ch)
    return "".join(escaped).strip()


def image_comment(image: ImageArtifact) -> Optional[str]:
    """HTML comment carrying an image's description, text, and diagram.

    Returns None when the image carries none of them.
    """

    sections: list[str] = []
    description = _choose_description(image)
    if description:
        sections.append(description)

    visible = [
        collapse_lines(line)
        for source in (
            image.recognized_text,
            image.metadata.get(MetadataKeys.OCR_TEXT),
        )
        if source
        for line in source.splitlines()
        if line.strip()
    ]
    if visible:
        sections.append(
            "Visible text:\n" + "\n".join(f"- {line}" for line in visible)
        )

    if image.diagram_code and image.diagram_code.strip():
        sections.append(
            "Diagram as Mermaid code:\n```mermaid\n"
            + image.diagram_code.strip()
            + "\n```"
        )

    if not sections:
        return None
    body = comment_safe("\n\n".join(sections))
    return "<!-- Image description:\n" + body + "\n-->"


def _choose_description(image: ImageArtifact) -> Optional[str]:
    for candidate in (
        image.description,
        image.metadata.get(MetadataKeys.DESCRIPTION),
        image.metadata.get(MetadataKeys.CAPTION),
    ):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


def comment_safe(text: str) -> str:
    """Keep ``-->`` inside ``text`` from closing the surrounding comment."""

    return text.replace("-->", "--&gt;")


def metadata_comment(metadata: Mapping[str, str]) -> Optional[str]:
    """Document metadata as a comment, keys sorted case-insensitively."""

    entries = sorted(
        (
            (str(key).strip(), collapse_lines(str(value)))
            for key, value in metadata.items()
            if str(key).strip() and value is not None and str(value).strip()
        ),
        key=lambda item: (item[0].casefold(), item[0]),
    )
    if not entries:
        return None
    lines = ["<!-- Document metadata:"]
    lines.extend(f"{key}: {comment_safe(value)}" for key, value in entries)
    lines.append("-->")
    return "\n".join(lines)


__all__ = [
    "comment_safe",
    "image_comment",
    "image_placeholder",
    "metadata_comment",
    "render_table",
]
