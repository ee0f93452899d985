"""Candidate descriptors for an input, most specific first."""

from __future__ import annotations

import codecs
from typing import BinaryIO, Optional

from .descriptor import (
    DOCX_MIME,
    PPTX_MIME,
    XLSX_MIME,
    InputDescriptor,
    extension_for_mime,
    mime_for_extension,
)

SAMPLE_SIZE = 16 * 1024
_TEXT_HEAD = 1024

_ZIP_CONTAINERS = {
    ".docx": DOCX_MIME,
    ".xlsx": XLSX_MIME,
    ".pptx": PPTX_MIME,
    ".epub": "application/epub+zip",
}

_BOMS = (
    (codecs.BOM_UTF8, "utf-8"),
    (codecs.BOM_UTF32_LE, "utf-32-le"),
    (codecs.BOM_UTF32_BE, "utf-32-be"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
    (codecs.BOM_UTF16_BE, "utf-16-be"),
)


def read_sample(stream: BinaryIO, size: int = SAMPLE_SIZE) -> bytes:
    """Read the leading bytes of ``stream`` and restore its position."""

    position = stream.tell()
    try:
        stream.seek(0)
        return stream.read(size)
    finally:
        stream.seek(position)


def sniff(
    sample: bytes, descriptor: Optional[InputDescriptor] = None
) -> Optional[InputDescriptor]:
    """Guess a MIME type, extension, and charset from leading bytes."""

    if not sample:
        return None
    declared_ext = descriptor.extension if descriptor else None

    if sample.startswith(b"%PDF"):
        return InputDescriptor(mime_type="application/pdf", extension=".pdf")
    if sample.startswith(b"PK\x03\x04") or sample.startswith(b"PK\x05\x06"):
        container = _ZIP_CONTAINERS.get(declared_ext or "")
        if container is not None:
            return InputDescriptor(mime_type=container, extension=declared_ext)
        return InputDescriptor(mime_type="application/zip", extension=".zip")
    if sample.startswith(b"\x89PNG\r\n\x1a\n"):
        return InputDescriptor(mime_type="image/png", extension=".png")
    if sample.startswith(b"\xff\xd8\xff"):
        return InputDescriptor(mime_type="image/jpeg", extension=".jpg")
    if sample.startswith((b"GIF87a", b"GIF89a")):
        return InputDescriptor(mime_type="image/gif", extension=".gif")
    if sample[:4] == b"RIFF" and sample[8:12] == b"WEBP":
        return InputDescriptor(mime_type="image/webp", extension=".webp")
    if sample[:4] == b"RIFF" and sample[8:12] == b"WAVE":
        return InputDescriptor(mime_type="audio/wav", extension=".wav")
    if sample.startswith(b"ID3") or sample[:2] in (b"\xff\xfb", b"\xff\xf3"):
        return InputDescriptor(mime_type="audio/mpeg", extension=".mp3")

    charset, text = _decode_text(sample)
    if text is None:
        return None
    mime = _text_mime(text)
    return InputDescriptor(
        mime_type=mime,
        extension=extension_for_mime(mime),
        charset=charset,
    )


def _decode_text(sample: bytes) -> tuple[Optional[str], Optional[str]]:
    for bom, encoding in _BOMS:
        if sample.startswith(bom):
            text = sample[len(bom):].decode(encoding, errors="ignore")
            return encoding, text
    try:
        text = sample.decode("utf-8")
        charset = "utf-8"
    except UnicodeDecodeError as exc:
        # A multi-byte character cut off by the sample boundary is fine.
        if exc.start < len(sample) - 4:
            return None, None
        text = sample[: exc.start].decode("utf-8")
        charset = "utf-8"
    head = text[:_TEXT_HEAD]
    if any(ord(ch) < 32 and ch not in "\r\n\t\f" for ch in head):
        return None, None
    return charset, text


def _text_mime(text: str) -> str:
    stripped = text.lstrip()
    lowered = stripped[:512].lower()
    if lowered.startswith(("<!doctype html", "<html", "<head", "<body")):
        return "text/html"
    if stripped.startswith(("{", "[")):
        return "application/json"
    if lowered.startswith("<?xml") or (
        stripped.startswith("<") and ">" in stripped
    ):
        return "application/xml"
    lines = [line for line in stripped.splitlines()[:2] if line.strip()]
    if len(lines) == 2 and all(
        any(sep in line for sep in ",;\t") for line in lines
    ):
        return "text/csv"
    return "text/plain"


def resolve_candidates(
    descriptor: InputDescriptor, sample: Optional[bytes] = None
) -> list[InputDescriptor]:
    """Return ordered, de-duplicated descriptor variants for dispatch.

    Order: declared MIME with declared extension (each inferred from the
    other when missing), sniffed MIME with declared extension, declared
    extension alone, sniffed MIME alone. ``descriptor`` itself is always
    the last entry, even when an earlier variant would equal it.
    """

    sniffed = sniff(sample, descriptor) if sample else None
    variants: list[InputDescriptor] = []

    if descriptor.mime_type or descriptor.extension:
        variants.append(descriptor.with_inferred_fields())

    if sniffed is not None and sniffed.mime_type:
        variants.append(
            descriptor.copy_with(
                mime_type=sniffed.mime_type,
                extension=descriptor.extension or sniffed.extension,
                charset=descriptor.charset or sniffed.charset,
            )
        )

    if descriptor.extension:
        variants.append(
            descriptor.copy_with(
                mime_type=mime_for_extension(descriptor.extension)
            )
        )

    if sniffed is not None and sniffed.mime_type:
        variants.append(
            descriptor.copy_with(
                mime_type=sniffed.mime_type,
                extension=sniffed.extension,
                charset=descriptor.charset or sniffed.charset,
            )
        )

    unique: list[InputDescriptor] = []
    for variant in variants:
        if variant != descriptor and variant not in unique:
            unique.append(variant)
    unique.append(descriptor)
    return unique


__all__ = ["SAMPLE_SIZE", "read_sample", "resolve_candidates", "sniff"]
