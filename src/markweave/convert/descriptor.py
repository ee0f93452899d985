"""Input descriptors: what the caller (or content sniffing) says an input is."""

from __future__ import annotations

import base64
import binascii
import codecs
import mimetypes
from dataclasses import dataclass, fields, replace
from pathlib import Path, PurePosixPath
from typing import Optional
from urllib.parse import unquote_to_bytes, urlparse

from .errors import UnsupportedFormatError

DOCX_MIME = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PPTX_MIME = (
    "application/vnd.openxmlformats-officedocument.presentationml.presentation"
)

_EXTENSION_MIME: dict[str, str] = {
    ".txt": "text/plain",
    ".text": "text/plain",
    ".log": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".html": "text/html",
    ".htm": "text/html",
    ".json": "application/json",
    ".jsonl": "application/json",
    ".ndjson": "application/json",
    ".ipynb": "application/x-ipynb+json",
    ".xml": "application/xml",
    ".xsd": "application/xml",
    ".xsl": "application/xml",
    ".xslt": "application/xml",
    ".rss": "application/rss+xml",
    ".atom": "application/atom+xml",
    ".csv": "text/csv",
    ".zip": "application/zip",
    ".epub": "application/epub+zip",
    ".pdf": "application/pdf",
    ".docx": DOCX_MIME,
    ".xlsx": XLSX_MIME,
    ".xls": "application/vnd.ms-excel",
    ".pptx": PPTX_MIME,
    ".msg": "application/vnd.ms-outlook",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".tiff": "image/tiff",
    ".tif": "image/tiff",
    ".webp": "image/webp",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".mp4": "video/mp4",
}

# Preferred extension for a MIME type when several extensions share one.
_MIME_EXTENSION: dict[str, str] = {
    "text/plain": ".txt",
    "text/markdown": ".md",
    "text/html": ".html",
    "application/json": ".json",
    "application/xml": ".xml",
    "text/xml": ".xml",
    "image/jpeg": ".jpg",
    "image/tiff": ".tiff",
    "audio/mp3": ".mp3",
    "audio/x-wav": ".wav",
}
for _ext, _mime in _EXTENSION_MIME.items():
    _MIME_EXTENSION.setdefault(_mime, _ext)


def normalize_extension(value: Optional[str]) -> Optional[str]:
    """Lower-case ``value`` and ensure a single leading dot."""

    if value is None:
        return None
    stripped = value.strip().lower()
    if not stripped or stripped == ".":
        return None
    return "." + stripped.lstrip(".")


def normalize_mime_type(value: Optional[str]) -> Optional[str]:
    """Lower-case ``value`` and drop any ``;param=...`` suffix."""

    if value is None:
        return None
    base = value.split(";", 1)[0].strip().lower()
    return base or None


def normalize_charset(value: Optional[str]) -> Optional[str]:
    """Return the canonical codec name for ``value`` or None if unknown."""

    if value is None or not value.strip():
        return None
    try:
        return codecs.lookup(value.strip()).name
    except LookupError:
        return None


def mime_for_extension(extension: Optional[str]) -> Optional[str]:
    ext = normalize_extension(extension)
    if ext is None:
        return None
    known = _EXTENSION_MIME.get(ext)
    if known is not None:
        return known
    guessed, _ = mimetypes.guess_type(f"file{ext}", strict=False)
    return guessed


def extension_for_mime(mime_type: Optional[str]) -> Optional[str]:
    mime = normalize_mime_type(mime_type)
    if mime is None:
        return None
    known = _MIME_EXTENSION.get(mime)
    if known is not None:
        return known
    return mimetypes.guess_extension(mime, strict=False)


@dataclass(frozen=True)
class InputDescriptor:
    """Immutable description of one input.

    Fields are normalised on construction, so two descriptors built from
    equivalent values compare equal.
    """

    mime_type: Optional[str] = None
    extension: Optional[str] = None
    charset: Optional[str] = None
    file_name: Optional[str] = None
    local_path: Optional[str] = None
    url: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "mime_type", normalize_mime_type(self.mime_type))
        object.__setattr__(self, "extension", normalize_extension(self.extension))
        object.__setattr__(self, "charset", normalize_charset(self.charset))
        for name in ("file_name", "local_path", "url"):
            value = getattr(self, name)
            if value is not None:
                value = str(value).strip() or None
            object.__setattr__(self, name, value)

    @classmethod
    def from_path(
        cls,
        path: Path,
        *,
        mime_type: Optional[str] = None,
        charset: Optional[str] = None,
    ) -> "InputDescriptor":
        resolved = Path(path).expanduser()
        return cls(
            mime_type=mime_type,
            extension=resolved.suffix or None,
            charset=charset,
            file_name=resolved.name,
            local_path=str(resolved.absolute()),
        )

    def copy_with(
        self, other: Optional["InputDescriptor"] = None, **overrides: object
    ) -> "InputDescriptor":
        """Merge ``other``'s set fields and explicit ``overrides`` over self."""

        values: dict[str, object] = {}
        if other is not None:
            for field_def in fields(other):
                value = getattr(other, field_def.name)
                if value is not None:
                    values[field_def.name] = value
        values.update(overrides)
        return replace(self, **values)

    def resolve_mime_type(self) -> Optional[str]:
        return self.mime_type or mime_for_extension(self.extension)

    def with_inferred_fields(self) -> "InputDescriptor":
        """Fill the MIME type from the extension and vice versa."""

        mime = self.mime_type or mime_for_extension(self.extension)
        ext = self.extension or extension_for_mime(mime)
        if mime == self.mime_type and ext == self.extension:
            return self
        return replace(self, mime_type=mime, extension=ext)

    @property
    def source_identifier(self) -> Optional[str]:
        return self.url or self.local_path or self.file_name

    @property
    def stem(self) -> Optional[str]:
        for candidate in (self.file_name, self.local_path):
            if candidate:
                stem = PurePosixPath(candidate.replace("\\", "/")).stem
                if stem:
                    return stem
        return None

    @property
    def is_empty(self) -> bool:
        return all(
            getattr(self, field_def.name) is None for field_def in fields(self)
        )

    def describe(self) -> str:
        parts = [part for part in (self.mime_type, self.extension) if part]
        return " ".join(parts) if parts else "unknown"


def parse_data_uri(uri: str) -> tuple[bytes, InputDescriptor]:
    """Decode a ``data:`` URI into its payload and a descriptor."""

    if not uri[:5].lower() == "data:":
        raise UnsupportedFormatError(f"Not a data URI: {uri[:32]}")
    header, separator, payload = uri[5:].partition(",")
    if not separator:
        raise UnsupportedFormatError("Malformed data URI: missing ','.")

    params = [part.strip() for part in header.split(";")]
    mime_type = params[0] or "text/plain"
    is_base64 = False
    charset: Optional[str] = None
    for param in params[1:]:
        if param.lower() == "base64":
            is_base64 = True
        elif param.lower().startswith("charset="):
            charset = param.split("=", 1)[1]

    if is_base64:
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise UnsupportedFormatError(
                "Malformed data URI: invalid base64 payload."
            ) from exc
    else:
        data = unquote_to_bytes(payload)

    descriptor = InputDescriptor(
        mime_type=mime_type,
        extension=extension_for_mime(mime_type),
        charset=charset,
    )
    return data, descriptor


def path_from_file_uri(uri: str) -> Path:
    parsed = urlparse(uri)
    if parsed.scheme.lower() != "file":
        raise UnsupportedFormatError(f"Not a file URI: {uri}")
    raw = unquote_to_bytes(parsed.path).decode("utf-8")
    if parsed.netloc and parsed.netloc != "localhost":
        raw = f"//{parsed.netloc}{raw}"
    return Path(raw)


__all__ = [
    "DOCX_MIME",
    "InputDescriptor",
    "PPTX_MIME",
    "XLSX_MIME",
    "extension_for_mime",
    "mime_for_extension",
    "normalize_charset",
    "normalize_extension",
    "normalize_mime_type",
    "parse_data_uri",
    "path_from_file_uri",
]
