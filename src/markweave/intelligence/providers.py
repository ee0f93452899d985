"""Capability interfaces for optional document, image, and media analysis.

Backends satisfy one of the protocols below and are handed to the engine
once, through a :class:`ProviderHub`. Every call receives a file-backed
stream, the input descriptor, and an optional per-request override; it
returns a structured result or None when it has nothing to say.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import (
    Any,
    BinaryIO,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from markweave.convert.descriptor import InputDescriptor
from markweave.convert.errors import DependencyError
from markweave.convert.tables import TableFragment


@dataclass(frozen=True)
class ProviderRequest:
    """Per-call overrides (model, language, prompt, extra options)."""

    model: Optional[str] = None
    language: Optional[str] = None
    prompt: Optional[str] = None
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ImageInsight:
    description: Optional[str] = None
    recognized_text: Optional[str] = None
    diagram_code: Optional[str] = None
    caption: Optional[str] = None
    metadata: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not any(
            (self.description, self.recognized_text, self.diagram_code, self.caption)
        )


@dataclass(frozen=True)
class TranscriptSegment:
    text: str
    start: Optional[timedelta] = None
    end: Optional[timedelta] = None


@dataclass(frozen=True)
class Transcript:
    segments: Sequence[TranscriptSegment]
    language: Optional[str] = None
    duration: Optional[timedelta] = None

    @property
    def text(self) -> str:
        return " ".join(
            segment.text.strip() for segment in self.segments if segment.text.strip()
        )


@dataclass(frozen=True)
class AnalyzedPage:
    number: int
    markdown: str


@dataclass(frozen=True)
class DocumentAnalysis:
    """Pages and table fragments returned by a layout-analysis backend."""

    pages: Sequence[AnalyzedPage]
    tables: Sequence[TableFragment] = ()
    title: Optional[str] = None


@runtime_checkable
class DocumentIntelligenceProvider(Protocol):
    def analyze(
        self,
        stream: BinaryIO,
        descriptor: InputDescriptor,
        request: Optional[ProviderRequest] = None,
    ) -> Optional[DocumentAnalysis]:
        ...


@runtime_checkable
class ImageUnderstandingProvider(Protocol):
    def analyze(
        self,
        stream: BinaryIO,
        descriptor: InputDescriptor,
        request: Optional[ProviderRequest] = None,
    ) -> Optional[ImageInsight]:
        ...


@runtime_checkable
class MediaTranscriptionProvider(Protocol):
    def transcribe(
        self,
        stream: BinaryIO,
        descriptor: InputDescriptor,
        request: Optional[ProviderRequest] = None,
    ) -> Optional[Transcript]:
        ...


@dataclass(frozen=True)
class ProviderHub:
    """The providers configured for an engine; any of them may be absent."""

    document: Optional[DocumentIntelligenceProvider] = None
    image: Optional[ImageUnderstandingProvider] = None
    media: Optional[MediaTranscriptionProvider] = None

    def require_document(self) -> DocumentIntelligenceProvider:
        return _require(self.document, "document intelligence")

    def require_image(self) -> ImageUnderstandingProvider:
        return _require(self.image, "image understanding")

    def require_media(self) -> MediaTranscriptionProvider:
        return _require(self.media, "media transcription")


def _require(provider, label: str):
    if provider is None:
        raise DependencyError(f"No {label} provider is configured.")
    return provider


def require_content_type(descriptor: InputDescriptor) -> str:
    """Return the image MIME type or raise ``ValueError`` when it is missing."""

    mime = descriptor.mime_type
    if not mime:
        raise ValueError("Image analysis requires an explicit content type.")
    return mime


__all__ = [
    "AnalyzedPage",
    "DocumentAnalysis",
    "DocumentIntelligenceProvider",
    "ImageInsight",
    "ImageUnderstandingProvider",
    "MediaTranscriptionProvider",
    "ProviderHub",
    "ProviderRequest",
    "Transcript",
    "TranscriptSegment",
    "require_content_type",
]
