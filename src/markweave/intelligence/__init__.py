"""Pluggable intelligence providers used during conversion."""

from __future__ import annotations

from .openai_vision import OpenAIImageProvider
from .providers import (
    AnalyzedPage,
    DocumentAnalysis,
    DocumentIntelligenceProvider,
    ImageInsight,
    ImageUnderstandingProvider,
    MediaTranscriptionProvider,
    ProviderHub,
    ProviderRequest,
    Transcript,
    TranscriptSegment,
)
from .whisper import WhisperTranscriptionProvider

__all__ = [
    "AnalyzedPage",
    "DocumentAnalysis",
    "DocumentIntelligenceProvider",
    "ImageInsight",
    "ImageUnderstandingProvider",
    "MediaTranscriptionProvider",
    "OpenAIImageProvider",
    "ProviderHub",
    "ProviderRequest",
    "Transcript",
    "TranscriptSegment",
    "WhisperTranscriptionProvider",
]
