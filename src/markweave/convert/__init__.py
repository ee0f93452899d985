"""Public API for converting documents into LLM-ready Markdown."""

from __future__ import annotations

from .artifacts import (
    ArtifactCollection,
    ImageArtifact,
    TableArtifact,
    TextArtifact,
)
from .cancellation import CancellationToken
from .candidates import resolve_candidates, sniff
from .composer import ComposeOptions, ComposedDocument, compose
from .converters import BaseConverter, ConverterOutput, builtin_converters
from .descriptor import InputDescriptor
from .dispatcher import ConverterRegistry, Dispatcher, DispatchResult
from .enrichment import ImageEnricher
from .errors import (
    AttemptFailure,
    AuthorizationFailedError,
    ConfigurationError,
    ConversionCancelledError,
    ConversionError,
    ConversionFailedError,
    DependencyError,
    StagingError,
    UnsupportedFormatError,
)
from .pipeline import (
    ConversionContext,
    ConversionOptions,
    ConversionResult,
    Markweave,
)
from .segments import MetadataKeys, Segment, SegmentType
from .staging import (
    ConversionWorkspace,
    ImagePersistor,
    RootResolver,
    WorkspaceManager,
)
from .tables import TableFragment, flatten_merged_cells, stitch_fragments

__all__ = [
    "ArtifactCollection",
    "AttemptFailure",
    "AuthorizationFailedError",
    "BaseConverter",
    "CancellationToken",
    "ComposeOptions",
    "ComposedDocument",
    "ConfigurationError",
    "ConversionCancelledError",
    "ConversionContext",
    "ConversionError",
    "ConversionFailedError",
    "ConversionOptions",
    "ConversionResult",
    "ConversionWorkspace",
    "ConverterOutput",
    "ConverterRegistry",
    "DependencyError",
    "DispatchResult",
    "Dispatcher",
    "ImageArtifact",
    "ImageEnricher",
    "ImagePersistor",
    "InputDescriptor",
    "Markweave",
    "MetadataKeys",
    "RootResolver",
    "Segment",
    "SegmentType",
    "StagingError",
    "TableArtifact",
    "TableFragment",
    "TextArtifact",
    "UnsupportedFormatError",
    "WorkspaceManager",
    "builtin_converters",
    "compose",
    "flatten_merged_cells",
    "resolve_candidates",
    "sniff",
    "stitch_fragments",
]
