"""End-to-end conversion engine.

A conversion stages its input in a fresh workspace, resolves candidate
descriptors, dispatches to the first converter that succeeds, persists and
enriches images, and composes the Markdown document. The workspace is
released in every case, including failure and cancellation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Union
from urllib.parse import urlparse

from markweave.core.logging import get_logger
from markweave.intelligence.providers import ProviderHub, ProviderRequest

from .artifacts import ArtifactCollection
from .cancellation import CancellationToken, check_cancelled
from .candidates import read_sample, resolve_candidates
from .composer import ComposeOptions, compose, format_timestamp, resolve_title
from .converters import builtin_converters
from .converters.base import BaseConverter
from .descriptor import InputDescriptor, parse_data_uri, path_from_file_uri
from .dispatcher import ConverterRegistry, Dispatcher, DispatchResult, Registration
from .enrichment import ImageEnricher, validate_max_parallel
from .errors import (
    AttemptFailure,
    ConfigurationError,
    ConversionError,
    ConversionFailedError,
    UnsupportedFormatError,
)
from .segments import Segment, SegmentOrderError, validate_ordering
from .staging import ConversionWorkspace, ImagePersistor, WorkspaceManager

MARKDOWN_FILENAME = "document.md"

Stager = Callable[[ConversionWorkspace], Path]


@dataclass(frozen=True)
class ConversionOptions:
    """Engine-wide switches; validated on construction."""

    compose: ComposeOptions = field(default_factory=ComposeOptions)
    keep_workspace: bool = False
    enrich_images: bool = True
    max_parallel_enrichment: int = 4
    enrichment_request: Optional[ProviderRequest] = None
    persist_markdown: bool = False
    validate_ordering: bool = True
    max_archive_depth: int = 3
    continue_after_authorization: bool = False
    audio_segment_seconds: int = 60

    def __post_init__(self) -> None:
        validate_max_parallel(self.max_parallel_enrichment)
        _require_int(self.max_archive_depth, "max_archive_depth", minimum=0)
        _require_int(self.audio_segment_seconds, "audio_segment_seconds", minimum=1)


def _require_int(value: object, name: str, *, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigurationError(
            f"{name} must be an integer >= {minimum}, got {value!r}."
        )


NestedConverter = Callable[
    [Path, InputDescriptor, ConversionWorkspace, "ConversionContext"],
    DispatchResult,
]


@dataclass
class ConversionContext:
    """What a converter may use besides its stream and descriptor."""

    workspace: ConversionWorkspace
    options: ConversionOptions
    providers: ProviderHub
    logger: logging.Logger
    cancellation: Optional[CancellationToken] = None
    depth: int = 0
    nested: Optional[NestedConverter] = None

    @property
    def source_path(self) -> Optional[Path]:
        return self.workspace.source_path

    def convert_nested(
        self,
        path: Path,
        descriptor: InputDescriptor,
        workspace: ConversionWorkspace,
    ) -> DispatchResult:
        """Dispatch a staged file one level deeper (archive entries)."""

        if self.nested is None:
            raise ConversionFailedError("Nested conversion is not available.")
        return self.nested(path, descriptor, workspace, self)


@dataclass(frozen=True)
class ConversionResult:
    markdown: str
    title: Optional[str]
    segments: tuple[Segment, ...]
    artifacts: ArtifactCollection
    descriptor: InputDescriptor
    converter_name: str
    generated_at: datetime
    failures: tuple[AttemptFailure, ...] = ()
    workspace_root: Optional[Path] = None
    markdown_path: Optional[Path] = None
    compose_options: ComposeOptions = field(default_factory=ComposeOptions)
    title_hint: Optional[str] = None

    def recompose(self, options: Optional[ComposeOptions] = None) -> str:
        """Render the segments again; unchanged options give identical text."""

        return compose(
            self.segments,
            self.artifacts,
            self.descriptor,
            options or self.compose_options,
            title_hint=self.title_hint,
            generated_at=self.generated_at,
        ).markdown


class Markweave:
    """Converts files, streams, bytes, and URIs into one Markdown document.

    Providers are fixed at construction. The built-in converters are
    registered unless ``enable_builtins`` is False; the document analysis
    converter joins them only when a document provider is configured.
    """

    def __init__(
        self,
        options: Optional[ConversionOptions] = None,
        *,
        providers: Optional[ProviderHub] = None,
        workspace_manager: Optional[WorkspaceManager] = None,
        registry: Optional[ConverterRegistry] = None,
        logger: Optional[logging.Logger] = None,
        enable_builtins: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.options = options or ConversionOptions()
        self.providers = providers or ProviderHub()
        self._logger = get_logger(__name__, logger)
        self.workspace_manager = workspace_manager or WorkspaceManager(
            keep=self.options.keep_workspace, logger=self._logger
        )
        self.registry = registry if registry is not None else ConverterRegistry()
        self._clock = clock or _utc_now

        if enable_builtins:
            for converter in builtin_converters(
                document_analysis=self.providers.document is not None
            ):
                self.registry.register(converter)

        self._dispatcher = Dispatcher(
            self.registry,
            continue_after_authorization=self.options.continue_after_authorization,
            logger=self._logger,
        )
        self._enricher: Optional[ImageEnricher] = None
        if self.options.enrich_images and self.providers.image is not None:
            self._enricher = ImageEnricher(
                self.providers.image,
                max_parallel=self.options.max_parallel_enrichment,
                request=self.options.enrichment_request,
                logger=self._logger,
            )

    def register_converter(
        self, converter: BaseConverter, priority: Optional[float] = None
    ) -> Registration:
        return self.registry.register(converter, priority)

    def convert_path(
        self,
        path: Union[str, Path],
        descriptor: Optional[InputDescriptor] = None,
        *,
        title: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> ConversionResult:
        source = Path(path).expanduser()
        if not source.is_file():
            raise ConversionError(f"Source file not found: {source}")
        base = InputDescriptor.from_path(source)
        merged = base.copy_with(descriptor) if descriptor is not None else base
        return self._run(
            merged,
            lambda workspace: workspace.stage_file(source),
            title=title,
            cancellation=cancellation,
        )

    def convert_stream(
        self,
        stream: BinaryIO,
        descriptor: Optional[InputDescriptor] = None,
        *,
        title: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> ConversionResult:
        described = descriptor or InputDescriptor()
        return self._run(
            described,
            lambda workspace: workspace.stage_stream(
                stream, extension=described.extension
            ),
            title=title,
            cancellation=cancellation,
        )

    def convert_bytes(
        self,
        data: bytes,
        descriptor: Optional[InputDescriptor] = None,
        *,
        title: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> ConversionResult:
        described = descriptor or InputDescriptor()
        return self._run(
            described,
            lambda workspace: workspace.stage_bytes(
                data, extension=described.extension
            ),
            title=title,
            cancellation=cancellation,
        )

    def convert_uri(
        self,
        uri: str,
        descriptor: Optional[InputDescriptor] = None,
        *,
        title: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> ConversionResult:
        """Convert a ``file:`` or ``data:`` URI."""

        scheme = urlparse(uri).scheme.lower()
        if scheme == "file":
            return self.convert_path(
                path_from_file_uri(uri),
                descriptor,
                title=title,
                cancellation=cancellation,
            )
        if scheme == "data":
            data, parsed = parse_data_uri(uri)
            merged = parsed.copy_with(descriptor) if descriptor else parsed
            return self.convert_bytes(
                data, merged, title=title, cancellation=cancellation
            )
        raise UnsupportedFormatError(
            f"Unsupported URI scheme '{scheme or uri[:16]}'; "
            "only file: and data: URIs are accepted."
        )

    def _run(
        self,
        descriptor: InputDescriptor,
        stage: Stager,
        *,
        title: Optional[str],
        cancellation: Optional[CancellationToken],
    ) -> ConversionResult:
        check_cancelled(cancellation, "staging")
        workspace = self.workspace_manager.create(
            keep=True if self.options.keep_workspace else None
        )
        try:
            staged = stage(workspace)
            return self._convert_staged(
                staged, descriptor, workspace, title, cancellation
            )
        finally:
            workspace.release()

    def _convert_staged(
        self,
        staged: Path,
        descriptor: InputDescriptor,
        workspace: ConversionWorkspace,
        title: Optional[str],
        cancellation: Optional[CancellationToken],
    ) -> ConversionResult:
        context = ConversionContext(
            workspace=workspace,
            options=self.options,
            providers=self.providers,
            logger=self._logger,
            cancellation=cancellation,
            nested=self._convert_nested,
        )
        dispatched = self._dispatch(staged, descriptor, context)
        output = dispatched.output
        segments = tuple(output.segments)
        artifacts = output.artifacts

        ImagePersistor(workspace).persist_collection(artifacts)

        if self.options.validate_ordering:
            try:
                validate_ordering(segments)
            except SegmentOrderError as exc:
                raise ConversionFailedError(
                    f"Converter {dispatched.converter_name} produced "
                    f"out-of-order segments: {exc}"
                ) from exc

        if self._enricher is not None:
            self._enricher.enrich(
                artifacts, dispatched.descriptor, cancellation=cancellation
            )

        check_cancelled(cancellation, "composition")
        generated_at = self._clock()
        title_hint = title or output.title
        resolved_title = resolve_title(segments, dispatched.descriptor, title_hint)
        artifacts.set_metadata(
            {
                "title": resolved_title,
                "converter": dispatched.converter_name,
                "segments": len(segments),
                "generated": format_timestamp(generated_at),
            }
        )
        composed = compose(
            segments,
            artifacts,
            dispatched.descriptor,
            self.options.compose,
            title_hint=title_hint,
            generated_at=generated_at,
        )

        markdown_path: Optional[Path] = None
        if self.options.persist_markdown:
            markdown_path = workspace.persist_text(
                MARKDOWN_FILENAME, composed.markdown + "\n"
            )
            workspace.preserve()

        self._logger.info(
            "Converted document",
            extra={
                "source": dispatched.descriptor.source_identifier,
                "converter": dispatched.converter_name,
                "segments": len(segments),
                "images": len(artifacts.images),
                "tables": len(artifacts.tables),
                "failed_attempts": len(dispatched.failures),
            },
        )
        return ConversionResult(
            markdown=composed.markdown,
            title=composed.title,
            segments=segments,
            artifacts=artifacts,
            descriptor=dispatched.descriptor,
            converter_name=dispatched.converter_name,
            generated_at=generated_at,
            failures=dispatched.failures,
            workspace_root=workspace.root,
            markdown_path=markdown_path,
            compose_options=self.options.compose,
            title_hint=title_hint,
        )

    def _dispatch(
        self,
        path: Path,
        descriptor: InputDescriptor,
        context: ConversionContext,
    ) -> DispatchResult:
        with path.open("rb") as stream:
            candidates = resolve_candidates(descriptor, read_sample(stream))
            self._logger.debug(
                "Resolved candidate descriptors",
                extra={
                    "candidates": [candidate.describe() for candidate in candidates],
                    "depth": context.depth,
                },
            )
            return self._dispatcher.dispatch(
                stream, candidates, context, cancellation=context.cancellation
            )

    def _convert_nested(
        self,
        path: Path,
        descriptor: InputDescriptor,
        workspace: ConversionWorkspace,
        parent: ConversionContext,
    ) -> DispatchResult:
        context = replace(parent, workspace=workspace, depth=parent.depth + 1)
        result = self._dispatch(path, descriptor, context)
        ImagePersistor(workspace).persist_collection(result.output.artifacts)
        return result


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


__all__ = [
    "ConversionContext",
    "ConversionOptions",
    "ConversionResult",
    "MARKDOWN_FILENAME",
    "Markweave",
]
