"""Bounded-concurrency image enrichment.

Each pending image goes to the image provider on its own worker. A worker
writes only to the artifact it was given, so no locking is needed.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from markweave.core.logging import get_logger

from .artifacts import ArtifactCollection, ImageArtifact
from .cancellation import CancellationToken, check_cancelled
from .descriptor import InputDescriptor, extension_for_mime
from .errors import (
    AuthorizationFailedError,
    ConfigurationError,
    ConversionCancelledError,
    is_authorization_failure,
)
from .segments import MetadataKeys

if TYPE_CHECKING:  # pragma: no cover - typing only
    from markweave.intelligence.providers import (
        ImageInsight,
        ImageUnderstandingProvider,
        ProviderRequest,
    )

ANALYZED_KEY = "enrichment.images.analyzed"
ENRICHED_KEY = "enrichment.images.enriched"
FAILED_KEY = "enrichment.images.failed"


def validate_max_parallel(value: object) -> int:
    """Return ``value`` if it is a positive int, else raise ConfigurationError."""

    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(
            f"max_parallel must be a positive integer, got {value!r}."
        )
    if value <= 0:
        raise ConfigurationError(
            f"max_parallel must be a positive integer, got {value}."
        )
    return value


@dataclass(frozen=True)
class EnrichmentReport:
    analyzed: int
    enriched: int
    failed: int


class ImageEnricher:
    """Runs the image provider over every image not yet enriched."""

    def __init__(
        self,
        provider: "ImageUnderstandingProvider",
        *,
        max_parallel: int = 4,
        request: Optional["ProviderRequest"] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.max_parallel = validate_max_parallel(max_parallel)
        self.provider = provider
        self.request = request
        self._logger = get_logger(__name__, logger)

    def enrich(
        self,
        artifacts: ArtifactCollection,
        descriptor: InputDescriptor,
        *,
        cancellation: Optional[CancellationToken] = None,
    ) -> EnrichmentReport:
        pending = [image for image in artifacts.images if not image.is_enriched]
        if not pending:
            return EnrichmentReport(0, 0, 0)

        check_cancelled(cancellation, "image enrichment")
        workers = min(self.max_parallel, len(pending))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="markweave-enrich"
        ) as pool:
            futures = [
                pool.submit(self._enrich_one, image, descriptor, cancellation)
                for image in pending
            ]
            results: list[bool] = []
            hard_error: Optional[BaseException] = None
            for future in futures:
                if future.cancelled():
                    continue
                try:
                    results.append(future.result())
                except (AuthorizationFailedError, ConversionCancelledError) as exc:
                    if hard_error is None:
                        hard_error = exc
                        for other in futures:
                            other.cancel()
        if hard_error is not None:
            raise hard_error

        report = EnrichmentReport(
            analyzed=len(results),
            enriched=sum(1 for ok in results if ok),
            failed=sum(1 for ok in results if not ok),
        )
        artifacts.set_metadata(
            {
                ANALYZED_KEY: report.analyzed,
                ENRICHED_KEY: report.enriched,
                FAILED_KEY: report.failed,
            }
        )
        self._logger.info(
            "Image enrichment finished",
            extra={
                "analyzed": report.analyzed,
                "enriched": report.enriched,
                "failed": report.failed,
                "max_parallel": self.max_parallel,
            },
        )
        return report

    def _enrich_one(
        self,
        image: ImageArtifact,
        descriptor: InputDescriptor,
        cancellation: Optional[CancellationToken],
    ) -> bool:
        check_cancelled(cancellation, "image enrichment")
        image_descriptor = InputDescriptor(
            mime_type=image.content_type,
            extension=extension_for_mime(image.content_type),
            file_name=image.metadata.get(MetadataKeys.ARTIFACT_FILE_NAME),
            local_path=str(image.file_path) if image.file_path else None,
            url=descriptor.url,
        )
        try:
            with image.open() as handle:
                insight = self.provider.analyze(
                    handle, image_descriptor, self.request
                )
        except AuthorizationFailedError:
            raise
        except Exception as exc:
            if is_authorization_failure(exc):
                raise AuthorizationFailedError(
                    f"Image provider rejected credentials: {exc}"
                ) from exc
            self._logger.warning(
                "Image enrichment failed",
                extra={"image": image.label or image.file_path, "error": str(exc)},
            )
            return False

        if insight is None or insight.is_empty:
            self._logger.info(
                "Image provider returned no insight",
                extra={"image": image.label or image.file_path},
            )
            return False
        _apply_insight(image, insight)
        return True


def _apply_insight(image: ImageArtifact, insight: "ImageInsight") -> None:
    if insight.description:
        image.description = insight.description
    if insight.recognized_text:
        image.recognized_text = insight.recognized_text
    if insight.diagram_code:
        image.diagram_code = insight.diagram_code
    if insight.caption:
        image.metadata[MetadataKeys.CAPTION] = insight.caption
    for key, value in insight.metadata.items():
        image.metadata[key] = value
    image.metadata[MetadataKeys.IMAGE_ENRICHED] = "true"


__all__ = [
    "ANALYZED_KEY",
    "ENRICHED_KEY",
    "EnrichmentReport",
    "FAILED_KEY",
    "ImageEnricher",
    "validate_max_parallel",
]
