"""Sequential batch executor for ``markweave convert`` runs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional, Sequence

from .config import CollisionPolicy, ConvertConfig
from .errors import ConversionError
from .pipeline import Markweave


class ConversionStatus(Enum):
    """Outcome status for a single conversion."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ConversionOutcome:
    """Result of converting (or attempting to convert) a single file."""

    source: Path
    status: ConversionStatus
    output_path: Optional[Path] = None
    reason: Optional[str] = None
    error: Optional[Exception] = None
    converter: Optional[str] = None


@dataclass(frozen=True)
class ExecutionSummary:
    """Aggregated results for a conversion run."""

    requested: tuple[Path, ...]
    processed: tuple[Path, ...]
    outcomes: tuple[ConversionOutcome, ...]

    @property
    def success_count(self) -> int:
        return self._count(ConversionStatus.SUCCESS)

    @property
    def skipped_count(self) -> int:
        return self._count(ConversionStatus.SKIPPED)

    @property
    def failure_count(self) -> int:
        return self._count(ConversionStatus.FAILED)

    @property
    def exit_code(self) -> int:
        return 1 if self.failure_count else 0

    def _count(self, status: ConversionStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)


def run_conversion(
    inputs: Sequence[Path],
    *,
    config: ConvertConfig,
    engine: Markweave,
    logger: logging.Logger,
) -> ExecutionSummary:
    """Process ``inputs`` sequentially and return an aggregated summary."""

    normalized_inputs = tuple(_normalize_inputs(inputs))
    configured_extensions = {ext.lower() for ext in config.extensions}

    logger.info(
        "Starting conversion run",
        extra={
            "input_count": len(normalized_inputs),
            "extensions": sorted(configured_extensions),
            "output_dir": str(config.output_dir),
        },
    )

    candidates = tuple(_expand_inputs(normalized_inputs, configured_extensions))

    logger.info(
        "Prepared conversion candidates",
        extra={"candidate_count": len(candidates)},
    )

    outcomes: list[ConversionOutcome] = []
    for source in candidates:
        extension = _extension_for(source)
        if extension is not None and extension not in configured_extensions:
            outcomes.append(
                ConversionOutcome(
                    source=source,
                    status=ConversionStatus.SKIPPED,
                    reason=(
                        "Extension '.{0}' not enabled in configuration.".format(
                            extension
                        )
                    ),
                )
            )
            logger.info(
                "Skipped source due to extension filter",
                extra={"source": str(source), "extension": extension},
            )
            continue

        outcome = convert_file(
            source,
            engine=engine,
            output_dir=config.output_dir,
            collision=config.collision,
        )
        outcomes.append(outcome)

        if outcome.status is ConversionStatus.SUCCESS:
            logger.info(
                "Converted document",
                extra={
                    "source": str(outcome.source),
                    "output_path": str(outcome.output_path),
                    "converter": outcome.converter,
                },
            )
        elif outcome.status is ConversionStatus.SKIPPED:
            logger.info(
                "Skipped document",
                extra={"source": str(outcome.source), "reason": outcome.reason},
            )
        else:
            logger.error(
                "Failed to convert document",
                extra={"source": str(outcome.source), "reason": outcome.reason},
            )

    summary = ExecutionSummary(
        requested=normalized_inputs,
        processed=candidates,
        outcomes=tuple(outcomes),
    )

    logger.info(
        "Completed conversion run",
        extra={
            "success_count": summary.success_count,
            "skipped_count": summary.skipped_count,
            "failure_count": summary.failure_count,
        },
    )
    return summary


def convert_file(
    source: Path,
    *,
    engine: Markweave,
    output_dir: Path,
    collision: CollisionPolicy,
) -> ConversionOutcome:
    """Convert ``source`` and write ``<stem>.md`` according to ``collision``.

    Conversion errors become FAILED outcomes; nothing is written for them.
    """

    base_output = output_dir / f"{source.stem}.md"
    target_path, skip_reason = resolve_output_path(base_output, collision=collision)
    if skip_reason is not None:
        return ConversionOutcome(
            source=source,
            status=ConversionStatus.SKIPPED,
            output_path=target_path,
            reason=skip_reason,
        )

    try:
        result = engine.convert_path(source)
    except ConversionError as exc:
        return ConversionOutcome(
            source=source,
            status=ConversionStatus.FAILED,
            reason=str(exc),
            error=exc,
        )

    target_path.parent.mkdir(parents=True, exist_ok=True)
    target_path.write_text(result.markdown + "\n", encoding="utf-8")
    return ConversionOutcome(
        source=source,
        status=ConversionStatus.SUCCESS,
        output_path=target_path,
        converter=result.converter_name,
    )


def resolve_output_path(
    base: Path,
    *,
    collision: CollisionPolicy,
) -> tuple[Path, Optional[str]]:
    """Return the path to write and, when skipping, the reason."""

    if not base.exists():
        return base, None

    if collision is CollisionPolicy.SKIP:
        return base, "Output already exists and collision policy is 'skip'."

    if collision is CollisionPolicy.OVERWRITE:
        return base, None

    counter = 1
    while True:
        candidate = base.with_name(f"{base.stem}-{counter:02d}{base.suffix}")
        if not candidate.exists():
            return candidate, None
        counter += 1


def _normalize_inputs(inputs: Sequence[Path]) -> Iterable[Path]:
    for raw in inputs:
        normalized = raw.expanduser()
        try:
            yield normalized.resolve(strict=False)
        except FileNotFoundError:
            yield normalized


def _expand_inputs(
    inputs: Sequence[Path],
    configured_extensions: set[str],
) -> Iterable[Path]:
    seen: set[Path] = set()
    for path in sorted(inputs, key=lambda candidate: str(candidate)):
        if path.is_dir():
            for child in _iter_directory(path, configured_extensions):
                if child not in seen:
                    seen.add(child)
                    yield child
        elif path not in seen:
            seen.add(path)
            yield path


def _iter_directory(directory: Path, extensions: set[str]) -> Iterable[Path]:
    for candidate in sorted(directory.rglob("*")):
        if not candidate.is_file():
            continue
        extension = _extension_for(candidate)
        if extension is not None and extension in extensions:
            yield candidate


def _extension_for(path: Path) -> str | None:
    suffix = path.suffix
    if not suffix:
        return None
    return suffix.lstrip(".").lower()


__all__ = [
    "ConversionOutcome",
    "ConversionStatus",
    "ExecutionSummary",
    "convert_file",
    "resolve_output_path",
    "run_conversion",
]
