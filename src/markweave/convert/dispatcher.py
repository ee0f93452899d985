"""Converter registry and dispatch.

Dispatch walks every candidate descriptor against every registered converter
in priority order. Each attempt yields an :class:`AttemptOutcome`; failures
are collected and inspected once the loop is exhausted.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, BinaryIO, Optional, Sequence

from markweave.core.logging import get_logger

from .cancellation import CancellationToken, check_cancelled
from .converters.base import BaseConverter, ConverterOutput
from .descriptor import InputDescriptor
from .errors import (
    AttemptFailure,
    AuthorizationFailedError,
    ConversionCancelledError,
    FailureKind,
    UnsupportedFormatError,
    classify_failure,
)

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .pipeline import ConversionContext


@dataclass(frozen=True)
class Registration:
    converter: BaseConverter
    priority: float
    sequence: int

    @property
    def sort_key(self) -> tuple[float, int]:
        return (self.priority, self.sequence)


class ConverterRegistry:
    """Priority-ordered converter list, safe to share across conversions.

    Lower priorities run first; equal priorities keep registration order.
    Dispatch iterates an immutable snapshot, so registering while another
    conversion runs never changes that conversion's view.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: tuple[Registration, ...] = ()
        self._sequence = itertools.count()

    def register(
        self, converter: BaseConverter, priority: Optional[float] = None
    ) -> Registration:
        effective = converter.priority if priority is None else float(priority)
        with self._lock:
            entry = Registration(converter, effective, next(self._sequence))
            self._entries = tuple(
                sorted((*self._entries, entry), key=lambda item: item.sort_key)
            )
        return entry

    def snapshot(self) -> tuple[Registration, ...]:
        return self._entries

    def names(self) -> list[str]:
        return [entry.converter.name for entry in self._entries]

    def __len__(self) -> int:
        return len(self._entries)


class AttemptStatus(Enum):
    SUCCEEDED = "succeeded"
    DECLINED = "declined"
    FAILED = "failed"


@dataclass(frozen=True)
class AttemptOutcome:
    """Result of offering one candidate to one converter."""

    converter_name: str
    descriptor: InputDescriptor
    status: AttemptStatus
    output: Optional[ConverterOutput] = None
    failure: Optional[AttemptFailure] = None


@dataclass(frozen=True)
class DispatchResult:
    """Successful dispatch plus the failures seen before it."""

    output: ConverterOutput
    converter_name: str
    descriptor: InputDescriptor
    failures: tuple[AttemptFailure, ...]


class Dispatcher:
    """Selects and runs the first converter that handles the input."""

    def __init__(
        self,
        registry: ConverterRegistry,
        *,
        continue_after_authorization: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.registry = registry
        self.continue_after_authorization = continue_after_authorization
        self._logger = get_logger(__name__, logger)

    def dispatch(
        self,
        stream: BinaryIO,
        candidates: Sequence[InputDescriptor],
        context: "ConversionContext",
        *,
        cancellation: Optional[CancellationToken] = None,
    ) -> DispatchResult:
        registrations = self.registry.snapshot()
        failures: list[AttemptFailure] = []

        for candidate in candidates:
            for registration in registrations:
                check_cancelled(cancellation, "converter selection")
                outcome = self._attempt(
                    registration.converter, stream, candidate, context
                )
                if outcome.status is AttemptStatus.DECLINED:
                    continue
                if outcome.status is AttemptStatus.SUCCEEDED:
                    assert outcome.output is not None
                    self._logger.info(
                        "Converter selected",
                        extra={
                            "converter": outcome.converter_name,
                            "candidate": candidate.describe(),
                            "failed_attempts": len(failures),
                        },
                    )
                    return DispatchResult(
                        output=outcome.output,
                        converter_name=outcome.converter_name,
                        descriptor=candidate,
                        failures=tuple(failures),
                    )

                assert outcome.failure is not None
                failures.append(outcome.failure)
                self._logger.warning(
                    "Converter attempt failed",
                    extra={
                        "converter": outcome.converter_name,
                        "candidate": candidate.describe(),
                        "kind": outcome.failure.kind.value,
                        "error": str(outcome.failure.error),
                    },
                )
                if (
                    outcome.failure.kind is FailureKind.AUTHORIZATION
                    and not self.continue_after_authorization
                ):
                    raise _authorization_error(outcome.failure, failures)

        authorization = next(
            (
                failure
                for failure in failures
                if failure.kind is FailureKind.AUTHORIZATION
            ),
            None,
        )
        if authorization is not None:
            raise _authorization_error(authorization, failures)
        raise UnsupportedFormatError(
            _exhausted_message(candidates, registrations, failures),
            attempts=failures,
        )

    def _attempt(
        self,
        converter: BaseConverter,
        stream: BinaryIO,
        candidate: InputDescriptor,
        context: "ConversionContext",
    ) -> AttemptOutcome:
        name = converter.name
        try:
            if not converter.accepts_descriptor(candidate):
                return AttemptOutcome(name, candidate, AttemptStatus.DECLINED)
            stream.seek(0)
            accepted = converter.accepts(stream, candidate)
            stream.seek(0)
            if not accepted:
                return AttemptOutcome(name, candidate, AttemptStatus.DECLINED)
            output = converter.convert(stream, candidate, context)
        except ConversionCancelledError:
            raise
        except Exception as exc:
            failure = AttemptFailure(
                converter_name=name,
                descriptor=candidate,
                error=exc,
                kind=classify_failure(exc),
            )
            return AttemptOutcome(
                name, candidate, AttemptStatus.FAILED, failure=failure
            )
        return AttemptOutcome(
            name, candidate, AttemptStatus.SUCCEEDED, output=output
        )


def _authorization_error(
    failure: AttemptFailure, failures: Sequence[AttemptFailure]
) -> AuthorizationFailedError:
    provider = getattr(failure.error, "provider", None)
    error = AuthorizationFailedError(
        "Provider rejected credentials while {0} converted the input: "
        "{1}".format(failure.converter_name, failure.error),
        provider=provider,
        attempts=failures,
    )
    error.__cause__ = failure.error
    return error


def _exhausted_message(
    candidates: Sequence[InputDescriptor],
    registrations: Sequence[Registration],
    failures: Sequence[AttemptFailure],
) -> str:
    if not failures:
        tried = ", ".join(candidate.describe() for candidate in candidates)
        converters = ", ".join(
            entry.converter.name for entry in registrations
        ) or "none registered"
        return (
            "No converter accepted the input (candidates: {0}; converters: "
            "{1}).".format(tried or "none", converters)
        )
    lines = ["Unable to convert input; every attempt failed:"]
    lines.extend(f"  - {failure.describe()}" for failure in failures)
    return "\n".join(lines)


__all__ = [
    "AttemptOutcome",
    "AttemptStatus",
    "ConverterRegistry",
    "DispatchResult",
    "Dispatcher",
    "Registration",
]
