"""Error taxonomy for document conversion.

Every error raised by the engine derives from :class:`ConversionError`, so
batch callers can catch one type and still branch on the concrete kind.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .descriptor import InputDescriptor

_AUTH_STATUS_CODES = frozenset({401, 403})


class ConversionError(RuntimeError):
    """Base class for conversion failures."""


class FailureKind(Enum):
    """Classification of one failed converter attempt."""

    UNSUPPORTED = "unsupported"
    FAILED = "failed"
    AUTHORIZATION = "authorization"


@dataclass(frozen=True)
class AttemptFailure:
    """A converter attempt that did not produce output."""

    converter_name: str
    descriptor: "InputDescriptor"
    error: BaseException
    kind: FailureKind

    def describe(self) -> str:
        target = self.descriptor.describe()
        error_type = type(self.error).__name__
        return f"{self.converter_name} [{target}]: {error_type}: {self.error}"


class UnsupportedFormatError(ConversionError):
    """Raised when no converter could handle the input.

    Converters also raise it to decline an input they accepted on metadata
    but cannot read after all.
    """

    def __init__(
        self,
        message: str,
        *,
        attempts: Sequence[AttemptFailure] = (),
    ) -> None:
        super().__init__(message)
        self.attempts: tuple[AttemptFailure, ...] = tuple(attempts)


class ConversionFailedError(ConversionError):
    """Raised when an accepted converter broke during extraction."""


class DependencyError(ConversionFailedError):
    """Raised when an optional library or required provider is missing."""


class AuthorizationFailedError(ConversionError):
    """Raised when a provider rejected its credentials."""

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        attempts: Sequence[AttemptFailure] = (),
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.attempts: tuple[AttemptFailure, ...] = tuple(attempts)


class ConfigurationError(ConversionError):
    """Raised for invalid engine configuration."""


class ConversionCancelledError(ConversionError):
    """Raised when a conversion observes its cancellation signal."""


class StagingError(ConversionError):
    """Raised when a conversion workspace is misused or cannot be created."""


def is_authorization_failure(error: BaseException) -> bool:
    """Return True when ``error`` or anything in its cause chain is an auth
    rejection (an :class:`AuthorizationFailedError` or an HTTP 401/403)."""

    seen: set[int] = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, AuthorizationFailedError):
            return True
        if _status_code(current) in _AUTH_STATUS_CODES:
            return True
        current = current.__cause__ or current.__context__
    return False


def classify_failure(error: BaseException) -> FailureKind:
    if is_authorization_failure(error):
        return FailureKind.AUTHORIZATION
    if isinstance(error, UnsupportedFormatError):
        return FailureKind.UNSUPPORTED
    return FailureKind.FAILED


def _status_code(error: BaseException) -> Optional[int]:
    for candidate in (error, getattr(error, "response", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "status_code", None)
        if code is None:
            code = getattr(candidate, "status", None)
        if isinstance(code, int):
            return code
    return None


__all__ = [
    "AttemptFailure",
    "AuthorizationFailedError",
    "ConfigurationError",
    "ConversionCancelledError",
    "ConversionError",
    "ConversionFailedError",
    "DependencyError",
    "FailureKind",
    "StagingError",
    "UnsupportedFormatError",
    "classify_failure",
    "is_authorization_failure",
]
