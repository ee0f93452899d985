"""Cooperative cancellation for conversions."""

from __future__ import annotations

import threading
from typing import Optional

from .errors import ConversionCancelledError


class CancellationToken:
    """Thread-safe cancellation flag checked at stage boundaries."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._event.is_set():
            self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self, stage: str = "conversion") -> None:
        if self._event.is_set():
            detail = f": {self._reason}" if self._reason else ""
            raise ConversionCancelledError(f"Cancelled during {stage}{detail}")


def check_cancelled(
    token: Optional[CancellationToken], stage: str = "conversion"
) -> None:
    """Raise :class:`ConversionCancelledError` if ``token`` was cancelled."""

    if token is not None:
        token.raise_if_cancelled(stage)


__all__ = ["CancellationToken", "check_cancelled"]
