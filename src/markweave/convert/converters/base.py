"""Converter contract shared by every format handler."""

from __future__ import annotations

import importlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import ModuleType
from typing import TYPE_CHECKING, BinaryIO, Optional

from ..artifacts import ArtifactCollection
from ..descriptor import InputDescriptor
from ..errors import DependencyError
from ..segments import Segment

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..pipeline import ConversionContext

SPECIFIC_FORMAT = 0.0
GENERIC_FORMAT = 10.0


@dataclass
class ConverterOutput:
    """Segments, artifacts, and an optional title produced by a converter."""

    segments: list[Segment]
    artifacts: ArtifactCollection = field(default_factory=ArtifactCollection)
    title: Optional[str] = None


class BaseConverter(ABC):
    """Base class for format converters.

    Subclasses list the extensions and MIME types they handle; the default
    :meth:`accepts_descriptor` matches against those. :meth:`accepts` may peek
    at the stream through :func:`peek`, which restores the position.
    """

    name: str = ""
    priority: float = SPECIFIC_FORMAT
    extensions: frozenset[str] = frozenset()
    mime_types: frozenset[str] = frozenset()
    mime_prefixes: tuple[str, ...] = ()

    def __init__(self) -> None:
        if not self.name:
            self.name = type(self).__name__

    def accepts_descriptor(self, descriptor: InputDescriptor) -> bool:
        if descriptor.extension and descriptor.extension in self.extensions:
            return True
        mime = descriptor.mime_type
        if not mime:
            return False
        return mime in self.mime_types or mime.startswith(self.mime_prefixes)

    def accepts(self, stream: BinaryIO, descriptor: InputDescriptor) -> bool:
        return True

    @abstractmethod
    def convert(
        self,
        stream: BinaryIO,
        descriptor: InputDescriptor,
        context: "ConversionContext",
    ) -> ConverterOutput:
        """Extract segments and artifacts from ``stream``."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"


def peek(stream: BinaryIO, size: int) -> bytes:
    """Read up to ``size`` bytes and seek back to where the stream was."""

    position = stream.tell()
    try:
        return stream.read(size)
    finally:
        stream.seek(position)


def import_optional(
    module: str,
    *,
    attribute: Optional[str] = None,
    extra: Optional[str] = None,
) -> ModuleType:
    """Import ``module`` or raise :class:`DependencyError` with install hints."""

    try:
        imported = importlib.import_module(module)
    except ImportError as exc:
        package = module.split(".", 1)[0]
        hint = f'pip install "markweave[{extra}]"' if extra else f"pip install {package}"
        raise DependencyError(
            f"Optional dependency '{package}' is required for this format. "
            f"Install it with `{hint}`."
        ) from exc
    if attribute is not None and not hasattr(imported, attribute):
        raise DependencyError(
            f"Dependency '{module}' is installed but missing the "
            f"'{attribute}' attribute. Upgrade or reinstall the package."
        )
    return imported


__all__ = [
    "BaseConverter",
    "ConverterOutput",
    "GENERIC_FORMAT",
    "SPECIFIC_FORMAT",
    "import_optional",
    "peek",
]
