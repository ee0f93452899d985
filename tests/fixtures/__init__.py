"""Shared testing fixtures and fakes for the markweave test suite."""

from .providers import (  # noqa: F401
    FakeDocumentProvider,
    FakeImageProvider,
    FakeMediaProvider,
    FakeOpenAIClient,
    StatusError,
    raising,
)
from .workspace import WorkspaceBuilder, build_tree, zip_bytes  # noqa: F401

__all__ = [
    "FakeDocumentProvider",
    "FakeImageProvider",
    "FakeMediaProvider",
    "FakeOpenAIClient",
    "StatusError",
    "WorkspaceBuilder",
    "build_tree",
    "raising",
    "zip_bytes",
]
