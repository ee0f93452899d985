from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

TESTS_DIR = Path(__file__).resolve().parent
ROOT = TESTS_DIR.parent
for extra in (TESTS_DIR, ROOT / "src"):
    path_str = str(extra)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from fixtures import WorkspaceBuilder  # noqa: E402
from markweave.convert.pipeline import (  # noqa: E402
    ConversionContext,
    ConversionOptions,
    Markweave,
)
from markweave.convert.staging import RootResolver, WorkspaceManager  # noqa: E402
from markweave.core import workspace as workspace_mod  # noqa: E402
from markweave.intelligence.providers import ProviderHub  # noqa: E402

FIXED_NOW = datetime(2025, 3, 18, 14, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _isolated_environment(tmp_path, monkeypatch):
    """Keep the data home and OpenAI credentials out of the real environment."""

    monkeypatch.setenv(workspace_mod.WORKSPACE_ENV, str(tmp_path / "data-home"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    for key in list(os.environ):
        if key.startswith("MARKWEAVE_") and key != workspace_mod.WORKSPACE_ENV:
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def workspace(tmp_path: Path) -> WorkspaceBuilder:
    """Provide a helper bound to pytest's per-test tmp directory."""

    return WorkspaceBuilder(tmp_path / "inputs")


@pytest.fixture
def artifacts_root(tmp_path: Path) -> Path:
    return tmp_path / "artifacts"


@pytest.fixture
def workspace_manager(artifacts_root: Path) -> WorkspaceManager:
    return WorkspaceManager(RootResolver(artifacts_root))


@pytest.fixture
def make_engine(workspace_manager):
    """Build an engine with a fixed clock and a tmp artifacts root."""

    def _make(options: ConversionOptions | None = None, **kwargs) -> Markweave:
        kwargs.setdefault("workspace_manager", workspace_manager)
        kwargs.setdefault("clock", lambda: FIXED_NOW)
        return Markweave(options, **kwargs)

    return _make


@pytest.fixture
def make_context(workspace_manager):
    """Build a converter context over a fresh workspace released at teardown."""

    created = []

    def _make(
        options: ConversionOptions | None = None,
        providers: ProviderHub | None = None,
        **kwargs,
    ) -> ConversionContext:
        workspace = workspace_manager.create()
        created.append(workspace)
        return ConversionContext(
            workspace=workspace,
            options=options or ConversionOptions(),
            providers=providers or ProviderHub(),
            logger=logging.getLogger("markweave.tests"),
            **kwargs,
        )

    yield _make
    for workspace in created:
        workspace.release()
