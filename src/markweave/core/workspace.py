"""Data-home bootstrap for markweave commands.

The data home holds user configuration, JSON logs, converted Markdown, and
the ``artifacts`` directory under which each conversion allocates its own
staging workspace.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, MutableMapping


WORKSPACE_ENV = "MARKWEAVE_DATA_HOME"
DEFAULT_WORKSPACE = Path.home() / ".markweave-data"

_SUBDIRS = {
    "config": "config",
    "logs": "logs",
    "converted": "converted",
    "artifacts": "artifacts",
}


class WorkspaceError(RuntimeError):
    """Raised when the data-home layout cannot be prepared."""


@dataclass(frozen=True)
class WorkspaceLayout:
    """Resolved data-home paths and whether each one was just created."""

    home: Path
    directories: Mapping[str, Path]
    created: Mapping[str, bool]

    def path_for(self, key: str) -> Path:
        try:
            return self.directories[key]
        except KeyError as exc:
            raise KeyError(f"Unknown workspace directory '{key}'.") from exc

    def items(self) -> tuple[tuple[str, Path], ...]:
        return tuple(self.directories.items())


def ensure_workspace(
    *,
    env: Mapping[str, str] | None = None,
    path: Path | None = None,
    create: bool = True,
    subdirs: Mapping[str, str] | None = None,
) -> WorkspaceLayout:
    """Ensure the data home exists and return its layout.

    When neither ``path`` nor ``MARKWEAVE_DATA_HOME`` is set and the default
    home is not writable, a directory under the system temp dir is used.
    """

    env_map = os.environ if env is None else env
    resolved_subdirs = dict(subdirs or _SUBDIRS)
    base, has_override = _resolve_base(env_map, override=path)

    candidates: list[Path] = [base]
    if create and not has_override:
        fallback = _fallback_base()
        if fallback != base:
            candidates.append(fallback)

    last_error: Exception | None = None
    for candidate in candidates:
        try:
            return _materialize_layout(
                base=candidate,
                create=create,
                subdirs=resolved_subdirs,
            )
        except PermissionError as exc:
            last_error = exc

    raise WorkspaceError(
        "Unable to prepare workspace at {0}".format(base)
    ) from last_error


def describe_layout(
    *, env: Mapping[str, str] | None = None, path: Path | None = None
) -> Mapping[str, Path]:
    """Return the layout as a flat mapping without creating directories."""

    layout = ensure_workspace(env=env, path=path, create=False)
    mapping: MutableMapping[str, Path] = {"home": layout.home}
    mapping.update(layout.directories)
    return MappingProxyType(dict(mapping))


def _resolve_base(
    env: Mapping[str, str], *, override: Path | None
) -> tuple[Path, bool]:
    if override is not None:
        target = override
        provided = True
    else:
        custom = (env.get(WORKSPACE_ENV) or "").strip()
        if custom:
            target = Path(custom)
            provided = True
        else:
            target = DEFAULT_WORKSPACE
            provided = False
    try:
        return target.expanduser().resolve(), provided
    except FileNotFoundError:
        return target.expanduser().absolute(), provided


def _fallback_base() -> Path:
    return Path(tempfile.gettempdir()) / "markweave-data"


def _materialize_layout(
    *, base: Path, create: bool, subdirs: Mapping[str, str]
) -> WorkspaceLayout:
    if base.exists() and not base.is_dir():
        raise WorkspaceError(
            f"Configured workspace exists and is not a directory: {base}"
        )

    created: MutableMapping[str, bool] = {
        "home": _ensure_dir(base) if create else False
    }

    directories: MutableMapping[str, Path] = {}
    for key, relative in subdirs.items():
        candidate = base / relative
        if create:
            created[key] = _ensure_dir(candidate)
        else:
            created[key] = False
            if candidate.exists() and not candidate.is_dir():
                raise WorkspaceError(
                    "Expected workspace directory for '{0}' but found a "
                    "file: {1}".format(key, candidate)
                )
        directories[key] = candidate

    return WorkspaceLayout(
        home=base,
        directories=MappingProxyType(dict(directories)),
        created=MappingProxyType(dict(created)),
    )


def _ensure_dir(path: Path) -> bool:
    existed = path.exists()
    try:
        path.mkdir(parents=True, exist_ok=True)
    except FileExistsError as exc:
        raise WorkspaceError(
            f"Expected directory but found a non-directory entry: {path}"
        ) from exc
    chmod_private(path)
    return not existed


def chmod_private(path: Path, mode: int = 0o700) -> None:
    """Restrict ``path`` to its owner where the filesystem allows it."""

    try:
        path.chmod(mode)
    except (PermissionError, NotImplementedError):
        return


__all__ = [
    "DEFAULT_WORKSPACE",
    "WORKSPACE_ENV",
    "WorkspaceError",
    "WorkspaceLayout",
    "chmod_private",
    "describe_layout",
    "ensure_workspace",
]
