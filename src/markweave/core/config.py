"""TOML and environment helpers shared by markweave configuration loaders."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, MutableMapping, Optional

try:  # Python >= 3.11 ships ``tomllib`` in the stdlib.
    import tomllib
except ModuleNotFoundError as exc:  # pragma: no cover - interpreter guard
    raise RuntimeError("Python 3.11+ is required for tomllib support.") from exc

__all__ = [
    "TomlConfigError",
    "EnvReader",
    "load_toml",
    "merge_defaults",
    "pick_first",
    "write_toml_template",
]

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


class TomlConfigError(RuntimeError):
    """Raised when TOML config IO, parsing, or validation fails."""


def load_toml(path: Path) -> Mapping[str, Any]:
    """Parse the TOML document at ``path``.

    IO and syntax problems surface as :class:`TomlConfigError` so each loader
    can re-raise them as its own configuration error.
    """

    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError as exc:
        raise TomlConfigError(f"Config file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise TomlConfigError(f"Failed to parse config TOML: {exc}") from exc


def merge_defaults(
    base: MutableMapping[str, Any],
    override: Mapping[str, Any],
    *,
    path: str = "",
) -> None:
    """Merge ``override`` into ``base`` in place, rejecting unknown keys."""

    for key, value in override.items():
        dotted = f"{path}{key}"
        if key not in base:
            raise TomlConfigError(f"Unknown configuration key '{dotted}'.")
        current = base[key]
        if isinstance(current, MutableMapping):
            if not isinstance(value, Mapping):
                raise TomlConfigError(
                    "Expected table for '{0}', found {1}.".format(
                        dotted,
                        type(value).__name__,
                    )
                )
            merge_defaults(current, value, path=f"{dotted}.")
            continue
        base[key] = value


def write_toml_template(
    path: Path,
    *,
    template: str,
    overwrite: bool = False,
    mode: int = 0o600,
) -> Path:
    """Write ``template`` to ``path`` unless it exists and ``overwrite`` is off."""

    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists() and not overwrite:
        raise TomlConfigError(f"Config already exists: {path}")
    path.write_text(template, encoding="utf-8")
    try:
        path.chmod(mode)
    except PermissionError:  # pragma: no cover - depends on filesystem
        pass
    return path


def pick_first(*candidates: object) -> object:
    """Return the first candidate that is not ``None``."""

    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None


class EnvReader:
    """Read prefixed environment variables with light type coercion.

    Blank values count as unset. Malformed booleans or integers raise
    :class:`TomlConfigError` naming the full variable.
    """

    def __init__(self, env: Mapping[str, str], prefix: str) -> None:
        self._env = env
        self._prefix = prefix

    def name(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def string(self, key: str) -> Optional[str]:
        raw = self._env.get(self.name(key))
        if raw is None:
            return None
        value = raw.strip()
        return value or None

    def path(self, key: str) -> Optional[Path]:
        raw = self.string(key)
        if raw is None:
            return None
        return Path(raw).expanduser()

    def boolean(self, key: str) -> Optional[bool]:
        raw = self.string(key)
        if raw is None:
            return None
        lowered = raw.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise TomlConfigError(
            f"{self.name(key)} must be a boolean (true/false), got '{raw}'."
        )

    def integer(self, key: str) -> Optional[int]:
        raw = self.string(key)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError as exc:
            raise TomlConfigError(
                f"{self.name(key)} must be an integer, got '{raw}'."
            ) from exc

    def words(self, key: str) -> Optional[list[str]]:
        raw = self.string(key)
        if raw is None:
            return None
        parts = [part for part in raw.replace(",", " ").split() if part]
        return parts or None
