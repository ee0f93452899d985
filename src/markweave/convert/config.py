"""Configuration loader for ``markweave convert`` runs."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping, MutableMapping, Optional, Sequence

from markweave.core import config as core_config
from markweave.core import workspace as workspace_mod

from .composer import ComposeOptions
from .errors import ConfigurationError
from .pipeline import ConversionOptions

CONFIG_FILENAME = "markweave.toml"
CONFIG_ENV = "MARKWEAVE_CONFIG"
ENV_PREFIX = "MARKWEAVE_"

_DEFAULT_EXTENSIONS: tuple[str, ...] = (
    "pdf",
    "docx",
    "pptx",
    "xlsx",
    "html",
    "htm",
    "txt",
    "md",
    "csv",
    "json",
    "epub",
    "zip",
    "png",
    "jpg",
    "jpeg",
    "mp3",
    "wav",
    "m4a",
)
_DEFAULT_COLLISION = "skip"
_DEFAULT_LOG_LEVEL = "INFO"
_DEFAULT_MAX_PARALLEL = 4
_DEFAULT_VISION_MODEL = "gpt-4o-mini"


class ConvertConfigError(ConfigurationError):
    """Raised when configuration parsing or validation fails."""


class CollisionPolicy(Enum):
    """Supported strategies for handling name collisions."""

    SKIP = "skip"
    OVERWRITE = "overwrite"
    VERSION = "version"

    @classmethod
    def from_value(cls, value: str) -> "CollisionPolicy":
        normalized = value.strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        expected = ", ".join(member.value for member in cls)
        raise ConvertConfigError(
            f"Unknown collision policy '{value}'. Expected one of: {expected}."
        )


@dataclass(frozen=True)
class ConvertConfig:
    """Fully resolved configuration for a conversion run."""

    extensions: tuple[str, ...]
    output_dir: Path
    artifacts_dir: Path
    collision: CollisionPolicy
    keep_workspace: bool
    annotations: bool
    enrich_images: bool
    max_parallel: int
    vision_model: str
    log_level: str

    def conversion_options(self) -> ConversionOptions:
        return ConversionOptions(
            compose=ComposeOptions(include_annotations=self.annotations),
            keep_workspace=self.keep_workspace,
            enrich_images=self.enrich_images,
            max_parallel_enrichment=self.max_parallel,
        )


@dataclass(frozen=True)
class ConfigOverrides:
    """CLI-sourced overrides applied on top of file/env options."""

    extensions: Optional[Sequence[str]] = None
    output_dir: Optional[Path] = None
    collision: Optional[CollisionPolicy] = None
    keep_workspace: Optional[bool] = None
    annotations: Optional[bool] = None
    log_level: Optional[str] = None


@dataclass(frozen=True)
class LoadResult:
    """Result of loading configuration, including workspace context."""

    config: ConvertConfig
    layout: workspace_mod.WorkspaceLayout
    config_path: Optional[Path]


def load_config(
    *,
    config_path: Optional[Path] = None,
    overrides: Optional[ConfigOverrides] = None,
    env: Optional[Mapping[str, str]] = None,
    workspace_path: Optional[Path] = None,
) -> LoadResult:
    """Load configuration applying precedence CLI > env > TOML > defaults."""

    overrides = overrides or ConfigOverrides()
    env_map = env if env is not None else os.environ

    layout = workspace_mod.ensure_workspace(env=env_map, path=workspace_path)
    default_path = layout.path_for("config") / CONFIG_FILENAME

    requested_path = _resolve_config_path(
        config_path=config_path,
        env_map=env_map,
        default_path=default_path,
    )

    defaults = _default_table()
    loaded_path: Optional[Path]

    if requested_path.exists():
        loaded_path = requested_path
        try:
            parsed = core_config.load_toml(requested_path)
            core_config.merge_defaults(defaults, parsed)
        except core_config.TomlConfigError as exc:
            raise ConvertConfigError(str(exc)) from exc
    else:
        loaded_path = None
        if config_path is not None or _has_env_config(env_map):
            raise ConvertConfigError(f"Config file not found: {requested_path}")

    try:
        config = _resolve(defaults, overrides, env_map, layout)
    except core_config.TomlConfigError as exc:
        raise ConvertConfigError(str(exc)) from exc
    return LoadResult(config=config, layout=layout, config_path=loaded_path)


def _resolve(
    file_options: Mapping[str, Mapping[str, object]],
    overrides: ConfigOverrides,
    env_map: Mapping[str, str],
    layout: workspace_mod.WorkspaceLayout,
) -> ConvertConfig:
    env = core_config.EnvReader(env_map, ENV_PREFIX)
    paths = file_options["paths"]
    execution = file_options["execution"]
    enrichment = file_options["enrichment"]

    output_dir = _resolve_dir(
        core_config.pick_first(
            overrides.output_dir,
            env.path("OUTPUT_DIR"),
            _coerce_optional_path(paths["output_dir"], "paths.output_dir"),
        ),
        layout=layout,
        default="converted",
    )
    artifacts_dir = _resolve_dir(
        core_config.pick_first(
            env.path("ARTIFACTS_DIR"),
            _coerce_optional_path(paths["artifacts_dir"], "paths.artifacts_dir"),
        ),
        layout=layout,
        default="artifacts",
    )

    extensions = _normalize_extensions(
        core_config.pick_first(
            overrides.extensions,
            env.words("EXTENSIONS"),
            execution["extensions"],
        )
    )

    env_collision = env.string("COLLISION")
    collision = _resolve_collision(
        overrides.collision,
        CollisionPolicy.from_value(env_collision) if env_collision else None,
        execution["collision"],
    )

    keep_workspace = _require_bool(
        core_config.pick_first(
            overrides.keep_workspace,
            env.boolean("KEEP_WORKSPACE"),
            file_options["workspace"]["keep"],
        ),
        "workspace.keep",
    )
    annotations = _require_bool(
        core_config.pick_first(
            overrides.annotations,
            env.boolean("ANNOTATIONS"),
            file_options["composition"]["annotations"],
        ),
        "composition.annotations",
    )
    enrich_images = _require_bool(
        core_config.pick_first(
            env.boolean("ENRICH_IMAGES"), enrichment["enabled"]
        ),
        "enrichment.enabled",
    )
    max_parallel = _require_positive_int(
        core_config.pick_first(
            env.integer("MAX_PARALLEL"), enrichment["max_parallel"]
        ),
        "enrichment.max_parallel",
    )
    vision_model = _require_string(
        core_config.pick_first(env.string("VISION_MODEL"), enrichment["model"]),
        "enrichment.model",
    )
    log_level = _require_string(
        core_config.pick_first(
            overrides.log_level,
            env.string("LOG_LEVEL"),
            file_options["logging"]["level"],
        ),
        "logging.level",
    ).upper()

    return ConvertConfig(
        extensions=extensions,
        output_dir=output_dir,
        artifacts_dir=artifacts_dir,
        collision=collision,
        keep_workspace=keep_workspace,
        annotations=annotations,
        enrich_images=enrich_images,
        max_parallel=max_parallel,
        vision_model=vision_model,
        log_level=log_level,
    )


def _default_table() -> MutableMapping[str, MutableMapping[str, object]]:
    return {
        "paths": {"output_dir": None, "artifacts_dir": None},
        "execution": {
            "extensions": list(_DEFAULT_EXTENSIONS),
            "collision": _DEFAULT_COLLISION,
        },
        "workspace": {"keep": False},
        "composition": {"annotations": True},
        "enrichment": {
            "enabled": True,
            "max_parallel": _DEFAULT_MAX_PARALLEL,
            "model": _DEFAULT_VISION_MODEL,
        },
        "logging": {"level": _DEFAULT_LOG_LEVEL},
    }


def _resolve_config_path(
    *,
    config_path: Optional[Path],
    env_map: Mapping[str, str],
    default_path: Path,
) -> Path:
    if config_path is not None:
        return config_path.expanduser()
    env_candidate = env_map.get(CONFIG_ENV)
    if env_candidate and env_candidate.strip():
        return Path(env_candidate.strip()).expanduser()
    return default_path


def _has_env_config(env_map: Mapping[str, str]) -> bool:
    env_candidate = env_map.get(CONFIG_ENV)
    return bool(env_candidate and env_candidate.strip())


def _coerce_optional_path(value: object, key: str) -> Optional[Path]:
    if value is None:
        return None
    if isinstance(value, Path):
        return value
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        return Path(raw)
    raise ConvertConfigError(f"{key} must be a string when provided.")


def _resolve_dir(
    candidate: object,
    *,
    layout: workspace_mod.WorkspaceLayout,
    default: str,
) -> Path:
    if candidate is None:
        return layout.path_for(default)
    assert isinstance(candidate, Path)
    if not candidate.is_absolute():
        return (layout.home / candidate).resolve()
    return candidate.expanduser().resolve()


def _normalize_extensions(value: object) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        raise ConvertConfigError("execution.extensions must be a list of strings.")
    seen: set[str] = set()
    result: list[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ConvertConfigError("Extensions must be non-empty strings.")
        normalized = item.strip().lower().lstrip(".")
        if normalized not in seen:
            seen.add(normalized)
            result.append(normalized)
    if not result:
        raise ConvertConfigError("At least one extension must be configured.")
    return tuple(result)


def _resolve_collision(
    override: Optional[CollisionPolicy],
    env_value: Optional[CollisionPolicy],
    file_value: object,
) -> CollisionPolicy:
    if override is not None:
        return override
    if env_value is not None:
        return env_value
    if isinstance(file_value, CollisionPolicy):
        return file_value
    if isinstance(file_value, str):
        return CollisionPolicy.from_value(file_value)
    raise ConvertConfigError(
        "execution.collision must be one of: skip, overwrite, version."
    )


def _require_bool(value: object, key: str) -> bool:
    if not isinstance(value, bool):
        raise ConvertConfigError(f"{key} must be a boolean.")
    return value


def _require_positive_int(value: object, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConvertConfigError(f"{key} must be a positive integer, got {value!r}.")
    return value


def _require_string(value: object, key: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConvertConfigError(f"{key} must be a non-empty string.")
    return value.strip()


__all__ = [
    "CONFIG_ENV",
    "CONFIG_FILENAME",
    "CollisionPolicy",
    "ConfigOverrides",
    "ConvertConfig",
    "ConvertConfigError",
    "ENV_PREFIX",
    "LoadResult",
    "load_config",
]
