"""Core shared helpers for markweave commands."""

from __future__ import annotations

from .ai import ClientConfigError, load_client
from .config import (
    EnvReader,
    TomlConfigError,
    load_toml,
    merge_defaults,
    pick_first,
    write_toml_template,
)
from .config_templates import (
    ConfigTemplate,
    ConfigTemplateError,
    get_template,
    iter_templates,
)
from .logging import JsonLogFormatter, configure_logger, get_logger
from .workspace import (
    WORKSPACE_ENV,
    WorkspaceError,
    WorkspaceLayout,
    describe_layout,
    ensure_workspace,
)

__all__ = [
    "ClientConfigError",
    "load_client",
    "EnvReader",
    "TomlConfigError",
    "load_toml",
    "merge_defaults",
    "pick_first",
    "write_toml_template",
    "ConfigTemplate",
    "ConfigTemplateError",
    "get_template",
    "iter_templates",
    "JsonLogFormatter",
    "configure_logger",
    "get_logger",
    "WORKSPACE_ENV",
    "WorkspaceError",
    "WorkspaceLayout",
    "describe_layout",
    "ensure_workspace",
]
