"""CLI entry point for ``markweave convert``."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from markweave.core import config_templates
from markweave.core import workspace as workspace_mod
from markweave.core.ai import ClientConfigError, load_client
from markweave.core.config_templates import ConfigTemplateError
from markweave.core.logging import configure_logger
from markweave.core.workspace import WorkspaceError
from markweave.intelligence.openai_vision import OpenAIImageProvider
from markweave.intelligence.providers import ProviderHub
from markweave.intelligence.whisper import WhisperTranscriptionProvider

from .config import (
    CONFIG_FILENAME,
    CollisionPolicy,
    ConfigOverrides,
    ConvertConfig,
    ConvertConfigError,
    load_config,
)
from .errors import ConfigurationError
from .executor import ExecutionSummary, run_conversion
from .pipeline import Markweave
from .staging import RootResolver, WorkspaceManager


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="markweave convert",
        description=(
            "Convert documents (PDF, Office, HTML, EPUB, CSV, JSON, images, "
            "audio, ZIP archives, text) into LLM-ready Markdown."
        ),
        epilog=(
            "Run `markweave convert config init` to scaffold the default "
            f"{CONFIG_FILENAME} template."
        ),
    )
    parser.add_argument(
        "paths",
        nargs="+",
        type=Path,
        help="Files or directories to convert into Markdown.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help=(
            "Path to a TOML config file (defaults to the data-home config "
            "directory)."
        ),
    )
    parser.add_argument(
        "--workspace",
        type=Path,
        help=(
            "Override the data home used to resolve default output, artifact "
            "and config paths."
        ),
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        help="Override the output directory for generated Markdown files.",
    )
    parser.add_argument(
        "--extensions",
        nargs="+",
        help="Limit conversion to the provided extensions (e.g. pdf docx).",
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite existing Markdown files when name collisions occur.",
    )
    parser.add_argument(
        "--version-output",
        action="store_true",
        help="Version conflicting outputs using -01, -02 style suffixes.",
    )
    parser.add_argument(
        "--annotations",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Emit or suppress [page:N]-style segment annotations.",
    )
    parser.add_argument(
        "--keep-workspace",
        action="store_true",
        default=None,
        help="Keep each conversion's staging workspace for inspection.",
    )
    parser.add_argument(
        "--log-level",
        help="Set the logging level for the run (defaults to INFO).",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args_list = list(argv) if argv is not None else list(sys.argv[1:])

    if args_list[:1] == ["config"]:
        return _handle_config(args_list[1:])

    parser = _build_parser()
    args = parser.parse_args(args_list)

    if args.overwrite and args.version_output:
        parser.error("--overwrite and --version-output are mutually exclusive.")

    overrides = ConfigOverrides(
        extensions=args.extensions,
        output_dir=args.output_dir,
        collision=_collision_from_args(args),
        keep_workspace=args.keep_workspace,
        annotations=args.annotations,
        log_level=args.log_level,
    )

    try:
        load_result = load_config(
            config_path=args.config,
            overrides=overrides,
            workspace_path=args.workspace,
        )
    except (ConvertConfigError, WorkspaceError) as exc:
        parser.error(str(exc))

    logger, log_path = configure_logger(
        "markweave.convert",
        log_dir=load_result.layout.path_for("logs"),
        level=load_result.config.log_level,
    )
    logger.debug("convert CLI invoked")

    try:
        engine = build_engine(load_result.config, logger)
    except ConfigurationError as exc:
        sys.stderr.write(str(exc) + "\n")
        return 1

    summary = run_conversion(
        args.paths,
        config=load_result.config,
        engine=engine,
        logger=logger,
    )

    _print_summary(summary, log_path, load_result.config.output_dir)
    return summary.exit_code


def build_engine(config: ConvertConfig, logger: logging.Logger) -> Markweave:
    """Create the engine for a CLI run from resolved configuration."""

    manager = WorkspaceManager(
        RootResolver(config.artifacts_dir),
        keep=config.keep_workspace,
        logger=logger,
    )
    return Markweave(
        config.conversion_options(),
        providers=build_providers(config, logger),
        workspace_manager=manager,
        logger=logger,
    )


def build_providers(config: ConvertConfig, logger: logging.Logger) -> ProviderHub:
    """OpenAI-backed providers, or none when no API key is configured."""

    try:
        client = load_client()
    except ClientConfigError as exc:
        logger.info(
            "OpenAI providers disabled",
            extra={"reason": str(exc)},
        )
        return ProviderHub()

    image = None
    if config.enrich_images:
        image = OpenAIImageProvider(
            model=config.vision_model, client=client, logger=logger
        )
    return ProviderHub(
        image=image,
        media=WhisperTranscriptionProvider(client=client),
    )


def _print_summary(
    summary: ExecutionSummary, log_path: Path | None, output_dir: Path
) -> None:
    lines = [
        "convert summary:",
        "  converted: {0}".format(summary.success_count),
        "  skipped:   {0}".format(summary.skipped_count),
        "  failed:    {0}".format(summary.failure_count),
        "  output dir: {0}".format(output_dir),
        "  log file:   {0}".format(log_path),
    ]
    sys.stdout.write("\n".join(str(line) for line in lines) + "\n")


def _collision_from_args(args: argparse.Namespace) -> CollisionPolicy | None:
    if args.overwrite:
        return CollisionPolicy.OVERWRITE
    if args.version_output:
        return CollisionPolicy.VERSION
    return None


def _handle_config(argv: Sequence[str]) -> int:
    parser = _build_config_parser()
    args = parser.parse_args(argv)

    return _handle_config_init(args)


def _build_config_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="markweave convert config",
        description="Manage configuration files for markweave convert.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser(
        "init",
        help=f"Write the default {CONFIG_FILENAME} template.",
    )
    init_parser.add_argument(
        "--path",
        type=Path,
        help=(
            "Destination for the config TOML (defaults to the data-home "
            "config directory)."
        ),
    )
    init_parser.add_argument(
        "--workspace",
        type=Path,
        help="Data home override used when resolving the default config path.",
    )
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the destination if a config already exists.",
    )
    return parser


def _handle_config_init(args: argparse.Namespace) -> int:
    try:
        target = _resolve_config_target(args)
    except WorkspaceError as exc:
        sys.stderr.write(str(exc) + "\n")
        return 1

    template = config_templates.get_template("convert")
    try:
        written = template.write(target, overwrite=args.force)
    except ConfigTemplateError as exc:
        sys.stderr.write(str(exc) + "\n")
        return 1

    sys.stdout.write(f"Wrote convert config to {written}\n")
    return 0


def _resolve_config_target(args: argparse.Namespace) -> Path:
    if args.path is not None:
        candidate = args.path.expanduser()
        if not candidate.is_absolute():
            candidate = (Path.cwd() / candidate).resolve()
        return candidate

    layout = workspace_mod.ensure_workspace(path=args.workspace)
    return layout.path_for("config") / CONFIG_FILENAME


if __name__ == "__main__":  # pragma: no cover - module CLI guard
    raise SystemExit(main())
