from __future__ import annotations

import logging
from pathlib import Path

import pytest

from markweave.convert import config as cfg
from markweave.convert import executor


@pytest.fixture(name="logger")
def _logger_fixture() -> logging.Logger:
    logger = logging.getLogger("markweave.tests.executor")
    logger.handlers.clear()
    logger.propagate = False
    logger.addHandler(logging.NullHandler())
    return logger


def _config(
    tmp_path: Path,
    extensions: tuple[str, ...],
    collision: cfg.CollisionPolicy = cfg.CollisionPolicy.OVERWRITE,
) -> cfg.ConvertConfig:
    return cfg.ConvertConfig(
        extensions=extensions,
        output_dir=tmp_path / "out",
        artifacts_dir=tmp_path / "artifacts",
        collision=collision,
        keep_workspace=False,
        annotations=True,
        enrich_images=False,
        max_parallel=1,
        vision_model="gpt-4o-mini",
        log_level="INFO",
    )


def test_run_conversion_processes_directory_in_order(
    tmp_path, logger, workspace, make_engine
):
    root = workspace.create(
        {
            "b.md": "# Bravo\n\nbody",
            "nested": {"a.txt": "alpha", "c.csv": "x,y\n1,2\n"},
            "ignored.log": "noise",
        }
    )

    summary = executor.run_conversion(
        [root],
        config=_config(tmp_path, ("md", "txt", "csv")),
        engine=make_engine(),
        logger=logger,
    )

    assert summary.success_count == 3
    assert summary.failure_count == 0
    assert summary.skipped_count == 0
    assert summary.exit_code == 0
    assert [path.name for path in summary.processed] == ["b.md", "a.txt", "c.csv"]
    converters = [outcome.converter for outcome in summary.outcomes]
    assert converters == ["plain-text", "plain-text", "csv"]
    written = (tmp_path / "out" / "b.md").read_text(encoding="utf-8")
    assert written.startswith("---\ntitle: \"Bravo\"")
    assert written.endswith("-->\n")


def test_run_conversion_skips_extension_not_in_config(
    tmp_path, logger, workspace, make_engine
):
    source = workspace.write("notes.txt", "data")

    summary = executor.run_conversion(
        [source],
        config=_config(tmp_path, ("pdf",)),
        engine=make_engine(),
        logger=logger,
    )

    assert summary.skipped_count == 1
    outcome = summary.outcomes[0]
    assert outcome.status is executor.ConversionStatus.SKIPPED
    assert "'.txt' not enabled" in outcome.reason
    assert not (tmp_path / "out").exists()


def test_run_conversion_records_failures(tmp_path, logger, workspace, make_engine):
    good = workspace.write("good.txt", "fine")
    bad = workspace.write("bad.csv", "   \n")

    summary = executor.run_conversion(
        [good, bad],
        config=_config(tmp_path, ("txt", "csv")),
        engine=make_engine(enable_builtins=False),
        logger=logger,
    )

    assert summary.failure_count == 2
    assert summary.exit_code == 1
    failed = summary.outcomes[0]
    assert failed.status is executor.ConversionStatus.FAILED
    assert "No converter accepted" in failed.reason
    assert failed.error is not None


def test_convert_file_versions_existing_output(tmp_path, workspace, make_engine):
    source = workspace.write("report.txt", "text")
    output_dir = tmp_path / "out"
    output_dir.mkdir()
    (output_dir / "report.md").write_text("old", encoding="utf-8")
    (output_dir / "report-01.md").write_text("older", encoding="utf-8")

    outcome = executor.convert_file(
        source,
        engine=make_engine(),
        output_dir=output_dir,
        collision=cfg.CollisionPolicy.VERSION,
    )

    assert outcome.status is executor.ConversionStatus.SUCCESS
    assert outcome.output_path == output_dir / "report-02.md"
    assert (output_dir / "report.md").read_text(encoding="utf-8") == "old"


def test_convert_file_skip_policy_leaves_output(tmp_path, workspace, make_engine):
    source = workspace.write("report.txt", "text")
    output_dir = tmp_path / "out"
    output_dir.mkdir()
    existing = output_dir / "report.md"
    existing.write_text("keep me", encoding="utf-8")

    outcome = executor.convert_file(
        source,
        engine=make_engine(),
        output_dir=output_dir,
        collision=cfg.CollisionPolicy.SKIP,
    )

    assert outcome.status is executor.ConversionStatus.SKIPPED
    assert "skip" in outcome.reason
    assert existing.read_text(encoding="utf-8") == "keep me"


def test_resolve_output_path_policies(tmp_path):
    base = tmp_path / "doc.md"
    assert executor.resolve_output_path(
        base, collision=cfg.CollisionPolicy.SKIP
    ) == (base, None)

    base.write_text("x", encoding="utf-8")
    assert executor.resolve_output_path(
        base, collision=cfg.CollisionPolicy.OVERWRITE
    ) == (base, None)
    path, reason = executor.resolve_output_path(
        base, collision=cfg.CollisionPolicy.VERSION
    )
    assert path == tmp_path / "doc-01.md"
    assert reason is None
