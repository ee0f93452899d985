from __future__ import annotations

from markweave.core import workspace as workspace_mod
from markweave.workspace import cli


def test_init_creates_data_home(tmp_path, capsys, monkeypatch):
    target = tmp_path / "workspace"
    monkeypatch.setenv(workspace_mod.WORKSPACE_ENV, str(target))

    code = cli.main([])

    captured = capsys.readouterr()
    assert code == 0
    assert "Data home ready" in captured.out
    assert "(created)" in captured.out
    for name in ("config", "logs", "converted", "artifacts"):
        assert (target / name).is_dir()
        assert name in captured.out


def test_init_supports_custom_path(tmp_path, capsys):
    target = tmp_path / "custom"

    code = cli.main(["--path", str(target)])

    captured = capsys.readouterr()
    assert code == 0
    assert target.is_dir()
    assert str(target) in captured.out


def test_init_reports_existing_directories(tmp_path, capsys):
    target = tmp_path / "again"
    cli.main(["--path", str(target), "--quiet"])

    code = cli.main(["--path", str(target)])

    captured = capsys.readouterr()
    assert code == 0
    assert "(created)" not in captured.out
    assert "(exists)" in captured.out


def test_init_quiet_mode(tmp_path, capsys, monkeypatch):
    target = tmp_path / "quiet"
    monkeypatch.setenv(workspace_mod.WORKSPACE_ENV, str(target))

    code = cli.main(["--quiet"])

    captured = capsys.readouterr()
    assert code == 0
    assert captured.out == ""
    assert target.is_dir()


def test_init_reports_workspace_errors(tmp_path, capsys):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory", encoding="utf-8")

    code = cli.main(["--path", str(blocker)])

    captured = capsys.readouterr()
    assert code == 1
    assert captured.err.strip()
