from __future__ import annotations

from pathlib import Path

import pytest

from markweave.convert import config as cfg
from markweave.convert.errors import ConfigurationError


def _write_config(workspace_root: Path, body: str) -> Path:
    config_dir = workspace_root / "config"
    config_dir.mkdir(parents=True)
    config_file = config_dir / cfg.CONFIG_FILENAME
    config_file.write_text(body.strip() + "\n", encoding="utf-8")
    return config_file


def test_load_config_defaults_use_workspace(tmp_path):
    workspace_root = tmp_path / "workspace"

    result = cfg.load_config(env={}, workspace_path=workspace_root)

    assert result.layout.home == workspace_root.resolve()
    assert result.config_path is None
    config = result.config
    assert config.output_dir == result.layout.path_for("converted")
    assert config.artifacts_dir == result.layout.path_for("artifacts")
    assert config.extensions[:3] == ("pdf", "docx", "pptx")
    assert "zip" in config.extensions
    assert config.collision is cfg.CollisionPolicy.SKIP
    assert config.keep_workspace is False
    assert config.annotations is True
    assert config.enrich_images is True
    assert config.max_parallel == 4
    assert config.vision_model == "gpt-4o-mini"
    assert config.log_level == "INFO"


def test_load_config_reads_config_file(tmp_path):
    workspace_root = tmp_path / "ws"
    config_file = _write_config(
        workspace_root,
        """
        [paths]
        output_dir = "custom"
        artifacts_dir = "staging"

        [execution]
        extensions = ["pdf", "DOCX", ".html"]
        collision = "version"

        [workspace]
        keep = true

        [composition]
        annotations = false

        [enrichment]
        enabled = false
        max_parallel = 2
        model = "gpt-4o"

        [logging]
        level = "warning"
        """,
    )

    result = cfg.load_config(
        config_path=config_file,
        env={},
        workspace_path=workspace_root,
    )

    config = result.config
    assert result.config_path == config_file
    assert config.output_dir == (workspace_root / "custom").resolve()
    assert config.artifacts_dir == (workspace_root / "staging").resolve()
    assert config.extensions == ("pdf", "docx", "html")
    assert config.collision is cfg.CollisionPolicy.VERSION
    assert config.keep_workspace is True
    assert config.annotations is False
    assert config.enrich_images is False
    assert config.max_parallel == 2
    assert config.vision_model == "gpt-4o"
    assert config.log_level == "WARNING"


def test_default_config_location_is_picked_up(tmp_path):
    workspace_root = tmp_path / "implicit"
    config_file = _write_config(workspace_root, '[logging]\nlevel = "debug"')

    result = cfg.load_config(env={}, workspace_path=workspace_root)

    assert result.config_path == config_file
    assert result.config.log_level == "DEBUG"


def test_load_config_env_overrides_file(tmp_path):
    workspace_root = tmp_path / "env-ws"
    config_file = _write_config(
        workspace_root,
        """
        [paths]
        output_dir = "file-out"

        [execution]
        extensions = ["pdf"]
        collision = "skip"

        [enrichment]
        max_parallel = 2

        [logging]
        level = "info"
        """,
    )

    env_map = {
        cfg.CONFIG_ENV: str(config_file),
        f"{cfg.ENV_PREFIX}OUTPUT_DIR": str(tmp_path / "env-out"),
        f"{cfg.ENV_PREFIX}EXTENSIONS": "html epub",
        f"{cfg.ENV_PREFIX}COLLISION": "overwrite",
        f"{cfg.ENV_PREFIX}KEEP_WORKSPACE": "yes",
        f"{cfg.ENV_PREFIX}MAX_PARALLEL": "8",
        f"{cfg.ENV_PREFIX}ENRICH_IMAGES": "off",
        f"{cfg.ENV_PREFIX}LOG_LEVEL": "error",
    }

    result = cfg.load_config(env=env_map, workspace_path=workspace_root)

    config = result.config
    assert config.output_dir == (tmp_path / "env-out").resolve()
    assert config.extensions == ("html", "epub")
    assert config.collision is cfg.CollisionPolicy.OVERWRITE
    assert config.keep_workspace is True
    assert config.max_parallel == 8
    assert config.enrich_images is False
    assert config.log_level == "ERROR"


def test_load_config_cli_overrides_env(tmp_path):
    workspace_root = tmp_path / "cli-ws"
    env_map = {
        f"{cfg.ENV_PREFIX}OUTPUT_DIR": str(tmp_path / "env-out"),
        f"{cfg.ENV_PREFIX}EXTENSIONS": "html",
        f"{cfg.ENV_PREFIX}COLLISION": "skip",
        f"{cfg.ENV_PREFIX}ANNOTATIONS": "true",
        f"{cfg.ENV_PREFIX}LOG_LEVEL": "warning",
    }
    overrides = cfg.ConfigOverrides(
        output_dir=Path("cli-out"),
        extensions=["txt"],
        collision=cfg.CollisionPolicy.OVERWRITE,
        annotations=False,
        log_level="debug",
    )

    result = cfg.load_config(
        env=env_map,
        overrides=overrides,
        workspace_path=workspace_root,
    )

    config = result.config
    assert config.output_dir == (workspace_root / "cli-out").resolve()
    assert config.extensions == ("txt",)
    assert config.collision is cfg.CollisionPolicy.OVERWRITE
    assert config.annotations is False
    assert config.log_level == "DEBUG"


def test_conversion_options_reflect_config(tmp_path):
    overrides = cfg.ConfigOverrides(keep_workspace=True, annotations=False)

    config = cfg.load_config(
        env={}, overrides=overrides, workspace_path=tmp_path / "opts"
    ).config
    options = config.conversion_options()

    assert options.keep_workspace is True
    assert options.compose.include_annotations is False
    assert options.max_parallel_enrichment == config.max_parallel


def test_load_config_missing_explicit_file_raises(tmp_path):
    workspace_root = tmp_path / "missing"
    missing = tmp_path / "does-not-exist.toml"

    with pytest.raises(cfg.ConvertConfigError, match="not found"):
        cfg.load_config(config_path=missing, env={}, workspace_path=workspace_root)


def test_load_config_missing_env_file_raises(tmp_path):
    env_map = {cfg.CONFIG_ENV: str(tmp_path / "nope.toml")}

    with pytest.raises(cfg.ConvertConfigError):
        cfg.load_config(env=env_map, workspace_path=tmp_path / "env-missing")


@pytest.mark.parametrize(
    "key, value",
    [
        ("COLLISION", "bogus"),
        ("KEEP_WORKSPACE", "perhaps"),
        ("MAX_PARALLEL", "many"),
        ("MAX_PARALLEL", "0"),
    ],
)
def test_load_config_invalid_env_values_raise(tmp_path, key, value):
    env_map = {f"{cfg.ENV_PREFIX}{key}": value}

    with pytest.raises(cfg.ConvertConfigError):
        cfg.load_config(env=env_map, workspace_path=tmp_path / "invalid")


def test_load_config_bad_toml_surfaces_error(tmp_path, monkeypatch):
    workspace_root = tmp_path / "bad-toml"
    config_file = _write_config(workspace_root, "")

    def fake_load_toml(_):
        raise cfg.core_config.TomlConfigError("broken")

    monkeypatch.setattr(cfg.core_config, "load_toml", fake_load_toml)

    with pytest.raises(cfg.ConvertConfigError) as exc_info:
        cfg.load_config(
            config_path=config_file, env={}, workspace_path=workspace_root
        )

    assert "broken" in str(exc_info.value)


def test_load_config_merge_error_surfaces(tmp_path):
    workspace_root = tmp_path / "bad-merge"
    config_file = _write_config(workspace_root, "[unexpected]\nvalue = 1")

    with pytest.raises(cfg.ConvertConfigError):
        cfg.load_config(
            config_path=config_file, env={}, workspace_path=workspace_root
        )


def test_config_errors_are_configuration_errors():
    assert issubclass(cfg.ConvertConfigError, ConfigurationError)


def test_coerce_optional_path_handles_values():
    path = Path("foo")
    assert cfg._coerce_optional_path(path, "paths.x") is path
    assert cfg._coerce_optional_path("  ", "paths.x") is None
    assert cfg._coerce_optional_path("bar", "paths.x") == Path("bar")
    with pytest.raises(cfg.ConvertConfigError, match="paths.x"):
        cfg._coerce_optional_path(123, "paths.x")


def test_normalize_extensions_validation():
    assert cfg._normalize_extensions(["pdf", ".PDF"]) == ("pdf",)
    with pytest.raises(cfg.ConvertConfigError):
        cfg._normalize_extensions(None)
    with pytest.raises(cfg.ConvertConfigError):
        cfg._normalize_extensions(["   "])
    with pytest.raises(cfg.ConvertConfigError):
        cfg._normalize_extensions([])


def test_resolve_collision_validation():
    assert (
        cfg._resolve_collision(None, None, cfg.CollisionPolicy.VERSION)
        is cfg.CollisionPolicy.VERSION
    )
    with pytest.raises(cfg.ConvertConfigError):
        cfg._resolve_collision(None, None, 42)
