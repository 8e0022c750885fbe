"""
linebuild-engine — unit tests for config loader

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Deterministic env var path mapping and type coercion.
- Profile selection by argument, CLI override and environment.
- Path normalization relative to the config file.

Functional requirements
- Works offline; never depends on the caller's environment.

Non-functional requirements
- Deterministic output across repeated loads.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from linebuild_engine.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    load_config,
)
from linebuild_engine.config.schema import ConfigValidationError
from linebuild_engine.utils.hashing import sha256_json

REPO_ROOT = Path(__file__).resolve().parents[3]


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = tmp_path / "linebuild.toml"
    default_path = tmp_path / "default.toml"
    _write_config(default_path, "")
    _write_config(
        config_path,
        """
[migration]
confidence_tier = "medium"
""".strip(),
    )
    env = {"LINEBUILD_MIGRATION_CONFIDENCE_TIER": "low"}

    default_loaded = load_config(default_path, environ={})
    file_loaded = load_config(config_path, environ={})
    env_loaded = load_config(config_path, environ=env)
    cli_loaded = load_config(
        config_path,
        environ=env,
        cli_overrides={"migration.confidence_tier": "high"},
    )

    assert default_loaded["migration"]["confidence_tier"] == "high"
    assert file_loaded["migration"]["confidence_tier"] == "medium"
    assert env_loaded["migration"]["confidence_tier"] == "low"
    assert cli_loaded["migration"]["confidence_tier"] == "high"


def test_env_mapping_coerces_booleans_and_integers(tmp_path: Path) -> None:
    config_path = tmp_path / "linebuild.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        environ={
            "LINEBUILD_SCORING_INCLUDE_TRANSFERS": "off",
            "LINEBUILD_MIGRATION_LOW_CONFIDENCE_ERROR_BELOW": " 60 ",
            "LINEBUILD_REFERENCE_TABLES_PATH": "tables.yaml",
            "UNRELATED": "ignored",
        },
    )

    assert loaded["scoring"]["include_transfers"] is False
    assert loaded["migration"]["low_confidence_error_below"] == 60
    assert loaded["reference"]["tables_path"] == (tmp_path / "tables.yaml").as_posix()


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("LINEBUILD_MIGRATION_LOW_CONFIDENCE_ERROR_BELOW", "seventy"),
        ("LINEBUILD_SCORING_INCLUDE_TRANSFERS", "maybe"),
    ],
)
def test_invalid_env_coercion_raises_actionable_error(
    tmp_path: Path, name: str, value: str
) -> None:
    config_path = tmp_path / "linebuild.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match=name):
        load_config(config_path, environ={name: value})


def test_env_values_are_still_validated(tmp_path: Path) -> None:
    config_path = tmp_path / "linebuild.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigValidationError, match="observability.log_level"):
        load_config(config_path, environ={"LINEBUILD_OBSERVABILITY_LOG_LEVEL": "TRACE"})


def test_profile_selection_precedence(tmp_path: Path) -> None:
    config_path = tmp_path / "linebuild.toml"
    _write_config(config_path, "")

    from_env = load_config(config_path, environ={"LINEBUILD_PROFILE": "permissive"})
    from_cli = load_config(
        config_path,
        environ={"LINEBUILD_PROFILE": "permissive"},
        cli_overrides={"profile": "strict"},
    )
    from_argument = load_config(
        config_path,
        profile="permissive",
        cli_overrides={"profile": "strict"},
        environ={},
    )

    assert from_env["migration"]["confidence_tier"] == "low"
    assert from_cli["migration"]["low_confidence_error_below"] == 85
    assert from_argument["migration"]["confidence_tier"] == "low"


def test_env_overrides_win_over_profiles(tmp_path: Path) -> None:
    config_path = tmp_path / "linebuild.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        profile="strict",
        environ={"LINEBUILD_MIGRATION_CONFIDENCE_TIER": "medium"},
    )

    assert loaded["migration"] == {"confidence_tier": "medium", "low_confidence_error_below": 85}


def test_undefined_profile_fails(tmp_path: Path) -> None:
    config_path = tmp_path / "linebuild.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigValidationError, match="profile 'ghost' is not defined"):
        load_config(config_path, profile="ghost", environ={})


def test_non_string_cli_profile_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "linebuild.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match="'profile' must be a string"):
        load_config(config_path, cli_overrides={"profile": 3}, environ={})


def test_loader_is_deterministic_for_same_inputs(tmp_path: Path) -> None:
    config_path = tmp_path / "linebuild.toml"
    _write_config(config_path, "")

    env = {"LINEBUILD_SCORING_INCLUDE_TRANSFERS": "false"}
    cli = {"observability": {"log_format": "text"}}

    first = load_config(config_path, environ=env, cli_overrides=cli)
    second = load_config(config_path, environ=env, cli_overrides=cli)

    assert sha256_json(first) == sha256_json(second)
    assert first["observability"]["log_format"] == "text"


def test_path_normalization_is_relative_to_config_file(tmp_path: Path) -> None:
    config_path = tmp_path / "nested" / "linebuild.toml"
    _write_config(
        config_path,
        """
[reference]
tables_path = "tables/../reference.yaml"
""".strip(),
    )

    loaded = load_config(config_path, environ={})

    assert loaded["reference"]["tables_path"] == (config_path.parent / "reference.yaml").as_posix()
    assert loaded["observability"]["log_dir"] == (config_path.parent / "logs").as_posix()


def test_absolute_paths_are_kept(tmp_path: Path) -> None:
    config_path = tmp_path / "linebuild.toml"
    tables = (tmp_path / "elsewhere" / "tables.yaml").as_posix()
    _write_config(config_path, f'[reference]\ntables_path = "{tables}"\n')

    loaded = load_config(config_path, environ={})

    assert loaded["reference"]["tables_path"] == tables


def test_missing_explicit_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "missing.toml", environ={})


def test_invalid_toml_raises(tmp_path: Path) -> None:
    config_path = tmp_path / "linebuild.toml"
    _write_config(config_path, "[migration\n")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


def test_dump_effective_config_is_deterministic(tmp_path: Path) -> None:
    config_path = tmp_path / "linebuild.toml"
    _write_config(config_path, "")

    loaded = load_config(config_path, environ={})
    first = dump_effective_config(loaded)

    assert first == dump_effective_config(loaded)
    assert json.loads(first)["meta"]["schema_version"] == 1


def test_can_load_repo_linebuild_toml_with_profile_and_env_override() -> None:
    loaded = load_config(
        REPO_ROOT / "linebuild.toml",
        profile="permissive",
        environ={"LINEBUILD_SCORING_INCLUDE_TRANSFERS": "no"},
    )

    assert loaded["migration"]["confidence_tier"] == "low"
    assert loaded["scoring"]["include_transfers"] is False
    assert loaded["reference"]["tables_path"] is None


def test_config_package_exports_loader_and_errors(tmp_path: Path) -> None:
    import linebuild_engine.config as config_pkg

    config_path = tmp_path / "linebuild.toml"
    _write_config(config_path, "")

    loaded = config_pkg.load_config(config_path, environ={})
    assert loaded["meta"]["schema_version"] == 1

    with pytest.raises(config_pkg.ConfigLoadError):
        config_pkg.load_config(tmp_path / "missing.toml")
