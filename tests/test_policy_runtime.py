"""Configuration loading tests."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from core.logging_setup import configure_logging
from core.policy_runtime import (
    DEFAULT_CONFIG,
    apply_env_overrides,
    ensure_runtime_dirs,
    load_effective_config,
    load_yaml,
    merge_dicts,
)


def test_defaults_apply_without_config_files(tmp_path: Path) -> None:
    config = load_effective_config(tmp_path, environ={})

    assert config["usage"]["max_loops_per_day"] == 4000
    assert config["usage"]["max_tokens_per_day"] == 8_000_000
    assert config["agent"]["interval_seconds"] == 5
    assert config["models"]["llm"]["active_provider"] == "mock"


def test_yaml_files_override_defaults(tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "default.yaml").write_text("usage:\n  max_loops_per_day: 10\n", encoding="utf-8")
    (config_dir / "models.yaml").write_text("llm:\n  active_provider: groq\n", encoding="utf-8")

    config = load_effective_config(tmp_path, environ={})

    assert config["usage"]["max_loops_per_day"] == 10
    assert config["usage"]["retention_days"] == 7
    assert config["models"]["llm"]["active_provider"] == "groq"
    assert "mock" in config["models"]["llm"]["providers"]


def test_environment_overrides_and_invalid_values() -> None:
    config = apply_env_overrides(
        DEFAULT_CONFIG,
        {
            "AGENT_MAX_LOOPS_PER_DAY": "25",
            "AGENT_MAX_TOKENS_PER_DAY": "lots",
            "LOGGING_LEVEL": "DEBUG",
            "AUTOLOOP_MEMORY_BACKEND": "sql",
        },
    )

    assert config["usage"]["max_loops_per_day"] == 25
    assert config["usage"]["max_tokens_per_day"] == 8_000_000
    assert config["logging"]["level"] == "DEBUG"
    assert config["memory"]["backend"] == "sql"
    assert DEFAULT_CONFIG["usage"]["max_loops_per_day"] == 4000


def test_merge_dicts_is_recursive() -> None:
    merged = merge_dicts({"a": {"b": 1, "c": 2}, "d": 1}, {"a": {"b": 5}, "e": 3})
    assert merged == {"a": {"b": 5, "c": 2}, "d": 1, "e": 3}


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_yaml(path)
    assert load_yaml(tmp_path / "missing.yaml") == {}


def test_runtime_dirs_are_created(tmp_path: Path) -> None:
    paths = ensure_runtime_dirs(tmp_path, DEFAULT_CONFIG)
    assert paths["memory_dir"].is_dir()
    assert paths["db_path"].parent.is_dir()
    assert paths["audit_log_path"].parent.is_dir()


def test_configure_logging_installs_one_handler() -> None:
    logger = configure_logging("DEBUG")
    configure_logging("warning")
    marked = [h for h in logger.handlers if getattr(h, "_autoloop", False)]
    assert len(marked) == 1
    assert logger.level == logging.WARNING
