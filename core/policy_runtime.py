"""Configuration and runtime policy bootstrapping."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("autoloop.config")

DEFAULT_CONFIG: dict[str, Any] = {
    "agent": {
        "initial_prompt": "You are an autonomous AI agent. Think about how to improve yourself.",
        "interval_seconds": 5,
        "paused_poll_seconds": 5,
        "error_delay_seconds": 10,
        "max_parallel_actions": 4,
        "max_backoff_minutes": 60,
        "conversation_messages": 20,
        "heartbeat_ttl_hours": 1,
    },
    "usage": {
        "max_loops_per_day": 4000,
        "max_tokens_per_day": 8_000_000,
        "retention_days": 7,
    },
    "commands": {
        "queue_name": "human-input",
        "batch_size": 10,
        "visibility_timeout_seconds": 60,
        "max_dequeue_count": 5,
        "processed_cache_size": 1000,
    },
    "state": {
        "max_thoughts": 100,
        "max_actions": 50,
        "snapshot_thoughts": 20,
        "snapshot_actions": 10,
        "item_ttl_hours": 24,
        "state_ttl_hours": 1,
    },
    "memory": {
        "backend": "file",
        "lookup_window_days": 30,
        "search_window_days": 90,
        "context_top_n": 20,
        "refresh_iterations": 10,
        "refresh_minutes": 60,
    },
    "consolidation": {
        "promotion_threshold": 0.5,
        "min_group_size": 3,
        "initial_delay_minutes": 60,
        "interval_hours": 6,
        "retry_minutes": 30,
        "batch_iterations": 100,
        "batch_interval_hours": 4,
        "cleanup_interval_hours": 24,
    },
    "forgetting": {
        "stale_after_days": 30,
        "min_access_count": 3,
        "min_importance": 0.3,
        "error_resolved_after_days": 7,
    },
    "resilience": {
        "storage": {"max_retries": 3, "initial_delay_seconds": 1.0, "max_delay_seconds": 30.0},
        "llm": {"max_retries": 5, "initial_delay_seconds": 2.0, "max_delay_seconds": 60.0},
    },
    "logging": {"level": "INFO"},
    "paths": {
        "memory_dir": "workspace/memory",
        "db_path": "workspace/autoloop.db",
        "audit_log_path": "logs/audit.jsonl",
    },
    "models": {"llm": {"active_provider": "mock", "providers": {"mock": {"type": "mock"}}}},
}

# (environment variable, config path, cast)
_ENV_OVERRIDES: list[tuple[str, tuple[str, ...], type]] = [
    ("AGENT_MAX_LOOPS_PER_DAY", ("usage", "max_loops_per_day"), int),
    ("AGENT_MAX_TOKENS_PER_DAY", ("usage", "max_tokens_per_day"), int),
    ("LOGGING_LEVEL", ("logging", "level"), str),
    ("AUTOLOOP_LLM_PROVIDER", ("models", "llm", "active_provider"), str),
    ("AUTOLOOP_MEMORY_BACKEND", ("memory", "backend"), str),
]


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML from file, returning empty mapping when missing."""
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return data


def merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge dictionaries."""
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def apply_env_overrides(
    config: dict[str, Any], environ: dict[str, str] | None = None
) -> dict[str, Any]:
    """Overlay recognised environment variables; invalid values are ignored."""
    env = os.environ if environ is None else environ
    result = merge_dicts(config, {})
    for name, path, cast in _ENV_OVERRIDES:
        raw = env.get(name)
        if raw is None or raw == "":
            continue
        try:
            value = cast(raw)
        except ValueError:
            logger.warning("Ignoring invalid value for %s: %r", name, raw)
            continue
        node = result
        for key in path[:-1]:
            child = node.get(key)
            child = dict(child) if isinstance(child, dict) else {}
            node[key] = child
            node = child
        node[path[-1]] = value
    return result


def ensure_runtime_dirs(root: Path, config: dict[str, Any]) -> dict[str, Path]:
    """Ensure memory and log directories exist and return resolved paths."""
    paths_cfg = config.get("paths", {})
    memory_dir = (root / paths_cfg.get("memory_dir", "workspace/memory")).resolve()
    db_path = (root / paths_cfg.get("db_path", "workspace/autoloop.db")).resolve()
    audit_log_path = (root / paths_cfg.get("audit_log_path", "logs/audit.jsonl")).resolve()

    memory_dir.mkdir(parents=True, exist_ok=True)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    audit_log_path.parent.mkdir(parents=True, exist_ok=True)

    return {
        "memory_dir": memory_dir,
        "db_path": db_path,
        "audit_log_path": audit_log_path,
    }


def load_effective_config(root: Path, environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Load and merge built-in defaults, config files and environment overrides."""
    config_dir = root / "config"
    default_cfg = load_yaml(config_dir / "default.yaml")
    models_cfg = load_yaml(config_dir / "models.yaml")

    merged = merge_dicts(DEFAULT_CONFIG, default_cfg)
    if models_cfg:
        merged = merge_dicts(merged, {"models": models_cfg})
    return apply_env_overrides(merged, environ)
