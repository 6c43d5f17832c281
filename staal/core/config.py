"""
Configuration loading.

Settings come from a YAML file (``--config``, ``$STAAL_CONFIG`` or
``./staal.yaml``) validated against the config contract and merged over
``DEFAULT_CONFIG``. A handful of environment variables override the model
section so secrets never have to live in the file.
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

from staal.core.contracts.loader import ContractViolation, validate_config

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "staal.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "model": {
        "provider": "openai",
        "model_name": "gpt-5",
        "api_key": None,
        "base_url": None,
        "timeout_seconds": 1800,
        "max_retries": 2,
    },
    "conversation": {
        "chunk_size": 60000,
        "context_budget_tokens": 380000,
        "reserved_output_tokens": 60000,
        "context_tail_turns": 6,
        "per_turn_overhead_tokens": 8,
        "max_history_tokens": 760000,
        "preserve_newest_turns": 6,
        "stop_join_timeout_seconds": 5,
    },
    "guardrails": {},
    "protocol": {"parse_policy": "strict"},
    "ci": {"light_ci_timeout_seconds": 1800},
}

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "STAAL_OPENAI_API_KEY": ("model", "api_key"),
    "STAAL_OPENAI_MODEL": ("model", "model_name"),
    "STAAL_OPENAI_BASE_URL": ("model", "base_url"),
}


def load_env_file(env_path: str = ".env") -> None:
    """Seed os.environ from a KEY=VALUE file without overriding existing values."""
    if not os.path.exists(env_path):
        return
    with open(env_path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if (not line) or line.startswith("#") or ("=" not in line):
                continue
            k, v = line.split("=", 1)
            os.environ.setdefault(k.strip(), v.strip())


def resolve_config_path(path: str | None = None) -> Path | None:
    if path:
        return Path(path)
    from_env = os.environ.get("STAAL_CONFIG")
    if from_env:
        return Path(from_env)
    candidate = Path.cwd() / CONFIG_FILE_NAME
    return candidate if candidate.exists() else None


def load_config(path: str | None = None) -> Dict[str, Any]:
    config_path = resolve_config_path(path)
    data: Dict[str, Any] = {}
    if config_path is not None:
        if not config_path.exists():
            raise ContractViolation(f"Config file not found: {config_path}")
        loaded = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        if loaded is not None and not isinstance(loaded, dict):
            raise ContractViolation(f"Config file must hold a mapping: {config_path}")
        data = loaded or {}
        validate_config(data)
        logger.info("Loaded configuration from %s", config_path)

    config = _merge(DEFAULT_CONFIG, data)
    for variable, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(variable)
        if value:
            config[section][key] = value
    return config


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged
