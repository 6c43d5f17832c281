from __future__ import annotations

import os
from pathlib import Path

import pytest

from staal.core import config as config_mod
from staal.core.contracts.loader import ContractViolation, load_schema

EXAMPLE_CONFIG = Path(__file__).resolve().parents[1] / "staal.example.yaml"


@pytest.fixture
def clean_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for variable in ["STAAL_CONFIG", *config_mod.ENV_OVERRIDES]:
        monkeypatch.delenv(variable, raising=False)
    return tmp_path


def test_defaults_apply_without_a_config_file(clean_env):
    config = config_mod.load_config()

    assert config == config_mod.DEFAULT_CONFIG
    assert config is not config_mod.DEFAULT_CONFIG


def test_file_values_are_merged_over_defaults(clean_env):
    path = clean_env / "custom.yaml"
    path.write_text("model:\n  provider: ollama\nguardrails:\n  total_hard_stop: 50\n", encoding="utf-8")

    config = config_mod.load_config(str(path))

    assert config["model"]["provider"] == "ollama"
    assert config["model"]["model_name"] == "gpt-5"
    assert config["guardrails"] == {"total_hard_stop": 50}
    assert config["conversation"]["chunk_size"] == 60000


def test_staal_yaml_in_the_working_directory_is_picked_up(clean_env):
    (clean_env / config_mod.CONFIG_FILE_NAME).write_text("protocol:\n  parse_policy: lenient\n", encoding="utf-8")

    assert config_mod.load_config()["protocol"]["parse_policy"] == "lenient"


def test_config_path_from_environment(clean_env, monkeypatch):
    path = clean_env / "elsewhere.yaml"
    path.write_text("ci:\n  light_ci_timeout_seconds: 60\n", encoding="utf-8")
    monkeypatch.setenv("STAAL_CONFIG", str(path))

    assert config_mod.load_config()["ci"]["light_ci_timeout_seconds"] == 60


def test_invalid_values_violate_the_contract(clean_env):
    path = clean_env / "bad.yaml"
    path.write_text("model:\n  provider: carrier-pigeon\n", encoding="utf-8")

    with pytest.raises(ContractViolation) as excinfo:
        config_mod.load_config(str(path))
    assert "Config validation failed" in str(excinfo.value)


def test_unknown_sections_violate_the_contract(clean_env):
    path = clean_env / "bad.yaml"
    path.write_text("telemetry:\n  enabled: true\n", encoding="utf-8")

    with pytest.raises(ContractViolation):
        config_mod.load_config(str(path))


def test_missing_or_non_mapping_file_is_rejected(clean_env):
    with pytest.raises(ContractViolation):
        config_mod.load_config(str(clean_env / "missing.yaml"))

    path = clean_env / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ContractViolation):
        config_mod.load_config(str(path))


def test_environment_overrides_the_model_section(clean_env, monkeypatch):
    monkeypatch.setenv("STAAL_OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("STAAL_OPENAI_MODEL", "gpt-test")

    config = config_mod.load_config()

    assert config["model"]["api_key"] == "sk-test"
    assert config["model"]["model_name"] == "gpt-test"


def test_env_file_does_not_override_existing_variables(clean_env, monkeypatch):
    monkeypatch.setenv("STAAL_EXISTING", "kept")
    monkeypatch.delenv("STAAL_FROM_FILE", raising=False)
    env_file = clean_env / ".env"
    env_file.write_text("# comment\nSTAAL_EXISTING=replaced\nSTAAL_FROM_FILE = loaded\nnot a pair\n", encoding="utf-8")

    config_mod.load_env_file(str(env_file))

    assert os.environ["STAAL_EXISTING"] == "kept"
    assert os.environ["STAAL_FROM_FILE"] == "loaded"
    monkeypatch.delenv("STAAL_FROM_FILE")


def test_example_config_satisfies_the_contract(clean_env):
    config = config_mod.load_config(str(EXAMPLE_CONFIG))

    assert config["model"]["provider"] == "openai"
    assert load_schema("config.schema.yaml")["title"] == "StaalConfig"
