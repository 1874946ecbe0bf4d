from __future__ import annotations

import sys
from pathlib import Path

import pytest
import yaml

sys.path.append(str(Path(__file__).resolve().parents[1]))

from mutate.config import Settings, load_settings
from mutate.core.errors import RuleDecodeError
from mutate.core.schema import Configuration
from mutate.infrastructure import InMemoryConfigStore, YamlConfigStore, load_configuration_file

from workbooks import rule

ENV_NAMES = (
    "MUTATE_ENV",
    "STORAGE_TYPE",
    "STORAGE_ROOT",
    "STORAGE_PUBLIC_URL",
    "FILE_TTL",
    "JOB_TIMEOUT",
    "WEBHOOK_MAX_RETRIES",
    "WEBHOOK_TIMEOUT",
    "WEBHOOK_INITIAL_DELAY",
    "WEBHOOK_SECRET",
    "QUEUE_BACKOFF_DELAY",
    "CONFIG_DIR",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def _configuration(**overrides) -> Configuration:
    data = {
        "id": "monthly",
        "organizationId": "org",
        "name": "Monthly",
        "rules": [rule("DELETE_COLUMNS", "drop", columns=["B"])],
    }
    data.update(overrides)
    return Configuration.from_dict(data)


# ----------------------------------------------------------------------
# settings
# ----------------------------------------------------------------------
def test_settings_defaults(clean_env):
    settings = load_settings()

    assert settings.environment == "development"
    assert settings.is_local
    assert not settings.archive_inputs
    assert settings.file_ttl == 86400
    assert settings.job_timeout == 300.0
    assert settings.webhook_max_retries == 5
    assert settings.webhook_secret is None
    assert settings.config_dir is None


def test_settings_from_environment(clean_env, tmp_path):
    clean_env.setenv("MUTATE_ENV", "production")
    clean_env.setenv("STORAGE_TYPE", "s3")
    clean_env.setenv("STORAGE_ROOT", str(tmp_path))
    clean_env.setenv("FILE_TTL", "3600")
    clean_env.setenv("JOB_TIMEOUT", "12.5")
    clean_env.setenv("WEBHOOK_SECRET", "s3cret")
    clean_env.setenv("CONFIG_DIR", str(tmp_path / "configs"))

    settings = load_settings()

    assert not settings.is_local
    assert settings.archive_inputs
    assert settings.storage_root == tmp_path
    assert settings.file_ttl == 3600
    assert settings.job_timeout == 12.5
    assert settings.webhook_secret == "s3cret"
    assert settings.config_dir == tmp_path / "configs"


def test_settings_reject_malformed_numbers(clean_env):
    clean_env.setenv("WEBHOOK_MAX_RETRIES", "five")

    with pytest.raises(ValueError, match="WEBHOOK_MAX_RETRIES"):
        load_settings()


def test_settings_are_immutable():
    with pytest.raises(AttributeError):
        Settings().environment = "production"


# ----------------------------------------------------------------------
# configuration stores
# ----------------------------------------------------------------------
def test_in_memory_store_versions_rule_changes_only():
    store = InMemoryConfigStore([_configuration()])

    renamed = store.save(_configuration(name="Monthly (renamed)"))
    changed = store.save(_configuration(rules=[rule("DELETE_COLUMNS", "drop", columns=["C"])]))

    assert renamed.version == 1
    assert changed.version == 2
    assert store.get("monthly").version == 2
    assert [item.version for item in store.versions("monthly")] == [1, 2]
    assert store.get("missing") is None


def test_yaml_store_reads_configuration_files(tmp_path):
    (tmp_path / "monthly.yaml").write_text(
        yaml.safe_dump(
            {
                "organizationId": "org",
                "rules": [rule("SELECT_WORKSHEET", "select", type="name", value="Data")],
                "outputFormat": {"type": "CSV", "delimiter": ";"},
            }
        ),
        encoding="utf-8",
    )
    store = YamlConfigStore(tmp_path)

    configuration = store.get("monthly")

    assert configuration.id == "monthly"
    assert configuration.rules[0].params.value == "Data"
    assert configuration.output_format.delimiter == ";"
    assert store.get("missing") is None


def test_yaml_store_round_trips_and_bumps_version(tmp_path):
    store = YamlConfigStore(tmp_path / "configs")

    first = store.save(_configuration())
    same = store.save(_configuration(name="Renamed"))
    changed = store.save(_configuration(rules=[rule("VALIDATE_COLUMNS", "check", numOfColumns=2)]))

    assert (first.version, same.version, changed.version) == (1, 1, 2)
    loaded = store.get("monthly")
    assert loaded.model_dump() == changed.model_dump()
    assert [item.version for item in store.versions("monthly")] == [2]


@pytest.mark.parametrize("text", ["- just\n- a list\n", "rules: [unclosed\n"])
def test_invalid_configuration_files_raise(tmp_path, text):
    path = tmp_path / "broken.yaml"
    path.write_text(text, encoding="utf-8")

    with pytest.raises(RuleDecodeError):
        load_configuration_file(path)


def test_configuration_file_with_unknown_rule_raises(tmp_path):
    path = tmp_path / "unknown.yaml"
    path.write_text(yaml.safe_dump({"organizationId": "org", "rules": [rule("SPLIT_CELLS")]}), encoding="utf-8")

    with pytest.raises(RuleDecodeError):
        load_configuration_file(path)
