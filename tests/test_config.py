import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from directorysync.config import RetryPolicy, SyncConfigLoader  # noqa: E402
from directorysync.errors import ConfigurationError  # noqa: E402


def _write(path: Path, payload: dict) -> Path:
    path.write_text(json.dumps(payload))
    return path


def test_example_config_loads() -> None:
    config = SyncConfigLoader().load(ROOT / "config" / "sync.example.json")

    assert config.directory_client.name == "rest"
    assert config.directory_client.params["base_url"] == "https://directory.bbmri-eric.eu"
    assert config.clinical_store.name == "fhir"
    assert config.min_donors == 10
    assert config.max_facts == -1
    assert config.retry.max_attempts == 10
    assert config.import_biobanks is True


def test_defaults_apply_to_minimal_config(tmp_path: Path) -> None:
    config = SyncConfigLoader().load(_write(tmp_path / "sync.json", {"source": {"type": "CSV"}}))

    assert config.clinical_store.name == "csv"
    assert config.directory_client.name == "rest"
    assert config.allow_star_model is True
    assert config.default_collection_id is None
    assert config.retry == RetryPolicy()


def test_write_to_file_selects_file_client(tmp_path: Path) -> None:
    payload = {
        "directory": {"write_to_file": True, "output_directory": str(tmp_path / "out")},
        "source": {"type": "fhir", "params": {"base_url": "http://localhost:8080/fhir"}},
    }

    config = SyncConfigLoader().parse(payload)

    assert config.directory_client.name == "file"
    assert config.directory_client.params == {"output_directory": str(tmp_path / "out")}


def test_schema_violations_are_reported(tmp_path: Path) -> None:
    payload = {"directory": {"min_donors": -3, "unexpected": 1}, "source": {"type": "fhir"}}

    with pytest.raises(ConfigurationError) as excinfo:
        SyncConfigLoader().load(_write(tmp_path / "sync.json", payload))

    assert "min_donors" in str(excinfo.value)


def test_missing_and_malformed_files(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        SyncConfigLoader().load(tmp_path / "absent.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(ConfigurationError):
        SyncConfigLoader().load(broken)


def test_retry_policy_backoff() -> None:
    policy = RetryPolicy(max_attempts=4, interval_seconds=10, backoff_factor=2)

    assert [policy.delay_before(attempt) for attempt in range(1, 5)] == [0.0, 10, 20, 40]
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
