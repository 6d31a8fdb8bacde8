"""Tests for LabConfig and dataset preview."""
from pathlib import Path

import pytest

from labplay.config import DEFAULT_AGENT_URL, LabConfig
from labplay.dataset import DatasetError, preview_dataset


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("LAB_BACKEND_URL", "http://kernel:9000/")
    monkeypatch.delenv("LAB_AGENT_URL", raising=False)
    monkeypatch.setenv("LAB_EXECUTE_RETRIES", "4")
    monkeypatch.setenv("LAB_RETRY_DELAY", "not-a-number")
    monkeypatch.setenv("LAB_STRICT_DONE", "yes")
    monkeypatch.setenv("LAB_STORAGE_DIR", str(tmp_path))

    config = LabConfig.from_env(dotenv=False)

    assert config.lab_url == "http://kernel:9000"
    assert config.agent_url == DEFAULT_AGENT_URL
    assert config.max_retries == 4
    assert config.retry_delay == 1.5
    assert config.strict_done is True
    assert config.storage_dir == tmp_path


def test_defaults():
    config = LabConfig()
    assert config.health_interval == 5.0
    assert config.health_timeout == 3.0
    assert config.strict_done is False
    assert config.storage_dir == Path.home() / ".labplay"


def test_preview_dataset(sales_csv):
    preview = preview_dataset(str(sales_csv))
    assert preview.filename == "sales.csv"
    assert preview.columns == ["region", "units", "revenue"]
    assert preview.n_rows_sampled == 2
    assert preview.has_column("revenue")


def test_preview_missing_file(tmp_path):
    with pytest.raises(DatasetError, match="File not found"):
        preview_dataset(str(tmp_path / "missing.csv"))
