"""Tests for configuration loading and the global accessor."""

import json

import pytest

from buildspace import config as config_module
from buildspace.config import (
    BuildspaceConfig,
    configure,
    get_config,
    reset_config,
)

ENV_VARS = [
    "BUILDSPACE_MAX_GATE_SWAPS",
    "BUILDSPACE_MAX_WORKERS",
    "BUILDSPACE_PARALLEL_MIN_ROWS",
    "BUILDSPACE_BUDGET",
    "BUILDSPACE_OUTPUT_PATH",
]


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "config.json")
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    reset_config()
    yield tmp_path / "config.json"
    reset_config()


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        config = BuildspaceConfig.load()
        assert config.repair.max_gate_swaps == 10
        assert config.generation.max_workers == 1
        assert config.generation.parallel_min_rows == 64
        assert config.defaults.budget is None
        assert config.defaults.output_path == "./builds.json"


class TestLayering:
    """File < env var < programmatic."""

    def test_file_values(self, isolated_config):
        isolated_config.write_text(
            json.dumps({"repair": {"max_gate_swaps": 3}, "defaults": {"budget": 34}})
        )
        config = BuildspaceConfig.load()
        assert config.repair.max_gate_swaps == 3
        assert config.defaults.budget == 34

    def test_env_overrides_file(self, isolated_config, monkeypatch):
        isolated_config.write_text(json.dumps({"generation": {"max_workers": 2}}))
        monkeypatch.setenv("BUILDSPACE_MAX_WORKERS", "8")
        monkeypatch.setenv("BUILDSPACE_OUTPUT_PATH", "/tmp/out.json")
        config = BuildspaceConfig.load()
        assert config.generation.max_workers == 8
        assert config.defaults.output_path == "/tmp/out.json"

    def test_invalid_env_ignored(self, monkeypatch, caplog):
        monkeypatch.setenv("BUILDSPACE_BUDGET", "lots")
        with caplog.at_level("WARNING"):
            config = BuildspaceConfig.load()
        assert config.defaults.budget is None
        assert "BUILDSPACE_BUDGET" in caplog.text

    def test_corrupt_file_falls_back(self, isolated_config, caplog):
        isolated_config.write_text("{not json")
        with caplog.at_level("WARNING"):
            config = BuildspaceConfig.load()
        assert config.repair.max_gate_swaps == 10
        assert "Failed to load config" in caplog.text

    def test_programmatic_config_wins(self, monkeypatch):
        monkeypatch.setenv("BUILDSPACE_MAX_GATE_SWAPS", "2")
        configure(BuildspaceConfig())
        assert get_config().repair.max_gate_swaps == 10


class TestSaveAndSet:
    """Tests for save / set_value / the global accessor."""

    def test_save_then_load(self, isolated_config):
        config = BuildspaceConfig()
        config.set_value("generation.parallel_min_rows", "16")
        config.set_value("defaults.budget", "none")
        config.save()
        assert isolated_config.exists()
        loaded = BuildspaceConfig.load()
        assert loaded.generation.parallel_min_rows == 16
        assert loaded.defaults.budget is None

    def test_set_value_rejects_unknown_keys(self):
        config = BuildspaceConfig()
        with pytest.raises(KeyError):
            config.set_value("repair.nope", "1")
        with pytest.raises(KeyError):
            config.set_value("nowhere.max_workers", "1")
        with pytest.raises(ValueError):
            config.set_value("repair.max_gate_swaps", "many")

    def test_get_config_is_cached(self):
        assert get_config() is get_config()
        reset_config()
        first = get_config()
        reset_config()
        assert get_config() is not first
