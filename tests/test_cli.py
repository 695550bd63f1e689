"""CLI smoke tests using typer's CliRunner."""

import json

import pytest
import yaml
from typer.testing import CliRunner

from buildspace import config as config_module
from buildspace.cli.app import app
from buildspace.cli.commands.generate import parse_locks
from buildspace.config import reset_config

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "config.json")
    for var in ("BUILDSPACE_BUDGET", "BUILDSPACE_MAX_WORKERS", "BUILDSPACE_OUTPUT_PATH"):
        monkeypatch.delenv(var, raising=False)
    reset_config()
    yield tmp_path / "config.json"
    reset_config()


@pytest.fixture
def graph_file(tmp_path, branched_graph):
    path = tmp_path / "graph.yaml"
    branched_graph.to_yaml(path)
    return path


class TestConfigCommand:
    """Tests for the config command."""

    def test_config_show(self):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "Repair" in result.output
        assert "Generation" in result.output

    def test_config_show_json(self):
        result = runner.invoke(app, ["--json", "config", "show"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["config"]["repair"]["max_gate_swaps"] == 10

    def test_config_set_and_reset(self, isolated_config):
        result = runner.invoke(app, ["config", "set", "defaults.budget", "34"])
        assert result.exit_code == 0
        assert json.loads(isolated_config.read_text())["defaults"]["budget"] == 34

        result = runner.invoke(app, ["config", "reset"])
        assert result.exit_code == 0
        assert not isolated_config.exists()

    def test_config_set_invalid_key(self):
        result = runner.invoke(app, ["config", "set", "invalid.key", "value"])
        assert result.exit_code == 1
        assert "Unknown key" in result.output

    def test_config_set_invalid_int_value(self):
        result = runner.invoke(app, ["config", "set", "repair.max_gate_swaps", "abc"])
        assert result.exit_code == 1
        assert "Invalid integer" in result.output

    def test_config_set_missing_args(self):
        result = runner.invoke(app, ["config", "set"])
        assert result.exit_code == 1

    def test_config_unknown_action(self):
        result = runner.invoke(app, ["config", "unknown_action"])
        assert result.exit_code == 1
        assert "Unknown action" in result.output


class TestValidateCommand:
    """Tests for the validate command."""

    def test_validate_nonexistent_file(self):
        result = runner.invoke(app, ["validate", "/nonexistent/path.yaml"])
        assert result.exit_code == 3

    def test_validate_good_graph(self, graph_file):
        result = runner.invoke(app, ["validate", str(graph_file)])
        assert result.exit_code == 0

    def test_validate_cycle(self, tmp_path):
        path = tmp_path / "cycle.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "nodes": [
                        {"id": "A", "prerequisites": ["B"]},
                        {"id": "B", "prerequisites": ["A"]},
                    ]
                }
            )
        )
        result = runner.invoke(app, ["--json", "validate", str(path)])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["status"] == "error"
        assert any("cycle" in i for i in data["issues"])

    def test_validate_bad_lock(self, graph_file):
        result = runner.invoke(app, ["validate", str(graph_file), "--lock", "K1=7"])
        assert result.exit_code == 1

    def test_validate_schema_error(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("nodes: 5\n")
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 1

    def test_validate_unknown_required_name(self, tmp_path):
        path = tmp_path / "typo.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "nodes": [{"id": "R", "is_root": True}],
                    "required_names": ["Typo"],
                }
            )
        )
        result = runner.invoke(app, ["--json", "validate", str(path)])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["issues"] == ["Required name matches no node or entry: 'Typo'"]

    def test_validate_unknown_excluded_name_warns(self, tmp_path):
        path = tmp_path / "excl.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "nodes": [{"id": "R", "is_root": True}],
                    "excluded_names": ["Old Talent"],
                }
            )
        )
        result = runner.invoke(app, ["--json", "validate", str(path)])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert "Old Talent" in data["warnings"][0]["message"]


class TestGenerateCommand:
    """Tests for the generate command."""

    def test_generate_writes_output(self, graph_file, tmp_path):
        output = tmp_path / "builds.json"
        result = runner.invoke(app, ["generate", str(graph_file), "-o", str(output)])
        assert result.exit_code == 0, result.output
        data = json.loads(output.read_text())
        assert data["meta"]["build_count"] == 8
        assert data["meta"]["pinned_count"] == 8

    def test_generate_json_mode(self, graph_file, tmp_path):
        output = tmp_path / "builds.json"
        result = runner.invoke(
            app,
            ["--json", "generate", str(graph_file), "-o", str(output), "--lock", "K1=0"],
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["status"] == "success"
        assert data["result"]["rows"] == 8
        assert data["result"]["feasible"] >= 1

    def test_generate_missing_file(self):
        result = runner.invoke(app, ["generate", "/nonexistent/graph.yaml"])
        assert result.exit_code == 3

    def test_generate_missing_budget(self, tmp_path):
        path = tmp_path / "graph.yaml"
        path.write_text(yaml.safe_dump({"nodes": [{"id": "R", "is_root": True}]}))
        result = runner.invoke(app, ["generate", str(path), "-o", str(tmp_path / "o.json")])
        assert result.exit_code == 1

    def test_generate_budget_option(self, tmp_path):
        path = tmp_path / "graph.yaml"
        path.write_text(yaml.safe_dump({"nodes": [{"id": "R", "is_root": True}]}))
        output = tmp_path / "o.json"
        result = runner.invoke(app, ["generate", str(path), "-b", "1", "-o", str(output)])
        assert result.exit_code == 0, result.output
        assert json.loads(output.read_text())["meta"]["budget"] == 1

    def test_generate_no_feasible_build(self, tmp_path):
        path = tmp_path / "graph.yaml"
        path.write_text(yaml.safe_dump({"nodes": [{"id": "R", "is_root": True}]}))
        result = runner.invoke(
            app, ["generate", str(path), "-b", "5", "-o", str(tmp_path / "o.json")]
        )
        assert result.exit_code == 5

    def test_generate_unknown_required_name(self, graph_file, tmp_path):
        result = runner.invoke(
            app,
            ["generate", str(graph_file), "-r", "Typo Node", "-o", str(tmp_path / "o.json")],
        )
        assert result.exit_code == 1
        assert "Typo Node" in result.output


class TestParseLocks:
    """Tests for NODE=INDEX lock parsing."""

    def test_parse(self):
        assert parse_locks(["K1=2", " H1 =0"]) == {"K1": 2, "H1": 0}

    def test_bad_lock(self):
        import typer

        with pytest.raises(typer.BadParameter):
            parse_locks(["K1"])


class TestVersionFlag:
    """Test the --version flag."""

    def test_version_output(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "buildspace" in result.output
