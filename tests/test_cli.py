"""Tests for the scope-pricer CLI."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from conftest import REFERENCE_TIME, content_scope
from scope_pricer.cli import main as pricer_cli
from scope_pricer.config import reset_config


AT = REFERENCE_TIME.isoformat()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep config discovery away from the developer's machine."""
    monkeypatch.delenv("SCOPE_PRICER_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(Path, "home", lambda: tmp_path)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def scope_file(tmp_path):
    path = tmp_path / "scope.json"
    path.write_text(json.dumps(content_scope()), encoding="utf-8")
    return path


class TestEstimateCommand:
    """Tests for the estimate command."""

    def test_json_output(self, scope_file):
        runner = CliRunner()
        result = runner.invoke(pricer_cli, ["estimate", "-s", str(scope_file), "--at", AT, "-j"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["final_medium"] == 1000
        assert data["breakdown"]["recommended"] == "MEDIUM"
        assert data["audit_id"]

    def test_reference_time_with_z_suffix(self, scope_file):
        """The documented --at form with a trailing Z is accepted."""
        runner = CliRunner()
        result = runner.invoke(
            pricer_cli, ["estimate", "-s", str(scope_file), "--at", "2024-06-01T09:00:00Z", "-j"],
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["reference_time"].startswith("2024-06-01T09:00:00")

    def test_formatted_output(self, scope_file):
        runner = CliRunner()
        result = runner.invoke(pricer_cli, ["estimate", "-s", str(scope_file), "--at", AT, "-v"])

        assert result.exit_code == 0, result.output
        assert "Price Tiers" in result.output
        assert "INR 1,000" in result.output
        assert "Standard complexity" in result.output

    def test_badge_price(self, scope_file):
        runner = CliRunner()
        result = runner.invoke(
            pricer_cli, ["estimate", "-s", str(scope_file), "--at", AT, "--badge", "high"],
        )

        assert result.exit_code == 0, result.output
        assert "HIGH badge price" in result.output
        assert "INR 1,200" in result.output

    def test_writes_out_file(self, scope_file, tmp_path):
        out = tmp_path / "estimate.json"
        runner = CliRunner()
        result = runner.invoke(
            pricer_cli, ["estimate", "-s", str(scope_file), "--at", AT, "-o", str(out)],
        )

        assert result.exit_code == 0, result.output
        assert json.loads(out.read_text(encoding="utf-8"))["final_low"] == 850

    def test_invalid_scope_exits_nonzero(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"field": ""}), encoding="utf-8")
        runner = CliRunner()
        result = runner.invoke(pricer_cli, ["estimate", "-s", str(path)])

        assert result.exit_code == 1
        assert "input_validation" in result.output

    def test_custom_config(self, scope_file, tmp_path):
        config = tmp_path / "cheap.yaml"
        config.write_text("rates:\n  base_rates:\n    Content Writing & Strategy: 4000\n", encoding="utf-8")
        runner = CliRunner()
        result = runner.invoke(
            pricer_cli, ["estimate", "-s", str(scope_file), "--at", AT, "-c", str(config), "-j"],
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["final_medium"] == 2000


class TestAuditCommands:
    """Tests for audit listing and replay."""

    @pytest.fixture
    def audited(self, scope_file, tmp_path):
        log = tmp_path / "audit.jsonl"
        runner = CliRunner()
        result = runner.invoke(
            pricer_cli,
            ["estimate", "-s", str(scope_file), "--at", AT, "-a", "ops-team", "--audit-log", str(log), "-j"],
        )
        assert result.exit_code == 0, result.output
        return log, json.loads(result.stdout)["audit_id"]

    def test_list_entries(self, audited):
        log, _ = audited
        runner = CliRunner()
        result = runner.invoke(pricer_cli, ["audit", "--audit-log", str(log)])

        assert result.exit_code == 0, result.output
        assert "Audit Entries (1)" in result.output

    def test_show_entry(self, audited):
        log, entry_id = audited
        runner = CliRunner()
        result = runner.invoke(pricer_cli, ["audit", "--audit-log", str(log), "--id", entry_id])

        assert result.exit_code == 0, result.output
        assert "ops-team" in result.output
        assert "Recommended tier: MEDIUM" in result.output

    def test_replay_reproduces(self, audited):
        log, entry_id = audited
        runner = CliRunner()
        result = runner.invoke(pricer_cli, ["replay", "--audit-log", str(log), "--id", entry_id])

        assert result.exit_code == 0, result.output
        assert "reproduces exactly" in result.output

    def test_replay_detects_changed_rates(self, audited, tmp_path):
        log, entry_id = audited
        config = tmp_path / "changed.yaml"
        config.write_text("rates:\n  base_rates:\n    Content Writing & Strategy: 2500\n", encoding="utf-8")
        runner = CliRunner()
        result = runner.invoke(
            pricer_cli, ["replay", "--audit-log", str(log), "--id", entry_id, "-c", str(config)],
        )

        assert result.exit_code == 1
        assert "no longer reproduces" in result.output

    def test_unknown_entry(self, audited):
        log, _ = audited
        runner = CliRunner()
        result = runner.invoke(pricer_cli, ["replay", "--audit-log", str(log), "--id", "missing"])

        assert result.exit_code == 1
        assert "not found" in result.output


class TestOtherCommands:
    """Tests for validate, tables and init-config."""

    def test_validate_valid(self, scope_file):
        runner = CliRunner()
        result = runner.invoke(pricer_cli, ["validate", "-s", str(scope_file)])
        assert result.exit_code == 0
        assert "Scope valid" in result.output

    def test_validate_invalid(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"field": "UI/UX Design", "intent": {"priority": "ASAP"}}), encoding="utf-8")
        runner = CliRunner()
        result = runner.invoke(pricer_cli, ["validate", "-s", str(path)])
        assert result.exit_code == 1
        assert "Scope invalid" in result.output

    def test_tables(self):
        runner = CliRunner()
        result = runner.invoke(pricer_cli, ["tables"])
        assert result.exit_code == 0, result.output
        assert "Base Rates" in result.output
        assert "Multiplier cap: 1.25" in result.output

    def test_tables_for_field(self):
        runner = CliRunner()
        result = runner.invoke(pricer_cli, ["tables", "--field", "seo"])
        assert result.exit_code == 0, result.output
        assert "keyword_set_50" in result.output

    def test_init_config(self, tmp_path):
        out = tmp_path / "pricing.yaml"
        runner = CliRunner()

        result = runner.invoke(pricer_cli, ["init-config", "-o", str(out)])
        assert result.exit_code == 0, result.output
        assert out.exists()

        again = runner.invoke(pricer_cli, ["init-config", "-o", str(out)])
        assert again.exit_code == 1
        assert "already exists" in again.output

        forced = runner.invoke(pricer_cli, ["init-config", "-o", str(out), "--force"])
        assert forced.exit_code == 0
