"""Tests for CLI commands."""

from __future__ import annotations

import json
import uuid
from pathlib import Path

import pytest
from typer.testing import CliRunner

from formwork.cli import app
from formwork.cli.flags import effective_flags
from formwork.core.feature_flags import ENABLE_PARTITION_LITERALS, IAM_MINIMIZE_POLICIES

APP_SOURCE = """
from formwork.core import Annotations, App, CfnOutput, CfnResource, Stack

app = App()
producer = Stack(app, "Producer")
bucket = CfnResource(producer, "Bucket", type="AWS::S3::Bucket")
consumer = Stack(app, "Consumer")
CfnOutput(consumer, "BucketName", value=bucket.ref)
if app.node.try_get_context("warn"):
    Annotations.of(consumer).add_warning("careful")
if app.node.try_get_context("fail"):
    Annotations.of(consumer).add_error("broken")
"""


@pytest.fixture
def cli_runner() -> CliRunner:
    """Return a CLI test runner."""
    return CliRunner()


@pytest.fixture
def test_project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create a project with two stacks and make it the current directory."""
    module = f"infra_{uuid.uuid4().hex}"
    (tmp_path / f"{module}.py").write_text(APP_SOURCE, encoding="utf-8")
    (tmp_path / "formwork.toml").write_text(
        f'[app]\nentry = "{module}:app"\noutdir = "out"\n', encoding="utf-8"
    )
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestVersion:
    """--version and help."""

    def test_version(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "formwork version" in result.stdout

    def test_no_args_shows_help(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(app, [])
        assert "synth" in result.output


class TestSynth:
    """The synth command."""

    def test_writes_assembly(self, cli_runner: CliRunner, test_project: Path) -> None:
        result = cli_runner.invoke(app, ["synth"])
        assert result.exit_code == 0, result.stdout
        out = test_project / "out"
        manifest = json.loads((out / "manifest.json").read_text())
        assert set(manifest["artifacts"]) >= {"Producer", "Consumer"}
        template = json.loads((out / "Consumer.template.json").read_text())
        assert "Fn::ImportValue" in json.dumps(template["Outputs"])

    def test_output_and_format_options(self, cli_runner: CliRunner, test_project: Path) -> None:
        result = cli_runner.invoke(app, ["synth", "-o", "yaml-out", "--format", "yaml"])
        assert result.exit_code == 0, result.stdout
        assert (test_project / "yaml-out" / "Producer.template.yaml").exists()

    def test_invalid_format(self, cli_runner: CliRunner, test_project: Path) -> None:
        result = cli_runner.invoke(app, ["synth", "--format", "xml"])
        assert result.exit_code != 0

    def test_print_selected_stack(self, cli_runner: CliRunner, test_project: Path) -> None:
        result = cli_runner.invoke(app, ["synth", "Producer", "--print", "--format", "json"])
        assert result.exit_code == 0, result.stdout
        template = json.loads(result.stdout)
        assert "Bucket" in template["Resources"]

    def test_unknown_stack(self, cli_runner: CliRunner, test_project: Path) -> None:
        result = cli_runner.invoke(app, ["synth", "Nope"])
        assert result.exit_code == 1
        assert "No stack named 'Nope'" in result.stdout

    def test_errors_exit_nonzero(self, cli_runner: CliRunner, test_project: Path) -> None:
        result = cli_runner.invoke(app, ["synth", "-c", "fail=true"])
        assert result.exit_code == 1
        assert "broken" in result.stdout

    def test_warning_passes(self, cli_runner: CliRunner, test_project: Path) -> None:
        result = cli_runner.invoke(app, ["synth", "-c", "warn=true"])
        assert result.exit_code == 0
        assert "careful" in result.stdout

    def test_strict_fails_on_warning(self, cli_runner: CliRunner, test_project: Path) -> None:
        result = cli_runner.invoke(app, ["synth", "--strict", "-c", "warn=true"])
        assert result.exit_code == 1
        assert "strict mode" in result.stdout

    def test_missing_entry(self, cli_runner: CliRunner, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        result = cli_runner.invoke(app, ["synth"])
        assert result.exit_code == 1
        assert "No app entry point" in result.stdout

    def test_bad_context_option(self, cli_runner: CliRunner, test_project: Path) -> None:
        result = cli_runner.invoke(app, ["synth", "-c", "novalue"])
        assert result.exit_code != 0


class TestLs:
    """The ls command."""

    def test_deployment_order(self, cli_runner: CliRunner, test_project: Path) -> None:
        result = cli_runner.invoke(app, ["ls"])
        assert result.exit_code == 0, result.stdout
        assert result.stdout.split() == ["Producer", "Consumer"]
        assert not (test_project / "out").exists()

    def test_long(self, cli_runner: CliRunner, test_project: Path) -> None:
        result = cli_runner.invoke(app, ["ls", "--long"])
        assert result.exit_code == 0, result.stdout
        assert "Consumer" in result.stdout


class TestValidate:
    """The validate command."""

    def test_ok(self, cli_runner: CliRunner, test_project: Path) -> None:
        result = cli_runner.invoke(app, ["validate"])
        assert result.exit_code == 0, result.stdout
        assert "2 stack(s) valid" in result.stdout

    def test_errors(self, cli_runner: CliRunner, test_project: Path) -> None:
        result = cli_runner.invoke(app, ["validate", "-c", "fail=true"])
        assert result.exit_code == 1
        assert "Validation failed" in result.stdout


class TestFlags:
    """The flags command."""

    def test_table(self, cli_runner: CliRunner, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        (tmp_path / "formwork.toml").write_text(
            f'[feature_flags]\n"{IAM_MINIMIZE_POLICIES}" = true\n', encoding="utf-8"
        )
        result = cli_runner.invoke(app, ["flags"])
        assert result.exit_code == 0, result.stdout
        assert "minimizePolicies" in result.stdout

    def test_string_false_in_context(self) -> None:
        """A quoted "false" under [context] reads as false, not as a truthy string."""
        rows = {
            info.name: (value, configured)
            for info, value, configured in effective_flags({IAM_MINIMIZE_POLICIES: "false"})
        }
        assert rows[IAM_MINIMIZE_POLICIES] == (False, True)
        assert rows[ENABLE_PARTITION_LITERALS] == (False, False)

    def test_non_boolean_context_value(
        self, cli_runner: CliRunner, tmp_path: Path, monkeypatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        (tmp_path / "formwork.toml").write_text(
            f'[context]\n"{IAM_MINIMIZE_POLICIES}" = "maybe"\n', encoding="utf-8"
        )
        result = cli_runner.invoke(app, ["flags"])
        assert result.exit_code == 1
        assert "boolean" in result.stdout

    def test_recommended(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(app, ["flags", "--recommended"])
        assert result.exit_code == 0
        assert result.stdout.startswith("[feature_flags]")
        assert f'"{IAM_MINIMIZE_POLICIES}" = true' in result.stdout
