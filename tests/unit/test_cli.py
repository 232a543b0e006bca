"""Unit tests for CLI interface."""

import click
import pytest
from click.testing import CliRunner

from src.cli.main import cli, parse_params


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def base_args(tmp_path):
    """Global options pointing at a config file that does not exist."""
    return ["--config", str(tmp_path / "none.yaml"), "--log-level", "ERROR"]


def test_cli_help(runner):
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    assert "CAD Bridge" in result.output
    assert "analyze" in result.output
    assert "generate" in result.output
    assert "run" in result.output


def test_cli_version(runner):
    result = runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert "1.0.0" in result.output


class TestParseParams:

    def test_yaml_scalars(self):
        params = parse_params(("depth=25", "thinFeature=true", "profiles=[S1, S2]", "axis=Axis1"))
        assert params == {"depth": 25, "thinFeature": True, "profiles": ["S1", "S2"], "axis": "Axis1"}

    def test_file_then_pairs(self, tmp_path):
        params_file = tmp_path / "params.yaml"
        params_file.write_text("depth: 10\ndraft: 2\n")

        assert parse_params(("depth=30",), params_file) == {"depth": 30, "draft": 2}

    def test_rejects_missing_equals(self):
        with pytest.raises(click.BadParameter):
            parse_params(("depth",))


class TestAnalyze:

    def test_direct_report(self, runner, base_args):
        result = runner.invoke(cli, base_args + ["analyze", "extrude", "-p", "depth=25"])

        assert result.exit_code == 0
        assert "Complexity Report" in result.output
        assert "direct" in result.output

    def test_script_report_with_advice(self, runner, base_args):
        result = runner.invoke(cli, base_args + [
            "analyze", "extrude",
            "-p", "depth=25", "-p", "bothDirections=true", "-p", "draft=3",
            "-p", "thinFeature=true", "-p", "thinThickness=1", "-p", "capEnds=true",
            "-p", "endCondition=MidPlane",
        ])

        assert result.exit_code == 0
        assert "script" in result.output
        assert "Simplifications" in result.output
        assert "thinFeature" in result.output


class TestGenerate:

    def test_prints_script(self, runner, base_args):
        result = runner.invoke(cli, base_args + ["generate", "extrude", "-p", "depth=25"])

        assert result.exit_code == 0
        assert "Sub CreateExtrusion()" in result.output
        assert "0.025" in result.output

    def test_writes_script_file(self, runner, base_args, tmp_path):
        output = tmp_path / "sweep.swp"
        result = runner.invoke(cli, base_args + [
            "generate", "sweep", "-p", "profileSketch=Sketch1", "-p", "pathSketch=Sketch2",
            "--output", str(output),
        ])

        assert result.exit_code == 0
        assert "Sub CreateSweep()" in output.read_text(encoding="utf-8")

    def test_generic_script_for_sketch(self, runner, base_args):
        result = runner.invoke(cli, base_args + [
            "generate", "sketch_line", "-p", "x1=0", "-p", "y1=0", "-p", "x2=10", "-p", "y2=0",
        ])

        assert result.exit_code == 0
        assert "Sub ExecuteSketchManager_CreateLine()" in result.output

    def test_invalid_parameters_exit_nonzero(self, runner, base_args):
        result = runner.invoke(cli, base_args + ["generate", "extrude", "-p", "depth=-1"])

        assert result.exit_code == 1
        assert "Error" in result.output


class TestRun:

    def test_runs_against_simulated_application(self, runner, base_args):
        result = runner.invoke(cli, base_args + ["run", "extrude", "-p", "depth=25", "--repeat", "3"])

        assert result.exit_code == 0
        assert "Results" in result.output
        assert "Health" in result.output

    def test_failure_exit_code(self, runner, base_args):
        result = runner.invoke(cli, base_args + ["run", "extrude", "-p", "depth=25", "--fail-direct"])

        assert result.exit_code == 1

    def test_fallback_to_script(self, runner, base_args):
        result = runner.invoke(cli, base_args + [
            "run", "extrude", "-p", "depth=25", "--fail-direct", "--fallback", "script",
        ])

        assert result.exit_code == 0
