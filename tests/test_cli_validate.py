import json

from typer.testing import CliRunner

from dependency_engine.cli import app

runner = CliRunner()


def test_cli_validate_success():
    r = runner.invoke(app, ["validate", "examples/opening.yaml"])
    assert r.exit_code == 0
    assert "OK: 5 tasks" in r.stdout
    assert "References: 4" in r.stdout


def test_cli_validate_failure():
    r = runner.invoke(app, ["validate", "examples/invalid-tasks.json"])
    assert r.exit_code == 2
    assert "E_NEGATIVE_DURATION" in r.output
    assert "E_DUPLICATE_ID" in r.output


def test_cli_validate_missing_file_is_a_load_error():
    r = runner.invoke(app, ["validate", "examples/does-not-exist.json"])
    assert r.exit_code == 1
    assert "E_FILE_NOT_FOUND" in r.output


def test_cli_validate_json_success():
    r = runner.invoke(app, ["validate", "examples/chain.json", "--format", "json"])
    assert r.exit_code == 0
    payload = json.loads(r.stdout)
    assert payload["tool"] == "depgraph"
    assert payload["command"] == "validate"
    assert payload["ok"] is True
    assert payload["errors"] == []
    assert payload["summary"]["task_count"] == 3


def test_cli_validate_json_failure_contains_codes():
    r = runner.invoke(app, ["validate", "examples/invalid-tasks.json", "--format", "json"])
    assert r.exit_code == 2
    payload = json.loads(r.stdout)
    assert payload["ok"] is False
    assert payload["error_count"] == len(payload["errors"])
    codes = {e["code"] for e in payload["errors"]}
    assert {"E_NEGATIVE_DURATION", "E_DUPLICATE_ID", "E_INVALID_ENUM"} <= codes
    assert all(e["source"] == "validate" for e in payload["errors"])


def test_cli_validate_reads_stdin():
    r = runner.invoke(app, ["validate", "--format", "json"], input='[{"id": "A"}, {"id": "B", "predecessors": ["A"]}]')
    assert r.exit_code == 0
    assert json.loads(r.stdout)["summary"]["task_count"] == 2


def test_cli_validate_unparseable_stdin():
    r = runner.invoke(app, ["validate", "--format", "json"], input="{not json")
    assert r.exit_code == 1
    payload = json.loads(r.stdout)
    assert payload["errors"][0]["code"] == "E_JSON_PARSE"
    assert payload["errors"][0]["source"] == "load"


def test_cli_unknown_format():
    r = runner.invoke(app, ["validate", "examples/chain.json", "--format", "xml"])
    assert r.exit_code == 2
    assert "E_VALIDATE_UNKNOWN_FORMAT" in r.output
