import json
from pathlib import Path

from typer.testing import CliRunner

from dependency_engine.cli import app

runner = CliRunner()


def test_cli_analyze_text():
    r = runner.invoke(app, ["analyze", "examples/opening.yaml"])
    assert r.exit_code == 0
    assert "OK: 5 tasks, 4 links" in r.stdout
    assert "Project end: day 41 (2026-02-15)" in r.stdout
    assert "Critical path: FIT -> STOCK -> OPEN" in r.stdout
    assert "Blocked tasks: 2" in r.stdout


def test_cli_analyze_json():
    r = runner.invoke(app, ["analyze", "examples/chain.json", "--format", "json"])
    assert r.exit_code == 0
    payload = json.loads(r.stdout)
    graph = payload["graph"]
    assert graph["critical_path"] == ["A", "B", "C"]
    assert graph["project_duration_days"] == 12
    assert graph["project_end"] is None
    assert [n["id"] for n in graph["nodes"]] == ["A", "B", "C"]
    assert all(e["is_critical"] for e in graph["edges"])
    assert [(b["blocked_task_id"], b["blocking_task_id"]) for b in payload["blockages"]] == [("C", "B")]


def test_cli_analyze_from_stdin():
    text = (Path("examples") / "parallel.json").read_text(encoding="utf-8")
    r = runner.invoke(app, ["analyze", "--format", "json"], input=text)
    assert r.exit_code == 0
    payload = json.loads(r.stdout)
    assert payload["graph"]["critical_path"] == ["A", "B", "C"]
    assert payload["graph"]["project_duration_days"] == 6


def test_cli_analyze_reports_cycles():
    r = runner.invoke(app, ["analyze", "examples/cycle.json"])
    assert r.exit_code == 0
    assert "Cycles: B, C" in r.output
    assert "W_CYCLE_DETECTED" in r.output


def test_cli_analyze_critical_only():
    r = runner.invoke(app, ["analyze", "examples/opening.yaml", "--format", "json", "--critical-only"])
    assert r.exit_code == 0
    graph = json.loads(r.stdout)["graph"]
    assert [n["id"] for n in graph["nodes"]] == ["FIT", "STOCK", "OPEN"]


def test_cli_analyze_status_filter():
    r = runner.invoke(
        app,
        ["analyze", "examples/opening.yaml", "--format", "json", "--status", "not_started", "--status", "waiting"],
    )
    assert r.exit_code == 0
    graph = json.loads(r.stdout)["graph"]
    assert sorted(n["id"] for n in graph["nodes"]) == ["FIT", "OPEN", "STOCK", "TRAIN"]


def test_cli_analyze_node_ceiling_from_config(tmp_path: Path):
    cfg = tmp_path / "small.yaml"
    cfg.write_text("max_nodes: 2\n", encoding="utf-8")
    r = runner.invoke(app, ["analyze", "examples/chain.json", "--format", "json", "--config", str(cfg)])
    assert r.exit_code == 2
    assert json.loads(r.stdout)["errors"][0]["code"] == "E_GRAPH_TOO_LARGE"


def test_cli_analyze_bad_project_start():
    r = runner.invoke(app, ["analyze", "examples/chain.json", "--project-start", "soon"])
    assert r.exit_code == 2
    assert "E_INVALID_DATE" in r.output


def test_cli_critical_path_text():
    r = runner.invoke(app, ["critical-path", "examples/chain.json"])
    assert r.exit_code == 0
    lines = r.stdout.strip().splitlines()
    assert [line.split("\t")[0] for line in lines] == ["A", "B", "C"]
    assert lines[1] == "B\tES=5\tEF=8\tBuild"


def test_cli_critical_path_json_with_project_start():
    r = runner.invoke(
        app, ["critical-path", "examples/chain.json", "--format", "json", "--project-start", "2026-05-04"]
    )
    assert r.exit_code == 0
    payload = json.loads(r.stdout)
    assert payload["critical_path"] == ["A", "B", "C"]
    assert payload["project_end"] == "2026-05-16"
    assert payload["has_cycles"] is False


def test_cli_blockages():
    r = runner.invoke(app, ["blockages", "examples/opening.yaml"])
    assert r.exit_code == 0
    assert 'TRAIN <- HIRE [FS]: "Hire store staff" (in progress) must finish' in r.stdout
    assert "STOCK <- FIT [FS]" in r.stdout


def test_cli_blockages_none():
    r = runner.invoke(app, ["blockages", "--format", "text"], input='[{"id": "A", "status": "done"}, {"id": "B", "predecessors": ["A"]}]')
    assert r.exit_code == 0
    assert "OK: no blocked tasks" in r.stdout


def test_cli_analyze_status_filter_hides_links_quietly():
    r = runner.invoke(
        app,
        ["analyze", "examples/opening.yaml", "--format", "json", "--status", "not_started", "--status", "waiting"],
    )
    assert r.exit_code == 0
    graph = json.loads(r.stdout)["graph"]
    assert graph["diagnostics"] == []
    assert ("HIRE", "TRAIN") not in {(e["source"], e["target"]) for e in graph["edges"]}


def test_cli_analyze_status_filter_accepts_input_spelling():
    r = runner.invoke(app, ["analyze", "examples/opening.yaml", "--format", "json", "--status", "in-progress"])
    assert r.exit_code == 0
    assert [n["id"] for n in json.loads(r.stdout)["graph"]["nodes"]] == ["HIRE"]


def test_cli_analyze_unknown_status():
    r = runner.invoke(app, ["analyze", "examples/opening.yaml", "--format", "json", "--status", "bogus"])
    assert r.exit_code == 2
    payload = json.loads(r.stdout)
    assert payload["ok"] is False
    assert [(e["code"], e["path"]) for e in payload["errors"]] == [("E_INVALID_ENUM", "status")]
