from __future__ import annotations

import json
import logging
import sys
from datetime import date
from typing import Any, NoReturn, Optional

import typer

from dependency_engine.core.analyze import Analysis, analyze_tasks
from dependency_engine.core.config.engine_config import EngineConfig, load_config
from dependency_engine.core.errors import (
    ConfigError,
    EngineError,
    GraphTooLargeError,
    InvalidSimulationInput,
    TaskLoadError,
    TaskValidationError,
)
from dependency_engine.core.io.dump_graph import (
    blockage_to_dict,
    error_to_dict,
    graph_to_dict,
    margins_to_dict,
    scenario_to_dict,
)
from dependency_engine.core.io.load_tasks import load_tasks, load_tasks_text
from dependency_engine.core.margin.margins import compute_margins
from dependency_engine.core.model import TaskSnapshot
from dependency_engine.core.validate.validate_tasks import summarize_tasks, validate_statuses, validate_tasks
from dependency_engine.core.views.filter_graph import filter_snapshot, subgraph
from dependency_engine.core.whatif.simulate_delay import simulate_delay

app = typer.Typer(add_completion=False, no_args_is_help=True)

PATH_HELP = "Task file (.json/.yaml/.yml), or - to read JSON from stdin"
FORMAT_HELP = "Output format: text|json"


@app.callback()
def _callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log engine passes to stderr"),
) -> None:
    """Dependency graph and critical-path engine."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            stream=sys.stderr,
            format="%(levelname)s %(name)s: %(message)s",
        )
    return


def _check_format(command: str, format: str) -> None:
    if format not in ("text", "json"):
        err = TaskValidationError(
            code=f"E_{command.upper().replace('-', '_')}_UNKNOWN_FORMAT",
            message=f"unknown format: {format} (choose one of: text, json)",
            file=None,
            path="format",
        )
        _print_errors([err])
        raise typer.Exit(code=2)


def _emit_json(command: str, ok: bool, exit_code: int, errors: list[EngineError], **body: Any) -> NoReturn:
    def _to_item(e: EngineError) -> dict:
        item = error_to_dict(e)
        item["severity"] = "error"
        item["source"] = "load" if isinstance(e, TaskLoadError) else "validate"
        return item

    payload = {
        "tool": "depgraph",
        "command": command,
        "ok": ok,
        "error_count": len(errors),
        "errors": [_to_item(e) for e in errors],
    }
    payload.update(body)
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))
    raise typer.Exit(code=exit_code)


def _fail(command: str, format: str, errors: list[EngineError], exit_code: int) -> NoReturn:
    if format == "json":
        _emit_json(command, False, exit_code, errors)
    _print_errors(errors)
    raise typer.Exit(code=exit_code)


def _read(path: str) -> dict[str, Any]:
    if path == "-":
        return load_tasks_text(sys.stdin.read(), fmt="json", file="<stdin>")
    return load_tasks(path)


def _load_snapshot(command: str, path: str, format: str) -> TaskSnapshot:
    try:
        raw = _read(path)
    except TaskLoadError as e:
        _fail(command, format, [e], 1)

    snapshot, errors = validate_tasks(raw)
    if errors or snapshot is None:
        _fail(command, format, list(errors), 2)
    return snapshot


def _load_engine_config(command: str, format: str, config_file: Optional[str]) -> EngineConfig:
    try:
        return load_config(config_file)
    except ConfigError as e:
        _fail(command, format, [e], 2)


def _parse_date_option(command: str, format: str, value: Optional[str], name: str) -> Optional[date]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        _fail(
            command,
            format,
            [
                TaskValidationError(
                    code="E_INVALID_DATE",
                    message=f"{name} must be an ISO date (YYYY-MM-DD), got {value}",
                    path=name.lstrip("-").replace("-", "_"),
                )
            ],
            2,
        )


def _parse_statuses(command: str, format: str, values: list[str]) -> list[str]:
    statuses, errors = validate_statuses(values)
    if errors:
        _fail(command, format, list(errors), 2)
    return statuses


def _run_analysis(
    command: str,
    path: str,
    format: str,
    config_file: Optional[str],
    project_start: Optional[str],
    statuses: Optional[list[str]] = None,
) -> tuple[Analysis, EngineConfig]:
    snapshot = _load_snapshot(command, path, format)
    cfg = _load_engine_config(command, format, config_file)
    start = _parse_date_option(command, format, project_start, "--project-start")
    if statuses:
        snapshot = filter_snapshot(snapshot, _parse_statuses(command, format, statuses))
    try:
        return analyze_tasks(snapshot, config=cfg, project_start=start), cfg
    except GraphTooLargeError as e:
        _fail(command, format, [e], 2)


def _warn_diagnostics(analysis: Analysis) -> None:
    for d in analysis.graph.diagnostics:
        typer.echo(f"WARN: {d}", err=True)


@app.command("validate")
def validate(
    path: str = typer.Argument("-", help=PATH_HELP),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
) -> None:
    """Check that task input has a valid shape."""
    _check_format("validate", format)
    snapshot = _load_snapshot("validate", path, format)

    if format == "text":
        typer.echo(summarize_tasks(snapshot))
        return

    _emit_json(
        "validate",
        True,
        0,
        [],
        summary={
            "task_count": len(snapshot.tasks),
            "link_count": len(snapshot.links),
            "project_start": snapshot.project_start.isoformat() if snapshot.project_start else None,
        },
    )


@app.command("analyze")
def analyze(
    path: str = typer.Argument("-", help=PATH_HELP),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
    config_file: Optional[str] = typer.Option(None, "--config", help="YAML file overriding engine defaults"),
    project_start: Optional[str] = typer.Option(None, "--project-start", help="Day 0 of the schedule (YYYY-MM-DD)"),
    status: Optional[list[str]] = typer.Option(None, "--status", help="Only include tasks with this status (repeatable)"),
    critical_only: bool = typer.Option(False, "--critical-only", help="Show only the critical path"),
    blocked_only: bool = typer.Option(False, "--blocked-only", help="Show only blocked tasks and their blockers"),
) -> None:
    """Build the dependency graph and run CPM, cycle and blockage analysis."""
    _check_format("analyze", format)
    analysis, _ = _run_analysis("analyze", path, format, config_file, project_start, status)
    graph = subgraph(
        analysis.graph,
        only_critical=critical_only,
        only_blocked=blocked_only,
        blockages=analysis.blockages,
    )

    if format == "json":
        _emit_json(
            "analyze",
            True,
            0,
            [],
            graph=graph_to_dict(graph),
            blockages=[blockage_to_dict(b) for b in analysis.blockages],
        )

    _warn_diagnostics(analysis)
    end = f" ({graph.project_end.isoformat()})" if graph.project_end else ""
    typer.echo(f"OK: {graph.stats.total_nodes} tasks, {graph.stats.total_edges} links")
    typer.echo(f"Project end: day {graph.project_duration_days}{end}")
    typer.echo("Critical path: " + (" -> ".join(graph.critical_path) or "<none>"))
    typer.echo(f"Blocked tasks: {graph.stats.blocked_nodes}")
    if graph.stats.has_cycles:
        typer.echo("Cycles: " + ", ".join(sorted(graph.stats.cycle_node_ids)) + " (times approximate)")


@app.command("critical-path")
def critical_path(
    path: str = typer.Argument("-", help=PATH_HELP),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
    config_file: Optional[str] = typer.Option(None, "--config", help="YAML file overriding engine defaults"),
    project_start: Optional[str] = typer.Option(None, "--project-start", help="Day 0 of the schedule (YYYY-MM-DD)"),
) -> None:
    """Print the critical path in dependency order."""
    _check_format("critical-path", format)
    analysis, _ = _run_analysis("critical-path", path, format, config_file, project_start)
    graph = analysis.graph

    if format == "json":
        _emit_json(
            "critical-path",
            True,
            0,
            [],
            critical_path=list(graph.critical_path),
            project_duration_days=graph.project_duration_days,
            project_end=graph.project_end.isoformat() if graph.project_end else None,
            has_cycles=graph.stats.has_cycles,
        )

    _warn_diagnostics(analysis)
    for nid in graph.critical_path:
        node = graph.nodes[nid]
        typer.echo(f"{nid}\tES={node.es}\tEF={node.ef}\t{node.task.title}")


@app.command("blockages")
def blockages(
    path: str = typer.Argument("-", help=PATH_HELP),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
) -> None:
    """List tasks held up by unfinished finish-to-start predecessors."""
    _check_format("blockages", format)
    analysis, _ = _run_analysis("blockages", path, format, None, None)

    if format == "json":
        _emit_json(
            "blockages",
            True,
            0,
            [],
            blockages=[blockage_to_dict(b) for b in analysis.blockages],
        )

    if not analysis.blockages:
        typer.echo("OK: no blocked tasks")
        return
    for b in analysis.blockages:
        typer.echo(f"{b.blocked_task_id} <- {b.blocking_task_id} [{b.link_type}]: {b.reason}")


@app.command("what-if")
def what_if(
    path: str = typer.Argument("-", help=PATH_HELP),
    task: str = typer.Option(..., "--task", help="Task id to delay"),
    delay: int = typer.Option(..., "--delay", help="Delay in days (>= 0)"),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
    config_file: Optional[str] = typer.Option(None, "--config", help="YAML file overriding engine defaults"),
    project_start: Optional[str] = typer.Option(None, "--project-start", help="Day 0 of the schedule (YYYY-MM-DD)"),
) -> None:
    """Simulate a delay on one task and report the downstream impact."""
    _check_format("what-if", format)
    analysis, cfg = _run_analysis("what-if", path, format, config_file, project_start)

    try:
        scenario = simulate_delay(analysis.graph, task, delay, config=cfg)
    except InvalidSimulationInput as e:
        _fail("what-if", format, [e], 2)

    if format == "json":
        _emit_json("what-if", True, 0, [], scenario=scenario_to_dict(scenario))

    end = f" ({scenario.new_project_end.isoformat()})" if scenario.new_project_end else ""
    typer.echo(f"Delay {task} by {delay} day(s)")
    typer.echo(
        f"Project end: day {scenario.original_project_end_days} -> day {scenario.new_project_end_days}{end}"
    )
    typer.echo(f"Critical path affected: {'yes' if scenario.critical_path_affected else 'no'}")
    for i in scenario.impacted:
        typer.echo(f"  {i.task_id}: +{i.delay_days} day(s) (ES {i.original_es} -> {i.new_es})")


@app.command("margins")
def margins(
    path: str = typer.Argument("-", help=PATH_HELP),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
    deadline: Optional[str] = typer.Option(None, "--deadline", help="Target date for tasks without successors"),
    config_file: Optional[str] = typer.Option(None, "--config", help="YAML file overriding engine defaults"),
) -> None:
    """Planned-date margin to the next follow-up, with bottlenecks."""
    _check_format("margins", format)
    analysis, cfg = _run_analysis("margins", path, format, config_file, None)
    target = _parse_date_option("margins", format, deadline, "--deadline")
    report = compute_margins(analysis.graph, deadline=target, config=cfg)

    if format == "json":
        _emit_json("margins", True, 0, [], margins=margins_to_dict(report))

    typer.echo(f"No margin: {report.no_margin_count}, low margin: {report.low_margin_count}")
    for m in report.watchlist:
        flag = " [bottleneck]" if m.is_bottleneck else ""
        typer.echo(f"{m.task_id}\t{m.margin_days}d\t{m.title}{flag}")


def _print_errors(errors: list[EngineError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="depgraph")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
