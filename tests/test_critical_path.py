import random
from datetime import date
from pathlib import Path

from dependency_engine.core.analyze import analyze_tasks
from dependency_engine.core.cpm.critical_path import compute_critical_path
from dependency_engine.core.cycles.detect_cycles import detect_cycles
from dependency_engine.core.errors import CYCLE_DETECTED, INCONSISTENT_TIMING
from dependency_engine.core.graph.build_graph import build_graph
from dependency_engine.core.io.load_tasks import load_tasks
from dependency_engine.core.model import DependencyLink, Task, TaskRef
from dependency_engine.core.validate.validate_tasks import validate_tasks

EXAMPLES = Path(__file__).resolve().parent.parent / "examples"


def _task(tid: str, duration: int, preds=()) -> Task:
    return Task(
        id=tid,
        title=tid,
        duration_days=duration,
        predecessors=tuple(TaskRef(p) if isinstance(p, str) else p for p in preds),
    )


def _times(graph, tid):
    n = graph.nodes[tid]
    return (n.es, n.ef, n.ls, n.lf, n.slack)


def test_simple_chain():
    g = compute_critical_path(
        build_graph([_task("A", 5), _task("B", 3, ["A"]), _task("C", 4, ["B"])])
    )
    assert _times(g, "A") == (0, 5, 0, 5, 0)
    assert _times(g, "B") == (5, 8, 5, 8, 0)
    assert _times(g, "C") == (8, 12, 8, 12, 0)
    assert g.project_duration_days == 12
    assert g.critical_path == ["A", "B", "C"]
    assert all(n.is_critical for n in g.nodes.values())
    assert all(e.is_critical for e in g.edges)


def test_parallel_paths_with_slack():
    tasks = [_task("A", 2), _task("B", 1, ["A"]), _task("C", 3, ["A", "B"])]
    g = compute_critical_path(build_graph(tasks))
    assert g.nodes["C"].es == 3
    assert g.project_duration_days == 6
    assert g.nodes["B"].is_critical
    assert g.critical_path == ["A", "B", "C"]
    critical_edges = {(e.source_id, e.target_id) for e in g.edges if e.is_critical}
    assert critical_edges == {("A", "B"), ("B", "C")}


def test_non_critical_branch_has_slack():
    tasks = [_task("A", 2), _task("B", 10, ["A"]), _task("C", 3, ["A"]), _task("D", 1, ["B", "C"])]
    g = compute_critical_path(build_graph(tasks))
    assert _times(g, "C") == (2, 5, 9, 12, 7)
    assert g.nodes["C"].is_critical is False
    assert g.critical_path == ["A", "B", "D"]


def test_start_to_start_with_lag():
    g = compute_critical_path(build_graph([_task("A", 4), _task("B", 2, [TaskRef("A", "SS", 1)])]))
    assert _times(g, "B") == (1, 3, 2, 4, 1)
    assert _times(g, "A") == (0, 4, 0, 4, 0)


def test_finish_to_finish_with_lag():
    g = compute_critical_path(build_graph([_task("A", 4), _task("B", 1, [TaskRef("A", "FF", 2)])]))
    assert _times(g, "B") == (5, 6, 5, 6, 0)
    assert g.critical_path == ["A", "B"]


def test_start_to_finish():
    g = compute_critical_path(build_graph([_task("A", 3), _task("B", 2, [TaskRef("A", "SF", 5)])]))
    assert _times(g, "B") == (3, 5, 3, 5, 0)
    assert g.nodes["A"].slack == 0


def test_negative_lag_is_lead_time():
    g = compute_critical_path(build_graph([_task("A", 5), _task("B", 3, [TaskRef("A", "FS", -2)])]))
    assert g.nodes["B"].es == 3
    assert g.project_duration_days == 6


def test_start_is_never_before_project_start():
    g = compute_critical_path(build_graph([_task("A", 1), _task("B", 5, [TaskRef("A", "FF", 0)])]))
    assert g.nodes["B"].es == 0
    assert g.nodes["B"].ef == 5


def test_input_graph_is_not_mutated():
    base = build_graph([_task("A", 5), _task("B", 3, ["A"])])
    computed = compute_critical_path(base)
    assert base.nodes["B"].es == 0
    assert base.critical_path == []
    assert computed.nodes["B"].es == 5


def test_ties_broken_by_es_then_id():
    tasks = [_task("Z", 3), _task("M", 3), _task("A", 2, [TaskRef("Z", "FS", 0)]), _task("B", 2, ["M"])]
    g = compute_critical_path(build_graph(tasks))
    assert g.critical_path == ["M", "Z", "A", "B"]


def test_repeated_runs_are_identical():
    tasks = [_task("A", 2), _task("B", 1, ["A"]), _task("C", 3, ["A", "B"])]
    first = compute_critical_path(build_graph(tasks))
    second = compute_critical_path(build_graph(tasks))
    assert first == second


def test_cycle_gives_approximate_result_and_flags():
    snapshot, _ = validate_tasks(load_tasks(str(EXAMPLES / "cycle.json")))
    assert snapshot is not None
    g = analyze_tasks(snapshot).graph
    assert g.stats.has_cycles is True
    assert g.stats.cycle_node_ids == frozenset({"B", "C"})
    assert g.nodes["B"].in_cycle and not g.nodes["D"].in_cycle
    messages = [d.message for d in g.diagnostics if d.code == CYCLE_DETECTED]
    assert messages == ["dependency cycle detected: B -> C -> B"]
    assert any(d.code == INCONSISTENT_TIMING for d in g.diagnostics)
    assert all(n.slack >= 0 for n in g.nodes.values())
    assert g.project_duration_days == 8


def test_calendar_example():
    snapshot, _ = validate_tasks(load_tasks(str(EXAMPLES / "opening.yaml")))
    assert snapshot is not None
    g = analyze_tasks(snapshot).graph
    assert g.project_duration_days == 41
    assert g.project_end == date(2026, 2, 15)
    assert g.critical_path == ["FIT", "STOCK", "OPEN"]
    assert g.nodes["TRAIN"].slack == 11
    assert g.nodes["HIRE"].slack == 11
    assert g.nodes["OPEN"].duration_days == 0


def test_critical_iff_zero_slack_on_random_graphs():
    rng = random.Random(7)
    types = ["FS", "SS", "FF", "SF"]
    for _ in range(100):
        n = rng.randint(1, 10)
        tasks = [_task(f"T{i}", rng.randint(0, 6)) for i in range(n)]
        links = []
        for _ in range(rng.randint(0, 2 * n)):
            a, b = rng.randrange(n), rng.randrange(n)
            # mostly forward links, with the odd back link to make cycles
            if a > b and rng.random() < 0.8:
                a, b = b, a
            links.append(DependencyLink(f"T{a}", f"T{b}", rng.choice(types), rng.randint(-2, 3)))
        g = compute_critical_path(build_graph(tasks, links))
        for node in g.nodes.values():
            assert node.slack >= 0
            assert node.is_critical == (node.slack == 0)
            assert node.ef == node.es + node.duration_days
            assert node.lf == node.ls + node.duration_days
        assert set(g.critical_path) == {nid for nid, n in g.nodes.items() if n.is_critical}
        assert g.project_duration_days == max(n.ef for n in g.nodes.values())


def test_precomputed_cycle_report_gives_same_graph():
    snapshot, _ = validate_tasks(load_tasks(str(EXAMPLES / "cycle.json")))
    g = build_graph(snapshot.tasks, snapshot.links)
    assert compute_critical_path(g, cycles=detect_cycles(g)) == compute_critical_path(g)
