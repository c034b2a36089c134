from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Optional, Sequence

from dependency_engine.core.model import BlockageInfo, Graph, Task, TaskSnapshot


def filter_tasks(tasks: Sequence[Task], statuses: Optional[Iterable[str]] = None) -> list[Task]:
    """Keep tasks whose status is listed; no statuses means keep everything.

    References to tasks that were filtered out are removed from the kept
    tasks, so hidden tasks do not show up as unknown ids later. References
    to ids that never existed are left alone.
    """
    wanted = set(statuses or [])
    if not wanted:
        return list(tasks)

    hidden = {t.id for t in tasks if t.status not in wanted}
    return [
        replace(
            t,
            predecessors=tuple(r for r in t.predecessors if r.task_id not in hidden),
            successors=tuple(r for r in t.successors if r.task_id not in hidden),
        )
        for t in tasks
        if t.id not in hidden
    ]


def filter_snapshot(snapshot: TaskSnapshot, statuses: Optional[Iterable[str]] = None) -> TaskSnapshot:
    """``filter_tasks`` for a whole snapshot, top-level links included."""
    wanted = set(statuses or [])
    if not wanted:
        return snapshot
    hidden = {t.id for t in snapshot.tasks if t.status not in wanted}
    return TaskSnapshot(
        tasks=filter_tasks(snapshot.tasks, wanted),
        links=[e for e in snapshot.links if e.source_id not in hidden and e.target_id not in hidden],
        project_start=snapshot.project_start,
    )


def subgraph(
    graph: Graph,
    only_critical: bool = False,
    only_blocked: bool = False,
    blockages: Iterable[BlockageInfo] = (),
) -> Graph:
    """Restrict a computed graph for display.

    ``only_critical`` keeps the critical path; ``only_blocked`` keeps blocked
    tasks and their blockers. Edges survive only when both ends do. Times,
    cycle flags and project dates are inherited, not recomputed.
    """
    if only_critical:
        keep = set(graph.critical_path)
    elif only_blocked:
        keep = set()
        for b in blockages:
            keep.add(b.blocked_task_id)
            keep.add(b.blocking_task_id)
    else:
        keep = set(graph.nodes)

    nodes = {nid: n for nid, n in graph.nodes.items() if nid in keep}
    edges = [e for e in graph.edges if e.source_id in keep and e.target_id in keep]

    return replace(
        graph,
        nodes=nodes,
        edges=edges,
        critical_path=[nid for nid in graph.critical_path if nid in keep],
        stats=replace(
            graph.stats,
            total_nodes=len(nodes),
            total_edges=len(edges),
            critical_nodes=sum(1 for n in nodes.values() if n.is_critical),
            blocked_nodes=sum(1 for n in nodes.values() if n.is_blocked),
        ),
    )
