from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Iterable, Optional, Sequence

from dependency_engine.core.config.engine_config import DEFAULT_CONFIG, EngineConfig
from dependency_engine.core.errors import MALFORMED_REFERENCE, GraphDiagnostic, GraphTooLargeError
from dependency_engine.core.model import (
    DependencyLink,
    Graph,
    GraphNode,
    GraphStats,
    Task,
)

logger = logging.getLogger(__name__)


def effective_duration(task: Task, default_days: int) -> int:
    """Explicit duration wins (0 is a milestone), then the planned date span, then the default."""
    if task.duration_days is not None:
        return task.duration_days
    if task.planned_start is not None and task.planned_end is not None:
        span = (task.planned_end - task.planned_start).days
        if span > 0:
            return span
    return default_days


def resolve_project_start(tasks: Iterable[Task], explicit: Optional[date] = None) -> Optional[date]:
    if explicit is not None:
        return explicit
    starts = [t.planned_start for t in tasks if t.planned_start is not None]
    return min(starts) if starts else None


def build_graph(
    tasks: Sequence[Task],
    links: Iterable[DependencyLink] = (),
    project_start: Optional[date] = None,
    config: Optional[EngineConfig] = None,
) -> Graph:
    """Turn a task snapshot into a graph of nodes and typed, lagged links.

    Links whose endpoints are missing from the snapshot are dropped and
    reported in ``Graph.diagnostics``; this function never raises for data
    problems. The only error is an input above ``config.max_nodes``.
    """

    cfg = config or DEFAULT_CONFIG
    if len(tasks) > cfg.max_nodes:
        raise GraphTooLargeError(
            code="E_GRAPH_TOO_LARGE",
            message=f"{len(tasks)} tasks exceeds the limit of {cfg.max_nodes}",
            path="tasks",
        )

    start = resolve_project_start(tasks, project_start)

    nodes: dict[str, GraphNode] = {}
    for task in tasks:
        duration = effective_duration(task, cfg.default_duration_days)
        es = 0
        if start is not None and task.planned_start is not None:
            es = max(0, (task.planned_start - start).days)
        nodes[task.id] = GraphNode(
            task_id=task.id,
            task=task,
            duration_days=duration,
            es=es,
            ef=es + duration,
            ls=es,
            lf=es + duration,
        )

    edges: list[DependencyLink] = []
    seen: set[tuple[str, str, str, int]] = set()
    diagnostics: list[GraphDiagnostic] = []

    def add(link: DependencyLink, path: str) -> None:
        missing = [x for x in (link.source_id, link.target_id) if x not in nodes]
        if missing:
            diagnostics.append(
                GraphDiagnostic(
                    code=MALFORMED_REFERENCE,
                    message=(
                        f"link {link.source_id} -{link.link_type}-> {link.target_id} "
                        f"references unknown task id: {', '.join(missing)}"
                    ),
                    path=path,
                )
            )
            return
        # The same link declared on both of its ends is one edge.
        if link.key in seen:
            logger.debug("skipping repeated declaration of link %s", link.key)
            return
        seen.add(link.key)
        edges.append(link)

    for task in tasks:
        for i, ref in enumerate(task.predecessors):
            add(
                DependencyLink(ref.task_id, task.id, ref.link_type, ref.lag_days),
                f"{task.id}.predecessors[{i}]",
            )
        for i, ref in enumerate(task.successors):
            add(
                DependencyLink(task.id, ref.task_id, ref.link_type, ref.lag_days),
                f"{task.id}.successors[{i}]",
            )
    for i, link in enumerate(links):
        add(link, f"links[{i}]")

    if diagnostics:
        logger.warning("dropped %d link(s) with unknown endpoints", len(diagnostics))

    project_duration = max((n.ef for n in nodes.values()), default=0)
    logger.debug("built graph: %d nodes, %d edges", len(nodes), len(edges))

    return Graph(
        nodes=nodes,
        edges=edges,
        critical_path=[],
        project_start=start,
        project_end=offset_date(start, project_duration),
        project_duration_days=project_duration,
        stats=GraphStats(total_nodes=len(nodes), total_edges=len(edges)),
        diagnostics=diagnostics,
    )


def offset_date(start: Optional[date], days: int) -> Optional[date]:
    if start is None:
        return None
    return start + timedelta(days=days)
