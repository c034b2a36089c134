from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from dependency_engine.core.config.engine_config import DEFAULT_CONFIG, EngineConfig
from dependency_engine.core.graph.queries import outgoing_index
from dependency_engine.core.model import CLOSED_STATUSES, Graph, GraphNode


# Planned-date margins are a convenience view for "days before the next
# follow-up needs this task". They never decide criticality; CPM slack does.


@dataclass(frozen=True)
class TaskMargin:
    task_id: str
    title: str
    status: str
    margin_days: int
    successor_count: int
    is_bottleneck: bool
    is_critical: bool


@dataclass(frozen=True)
class MarginReport:
    items: list[TaskMargin]
    # Items inside the margin window, or bottlenecks.
    watchlist: list[TaskMargin]
    bottlenecks: list[TaskMargin]
    no_margin_count: int
    low_margin_count: int


def compute_margins(
    graph: Graph,
    deadline: Optional[date] = None,
    config: Optional[EngineConfig] = None,
) -> MarginReport:
    cfg = config or DEFAULT_CONFIG
    outgoing = outgoing_index(graph)
    start = graph.project_start

    def planned_end(node: GraphNode) -> int:
        if start is not None and node.task.planned_end is not None:
            return (node.task.planned_end - start).days
        return node.ef

    def planned_start(node: GraphNode) -> int:
        if start is not None and node.task.planned_start is not None:
            return (node.task.planned_start - start).days
        return node.es

    if deadline is not None and start is not None:
        deadline_offset = (deadline - start).days
    else:
        deadline_offset = graph.project_duration_days

    items: list[TaskMargin] = []
    for nid, node in graph.nodes.items():
        if node.task.status in CLOSED_STATUSES:
            continue
        successors = sorted({e.target_id for e in outgoing.get(nid, []) if e.target_id != nid})
        if successors:
            next_start = min(planned_start(graph.nodes[s]) for s in successors)
        else:
            next_start = deadline_offset
        items.append(
            TaskMargin(
                task_id=nid,
                title=node.task.title,
                status=node.task.status,
                margin_days=max(0, next_start - planned_end(node)),
                successor_count=len(successors),
                is_bottleneck=len(successors) >= cfg.bottleneck_successors,
                is_critical=node.is_critical,
            )
        )

    items.sort(key=lambda m: (m.margin_days, -m.successor_count, m.task_id))

    return MarginReport(
        items=items,
        watchlist=[m for m in items if m.margin_days < cfg.margin_window_days or m.is_bottleneck],
        bottlenecks=[m for m in items if m.is_bottleneck],
        no_margin_count=sum(1 for m in items if m.margin_days == 0),
        low_margin_count=sum(1 for m in items if 0 < m.margin_days <= cfg.low_margin_days),
    )
