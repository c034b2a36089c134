from __future__ import annotations

from datetime import date
from typing import Any, Optional

from dependency_engine.core.errors import EngineError
from dependency_engine.core.margin.margins import MarginReport, TaskMargin
from dependency_engine.core.model import (
    BlockageInfo,
    DependencyLink,
    Graph,
    GraphNode,
    WhatIfScenario,
)


def _iso(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d is not None else None


def error_to_dict(e: EngineError) -> dict[str, Any]:
    return {"code": e.code, "message": e.message, "file": e.file, "path": e.path}


def node_to_dict(n: GraphNode) -> dict[str, Any]:
    return {
        "id": n.task_id,
        "title": n.task.title,
        "status": n.task.status,
        "duration_days": n.duration_days,
        "es": n.es,
        "ef": n.ef,
        "ls": n.ls,
        "lf": n.lf,
        "slack": n.slack,
        "raw_slack": n.raw_slack,
        "is_critical": n.is_critical,
        "is_blocked": n.is_blocked,
        "blocking_reason": n.blocking_reason,
        "in_cycle": n.in_cycle,
    }


def link_to_dict(e: DependencyLink) -> dict[str, Any]:
    return {
        "source": e.source_id,
        "target": e.target_id,
        "type": e.link_type,
        "lag": e.lag_days,
        "is_critical": e.is_critical,
    }


def graph_to_dict(graph: Graph) -> dict[str, Any]:
    return {
        "nodes": [node_to_dict(n) for n in graph.nodes.values()],
        "edges": [link_to_dict(e) for e in graph.edges],
        "critical_path": list(graph.critical_path),
        "project_start": _iso(graph.project_start),
        "project_end": _iso(graph.project_end),
        "project_duration_days": graph.project_duration_days,
        "stats": {
            "total_nodes": graph.stats.total_nodes,
            "total_edges": graph.stats.total_edges,
            "has_cycles": graph.stats.has_cycles,
            "cycle_node_ids": sorted(graph.stats.cycle_node_ids),
            "critical_nodes": graph.stats.critical_nodes,
            "blocked_nodes": graph.stats.blocked_nodes,
        },
        "diagnostics": [error_to_dict(d) for d in graph.diagnostics],
    }


def blockage_to_dict(b: BlockageInfo) -> dict[str, Any]:
    return {
        "blocked_task_id": b.blocked_task_id,
        "blocked_task_title": b.blocked_task_title,
        "blocking_task_id": b.blocking_task_id,
        "blocking_task_title": b.blocking_task_title,
        "link_type": b.link_type,
        "reason": b.reason,
    }


def scenario_to_dict(s: WhatIfScenario) -> dict[str, Any]:
    return {
        "task_id": s.task_id,
        "delay_days": s.delay_days,
        "original_project_end_days": s.original_project_end_days,
        "new_project_end_days": s.new_project_end_days,
        "original_project_end": _iso(s.original_project_end),
        "new_project_end": _iso(s.new_project_end),
        "project_delay_days": s.project_delay_days,
        "critical_path_affected": s.critical_path_affected,
        "impacted": [
            {
                "task_id": i.task_id,
                "original_es": i.original_es,
                "new_es": i.new_es,
                "original_ef": i.original_ef,
                "new_ef": i.new_ef,
                "delay_days": i.delay_days,
            }
            for i in s.impacted
        ],
    }


def _margin_to_dict(m: TaskMargin) -> dict[str, Any]:
    return {
        "task_id": m.task_id,
        "title": m.title,
        "status": m.status,
        "margin_days": m.margin_days,
        "successor_count": m.successor_count,
        "is_bottleneck": m.is_bottleneck,
        "is_critical": m.is_critical,
    }


def margins_to_dict(r: MarginReport) -> dict[str, Any]:
    return {
        "items": [_margin_to_dict(m) for m in r.items],
        "watchlist": [m.task_id for m in r.watchlist],
        "bottlenecks": [m.task_id for m in r.bottlenecks],
        "no_margin_count": r.no_margin_count,
        "low_margin_count": r.low_margin_count,
    }
