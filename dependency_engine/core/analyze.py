from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from dependency_engine.core.blockage.detect_blockages import apply_blockages, detect_blockages
from dependency_engine.core.config.engine_config import EngineConfig
from dependency_engine.core.cpm.critical_path import compute_critical_path
from dependency_engine.core.cycles.detect_cycles import detect_cycles
from dependency_engine.core.graph.build_graph import build_graph
from dependency_engine.core.model import BlockageInfo, Graph, TaskSnapshot


@dataclass(frozen=True)
class Analysis:
    graph: Graph
    blockages: list[BlockageInfo]


def analyze_tasks(
    snapshot: TaskSnapshot,
    config: Optional[EngineConfig] = None,
    project_start: Optional[date] = None,
) -> Analysis:
    """build -> cycles -> CPM -> blockages, on a fresh graph every call."""
    graph = build_graph(
        snapshot.tasks,
        snapshot.links,
        project_start=project_start or snapshot.project_start,
        config=config,
    )
    graph = compute_critical_path(graph, cycles=detect_cycles(graph))
    blockages = detect_blockages(graph)
    return Analysis(graph=apply_blockages(graph, blockages), blockages=blockages)
