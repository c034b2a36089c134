from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Literal, Optional

from dependency_engine.core.errors import GraphDiagnostic


LinkType = Literal["FS", "SS", "FF", "SF"]
TaskStatus = Literal["not_started", "in_progress", "waiting", "blocked", "done", "cancelled"]

LINK_TYPES: tuple[str, ...] = ("FS", "SS", "FF", "SF")
TASK_STATUSES: tuple[str, ...] = (
    "not_started",
    "in_progress",
    "waiting",
    "blocked",
    "done",
    "cancelled",
)
CLOSED_STATUSES: frozenset[str] = frozenset({"done", "cancelled"})


@dataclass(frozen=True)
class TaskRef:
    """One end of a dependency as declared on a task."""

    task_id: str
    link_type: LinkType = "FS"
    lag_days: int = 0


@dataclass(frozen=True)
class Task:
    id: str
    title: str
    status: TaskStatus = "not_started"
    planned_start: Optional[date] = None
    planned_end: Optional[date] = None
    duration_days: Optional[int] = None
    predecessors: tuple[TaskRef, ...] = ()
    successors: tuple[TaskRef, ...] = ()


@dataclass(frozen=True)
class DependencyLink:
    source_id: str
    target_id: str
    link_type: LinkType = "FS"
    lag_days: int = 0
    is_critical: bool = False

    @property
    def key(self) -> tuple[str, str, str, int]:
        return (self.source_id, self.target_id, self.link_type, self.lag_days)


@dataclass(frozen=True)
class TaskSnapshot:
    tasks: list[Task]
    links: list[DependencyLink] = field(default_factory=list)
    project_start: Optional[date] = None


@dataclass(frozen=True)
class GraphNode:
    task_id: str
    task: Task
    duration_days: int
    es: int = 0
    ef: int = 0
    ls: int = 0
    lf: int = 0
    slack: int = 0
    # LS - ES before clamping; negative values flag inconsistent input.
    raw_slack: int = 0
    is_critical: bool = False
    is_blocked: bool = False
    blocking_reason: Optional[str] = None
    in_cycle: bool = False


@dataclass(frozen=True)
class GraphStats:
    total_nodes: int
    total_edges: int
    has_cycles: bool = False
    cycle_node_ids: frozenset[str] = frozenset()
    critical_nodes: int = 0
    blocked_nodes: int = 0


@dataclass(frozen=True)
class Graph:
    nodes: dict[str, GraphNode]
    edges: list[DependencyLink]
    critical_path: list[str]
    project_start: Optional[date]
    project_end: Optional[date]
    project_duration_days: int
    stats: GraphStats
    diagnostics: list[GraphDiagnostic] = field(default_factory=list)


@dataclass(frozen=True)
class BlockageInfo:
    blocked_task_id: str
    blocked_task_title: str
    blocking_task_id: str
    blocking_task_title: str
    link_type: LinkType
    reason: str


@dataclass(frozen=True)
class ImpactedTask:
    task_id: str
    original_es: int
    new_es: int
    original_ef: int
    new_ef: int
    delay_days: int


@dataclass(frozen=True)
class WhatIfScenario:
    task_id: str
    delay_days: int
    original_project_end_days: int
    new_project_end_days: int
    original_project_end: Optional[date]
    new_project_end: Optional[date]
    project_delay_days: int
    critical_path_affected: bool
    impacted: list[ImpactedTask]
