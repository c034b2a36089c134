from __future__ import annotations

import logging
from collections import deque
from dataclasses import replace
from typing import Iterable

from dependency_engine.core.graph.queries import incoming_index
from dependency_engine.core.model import CLOSED_STATUSES, BlockageInfo, DependencyLink, Graph

logger = logging.getLogger(__name__)


STATUS_LABELS: dict[str, str] = {
    "not_started": "not started",
    "in_progress": "in progress",
    "waiting": "waiting",
    "blocked": "blocked",
    "done": "done",
    "cancelled": "cancelled",
}

LINK_REQUIREMENTS: dict[str, str] = {
    "FS": "must finish before this task can start",
    "SS": "must start before this task can start",
    "FF": "must finish before this task can finish",
    "SF": "must start before this task can finish",
}


def is_blocking(link: DependencyLink, predecessor_status: str) -> bool:
    """Only finish-to-start links gate a task's start."""
    return link.link_type == "FS" and predecessor_status != "done"


def blockage_reason(title: str, status: str, link_type: str) -> str:
    return f'"{title}" ({STATUS_LABELS.get(status, status)}) {LINK_REQUIREMENTS[link_type]}'


def detect_blockages(graph: Graph) -> list[BlockageInfo]:
    """List every unsatisfied finish-to-start predecessor of every open task.

    One record per blocking link; a task with two unfinished predecessors
    appears twice. Order follows node order, then link order.
    """

    incoming = incoming_index(graph)
    out: list[BlockageInfo] = []

    for nid, node in graph.nodes.items():
        if node.task.status in CLOSED_STATUSES:
            continue
        for link in incoming.get(nid, []):
            pred = graph.nodes[link.source_id].task
            if not is_blocking(link, pred.status):
                continue
            out.append(
                BlockageInfo(
                    blocked_task_id=nid,
                    blocked_task_title=node.task.title,
                    blocking_task_id=pred.id,
                    blocking_task_title=pred.title,
                    link_type=link.link_type,
                    reason=blockage_reason(pred.title, pred.status, link.link_type),
                )
            )

    logger.debug("found %d blockage(s)", len(out))
    return out


def apply_blockages(graph: Graph, blockages: Iterable[BlockageInfo]) -> Graph:
    """Return a copy of graph with is_blocked/blocking_reason set from blockages."""
    first_reason: dict[str, str] = {}
    for b in blockages:
        first_reason.setdefault(b.blocked_task_id, b.reason)

    nodes = {
        nid: replace(
            node,
            is_blocked=nid in first_reason,
            blocking_reason=first_reason.get(nid),
        )
        for nid, node in graph.nodes.items()
    }
    return replace(graph, nodes=nodes, stats=replace(graph.stats, blocked_nodes=len(first_reason)))


def blockage_chain(graph: Graph, task_id: str) -> list[str]:
    """Every ancestor that transitively blocks task_id, nearest first."""
    incoming = incoming_index(graph)
    chain: list[str] = []
    seen = {task_id}
    q: deque[str] = deque([task_id])
    while q:
        cur = q.popleft()
        for link in incoming.get(cur, []):
            pred = graph.nodes[link.source_id]
            if pred.task_id in seen or not is_blocking(link, pred.task.status):
                continue
            seen.add(pred.task_id)
            chain.append(pred.task_id)
            q.append(pred.task_id)
    return chain


def unblocked_by(graph: Graph, task_id: str) -> list[str]:
    """Tasks whose only remaining blocker is task_id."""
    incoming = incoming_index(graph)
    out: list[str] = []
    for nid, node in graph.nodes.items():
        if nid == task_id or node.task.status in CLOSED_STATUSES:
            continue
        blockers = {
            link.source_id
            for link in incoming.get(nid, [])
            if is_blocking(link, graph.nodes[link.source_id].task.status)
        }
        if blockers == {task_id}:
            out.append(nid)
    return out
