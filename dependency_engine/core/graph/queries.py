from __future__ import annotations

import heapq
from collections import defaultdict
from typing import Iterable

from dependency_engine.core.model import DependencyLink, Graph


def outgoing_index(graph: Graph) -> dict[str, list[DependencyLink]]:
    out: dict[str, list[DependencyLink]] = defaultdict(list)
    for e in graph.edges:
        out[e.source_id].append(e)
    return out


def incoming_index(graph: Graph) -> dict[str, list[DependencyLink]]:
    inc: dict[str, list[DependencyLink]] = defaultdict(list)
    for e in graph.edges:
        inc[e.target_id].append(e)
    return inc


def outgoing_links(graph: Graph, task_id: str) -> list[DependencyLink]:
    return [e for e in graph.edges if e.source_id == task_id]


def incoming_links(graph: Graph, task_id: str) -> list[DependencyLink]:
    return [e for e in graph.edges if e.target_id == task_id]


def links_between(graph: Graph, source_id: str, target_id: str) -> list[DependencyLink]:
    return [e for e in graph.edges if e.source_id == source_id and e.target_id == target_id]


def successor_ids(graph: Graph, task_id: str) -> list[str]:
    return _unique(e.target_id for e in outgoing_links(graph, task_id))


def predecessor_ids(graph: Graph, task_id: str) -> list[str]:
    return _unique(e.source_id for e in incoming_links(graph, task_id))


def root_ids(graph: Graph) -> list[str]:
    has_pred = {e.target_id for e in graph.edges}
    return [nid for nid in graph.nodes if nid not in has_pred]


def leaf_ids(graph: Graph) -> list[str]:
    has_succ = {e.source_id for e in graph.edges}
    return [nid for nid in graph.nodes if nid not in has_succ]


def topological_order(graph: Graph) -> tuple[list[str], list[str]]:
    """Kahn's algorithm with task-index tie-break.

    Returns (ordered, stuck): ``stuck`` holds, in task index order, the nodes
    that sit on or behind a cycle and could not be ordered.
    """
    position = {nid: i for i, nid in enumerate(graph.nodes)}
    in_degree = {nid: 0 for nid in graph.nodes}
    out = outgoing_index(graph)
    for e in graph.edges:
        in_degree[e.target_id] += 1

    ready = [(position[nid], nid) for nid, d in in_degree.items() if d == 0]
    heapq.heapify(ready)
    ordered: list[str] = []
    while ready:
        _, nid = heapq.heappop(ready)
        ordered.append(nid)
        for e in out.get(nid, []):
            in_degree[e.target_id] -= 1
            if in_degree[e.target_id] == 0:
                heapq.heappush(ready, (position[e.target_id], e.target_id))

    done = set(ordered)
    stuck = [nid for nid in graph.nodes if nid not in done]
    return ordered, stuck


def _unique(ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for x in ids:
        if x not in seen:
            seen.add(x)
            out.append(x)
    return out
