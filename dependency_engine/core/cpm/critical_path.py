from __future__ import annotations

import heapq
import logging
from dataclasses import replace
from typing import Optional

from dependency_engine.core.cycles.detect_cycles import CycleReport, detect_cycles
from dependency_engine.core.errors import CYCLE_DETECTED, INCONSISTENT_TIMING, GraphDiagnostic
from dependency_engine.core.graph.build_graph import offset_date
from dependency_engine.core.graph.queries import incoming_index, outgoing_index, topological_order
from dependency_engine.core.model import DependencyLink, Graph, GraphNode

logger = logging.getLogger(__name__)


def forward_constraint(link: DependencyLink, es: int, ef: int) -> tuple[Optional[int], Optional[int]]:
    """Floor a predecessor (with times es/ef) puts on its successor.

    Returns (start_floor, finish_floor); exactly one of them is set.
    """
    if link.link_type == "SS":
        return es + link.lag_days, None
    if link.link_type == "FF":
        return None, ef + link.lag_days
    if link.link_type == "SF":
        return None, es + link.lag_days
    return ef + link.lag_days, None


def earliest_times(duration: int, floors: list[tuple[Optional[int], Optional[int]]]) -> tuple[int, int]:
    """ES/EF of a node given the floors of all its incoming links."""
    start_floor = max((s for s, _ in floors if s is not None), default=None)
    finish_floor = max((f for _, f in floors if f is not None), default=None)

    es = start_floor if start_floor is not None else 0
    if finish_floor is not None:
        es = max(es, finish_floor - duration)
    es = max(0, es)
    return es, es + duration


def latest_finish_bound(link: DependencyLink, duration: int, succ_ls: int, succ_lf: int) -> int:
    """Ceiling a successor link puts on its predecessor's latest finish."""
    lag = link.lag_days
    if link.link_type == "SS":
        return succ_ls - lag + duration
    if link.link_type == "FF":
        return succ_lf - lag
    if link.link_type == "SF":
        return succ_lf - lag + duration
    return succ_ls - lag


def _is_driving(link: DependencyLink, es: dict[str, int], ef: dict[str, int]) -> bool:
    start_floor, finish_floor = forward_constraint(link, es[link.source_id], ef[link.source_id])
    if start_floor is not None:
        return start_floor == es[link.target_id]
    return finish_floor == ef[link.target_id]


def compute_critical_path(graph: Graph, cycles: Optional[CycleReport] = None) -> Graph:
    """Run the CPM forward and backward passes.

    Returns a new Graph with ES/EF/LS/LF, slack and criticality populated;
    the input graph and its tasks are left untouched. Nodes on or behind a
    cycle are evaluated in task order and their times are approximate.
    """

    report = cycles if cycles is not None else detect_cycles(graph)
    ordered, stuck = topological_order(graph)
    order = ordered + stuck
    if stuck:
        logger.debug("%d node(s) evaluated outside dependency order", len(stuck))

    incoming = incoming_index(graph)
    outgoing = outgoing_index(graph)
    duration = {nid: n.duration_days for nid, n in graph.nodes.items()}

    # Forward pass.
    es: dict[str, int] = {nid: n.es for nid, n in graph.nodes.items()}
    ef: dict[str, int] = {nid: n.es + n.duration_days for nid, n in graph.nodes.items()}
    for nid in order:
        links = incoming.get(nid, [])
        if not links:
            ef[nid] = es[nid] + duration[nid]
            continue
        floors = [forward_constraint(e, es[e.source_id], ef[e.source_id]) for e in links]
        es[nid], ef[nid] = earliest_times(duration[nid], floors)

    project_end = max(ef.values(), default=0)

    # Backward pass.
    lf: dict[str, int] = {nid: project_end for nid in graph.nodes}
    ls: dict[str, int] = {nid: project_end - duration[nid] for nid in graph.nodes}
    for nid in reversed(order):
        bound = project_end
        for e in outgoing.get(nid, []):
            bound = min(bound, latest_finish_bound(e, duration[nid], ls[e.target_id], lf[e.target_id]))
        lf[nid] = bound
        ls[nid] = bound - duration[nid]

    diagnostics = [
        d for d in graph.diagnostics if d.code not in (CYCLE_DETECTED, INCONSISTENT_TIMING)
    ]
    for cycle in report.cycles:
        diagnostics.append(
            GraphDiagnostic(
                code=CYCLE_DETECTED,
                message="dependency cycle detected: " + " -> ".join(cycle),
                path=cycle[0],
            )
        )

    nodes: dict[str, GraphNode] = {}
    for nid, node in graph.nodes.items():
        raw_slack = ls[nid] - es[nid]
        if raw_slack < 0:
            diagnostics.append(
                GraphDiagnostic(
                    code=INCONSISTENT_TIMING,
                    message=f"negative slack ({raw_slack} days) clamped to 0",
                    path=nid,
                )
            )
        slack = max(0, raw_slack)
        nodes[nid] = replace(
            node,
            es=es[nid],
            ef=ef[nid],
            ls=ls[nid],
            lf=lf[nid],
            slack=slack,
            raw_slack=raw_slack,
            is_critical=slack == 0,
            in_cycle=nid in report.cycle_node_ids,
        )

    edges = [
        replace(
            e,
            is_critical=(
                nodes[e.source_id].is_critical
                and nodes[e.target_id].is_critical
                and _is_driving(e, es, ef)
            ),
        )
        for e in graph.edges
    ]

    critical_path = _order_critical(nodes, edges)
    logger.debug(
        "cpm: project end %d, %d critical of %d nodes", project_end, len(critical_path), len(nodes)
    )

    return replace(
        graph,
        nodes=nodes,
        edges=edges,
        critical_path=critical_path,
        project_end=offset_date(graph.project_start, project_end),
        project_duration_days=project_end,
        stats=replace(
            graph.stats,
            total_nodes=len(nodes),
            total_edges=len(edges),
            has_cycles=report.has_cycles,
            cycle_node_ids=report.cycle_node_ids,
            critical_nodes=len(critical_path),
        ),
        diagnostics=diagnostics,
    )


def _order_critical(nodes: dict[str, GraphNode], edges: list[DependencyLink]) -> list[str]:
    """Critical nodes in dependency order; ties go to the earliest ES, then task id."""
    critical = {nid for nid, n in nodes.items() if n.is_critical}
    in_degree = {nid: 0 for nid in critical}
    succ: dict[str, list[str]] = {nid: [] for nid in critical}
    for e in edges:
        if e.source_id in critical and e.target_id in critical and e.source_id != e.target_id:
            succ[e.source_id].append(e.target_id)
            in_degree[e.target_id] += 1

    ready = [(nodes[nid].es, nid) for nid, d in in_degree.items() if d == 0]
    heapq.heapify(ready)
    out: list[str] = []
    while ready:
        _, nid = heapq.heappop(ready)
        out.append(nid)
        for nxt in succ[nid]:
            in_degree[nxt] -= 1
            if in_degree[nxt] == 0:
                heapq.heappush(ready, (nodes[nxt].es, nxt))

    placed = set(out)
    out.extend(sorted((nid for nid in critical if nid not in placed), key=lambda x: (nodes[x].es, x)))
    return out
