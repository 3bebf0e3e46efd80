"""Layout module — layered left-to-right placement of conversation nodes.

Phases:
  1. Rank assignment  (longest-path BFS, depth-capped for cycles)
  2. Row grouping     (one row per rank, in input order)
  3. Crossing minimization (single top-down barycenter pass)
  4. Node sizing      (height grows with lines/options/branches)
  5. Coordinate assignment (columns by rank, rows centered on an anchor)

Only nodes without explicit coordinates are expected to go through here; the
codec calls ``layout`` when a document carries no ``canvas`` data at all.
"""

from __future__ import annotations

import copy
import logging
from bisect import bisect_right, insort
from collections import deque
from dataclasses import dataclass
from itertools import groupby
from operator import itemgetter

import networkx as nx

from questflow.config import DEFAULT_LAYOUT_CONFIG, LayoutConfig
from questflow.graph import Edge, Node, Position, SwitchNode

logger = logging.getLogger(__name__)

# ─── Graph Construction ───────────────────────────────────────────────────────


def build_digraph(nodes: list[Node], edges: list[Edge]) -> nx.MultiDiGraph:
    """Build a MultiDiGraph keyed by node id, one edge per option/branch handle.

    Parallel edges are kept (two options opening the same node count twice
    toward in-degree and barycenter). Edges whose source or target is not a
    node of the graph are dropped.
    """
    graph: nx.MultiDiGraph = nx.MultiDiGraph()
    for node in nodes:
        graph.add_node(node.id, data=node)

    for edge in edges:
        if edge.source in graph and edge.target in graph:
            graph.add_edge(edge.source, edge.target, key=edge.source_handle)

    return graph


# ─── Rank Assignment ──────────────────────────────────────────────────────────


class RankAssignment:
    """Result of rank assignment: each node is assigned a rank (column).

    Rank 0 is the leftmost column.

    Attributes:
        ranks: Maps node id → rank.
        max_rank: Highest rank in use (0 for an empty or edgeless graph).
    """

    def __init__(self, ranks: dict[str, int], max_rank: int) -> None:
        self.ranks = ranks
        self.max_rank = max_rank

    @classmethod
    def assign(cls, graph: nx.MultiDiGraph, max_depth: int = DEFAULT_LAYOUT_CONFIG.max_rank_depth) -> RankAssignment:
        """Assign ranks by breadth-first longest-path relaxation.

        Algorithm: seed every in-degree-0 node at rank 0 (or, when every node
        has an incoming edge, the first node). Pop nodes breadth-first; for an
        edge u→v with rank[u]+1 > rank[v], raise rank[v] and re-enqueue v.
        Propagation stops at nodes of rank ``max_depth`` so cycles terminate.
        Nodes never reached get rank 0.
        """
        order: list[str] = list(graph.nodes)
        ranks: dict[str, int] = {}
        queue: deque[str] = deque()

        for node_id in order:
            if graph.in_degree(node_id) == 0:
                queue.append(node_id)
                ranks[node_id] = 0

        if not queue and order:
            queue.append(order[0])
            ranks[order[0]] = 0

        visited: set[str] = set()
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)

            current_rank = ranks[current]
            for _, nxt in graph.out_edges(current):
                if current_rank + 1 > ranks.get(nxt, 0) and current_rank < max_depth:
                    ranks[nxt] = current_rank + 1
                    queue.append(nxt)
                    # Raised rank must flow on to nxt's successors again.
                    visited.discard(nxt)

        for node_id in order:
            ranks.setdefault(node_id, 0)

        max_rank = max(ranks.values(), default=0)
        return cls(ranks=ranks, max_rank=max_rank)


def group_rows(order: list[str], ra: RankAssignment) -> list[list[str]]:
    """Group node ids by rank, keeping the input order inside each row."""
    rows: list[list[str]] = [[] for _ in range(ra.max_rank + 1)]
    for node_id in order:
        rows[ra.ranks[node_id]].append(node_id)
    return rows


# ─── Crossing Minimization (Barycenter) ───────────────────────────────────────


def minimise_crossings(
    rows: list[list[str]],
    graph: nx.MultiDiGraph,
    unranked_weight: float = DEFAULT_LAYOUT_CONFIG.unranked_weight,
) -> list[list[str]]:
    """Order each row by the barycenter of its parents in the previous row.

    One top-down sweep, rows 1..max. A node without any parent in the previous
    row gets ``unranked_weight`` and sinks to the end. Python's sort is stable,
    so ties keep their previous order and the result is deterministic.

    Returns a new list of rows; ``rows`` is not modified.
    """
    ordering = [list(row) for row in rows]

    for rank in range(1, len(ordering)):
        prev: dict[str, float] = {nid: float(i) for i, nid in enumerate(ordering[rank - 1])}
        ordering[rank].sort(key=lambda nid, p=prev: _barycenter(nid, graph, p, unranked_weight))

    return ordering


def _barycenter(
    node_id: str,
    graph: nx.MultiDiGraph,
    prev_pos: dict[str, float],
    unranked_weight: float,
) -> float:
    """Average position of a node's parents in the previous row (barycenter weight).

    Parents are counted once per edge. Returns ``unranked_weight`` if none of
    them sits in the previous row.
    """
    positions = [prev_pos[src] for src, _ in graph.in_edges(node_id) if src in prev_pos]
    if not positions:
        return unranked_weight
    return sum(positions) / len(positions)


def count_crossings(ordering: list[list[str]], graph: nx.MultiDiGraph) -> int:
    """Count edge crossings between consecutive rows.

    Two edges cross when their sources and targets sit in opposite order;
    edges that share a source or a target never cross.
    """
    total = 0
    for upper, lower in zip(ordering, ordering[1:]):
        lower_pos = {nid: i for i, nid in enumerate(lower)}
        pairs = sorted(
            (sp, lower_pos[tgt])
            for sp, src in enumerate(upper)
            if src in graph
            for _, tgt in graph.out_edges(src)
            if tgt in lower_pos
        )
        seen: list[int] = []
        for _, group in groupby(pairs, key=itemgetter(0)):
            targets = [tp for _, tp in group]
            for tp in targets:
                total += len(seen) - bisect_right(seen, tp)
            for tp in targets:
                insort(seen, tp)
    return total


# ─── Node Sizing ──────────────────────────────────────────────────────────────


def node_height(node: Node, config: LayoutConfig = DEFAULT_LAYOUT_CONFIG) -> int:
    """Rendered height of a node card.

    Switch: header + one row per branch + padding.
    Dialogue: header + one row per line (at least one) + one row per option + padding.
    """
    if isinstance(node, SwitchNode):
        return config.header_height + len(node.branches) * config.branch_height + config.padding_height
    return (
        config.header_height
        + max(1, len(node.lines)) * config.line_height
        + len(node.options) * config.option_height
        + config.padding_height
    )


# ─── Coordinate Assignment ────────────────────────────────────────────────────


@dataclass
class LayoutNode:
    """A positioned node in the layout."""

    id: str
    rank: int
    order: int
    x: float
    y: float
    height: int


def assign_coordinates(
    ordering: list[list[str]],
    heights: dict[str, int],
    config: LayoutConfig = DEFAULT_LAYOUT_CONFIG,
) -> list[LayoutNode]:
    """Assign canvas (x, y) to every node of every row.

    Each row becomes a column at ``rank * (node_width + rank_gap) + left_margin``.
    Within a column nodes stack top-to-bottom separated by ``node_gap``, the
    whole stack centered on ``vertical_anchor``.
    """
    placed: list[LayoutNode] = []

    for rank, row in enumerate(ordering):
        if not row:
            continue
        total_height = sum(heights[nid] + config.node_gap for nid in row) - config.node_gap
        x = rank * config.column_stride + config.left_margin
        y = config.vertical_anchor - total_height / 2

        for order, node_id in enumerate(row):
            h = heights[node_id]
            placed.append(LayoutNode(id=node_id, rank=rank, order=order, x=x, y=y, height=h))
            y += h + config.node_gap

    return placed


# ─── Full Layout Pipeline ──────────────────────────────────────────────────────


def compute_layout(nodes: list[Node], edges: list[Edge], config: LayoutConfig | None = None) -> list[LayoutNode]:
    """Run rank → row → order → size → place and return the positioned nodes."""
    config = config or DEFAULT_LAYOUT_CONFIG
    graph = build_digraph(nodes, edges)

    ra = RankAssignment.assign(graph, config.max_rank_depth)
    rows = group_rows(list(graph.nodes), ra)
    ordering = minimise_crossings(rows, graph, config.unranked_weight)
    heights = {node.id: node_height(node, config) for node in nodes}

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Layout: %d nodes in %d ranks, %d crossings",
            graph.number_of_nodes(),
            ra.max_rank + 1,
            count_crossings(ordering, graph),
        )
    return assign_coordinates(ordering, heights, config)


def layout(nodes: list[Node], edges: list[Edge], config: LayoutConfig | None = None) -> list[Node]:
    """Return copies of ``nodes`` (same order) with computed positions.

    The input nodes are left untouched; edges need no change.
    """
    placed = {ln.id: ln for ln in compute_layout(nodes, edges, config)}

    result: list[Node] = []
    for node in nodes:
        new_node = copy.deepcopy(node)
        ln = placed.get(node.id)
        if ln is not None:
            new_node.position = Position(x=ln.x, y=ln.y)
        result.append(new_node)
    return result

