"""Graph edit operations.

Every function takes a ``FlowGraph`` snapshot and returns a new one; the input
is never modified. Callers (the editor UI) replace their snapshot with the
returned graph and hand that to ``generate``.

Connecting and disconnecting also update the literal target stored on the
option/branch, so a graph round-trips the same way whether or not its edges
are present.
"""

from __future__ import annotations

import copy
import logging

from questflow.errors import GraphEditError
from questflow.graph import Branch, DialogueNode, Edge, FlowGraph, Node, Option, Position, SwitchNode

logger = logging.getLogger(__name__)


def _clone(graph: FlowGraph) -> FlowGraph:
    return copy.deepcopy(graph)


def _require_node(graph: FlowGraph, node_id: str) -> Node:
    node = graph.node(node_id)
    if node is None:
        raise GraphEditError(f"no node with id {node_id!r}")
    return node


def _require_dialogue(graph: FlowGraph, node_id: str) -> DialogueNode:
    node = _require_node(graph, node_id)
    if not isinstance(node, DialogueNode):
        raise GraphEditError(f"node {node_id!r} is a {node.kind} node, not a dialogue node")
    return node


def _require_switch(graph: FlowGraph, node_id: str) -> SwitchNode:
    node = _require_node(graph, node_id)
    if not isinstance(node, SwitchNode):
        raise GraphEditError(f"node {node_id!r} is a {node.kind} node, not a switch node")
    return node


def _handles(node: Node) -> dict[str, Option | Branch]:
    if isinstance(node, SwitchNode):
        return {b.id: b for b in node.branches}
    handles: dict[str, Option | Branch] = {}
    for option in node.options:
        handles[option.id] = option
        for branch in option.branches:
            handles[branch.id] = branch
    return handles


def _require_handle(node: Node, handle_id: str) -> Option | Branch:
    handle = _handles(node).get(handle_id)
    if handle is None:
        raise GraphEditError(f"node {node.id!r} has no option or branch {handle_id!r}")
    return handle


def _next_id(taken: set[str], prefix: str) -> str:
    n = 1
    while f"{prefix}{n}" in taken:
        n += 1
    return f"{prefix}{n}"


def _drop_edges(graph: FlowGraph, source: str, handle_ids: set[str]) -> None:
    graph.edges = [e for e in graph.edges if not (e.source == source and e.source_handle in handle_ids)]


# ─── Nodes ────────────────────────────────────────────────────────────────────


def add_dialogue_node(graph: FlowGraph, node_id: str | None = None, *, position: Position | None = None) -> FlowGraph:
    """Append a dialogue node with one line and one option. The new node is last."""
    result = _clone(graph)
    node_id = _claim_node_id(result, node_id, "node_")
    result.nodes.append(
        DialogueNode(
            id=node_id,
            label=node_id,
            lines=["Hello!"],
            options=[Option(id=f"{node_id}-opt-0", text="Hi there")],
            position=position or Position(),
        )
    )
    return result


def add_switch_node(graph: FlowGraph, node_id: str | None = None, *, position: Position | None = None) -> FlowGraph:
    """Append a switch node with a single always-true run branch. The new node is last."""
    result = _clone(graph)
    node_id = _claim_node_id(result, node_id, "switch_")
    result.nodes.append(
        SwitchNode(
            id=node_id,
            label=node_id,
            branches=[Branch(id=f"{node_id}-branch-0", action_kind="run", action_value="tell Hello")],
            position=position or Position(),
        )
    )
    return result


def _claim_node_id(graph: FlowGraph, node_id: str | None, prefix: str) -> str:
    taken = {n.id for n in graph.nodes} | {n.label for n in graph.nodes}
    if node_id is None:
        return _next_id(taken, prefix)
    if node_id in taken:
        raise GraphEditError(f"node id {node_id!r} is already in use")
    return node_id


def remove_node(graph: FlowGraph, node_id: str) -> FlowGraph:
    """Remove a node and every edge into or out of it.

    Options elsewhere that named the node keep their literal target; they
    will be written as dangling references.
    """
    result = _clone(graph)
    _require_node(result, node_id)
    result.nodes = [n for n in result.nodes if n.id != node_id]
    result.edges = [e for e in result.edges if e.source != node_id and e.target != node_id]
    return result


def rename_node(graph: FlowGraph, node_id: str, new_label: str) -> FlowGraph:
    """Change the document key of a node.

    Edges keep pointing at the node's id, so every option or branch connected
    to it is written with the new label by ``generate``.
    """
    result = _clone(graph)
    node = _require_node(result, node_id)
    if any(n.label == new_label for n in result.nodes if n.id != node_id):
        raise GraphEditError(f"label {new_label!r} is already used by another node")

    old_label = node.label
    node.label = new_label
    for edge in result.edges:
        source = result.node(edge.source) if edge.target == node_id else None
        handle = _handles(source).get(edge.source_handle) if source is not None else None
        if handle is not None:
            _set_literal(handle, new_label)
    logger.debug("Renamed node %r: %r -> %r", node_id, old_label, new_label)
    return result


def move_node(graph: FlowGraph, node_id: str, x: float, y: float) -> FlowGraph:
    result = _clone(graph)
    _require_node(result, node_id).position = Position(x=x, y=y)
    return result


# ─── Options & Branches ───────────────────────────────────────────────────────


def add_option(graph: FlowGraph, node_id: str, text: str = "New Option") -> FlowGraph:
    result = _clone(graph)
    node = _require_dialogue(result, node_id)
    option_id = _next_id(set(_handles(node)), f"{node.label}-opt-")
    node.options.append(Option(id=option_id, text=text))
    return result


def remove_option(graph: FlowGraph, node_id: str, option_id: str) -> FlowGraph:
    """Remove an option and the edges leaving it or its nested branches."""
    result = _clone(graph)
    node = _require_dialogue(result, node_id)
    option = next((o for o in node.options if o.id == option_id), None)
    if option is None:
        raise GraphEditError(f"node {node_id!r} has no option {option_id!r}")

    node.options.remove(option)
    _drop_edges(result, node_id, {option.id} | {b.id for b in option.branches})
    return result


def add_branch(graph: FlowGraph, node_id: str, condition: str = "true") -> FlowGraph:
    result = _clone(graph)
    node = _require_switch(result, node_id)
    branch_id = _next_id(set(_handles(node)), f"{node.label}-branch-")
    node.branches.append(Branch(id=branch_id, condition=condition))
    return result


def remove_branch(graph: FlowGraph, node_id: str, branch_id: str) -> FlowGraph:
    result = _clone(graph)
    node = _require_switch(result, node_id)
    branch = next((b for b in node.branches if b.id == branch_id), None)
    if branch is None:
        raise GraphEditError(f"node {node_id!r} has no branch {branch_id!r}")

    node.branches.remove(branch)
    _drop_edges(result, node_id, {branch_id})
    return result


# ─── Edges ────────────────────────────────────────────────────────────────────


def _set_literal(handle: Option | Branch, target: str | None) -> None:
    if isinstance(handle, Option):
        handle.target = target
    else:
        handle.action_kind = "open"
        handle.action_value = target or ""


def connect(graph: FlowGraph, source: str, handle_id: str, target: str) -> FlowGraph:
    """Point an option or branch at ``target``, replacing any edge it already had.

    A run-kind branch becomes an open-kind branch; its script is discarded.
    """
    result = _clone(graph)
    node = _require_node(result, source)
    handle = _require_handle(node, handle_id)
    if isinstance(handle, Option) and handle.branches:
        raise GraphEditError(f"option {handle_id!r} routes through its nested branches; connect one of those")
    target_node = _require_node(result, target)

    _drop_edges(result, source, {handle_id})
    result.edges.append(Edge(source=source, source_handle=handle_id, target=target))
    _set_literal(handle, target_node.label)
    return result


def disconnect(graph: FlowGraph, source: str, handle_id: str) -> FlowGraph:
    """Remove the edge leaving a handle and forget its stored target."""
    result = _clone(graph)
    node = _require_node(result, source)
    handle = _require_handle(node, handle_id)

    _drop_edges(result, source, {handle_id})
    _set_literal(handle, None)
    return result
