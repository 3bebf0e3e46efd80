"""Graph model: dialogue/switch nodes, their options and branches, and edges.

A node is one of two variants, ``DialogueNode`` or ``SwitchNode``, told apart
by the ``kind`` discriminant fixed at construction. Edges are derived from the
targets carried by options and open-kind branches; ``derive_edges`` rebuilds
them from a node list.

Every node, option and branch carries an ``extra`` dict holding the document
fields this model does not know about. The codec writes it back verbatim.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Literal, Union

Scalar = Union[str, int, float, bool]

ActionKind = Literal["open", "run"]


@dataclass
class Position:
    """Canvas coordinates of a node's top-left corner."""

    x: float = 0.0
    y: float = 0.0


@dataclass
class Branch:
    """One ``when`` entry: a condition plus either a node to open or a script to run."""

    id: str
    condition: Scalar = "true"
    action_kind: ActionKind = "run"
    action_value: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def target(self) -> str | None:
        if self.action_kind == "open" and self.action_value:
            return self.action_value
        return None


@dataclass
class Option:
    """A player answer on a dialogue node."""

    id: str
    text: str = "..."
    condition: Scalar | None = None
    script: str | None = None
    target: str | None = None
    branches: list[Branch] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class Lifecycle:
    """Scripts run when a dialogue node begins and ends (the ``agent`` block)."""

    begin: str | None = None
    end: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return self.begin is None and self.end is None and not self.extra


@dataclass
class DialogueNode:
    id: str
    label: str
    lines: list[str] = field(default_factory=list)
    options: list[Option] = field(default_factory=list)
    entry_refs: list[str] = field(default_factory=list)
    display_name: str | None = None
    tags: list[str] | None = None
    condition: Scalar | None = None
    lifecycle: Lifecycle = field(default_factory=Lifecycle)
    position: Position = field(default_factory=Position)
    extra: dict[str, Any] = field(default_factory=dict)
    kind: Literal["dialogue"] = field(default="dialogue", init=False)

    def outputs(self) -> Iterator[tuple[str, str]]:
        """Yield ``(handle_id, target)`` for every option/branch that points somewhere."""
        for option in self.options:
            if option.target and not option.branches:
                yield option.id, option.target
            for branch in option.branches:
                if branch.target:
                    yield branch.id, branch.target


@dataclass
class SwitchNode:
    id: str
    label: str
    branches: list[Branch] = field(default_factory=list)
    entry_refs: list[str] = field(default_factory=list)
    position: Position = field(default_factory=Position)
    extra: dict[str, Any] = field(default_factory=dict)
    kind: Literal["switch"] = field(default="switch", init=False)

    @property
    def entry_ref(self) -> str | None:
        return self.entry_refs[0] if self.entry_refs else None

    def outputs(self) -> Iterator[tuple[str, str]]:
        for branch in self.branches:
            if branch.target:
                yield branch.id, branch.target


Node = Union[DialogueNode, SwitchNode]


@dataclass(frozen=True)
class Edge:
    """A directed link from a node's output handle to another node."""

    source: str
    source_handle: str
    target: str

    @property
    def id(self) -> str:
        return f"e-{self.source_handle}-{self.target}"


@dataclass
class FlowGraph:
    """A node/edge snapshot. Unpacks as ``nodes, edges = graph``."""

    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)

    def __iter__(self) -> Iterator[Any]:
        yield self.nodes
        yield self.edges

    def node(self, node_id: str) -> Node | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


def derive_edges(nodes: list[Node]) -> list[Edge]:
    """Build one edge per option target and per open-kind branch, in document order."""
    return [Edge(source=node.id, source_handle=handle, target=target) for node in nodes for handle, target in node.outputs()]


def edge_index(edges: list[Edge]) -> dict[tuple[str, str], Edge]:
    """Map ``(source, source_handle)`` to its edge. The last edge wins on duplicates."""
    return {(e.source, e.source_handle): e for e in edges}
