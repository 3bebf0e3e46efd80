"""questflow: dialogue graph codec and layered auto-layout for quest conversation files."""

from questflow.codec import generate, parse
from questflow.config import DEFAULT_LAYOUT_CONFIG, LayoutConfig
from questflow.errors import DocumentError, GraphEditError, QuestflowError
from questflow.graph import (
    Branch,
    DialogueNode,
    Edge,
    FlowGraph,
    Lifecycle,
    Node,
    Option,
    Position,
    SwitchNode,
)
from questflow.ids import IdentifierIndex, SourceDocument, build_identifier_index
from questflow.layout import layout as auto_layout

__version__ = "0.3.0"

__all__ = [
    "DEFAULT_LAYOUT_CONFIG",
    "Branch",
    "DialogueNode",
    "DocumentError",
    "Edge",
    "FlowGraph",
    "GraphEditError",
    "IdentifierIndex",
    "LayoutConfig",
    "Lifecycle",
    "Node",
    "Option",
    "Position",
    "QuestflowError",
    "SourceDocument",
    "SwitchNode",
    "auto_layout",
    "build_identifier_index",
    "generate",
    "parse",
]
