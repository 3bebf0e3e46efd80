"""Graph codec: conversation document <-> node/edge graph.

``parse`` turns YAML text into a ``FlowGraph``; ``generate`` turns a graph back
into canonical YAML. Two historical option spellings are understood on read:

  canonical  ``answer: [{text, if, action, open}]``
  legacy     ``player: [{reply, if, then, next}]`` where ``then`` may embed
             ``goto <node>``

Only canonical spellings are written. Fields the model does not know are kept
in each node/option/branch ``extra`` bag and merged back on write.
"""

from __future__ import annotations

import copy
import logging
import math
import re
from typing import Any, Callable

from questflow.config import LayoutConfig
from questflow.document import RESERVED_KEY, dump_document, load_document
from questflow.errors import DocumentError
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
    derive_edges,
    edge_index,
)
from questflow.layout import layout

logger = logging.getLogger(__name__)

# ─── Field Names ──────────────────────────────────────────────────────────────

CANVAS = "canvas"
WHEN = "when"
CONTENT = "content"
ANSWER = "answer"
NPC = "npc"
NPCS = "npcs"
NAME = "name"
TAGS = "tags"
CONDITION = "condition"
AGENT = "agent"

IF = "if"
OPEN = "open"
ACTION = "action"
RUN = "run"
TEXT = "text"

LEGACY_PLAYER = "player"
LEGACY_REPLY = "reply"
LEGACY_THEN = "then"
LEGACY_NEXT = "next"

DIALOGUE_FIELDS = (CONTENT, ANSWER, LEGACY_PLAYER, NPC, NPCS, NAME, TAGS, CONDITION, AGENT)

DEFAULT_CONDITION = "true"
DEFAULT_OPTION_TEXT = "..."

GOTO_RE = re.compile(r"goto\s+(\S+)")

# (node, handle id, stored literal) -> label to write for an open target
Resolver = Callable[[Node, str, str | None], str | None]


# ─── Parse ────────────────────────────────────────────────────────────────────


def parse(text: str, config: LayoutConfig | None = None) -> FlowGraph:
    """Parse a conversation document into a graph.

    Malformed input yields an empty graph. When no node carries ``canvas``
    coordinates the layout engine positions every node; when only some do,
    the rest stay at the origin.
    """
    try:
        document = load_document(text)
    except DocumentError as exc:
        logger.warning("Unparseable conversation document, using an empty graph: %s", exc)
        return FlowGraph()

    nodes: list[Node] = []
    has_canvas = False

    for key, body in document.items():
        if key == RESERVED_KEY:
            continue
        if not isinstance(body, dict):
            logger.warning("Skipping node %r: body is %s, not a mapping", key, type(body).__name__)
            continue

        node = parse_node(key, body)
        if node is None:
            logger.warning("Skipping node %r: neither a switch nor a dialogue body", key)
            continue

        position = _read_canvas(body.get(CANVAS))
        if position is not None:
            node.position = position
            has_canvas = True
        nodes.append(node)

    edges = derive_edges(nodes)
    logger.debug("Parsed %d nodes and %d edges (canvas data: %s)", len(nodes), len(edges), has_canvas)

    if not has_canvas and nodes:
        nodes = layout(nodes, edges, config)

    return FlowGraph(nodes=nodes, edges=edges)


def parse_node(key: str, body: dict[str, Any]) -> Node | None:
    """Build the node variant for one document entry, or ``None`` if the body is neither."""
    if isinstance(body.get(WHEN), list):
        return _parse_switch(key, body)
    if any(name in body for name in DIALOGUE_FIELDS):
        return _parse_dialogue(key, body)
    return None


def _parse_switch(key: str, body: dict[str, Any]) -> SwitchNode:
    branches = [_parse_branch(f"{key}-branch-{i}", raw) for i, raw in enumerate(body[WHEN])]
    extra = _leftover(body, {WHEN, CANVAS} | _entry_ref_fields(body))
    return SwitchNode(id=key, label=key, branches=branches, entry_refs=_entry_refs(body), extra=extra)


def _parse_branch(branch_id: str, raw: Any) -> Branch:
    if not isinstance(raw, dict):
        # A bare string under ``when`` is a condition with nothing attached.
        return Branch(id=branch_id, condition=raw if raw is not None else DEFAULT_CONDITION)

    consumed = {IF}
    if raw.get(OPEN):
        kind, value = "open", str(raw[OPEN])
        consumed.add(OPEN)
    elif raw.get(ACTION) is not None:
        kind, value = "run", raw[ACTION]
        consumed.add(ACTION)
    elif raw.get(RUN) is not None:
        kind, value = "run", raw[RUN]
        consumed.add(RUN)
    else:
        kind, value = "run", ""

    condition = raw.get(IF)
    return Branch(
        id=branch_id,
        condition=DEFAULT_CONDITION if condition is None else condition,
        action_kind=kind,
        action_value=value,
        extra=_leftover(raw, consumed),
    )


def _parse_dialogue(key: str, body: dict[str, Any]) -> DialogueNode:
    consumed = {CANVAS, CONTENT, ANSWER, NAME, TAGS, CONDITION} | _entry_ref_fields(body)
    if isinstance(body.get(AGENT), dict):
        consumed.add(AGENT)

    legacy = ANSWER not in body and isinstance(body.get(LEGACY_PLAYER), list)
    npc_holds_lines = legacy and CONTENT not in body

    if CONTENT in body:
        lines = _as_list(body[CONTENT])
    elif npc_holds_lines:
        lines = _as_list(body.get(NPC))
    else:
        lines = []

    if ANSWER in body:
        raw_options = body[ANSWER] if isinstance(body[ANSWER], list) else []
    elif legacy:
        raw_options = body[LEGACY_PLAYER]
        consumed.add(LEGACY_PLAYER)
    else:
        raw_options = []

    options = []
    for i, raw in enumerate(raw_options):
        if not isinstance(raw, dict):
            logger.warning("Skipping option %d of node %r: %s is not a mapping", i, key, type(raw).__name__)
            continue
        options.append(_parse_option(key, i, raw))

    if npc_holds_lines:
        consumed.add(NPC)
        entry_refs = list(body[NPCS]) if isinstance(body.get(NPCS), list) else []
    else:
        entry_refs = _entry_refs(body)

    tags = body.get(TAGS)
    if tags is not None and not isinstance(tags, list):
        tags = [tags]

    return DialogueNode(
        id=key,
        label=key,
        lines=lines,
        options=options,
        entry_refs=entry_refs,
        display_name=body.get(NAME),
        tags=tags,
        condition=body.get(CONDITION),
        lifecycle=_parse_lifecycle(body.get(AGENT)),
        extra=_leftover(body, consumed),
    )


def _parse_option(key: str, index: int, raw: dict[str, Any]) -> Option:
    option_id = f"{key}-opt-{index}"
    consumed = {IF, WHEN}

    if TEXT in raw:
        text = raw[TEXT]
        consumed.add(TEXT)
    elif LEGACY_REPLY in raw:
        text = raw[LEGACY_REPLY]
        consumed.add(LEGACY_REPLY)
    else:
        text = None

    target = script = None
    branches = []
    if isinstance(raw.get(WHEN), list) and raw[WHEN]:
        # The nested branches decide where the option leads; any option-level
        # open/action is never followed and stays in extra untouched.
        branches = [_parse_branch(f"{option_id}-when-{j}", b) for j, b in enumerate(raw[WHEN])]
    else:
        consumed.discard(WHEN)
        target, script = _option_target_and_script(raw, consumed)

    return Option(
        id=option_id,
        text=DEFAULT_OPTION_TEXT if not text else text,
        condition=raw.get(IF),
        script=script or None,
        target=target,
        branches=branches,
        extra=_leftover(raw, consumed),
    )


def _option_target_and_script(raw: dict[str, Any], consumed: set[str]) -> tuple[str | None, Any]:
    if raw.get(OPEN):
        target = str(raw[OPEN])
        consumed.add(OPEN)
    elif raw.get(LEGACY_NEXT):
        target = str(raw[LEGACY_NEXT])
        consumed.add(LEGACY_NEXT)
    else:
        target = None

    script = None
    if raw.get(ACTION) is not None:
        script = raw[ACTION]
        consumed.add(ACTION)
    elif raw.get(LEGACY_THEN) is not None:
        script = raw[LEGACY_THEN]
        consumed.add(LEGACY_THEN)
        if target is None and isinstance(script, str):
            script, target = extract_goto(script)
    return target, script


def extract_goto(script: str) -> tuple[str, str | None]:
    """Split ``goto <node>`` out of a legacy script.

    Only the first occurrence is taken as the target and removed; the rest of
    the script is returned with surrounding whitespace trimmed.

    >>> extract_goto("give diamond\\ngoto node_b")
    ('give diamond', 'node_b')
    """
    match = GOTO_RE.search(script)
    if match is None:
        return script.strip(), None
    remainder = script[: match.start()] + script[match.end() :]
    return remainder.strip(), match.group(1)


def _parse_lifecycle(raw: Any) -> Lifecycle:
    if not isinstance(raw, dict):
        return Lifecycle()
    return Lifecycle(begin=raw.get("begin"), end=raw.get("end"), extra=_leftover(raw, {"begin", "end"}))


def _read_canvas(raw: Any) -> Position | None:
    if not isinstance(raw, dict):
        return None
    try:
        x, y = float(raw.get("x") or 0), float(raw.get("y") or 0)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric canvas %r", raw)
        return None
    if not (math.isfinite(x) and math.isfinite(y)):
        logger.warning("Ignoring non-finite canvas %r", raw)
        return None
    return Position(x=x, y=y)


def _entry_refs(body: dict[str, Any]) -> list[str]:
    """``npcs`` wins over ``npc``; a list under ``npc`` is accepted as several refs."""
    if isinstance(body.get(NPCS), list) and body[NPCS]:
        return list(body[NPCS])
    if body.get(NPC) is not None:
        return _as_list(body[NPC])
    return []


def _entry_ref_fields(body: dict[str, Any]) -> set[str]:
    # Only consume what _entry_refs can read back; anything else stays in extra.
    fields = set()
    if isinstance(body.get(NPCS), list):
        fields.add(NPCS)
    if body.get(NPC) is not None and not (NPCS in fields and body[NPCS]):
        fields.add(NPC)
    return fields


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return list(value)
    return [value]


def _leftover(raw: dict[str, Any], consumed: set[str]) -> dict[str, Any]:
    return {k: copy.deepcopy(v) for k, v in raw.items() if k not in consumed}


# ─── Generate ─────────────────────────────────────────────────────────────────


def generate(nodes: list[Node], edges: list[Edge]) -> str:
    """Serialize a graph to canonical YAML.

    Open targets are resolved through edges to the destination node's current
    label; a handle without an edge (or whose edge points at a missing node)
    keeps its stored literal. The reserved metadata key is never written.
    """
    return dump_document(build_document(nodes, edges))


def build_document(nodes: list[Node], edges: list[Edge]) -> dict[str, Any]:
    """Build the ``{label: body}`` mapping that ``generate`` dumps."""
    labels = {node.id: node.label for node in nodes}
    by_handle = edge_index(edges)

    def resolve(node: Node, handle: str, literal: str | None) -> str | None:
        edge = by_handle.get((node.id, handle))
        if edge is not None and edge.target in labels:
            return labels[edge.target]
        return literal

    document: dict[str, Any] = {}
    for node in nodes:
        if node.label == RESERVED_KEY:
            logger.warning("Not writing node %r: the key is reserved", node.id)
            continue
        if node.label in document:
            logger.warning("Duplicate node label %r; the later node replaces the earlier one", node.label)

        if isinstance(node, SwitchNode):
            body = _switch_body(node, resolve)
        else:
            body = _dialogue_body(node, resolve)
        document[node.label] = body

    return document


def _switch_body(node: SwitchNode, resolve: Resolver) -> dict[str, Any]:
    body: dict[str, Any] = {
        WHEN: [_branch_body(node, branch, resolve) for branch in node.branches],
        CANVAS: _canvas(node.position),
    }
    _write_entry_refs(body, node.entry_refs)
    return _merge_extra(body, node.extra)


def _branch_body(node: Node, branch: Branch, resolve: Resolver) -> dict[str, Any]:
    body: dict[str, Any] = {IF: branch.condition}
    if branch.action_kind == "open":
        target = resolve(node, branch.id, branch.action_value or None)
        if target:
            body[OPEN] = target
    elif branch.action_value:
        body[ACTION] = branch.action_value
    return _merge_extra(body, branch.extra)


def _dialogue_body(node: DialogueNode, resolve: Resolver) -> dict[str, Any]:
    body: dict[str, Any] = {
        CONTENT: list(node.lines),
        ANSWER: [_option_body(node, option, resolve) for option in node.options],
        CANVAS: _canvas(node.position),
    }
    _write_entry_refs(body, node.entry_refs)
    if node.display_name is not None:
        body[NAME] = node.display_name
    if node.tags is not None:
        body[TAGS] = list(node.tags)
    if node.condition is not None:
        body[CONDITION] = node.condition
    if not node.lifecycle.is_empty():
        body[AGENT] = _lifecycle_body(node.lifecycle)
    return _merge_extra(body, node.extra)


def _option_body(node: DialogueNode, option: Option, resolve: Resolver) -> dict[str, Any]:
    body: dict[str, Any] = {TEXT: option.text}
    if option.condition is not None:
        body[IF] = option.condition
    if option.branches:
        body[WHEN] = [_branch_body(node, branch, resolve) for branch in option.branches]
        return _merge_extra(body, option.extra)

    if option.script:
        body[ACTION] = option.script
    target = resolve(node, option.id, option.target)
    if target:
        body[OPEN] = target
    return _merge_extra(body, option.extra)


def _lifecycle_body(lifecycle: Lifecycle) -> dict[str, Any]:
    body: dict[str, Any] = {}
    if lifecycle.begin is not None:
        body["begin"] = lifecycle.begin
    if lifecycle.end is not None:
        body["end"] = lifecycle.end
    return _merge_extra(body, lifecycle.extra)


def _write_entry_refs(body: dict[str, Any], refs: list[str]) -> None:
    if len(refs) == 1:
        body[NPC] = refs[0]
    elif refs:
        body[NPCS] = list(refs)


def _canvas(position: Position) -> dict[str, int]:
    return {"x": _round(position.x), "y": _round(position.y)}


def _round(value: float) -> int:
    # Half-up, matching the canvas coordinates the editor has always written.
    return int(math.floor(value + 0.5))


def _merge_extra(body: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
    for key, value in extra.items():
        if key in body:
            logger.debug("Extra field %r shadows a modelled field; keeping the modelled value", key)
            continue
        body[key] = copy.deepcopy(value)
    return body
