"""Tests for edit.py — snapshot edits and their effect on generate."""

from __future__ import annotations

import textwrap

import pytest
import yaml

from questflow.codec import generate, parse
from questflow.edit import (
    add_branch,
    add_dialogue_node,
    add_option,
    add_switch_node,
    connect,
    disconnect,
    move_node,
    remove_branch,
    remove_node,
    remove_option,
    rename_node,
)
from questflow.errors import GraphEditError
from questflow.graph import Branch, DialogueNode, Edge, FlowGraph, Position, SwitchNode

DOC = textwrap.dedent(
    """\
    intro:
      content: [hello]
      answer:
        - text: shop
          open: shop
        - text: leave
      canvas: {x: 100, y: 0}
    shop:
      content: [buy something]
      answer: []
      canvas: {x: 500, y: 0}
    gate:
      when:
        - if: has key
          open: shop
        - if: "true"
          action: tell locked
      canvas: {x: 100, y: 300}
    """
)


@pytest.fixture
def graph() -> FlowGraph:
    return parse(DOC)


def written(graph: FlowGraph) -> dict:
    return yaml.safe_load(generate(graph.nodes, graph.edges))


# ─── Nodes ────────────────────────────────────────────────────────────────────


class TestAddNodes:
    def test_add_dialogue_node(self, graph):
        result = add_dialogue_node(graph)
        node = result.nodes[-1]
        assert isinstance(node, DialogueNode)
        assert node.id == node.label == "node_1"
        assert node.lines == ["Hello!"]
        assert [o.text for o in node.options] == ["Hi there"]

    def test_ids_do_not_collide(self, graph):
        result = add_dialogue_node(add_dialogue_node(graph))
        assert [n.id for n in result.nodes[-2:]] == ["node_1", "node_2"]

    def test_add_switch_node(self, graph):
        result = add_switch_node(graph, position=Position(x=10, y=20))
        node = result.nodes[-1]
        assert isinstance(node, SwitchNode)
        assert node.id == "switch_1"
        assert node.position == Position(x=10, y=20)
        assert node.branches[0].action_kind == "run"

    def test_explicit_id(self, graph):
        assert add_dialogue_node(graph, "outro").nodes[-1].id == "outro"

    def test_existing_id_rejected(self, graph):
        with pytest.raises(GraphEditError):
            add_dialogue_node(graph, "shop")

    def test_input_untouched(self, graph):
        add_dialogue_node(graph)
        assert len(graph.nodes) == 3

    def test_new_node_is_written(self, graph):
        out = written(add_switch_node(graph))
        assert out["switch_1"]["when"] == [{"if": "true", "action": "tell Hello"}]


class TestRemoveNode:
    def test_drops_incident_edges(self, graph):
        result = remove_node(graph, "shop")
        assert result.node("shop") is None
        assert result.edges == []
        assert len(graph.edges) == 2

    def test_references_become_dangling_literals(self, graph):
        out = written(remove_node(graph, "shop"))
        assert "shop" not in out
        assert out["intro"]["answer"][0]["open"] == "shop"

    def test_unknown_node(self, graph):
        with pytest.raises(GraphEditError, match="no node"):
            remove_node(graph, "nope")


class TestRenameNode:
    def test_switch_branch_follows_rename(self, graph):
        """The branch's open value tracks the new label without rewiring."""
        out = written(rename_node(graph, "shop", "market"))
        assert out["gate"]["when"][0]["open"] == "market"
        assert out["intro"]["answer"][0]["open"] == "market"
        assert "market" in out

    def test_literals_updated(self, graph):
        result = rename_node(graph, "shop", "market")
        assert result.node("intro").options[0].target == "market"
        assert result.node("gate").branches[0].action_value == "market"

    def test_id_is_stable(self, graph):
        result = rename_node(graph, "shop", "market")
        assert result.node("shop").label == "market"
        assert Edge("intro", "intro-opt-0", "shop") in result.edges

    def test_label_collision(self, graph):
        with pytest.raises(GraphEditError, match="already used"):
            rename_node(graph, "shop", "intro")


def test_move_node(graph):
    result = move_node(graph, "gate", 42, 24)
    assert written(result)["gate"]["canvas"] == {"x": 42, "y": 24}


# ─── Options & Branches ───────────────────────────────────────────────────────


class TestOptions:
    def test_add_option_picks_free_handle(self, graph):
        result = add_option(graph, "intro", "ask")
        assert [o.id for o in result.node("intro").options] == ["intro-opt-0", "intro-opt-1", "intro-opt-2"]
        assert result.node("intro").options[-1].text == "ask"

    def test_add_option_to_switch_rejected(self, graph):
        with pytest.raises(GraphEditError, match="not a dialogue node"):
            add_option(graph, "gate")

    def test_remove_option_drops_edge(self, graph):
        result = remove_option(graph, "intro", "intro-opt-0")
        assert [o.text for o in result.node("intro").options] == ["leave"]
        assert all(e.source_handle != "intro-opt-0" for e in result.edges)

    def test_remove_missing_option(self, graph):
        with pytest.raises(GraphEditError):
            remove_option(graph, "intro", "intro-opt-9")


class TestBranches:
    def test_add_branch(self, graph):
        result = add_branch(graph, "gate", "has coin")
        branch = result.node("gate").branches[-1]
        assert branch.id == "gate-branch-2"
        assert branch.condition == "has coin"

    def test_add_branch_to_dialogue_rejected(self, graph):
        with pytest.raises(GraphEditError, match="not a switch node"):
            add_branch(graph, "intro")

    def test_remove_branch_drops_edge(self, graph):
        result = remove_branch(graph, "gate", "gate-branch-0")
        assert [b.id for b in result.node("gate").branches] == ["gate-branch-1"]
        assert all(e.source != "gate" for e in result.edges)


# ─── Edges ────────────────────────────────────────────────────────────────────


class TestConnect:
    def test_connect_option(self, graph):
        result = connect(graph, "intro", "intro-opt-1", "gate")
        assert Edge("intro", "intro-opt-1", "gate") in result.edges
        assert written(result)["intro"]["answer"][1]["open"] == "gate"

    def test_reconnect_replaces_edge(self, graph):
        result = connect(graph, "intro", "intro-opt-0", "gate")
        from_handle = [e for e in result.edges if e.source_handle == "intro-opt-0"]
        assert from_handle == [Edge("intro", "intro-opt-0", "gate")]

    def test_connect_run_branch_becomes_open(self, graph):
        result = connect(graph, "gate", "gate-branch-1", "intro")
        branch = result.node("gate").branches[1]
        assert (branch.action_kind, branch.action_value) == ("open", "intro")
        assert written(result)["gate"]["when"][1] == {"if": "true", "open": "intro"}

    def test_connect_unknown_target(self, graph):
        with pytest.raises(GraphEditError):
            connect(graph, "intro", "intro-opt-1", "nowhere")

    def test_connect_unknown_handle(self, graph):
        with pytest.raises(GraphEditError, match="no option or branch"):
            connect(graph, "intro", "intro-opt-7", "shop")

    def test_connect_option_with_nested_branches_rejected(self, graph):
        graph.node("intro").options[1].branches.append(Branch(id="intro-opt-1-when-0", condition="c"))
        with pytest.raises(GraphEditError, match="nested branches"):
            connect(graph, "intro", "intro-opt-1", "gate")
        result = connect(graph, "intro", "intro-opt-1-when-0", "gate")
        assert written(result)["intro"]["answer"][1] == {"text": "leave", "when": [{"if": "c", "open": "gate"}]}

    def test_disconnect_clears_target(self, graph):
        result = disconnect(graph, "intro", "intro-opt-0")
        assert all(e.source_handle != "intro-opt-0" for e in result.edges)
        assert "open" not in written(result)["intro"]["answer"][0]

    def test_disconnect_branch(self, graph):
        result = disconnect(graph, "gate", "gate-branch-0")
        assert written(result)["gate"]["when"][0] == {"if": "has key"}
