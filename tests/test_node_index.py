"""
Tests for form_validator.tree.node_index.
"""

import pytest

from form_validator.tree.node_index import NodeIndex

from builders import make_index, make_node


def test_preserves_document_order_and_positions():
    index = make_index(
        make_node("a", "Form", ["b"]),
        make_node("b", "TextInput"),
        make_node("c", "Form"),
    )
    assert [n.id for n in index] == ["a", "b", "c"]
    assert index.position("b") == 1
    assert index.position("missing") == -1
    assert [f.id for f in index.forms()] == ["a", "c"]


def test_duplicate_ids_are_rejected():
    with pytest.raises(ValueError):
        NodeIndex.from_nodes([make_node("a", "Form"), make_node("a", "TextInput")])


def test_children_of_skips_ids_missing_from_snapshot():
    index = make_index(make_node("a", "Form", ["ghost", "b"]), make_node("b", "TextInput"))
    assert [n.id for n in index.children_of("a")] == ["b"]
    assert index.children_of("ghost") == []


def test_next_form_position():
    index = make_index(
        make_node("f1", "Form"),
        make_node("x", "TextInput"),
        make_node("f2", "Form"),
        make_node("y", "TextInput"),
    )
    assert index.next_form_position(0) == 2
    assert index.next_form_position(2) == len(index)


def test_descendant_ids_terminates_on_cycles():
    index = make_index(
        make_node("a", "Block", ["b"]),
        make_node("b", "Block", ["a", "c"]),
        make_node("c", "TextInput"),
    )
    assert index.descendant_ids("a") == {"b", "c"}


def test_node_copy_does_not_share_attributes():
    node = make_node("a", "TextInput", attrs={"required": "required"})
    clone = node.copy()
    clone.attributes["type"] = "email"
    assert "type" not in node.attributes
