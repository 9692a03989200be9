"""
Tests for form_validator.analyzer.form_field_resolver.

This module tests:
- Structural discovery through arbitrary container nesting
- Positional fallback between sibling forms
- Cycle and depth guards
- The async variant and its handling of failing subtree lookups
"""

import pytest

from form_validator.analyzer.form_field_resolver import FormFieldResolver, ResolutionPlan
from form_validator.tree.node_index import NodeIndex
from form_validator.tree.provider import InMemoryDocumentTree

from builders import make_index, make_node


CONTAINER_CYCLE = ["Block", "VFlex", "HFlex", "Container", "GenericWrapper"]


def _nested(depth: int, offset: int = 0):
    """form → c1 → ... → c{depth} → (email, name); container types rotate from offset"""
    chain = ["form"] + [f"c{i}" for i in range(1, depth + 1)]
    types = ["Form"] + [CONTAINER_CYCLE[(offset + i) % len(CONTAINER_CYCLE)] for i in range(depth)]
    nodes = []
    for pos, (node_id, node_type) in enumerate(zip(chain, types)):
        children = [chain[pos + 1]] if pos + 1 < len(chain) else ["email", "name"]
        nodes.append(make_node(node_id, node_type, children))
    nodes.append(make_node("email", "TextInput"))
    nodes.append(make_node("name", "TextArea"))
    return nodes


@pytest.mark.parametrize("offset", range(len(CONTAINER_CYCLE)))
@pytest.mark.parametrize("depth", [0, 1, 2, 3, 4, 5])
def test_structural_result_independent_of_nesting(depth, offset):
    index = make_index(*_nested(depth, offset))
    resolver = FormFieldResolver()
    fields = resolver.resolve_fields(index, index.get("form"))
    assert [f.id for f in fields] == ["email", "name"]
    plan = resolver.plan(index)
    assert plan.structural["form"] == ["email", "name"]
    assert plan.positional == {}


def test_every_container_type_is_descended():
    wrappers = [make_node(f"w{i}", t, [f"f{i}"]) for i, t in enumerate(CONTAINER_CYCLE)]
    fields = [make_node(f"f{i}", "TextInput") for i in range(len(CONTAINER_CYCLE))]
    index = make_index(make_node("form", "Form", [w.id for w in wrappers]), *wrappers, *fields)
    plan = FormFieldResolver().plan(index)
    assert plan.structural["form"] == [f.id for f in fields]
    assert plan.positional == {}


def test_structural_results_in_breadth_first_discovery_order():
    index = make_index(
        make_node("form", "Form", ["wrap", "top"]),
        make_node("wrap", "VFlex", ["inner"]),
        make_node("inner", "TextArea"),
        make_node("top", "TextInput"),
    )
    plan = FormFieldResolver().plan(index)
    assert plan.structural["form"] == ["top", "inner"]


def test_non_container_nodes_are_not_descended():
    index = make_index(
        make_node("form", "Form", ["label"]),
        make_node("label", "Label", ["hidden"]),
        make_node("hidden", "TextInput"),
    )
    plan = FormFieldResolver().plan(index)
    assert plan.structural["form"] == []
    # reachable only through the flattened order
    assert plan.positional["form"] == ["hidden"]


def test_positional_fallback_between_sibling_forms():
    index = make_index(
        make_node("root", "Root", ["a", "x", "b", "y"]),
        make_node("a", "Form", ["a1"]),
        make_node("a1", "TextInput"),
        make_node("x", "TextInput"),
        make_node("b", "Form", ["b1"]),
        make_node("b1", "TextInput"),
        make_node("y", "TextInput"),
    )
    resolver = FormFieldResolver()
    assert [n.id for n in resolver.resolve_fields(index, index.get("a"))] == ["a1", "x"]
    assert [n.id for n in resolver.resolve_fields(index, index.get("b"))] == ["b1", "y"]


def test_field_before_any_form_is_orphaned():
    index = make_index(
        make_node("early", "TextInput"),
        make_node("form", "Form", ["f1"]),
        make_node("f1", "TextInput"),
    )
    plan = FormFieldResolver().plan(index)
    assert plan.orphans == ["early"]
    assert plan.fields_for("form") == ["f1"]


def test_field_owned_by_another_form_is_never_claimed_positionally():
    index = make_index(
        make_node("a", "Form"),
        make_node("b", "Form", ["b1"]),
        make_node("b1", "TextInput"),
    )
    plan = FormFieldResolver().plan(index)
    assert plan.fields_for("a") == []
    assert plan.fields_for("b") == ["b1"]


def test_nested_forms_report_ambiguity_and_first_form_wins():
    index = make_index(
        make_node("outer", "Form", ["inner"]),
        make_node("inner", "Form"),
        make_node("loose", "TextInput"),
    )
    plan = FormFieldResolver().plan(index)
    assert plan.fields_for("outer") == ["loose"]
    assert plan.fields_for("inner") == []
    assert len(plan.ambiguities) == 1
    assert plan.ambiguities[0].field_id == "loose"
    assert plan.ambiguities[0].form_ids == ["outer", "inner"]


def test_fields_for_deduplicates_preferring_structural_order():
    plan = ResolutionPlan(structural={"f": ["a", "b"]}, positional={"f": ["b", "c", "a"]})
    assert plan.fields_for("f") == ["a", "b", "c"]


def test_cycles_in_children_graph_terminate():
    index = make_index(
        make_node("form", "Form", ["c1"]),
        make_node("c1", "Block", ["c2"]),
        make_node("c2", "Block", ["c1", "form", "field"]),
        make_node("field", "TextInput"),
    )
    assert [n.id for n in FormFieldResolver().resolve_fields(index, index.get("form"))] == ["field"]


def test_depth_bound_stops_structural_search():
    index = make_index(*_nested(4))
    plan = FormFieldResolver(max_depth=2).plan(index)
    assert plan.structural["form"] == []


def test_custom_predicates_replace_type_sets():
    index = make_index(
        make_node("form", "Form", ["grid"]),
        make_node("grid", "Grid", ["w"]),
        make_node("w", "DatePicker"),
    )
    resolver = FormFieldResolver(
        is_field=lambda n: n.type == "DatePicker",
        is_container=lambda n: n.type == "Grid",
    )
    assert resolver.plan(index).structural["form"] == ["w"]


def test_from_settings_reads_type_lists():
    resolver = FormFieldResolver.from_settings(
        {"field_types": ["Select"], "container_types": ["Row"], "max_depth": 3}
    )
    assert resolver.field_types == frozenset({"Select"})
    assert resolver.container_types == frozenset({"Row"})
    assert resolver.max_depth == 3


@pytest.mark.asyncio
async def test_async_resolution_matches_sync_order():
    nodes = [
        make_node("form", "Form", ["w1", "w2", "f0"]),
        make_node("w1", "Block", ["f1", "f2"]),
        make_node("w2", "HFlex", ["f3"]),
        make_node("f0", "TextInput"),
        make_node("f1", "TextInput"),
        make_node("f2", "TextArea"),
        make_node("f3", "CustomWidget"),
    ]
    provider = InMemoryDocumentTree(nodes, latency=0.001)
    index = NodeIndex.from_nodes(await provider.list_all_nodes())
    resolver = FormFieldResolver()
    expected = [n.id for n in resolver.resolve_fields(index, index.get("form"))]
    got = [n.id for n in await resolver.resolve_fields_async(provider, index, index.get("form"))]
    assert got == expected == ["f0", "f1", "f2", "f3"]


@pytest.mark.asyncio
async def test_async_failing_subtree_is_skipped(caplog):
    nodes = [
        make_node("form", "Form", ["bad", "good"]),
        make_node("bad", "Block", ["lost"]),
        make_node("good", "Block", ["kept"]),
        make_node("lost", "TextInput"),
        make_node("kept", "TextInput"),
    ]
    provider = InMemoryDocumentTree(nodes)
    provider.fail_on.add(("get_children", "bad"))
    index = NodeIndex.from_nodes(await provider.list_all_nodes())

    plan = await FormFieldResolver().plan_async(provider, index)

    assert plan.structural["form"] == ["kept"]
    assert "Skipping subtree of bad" in caplog.text
