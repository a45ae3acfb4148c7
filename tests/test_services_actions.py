import pytest

from nodes.exceptions import DuplicateTagError, InvalidTagError, NodeNotFoundError
from nodes.services import (
    add_tag, add_tags, all_tags, archive_nodes, create_node, delete_nodes,
    export_nodes, get_node, import_nodes, list_nodes, remove_tags, restore_nodes,
    tags_for, toggle_archived,
)

def test_buy_milk_example(db):
    n = create_node("buy milk")
    assert n.id == 1
    assert n.archived is False
    assert n.created == n.edited == n.viewed

    add_tag(1, "shopping")
    with pytest.raises(DuplicateTagError):
        add_tag(1, "shopping")
    assert tags_for(1) == ["shopping"]

def test_add_tag_to_missing_node(db):
    with pytest.raises(NodeNotFoundError):
        add_tag(5, "nope")
    assert all_tags() == {}

def test_blank_tag_is_rejected(db):
    create_node("x")
    with pytest.raises(InvalidTagError):
        add_tag(1, "  ")
    assert tags_for(1) == []

def test_archive_toggle_restore(db):
    a = create_node("a", tags=["alpha"])
    b = create_node("b")

    assert archive_nodes([a.id, 99]) == 1
    stored = get_node(a.id)
    assert stored.archived is True
    assert stored.tags == ["alpha"]  # soft delete keeps tags

    assert toggle_archived([a.id, b.id]) == 2
    assert get_node(a.id).archived is False
    assert get_node(b.id).archived is True

    assert restore_nodes([b.id]) == 1
    assert get_node(b.id).archived is False

def test_delete_removes_node_and_tags(db):
    a = create_node("a", tags=["alpha", "shared"])
    b = create_node("b", tags=["shared"])

    assert delete_nodes([a.id, 1234]) == 1
    assert get_node(a.id) is None
    assert all_tags() == {"shared": 1}
    assert get_node(b.id).tags == ["shared"]

def test_add_tags_skips_existing_pairs(db):
    a = create_node("a", tags=["x"])
    b = create_node("b")

    assert add_tags([a.id, b.id], ["x", "y"]) == 3
    assert tags_for(a.id) == ["x", "y"]
    assert tags_for(b.id) == ["x", "y"]
    assert all_tags() == {"x": 2, "y": 2}

def test_add_tags_is_all_or_nothing(db):
    a = create_node("a")
    with pytest.raises(NodeNotFoundError):
        add_tags([a.id, 77], ["x"])
    assert tags_for(a.id) == []

def test_remove_tags(db):
    a = create_node("a", tags=["x", "y"])
    b = create_node("b", tags=["x"])

    assert remove_tags([a.id, b.id], ["x", "missing"]) == 2
    assert tags_for(a.id) == ["y"]
    assert tags_for(b.id) == []
    assert remove_tags([], ["y"]) == 0

def test_export_and_import(db):
    a = create_node("first", tags=["t1"])
    b = create_node("second")
    archive_nodes([b.id])

    payload = export_nodes()
    assert [item["id"] for item in payload] == [a.id, b.id]
    assert payload[0]["tags"] == ["t1"]
    assert payload[1]["archived"] is True

    assert import_nodes(payload) == 2
    copies = list_nodes(archived=None, sort="id")[:2]
    assert [n.content for n in copies] == ["second", "first"]
    assert copies[0].archived is True
    assert copies[1].tags == ["t1"]
    assert copies[1].created == a.created
