from __future__ import annotations
from datetime import datetime, UTC
from typing import Any, Iterable, Optional
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
import logging

from .db import session_scope
from .exceptions import DuplicateTagError, InvalidContentError, InvalidTagError, NodeNotFoundError
from .models import Node, Tag
from .pattern import parse_pattern, to_clause

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "viewed": Node.viewed,
    "edited": Node.edited,
    "created": Node.created,
    "id": Node.id,
}


def _normal_tags(tags: Optional[Iterable[str]]) -> list[str]:
    if not tags:
        return []
    return sorted({t.strip() for t in tags if t and t.strip()})


def _check_content(content: Optional[str]) -> str:
    if content is None or not content.strip():
        raise InvalidContentError("Node content must not be empty")
    return content


def _require(s: Session, node_id: int) -> Node:
    node = s.get(Node, node_id)
    if node is None:
        raise NodeNotFoundError(node_id)
    return node


def create_node(content: str, tags: Optional[Iterable[str]] = None) -> Node:
    """Insert a node together with its tags. Timestamps default to now."""
    content = _check_content(content)
    labels = _normal_tags(tags)
    with session_scope() as s:
        node = Node(content=content)
        node.tag_rows = [Tag(tag=t) for t in labels]
        s.add(node)
        s.flush()  # get the ID assigned
        s.refresh(node)
        logger.info("Created node %s with tags %s", node.id, labels)
        return node


def get_node(node_id: int) -> Optional[Node]:
    """Fetch by id without touching any timestamp."""
    with session_scope() as s:
        return s.get(Node, node_id)


def show_node(node_id: int) -> Node:
    """Fetch a node for display and bump its viewed timestamp."""
    with session_scope() as s:
        node = _require(s, node_id)
        node.touch()
        s.add(node)
        return node


def edit_node(node_id: int, content: str) -> Node:
    """
    Replace a node's content. ``edited`` is only bumped when the content
    actually changed; ``viewed`` always is. Both happen in one transaction.
    """
    content = _check_content(content)
    with session_scope() as s:
        node = _require(s, node_id)
        changed = node.content != content
        if changed:
            node.content = content
        node.touch(edited=changed)
        s.add(node)
        if changed:
            logger.info("Edited node %s", node_id)
        return node


def _nodes_in(s: Session, ids: Iterable[int]) -> list[Node]:
    ids = list(ids)
    if not ids:
        return []
    return list(s.exec(select(Node).where(Node.id.in_(ids))))


def archive_nodes(ids: Iterable[int], value: bool = True) -> int:
    """Soft delete (or restore) nodes. Returns how many nodes were found."""
    with session_scope() as s:
        nodes = _nodes_in(s, ids)
        for node in nodes:
            node.archived = value
            s.add(node)
        logger.info("%s %d node(s)", "Archived" if value else "Unarchived", len(nodes))
        return len(nodes)


def toggle_archived(ids: Iterable[int]) -> int:
    with session_scope() as s:
        nodes = _nodes_in(s, ids)
        for node in nodes:
            node.archived = not node.archived
            s.add(node)
        logger.info("Toggled archived flag of %d node(s)", len(nodes))
        return len(nodes)


def restore_nodes(ids: Iterable[int]) -> int:
    return archive_nodes(ids, value=False)


def delete_nodes(ids: Iterable[int]) -> int:
    """Hard delete. A node's tags go with it; unknown ids are skipped."""
    with session_scope() as s:
        nodes = _nodes_in(s, ids)
        for node in nodes:
            s.delete(node)
        logger.info("Deleted %d node(s)", len(nodes))
        return len(nodes)


def add_tag(node_id: int, tag: str) -> None:
    labels = _normal_tags([tag])
    if not labels:
        raise InvalidTagError("Tag must not be empty")
    label = labels[0]
    with session_scope() as s:
        node = _require(s, node_id)
        if label in node.tags:
            logger.warning("Node %s already tagged '%s'", node_id, label)
            raise DuplicateTagError(node_id, label)
        node.tag_rows.append(Tag(tag=label))
        try:
            s.flush()
        except IntegrityError as e:
            # lost a race against another writer
            raise DuplicateTagError(node_id, label) from e


def add_tags(ids: Iterable[int], tags: Iterable[str]) -> int:
    """Tag every given node; pairs that already exist are left alone.

    Returns the number of new (node, tag) pairs.
    """
    labels = _normal_tags(tags)
    added = 0
    with session_scope() as s:
        for node_id in ids:
            node = _require(s, node_id)
            existing = set(node.tags)
            for label in labels:
                if label not in existing:
                    node.tag_rows.append(Tag(tag=label))
                    added += 1
        logger.info("Added %d tag(s)", added)
        return added


def remove_tags(ids: Iterable[int], tags: Iterable[str]) -> int:
    ids = list(ids)
    labels = _normal_tags(tags)
    if not ids or not labels:
        return 0
    with session_scope() as s:
        rows = list(s.exec(select(Tag).where(Tag.node.in_(ids), Tag.tag.in_(labels))))
        for row in rows:
            s.delete(row)
        logger.info("Removed %d tag(s)", len(rows))
        return len(rows)


def tags_for(node_id: int) -> list[str]:
    with session_scope() as s:
        return _require(s, node_id).tags


def all_tags() -> dict[str, int]:
    """Every tag label in use with the number of nodes carrying it."""
    with session_scope() as s:
        stmt = select(Tag.tag, func.count(Tag.node)).group_by(Tag.tag).order_by(Tag.tag)
        return {tag: count for tag, count in s.exec(stmt)}


def list_nodes(
    pattern: Optional[str] = None,
    archived: Optional[bool] = False,
    limit: Optional[int] = None,
    sort: str = "viewed",  # "viewed" | "edited" | "created" | "id"
    reverse: bool = False,
) -> list[Node]:
    """
    Return nodes matching pattern, newest first by the sort column.
    - archived: False = active nodes only, True = archived only, None = both
    - reverse: oldest first; applied before limit
    """
    column = SORT_COLUMNS.get(sort)
    if column is None:
        raise ValueError(f"Unknown sort key '{sort}'")
    terms = parse_pattern(pattern)

    with session_scope() as s:
        stmt = select(Node).where(to_clause(terms))
        if archived is not None:
            stmt = stmt.where(Node.archived == archived)
        if reverse:
            stmt = stmt.order_by(column.asc(), Node.id.asc())
        else:
            stmt = stmt.order_by(column.desc(), Node.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(s.exec(stmt))


def node_to_dict(n: Node) -> dict[str, Any]:
    return {
        "id": n.id,
        "content": n.content,
        "tags": n.tags,
        "archived": n.archived,
        "created": n.created.isoformat(),
        "edited": n.edited.isoformat(),
        "viewed": n.viewed.isoformat(),
    }


def export_nodes() -> list[dict[str, Any]]:
    return [node_to_dict(n) for n in list_nodes(archived=None, sort="id", reverse=True)]


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    # exports without an offset are UTC
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def import_nodes(items: Iterable[dict[str, Any]]) -> int:
    """Insert exported nodes as new nodes (fresh ids), keeping timestamps and tags."""
    count = 0
    with session_scope() as s:
        for item in items:
            node = Node(
                content=_check_content(item.get("content")),
                archived=bool(item.get("archived", False)),
                created=_parse_time(item.get("created")),
                edited=_parse_time(item.get("edited")),
                viewed=_parse_time(item.get("viewed")),
            )
            node.tag_rows = [Tag(tag=t) for t in _normal_tags(item.get("tags"))]
            s.add(node)
            count += 1
        logger.info("Imported %d node(s)", count)
        return count
