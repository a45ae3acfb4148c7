from datetime import datetime, UTC
from typing import Optional
from sqlalchemy import event, text
from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    return datetime.now(UTC)


def _now_default() -> dict:
    return {"server_default": text("CURRENT_TIMESTAMP")}


class Tag(SQLModel, table=True):
    __tablename__ = "tags"

    node: int = Field(foreign_key="nodes.id", primary_key=True, ondelete="CASCADE")
    tag: str = Field(primary_key=True)


class Node(SQLModel, table=True):
    __tablename__ = "nodes"
    # AUTOINCREMENT: ids of deleted nodes are never handed out again
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    content: str = Field(nullable=False)

    # None until insert, then filled with one shared instant
    created: Optional[datetime] = Field(default=None, nullable=False, sa_column_kwargs=_now_default())
    edited: Optional[datetime] = Field(default=None, nullable=False, sa_column_kwargs=_now_default())
    viewed: Optional[datetime] = Field(default=None, nullable=False, sa_column_kwargs=_now_default())

    archived: bool = Field(
        default=False, nullable=False, index=True,
        sa_column_kwargs={"server_default": text("0")},
    )

    tag_rows: list[Tag] = Relationship(
        sa_relationship_kwargs={
            "cascade": "all",
            "lazy": "selectin",
            "order_by": "Tag.tag",
        }
    )

    @property
    def tags(self) -> list[str]:
        return sorted(t.tag for t in self.tag_rows)

    def touch(self, *, edited: bool = False) -> None:
        """Mark the node as viewed (and edited, if asked) right now."""
        now = utcnow()
        self.viewed = now
        if edited:
            self.edited = now


@event.listens_for(Node, "before_insert")
def _stamp_new_node(mapper, connection, target: Node) -> None:
    now = utcnow()
    for column in ("created", "edited", "viewed"):
        if getattr(target, column) is None:
            setattr(target, column, now)
