# nodes/app.py
from __future__ import annotations
from typing import Optional
from datetime import datetime

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from nodes.db import init_db
from nodes.exceptions import (
    DuplicateTagError, InvalidContentError, InvalidTagError, NodeNotFoundError, NodesError,
)
from nodes.services import (
    list_nodes,
    create_node,
    get_node,
    show_node,
    edit_node,
    delete_nodes,
    archive_nodes,
    add_tag,
    remove_tags,
    all_tags,
)

# --- bootstrap DB ---
init_db()

app = FastAPI(title="nodes API")


@app.exception_handler(NodeNotFoundError)
async def _not_found(request: Request, exc: NodeNotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(DuplicateTagError)
async def _duplicate_tag(request: Request, exc: DuplicateTagError):
    return JSONResponse(status_code=409, content={"detail": exc.message})


@app.exception_handler(InvalidTagError)
@app.exception_handler(InvalidContentError)
async def _invalid_input(request: Request, exc: NodesError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


# ---------- Schemas ----------
class NodeCreate(BaseModel):
    content: str
    tags: list[str] = Field(default_factory=list)

class NodeEdit(BaseModel):
    content: str

class NodeOut(BaseModel):
    id: int
    content: str
    tags: list[str]
    archived: bool
    created: datetime
    edited: datetime
    viewed: datetime

def _to_out(n) -> NodeOut:
    return NodeOut(
        id=n.id, content=n.content, tags=list(n.tags), archived=n.archived,
        created=n.created, edited=n.edited, viewed=n.viewed,
    )

# ---------- API ----------
@app.get("/api/nodes", response_model=list[NodeOut])
def api_list_nodes(
    pattern: Optional[str] = None,
    archived: Optional[bool] = False,
    limit: Optional[int] = Query(None, ge=0),
    sort: str = Query("viewed", pattern="^(viewed|edited|created|id)$"),
    reverse: bool = False,
):
    try:
        nodes = list_nodes(pattern=pattern, archived=archived, limit=limit, sort=sort, reverse=reverse)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [_to_out(n) for n in nodes]

@app.post("/api/nodes", response_model=NodeOut, status_code=201)
def api_create_node(payload: NodeCreate):
    return _to_out(create_node(payload.content, payload.tags))

@app.get("/api/nodes/{node_id}", response_model=NodeOut)
def api_get_node(node_id: int):
    n = get_node(node_id)
    if not n:
        raise HTTPException(status_code=404, detail="Not found")
    return _to_out(n)

@app.post("/api/nodes/{node_id}/show", response_model=NodeOut)
def api_show_node(node_id: int):
    return _to_out(show_node(node_id))

@app.patch("/api/nodes/{node_id}", response_model=NodeOut)
def api_edit_node(node_id: int, payload: NodeEdit):
    return _to_out(edit_node(node_id, payload.content))

@app.delete("/api/nodes/{node_id}")
def api_delete_node(node_id: int):
    if not delete_nodes([node_id]):
        raise HTTPException(status_code=404, detail="Not found")
    return {"ok": True}

@app.post("/api/nodes/{node_id}/archive", response_model=NodeOut)
def api_archive(node_id: int, value: bool = True):
    if not archive_nodes([node_id], value):
        raise HTTPException(status_code=404, detail="Not found")
    return _to_out(get_node(node_id))

@app.post("/api/nodes/{node_id}/tags/{tag}", response_model=NodeOut, status_code=201)
def api_add_tag(node_id: int, tag: str):
    add_tag(node_id, tag)
    return _to_out(get_node(node_id))

@app.delete("/api/nodes/{node_id}/tags/{tag}")
def api_remove_tag(node_id: int, tag: str):
    if not remove_tags([node_id], [tag]):
        raise HTTPException(status_code=404, detail="Not found")
    return {"ok": True}

@app.get("/api/tags")
def api_tags() -> dict[str, int]:
    return all_tags()
