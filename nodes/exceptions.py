"""Exceptions raised by the nodes store, its config and its services."""
from __future__ import annotations
from typing import Any, Optional


class NodesError(Exception):
    """Base class for all errors raised by nodes."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NodeNotFoundError(NodesError, LookupError):
    def __init__(self, node_id: int):
        self.node_id = node_id
        super().__init__(f"No such node: {node_id}", {"node": node_id})


class DuplicateTagError(NodesError):
    def __init__(self, node_id: int, tag: str):
        self.node_id = node_id
        self.tag = tag
        super().__init__(
            f"Node {node_id} is already tagged '{tag}'", {"node": node_id, "tag": tag}
        )


class InvalidContentError(NodesError, ValueError):
    pass


class InvalidTagError(NodesError, ValueError):
    pass


class ConfigError(NodesError):
    """The configuration file could not be read or is invalid."""


class StorageNotFoundError(ConfigError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No such storage: '{name}'", {"storage": name})
