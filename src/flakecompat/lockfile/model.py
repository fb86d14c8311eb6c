"""Lock graph typed model."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

NodeId = str
FollowsPath = tuple[str, ...]
InputSpec = NodeId | FollowsPath

SUPPORTED_VERSIONS = range(5, 8)


@dataclass(frozen=True, slots=True)
class LockNode:
    info: dict[str, Any] = field(default_factory=dict)
    locked: dict[str, Any] | None = None
    original: dict[str, Any] | None = None
    inputs: dict[str, InputSpec] = field(default_factory=dict)
    flake: bool = True

    @property
    def subdir(self) -> str:
        if self.locked is None:
            return ""
        return str(self.locked.get("dir", ""))


@dataclass(frozen=True, slots=True)
class LockGraph:
    version: int
    root: NodeId
    nodes: dict[NodeId, LockNode]

    @property
    def root_node(self) -> LockNode:
        return self.nodes[self.root]


__all__ = ["FollowsPath", "InputSpec", "LockGraph", "LockNode", "NodeId", "SUPPORTED_VERSIONS"]
