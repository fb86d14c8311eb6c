"""Follows-path resolution over a lock graph."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TypeVar

from flakecompat.errors import UnresolvedInputError
from flakecompat.lockfile.model import FollowsPath, InputSpec, LockGraph, NodeId

T = TypeVar("T")


def resolve_input(spec: InputSpec, graph: LockGraph) -> NodeId:
    """Resolve a node id or a follows-path into the node id it designates.

    Follows-paths are always walked from the root node, including follows-paths
    found in the input table of a nested node.
    """
    node_id = _resolve(spec, graph, active=())
    if node_id not in graph.nodes:
        raise UnresolvedInputError(
            "Input refers to a node that is not in the lock file.",
            context={"operation": "resolve_input", "spec": _describe(spec), "node": node_id},
        )
    return node_id


def input_by_path(node_id: NodeId, path: FollowsPath, graph: LockGraph) -> NodeId:
    """Walk ``path`` one input name at a time starting at ``node_id``."""
    return _walk(node_id, path, graph, active=())


def root_override_keys(graph: LockGraph, overrides: Mapping[str, T | None]) -> dict[NodeId, T]:
    """Map the node ids of the root's direct inputs to their override values.

    Inputs that are follows-paths redirect to another node and are never
    overridden.
    """
    keyed: dict[NodeId, T] = {}
    for name, spec in graph.root_node.inputs.items():
        value = overrides.get(name)
        if value is None or not isinstance(spec, str):
            continue
        keyed[spec] = value
    return keyed


def _resolve(spec: InputSpec, graph: LockGraph, *, active: tuple[FollowsPath, ...]) -> NodeId:
    if isinstance(spec, str):
        return spec
    if spec in active:
        raise UnresolvedInputError(
            "Follows paths form a cycle.",
            context={"operation": "resolve_input", "spec": _describe(spec)},
        )
    return _walk(graph.root, spec, graph, active=(*active, spec))


def _walk(
    node_id: NodeId,
    path: FollowsPath,
    graph: LockGraph,
    *,
    active: tuple[FollowsPath, ...],
) -> NodeId:
    current = node_id
    for step in path:
        node = graph.nodes.get(current)
        if node is None:
            raise UnresolvedInputError(
                "Follows path passes through a node that is not in the lock file.",
                context={"operation": "resolve_input", "path": _describe(path), "node": current},
            )
        spec = node.inputs.get(step)
        if spec is None:
            raise UnresolvedInputError(
                f"Node `{current}` has no input named `{step}`.",
                hint="Check the follows declaration against the lock file inputs.",
                context={"operation": "resolve_input", "path": _describe(path), "node": current},
            )
        current = _resolve(spec, graph, active=active)
    return current


def _describe(spec: InputSpec) -> str:
    return spec if isinstance(spec, str) else "/".join(spec)
