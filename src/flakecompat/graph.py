"""Memoized evaluation of every node in a lock graph."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from flakecompat.errors import InvariantViolationError, UnresolvedInputError
from flakecompat.evaluate import Evaluator, require_outputs
from flakecompat.fetch import FetchResult, SourceFetcher, parse_source_descriptor
from flakecompat.fetch.descriptors import SOURCE_TYPES, SourceDescriptor
from flakecompat.lockfile import InputSpec, LockGraph, LockNode, resolve_input, root_override_keys
from flakecompat.manifest import SourceManifest
from flakecompat.node import LazyInputs, ResolvedNode
from flakecompat.observability import StructuredLogger

SELF_INPUT = "self"
UNLOCKED_ROOT = "root"

Override = SourceDescriptor | FetchResult | str | Path


@dataclass(slots=True)
class GraphEvaluator:
    """Resolve lock graph nodes into :class:`ResolvedNode` values for one session.

    Each node is fetched and evaluated at most once; every lookup of the same
    node id returns the same instance.
    """

    graph: LockGraph
    fetcher: SourceFetcher
    evaluator: Evaluator
    root_source: FetchResult | None = None
    overrides: Mapping[str, Override | None] = field(default_factory=dict)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    _session: dict[str, ResolvedNode] = field(init=False, default_factory=dict)
    _root_overrides: dict[str, Override] = field(init=False, default_factory=dict)

    def __post_init__(self) -> None:
        self._root_overrides = root_override_keys(self.graph, self.overrides)

    @property
    def session(self) -> Mapping[str, ResolvedNode]:
        return dict(self._session)

    def resolve_root(self) -> ResolvedNode:
        return self.resolve_node(self.graph.root)

    def resolve_node(self, node_id: str) -> ResolvedNode:
        cached = self._session.get(node_id)
        if cached is not None:
            return cached

        node = self.graph.nodes.get(node_id)
        if node is None:
            raise UnresolvedInputError(
                f"Node `{node_id}` is not in the lock file.",
                context={"operation": "resolve_node", "node": node_id},
            )

        source = self._source_for(node_id, node)
        subdir = "" if node_id == self.graph.root else node.subdir
        out_path = source.tree / subdir if subdir else source.tree

        if not node.flake:
            resolved = ResolvedNode(
                node_id=node_id, source=source, out_path=out_path, inputs={}, is_flake=False
            )
            self._session[node_id] = resolved
            self.logger.log(
                operation="resolve_node",
                node=node_id,
                source_type=None,
                message="Resolved non-flake source.",
            )
            return resolved

        resolved = ResolvedNode(
            node_id=node_id,
            source=source,
            out_path=out_path,
            inputs=LazyInputs(node.inputs, self._resolve_input),
        )
        # Registered before evaluation so that `self` and cyclic inputs see this instance.
        self._session[node_id] = resolved
        try:
            evaluate_node(resolved, self.evaluator, logger=self.logger)
        except Exception:
            self._session.pop(node_id, None)
            raise
        return resolved

    def manifest(self) -> SourceManifest:
        return SourceManifest(
            nodes={node_id: node.source_info for node_id, node in sorted(self._session.items())}
        )

    def _resolve_input(self, spec: InputSpec) -> ResolvedNode:
        return self.resolve_node(resolve_input(spec, self.graph))

    def _source_for(self, node_id: str, node: LockNode) -> FetchResult:
        if node_id == self.graph.root and self.root_source is not None:
            return self.root_source.strip_dirty_revision()

        override = self._root_overrides.get(node_id)
        if override is not None:
            self.logger.log(
                operation="override",
                node=node_id,
                source_type=None,
                message="Using caller-supplied override for input.",
                extra={"override": str(override)},
            )
            return self._override_source(node_id, override)

        if node.locked is None:
            raise InvariantViolationError(
                f"Node `{node_id}` has no locked source.",
                hint="Relock the flake; every non-root node needs a `locked` entry.",
                context={"operation": "resolve_node", "node": node_id},
            )
        attrs = {**node.info, **{key: value for key, value in node.locked.items() if key != "dir"}}
        base_dir = self.root_source.tree if self.root_source is not None else None
        descriptor = parse_source_descriptor(attrs, base_dir=base_dir)
        return self.fetcher.fetch(descriptor, node=node_id)

    def _override_source(self, node_id: str, override: Override) -> FetchResult:
        if isinstance(override, FetchResult):
            return override
        if isinstance(override, (str, Path)):
            return self.fetcher.adopt_path(override, node=node_id)
        if isinstance(override, tuple(SOURCE_TYPES.values())):
            return self.fetcher.fetch(override, node=node_id)
        raise InvariantViolationError(
            "Unsupported override value.",
            hint="Pass a path, a FetchResult or a source descriptor.",
            context={"operation": "override", "node": node_id, "type": type(override).__name__},
        )


def evaluate_node(node: ResolvedNode, evaluator: Evaluator, *, logger: StructuredLogger) -> None:
    """Call the node's outputs function with its inputs plus ``self`` and store the result."""
    outputs_fn = require_outputs(evaluator.load(node.out_path), path=node.out_path)
    outputs: Any = outputs_fn(_with_self(node))
    if not isinstance(outputs, Mapping):
        raise InvariantViolationError(
            "Flake outputs must be a mapping.",
            context={
                "operation": "evaluate",
                "node": node.node_id,
                "type": type(outputs).__name__,
            },
        )
    node.complete(outputs)
    logger.log(
        operation="evaluate",
        node=node.node_id,
        source_type=None,
        message="Evaluated flake outputs.",
        extra={"outputs": sorted(str(key) for key in outputs)},
    )


def resolve_unlocked(
    root_source: FetchResult,
    evaluator: Evaluator,
    *,
    logger: StructuredLogger,
) -> ResolvedNode:
    """Evaluate a source tree that has no lock file as a single flake without inputs."""
    node = ResolvedNode(
        node_id=UNLOCKED_ROOT,
        source=root_source.strip_dirty_revision(),
        out_path=root_source.tree,
        inputs=LazyInputs({}, _no_inputs),
    )
    evaluate_node(node, evaluator, logger=logger)
    return node


def _no_inputs(spec: InputSpec) -> ResolvedNode:
    raise UnresolvedInputError(
        "Flake has no locked inputs.",
        context={"operation": "resolve_input", "spec": str(spec)},
    )


def _with_self(node: ResolvedNode) -> Mapping[str, ResolvedNode]:
    if isinstance(node.inputs, LazyInputs):
        return node.inputs.with_entry(SELF_INPUT, node)
    return {**node.inputs, SELF_INPUT: node}
