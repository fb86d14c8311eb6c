"""Resolved lock graph nodes."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from flakecompat.errors import InvariantViolationError
from flakecompat.fetch.result import FetchResult
from flakecompat.lockfile.model import InputSpec


class LazyInputs(Mapping[str, "ResolvedNode"]):
    """Input mapping that resolves each entry on first access.

    Copies made with :meth:`with_entry` share the resolution cache, so every
    view observes the same resolved node for a name.
    """

    __slots__ = ("_specs", "_resolve", "_cache", "_extra")

    def __init__(
        self,
        specs: Mapping[str, InputSpec],
        resolve: Callable[[InputSpec], ResolvedNode],
        *,
        _cache: dict[str, ResolvedNode] | None = None,
        _extra: Mapping[str, ResolvedNode] | None = None,
    ) -> None:
        self._specs = dict(specs)
        self._resolve = resolve
        self._cache = _cache if _cache is not None else {}
        self._extra = dict(_extra or {})

    def __getitem__(self, name: str) -> ResolvedNode:
        if name in self._extra:
            return self._extra[name]
        if name not in self._specs:
            raise KeyError(name)
        if name not in self._cache:
            self._cache[name] = self._resolve(self._specs[name])
        return self._cache[name]

    def __iter__(self) -> Iterator[str]:
        yield from self._specs
        yield from (name for name in self._extra if name not in self._specs)

    def __len__(self) -> int:
        return len(self._specs.keys() | self._extra.keys())

    def __repr__(self) -> str:
        return f"LazyInputs({sorted(self)!r})"

    def with_entry(self, name: str, node: ResolvedNode) -> LazyInputs:
        return LazyInputs(
            self._specs,
            self._resolve,
            _cache=self._cache,
            _extra={**self._extra, name: node},
        )

    def resolved(self) -> tuple[str, ...]:
        """Names whose nodes have been resolved so far."""
        return tuple(name for name in self._specs if name in self._cache)


@dataclass(slots=True, eq=False)
class ResolvedNode:
    """The evaluated value of one lock graph node.

    Source metadata and inputs exist from construction. Outputs are filled in
    once, after the evaluator returns; reading them earlier is a reentrancy
    error.
    """

    node_id: str
    source: FetchResult
    out_path: Path
    inputs: Mapping[str, ResolvedNode]
    is_flake: bool = True
    is_root: bool = False
    _outputs: Mapping[str, Any] | None = field(default=None, repr=False)
    _reload: Callable[[Mapping[str, Any]], ResolvedNode] | None = field(default=None, repr=False)

    @property
    def is_complete(self) -> bool:
        return not self.is_flake or self._outputs is not None

    @property
    def outputs(self) -> Mapping[str, Any]:
        if not self.is_flake:
            return {}
        if self._outputs is None:
            raise InvariantViolationError(
                f"Outputs of `{self.node_id}` were requested while it is still being evaluated.",
                hint="A flake may refer to its own metadata through `self`, but not to its own outputs.",
                context={"operation": "resolve_node", "node": self.node_id},
            )
        return self._outputs

    @property
    def source_info(self) -> dict[str, Any]:
        return self.source.to_source_info()

    def complete(self, outputs: Mapping[str, Any]) -> None:
        if self._outputs is not None:
            raise InvariantViolationError(
                f"Node `{self.node_id}` was evaluated twice.",
                context={"operation": "resolve_node", "node": self.node_id},
            )
        self._outputs = outputs

    def attrs(self) -> dict[str, Any]:
        """Outputs merged with source metadata; metadata wins on shared keys."""
        if not self.is_flake:
            return self._metadata()
        return {**self.outputs, **self._metadata(), "outputs": self.outputs}

    def __getitem__(self, key: str) -> Any:
        # Metadata never depends on outputs, so `self` can read it mid-evaluation.
        metadata = self._metadata()
        if key in metadata:
            return metadata[key]
        if key == "outputs" and self.is_flake:
            return self.outputs
        return self.outputs[key]

    def __contains__(self, key: object) -> bool:
        if key in self._metadata():
            return True
        if key == "outputs" and self.is_flake:
            return True
        return key in self.outputs

    def _metadata(self) -> dict[str, Any]:
        if not self.is_flake:
            return self.source_info
        metadata: dict[str, Any] = {
            **self.source_info,
            "outPath": str(self.out_path),
            "inputs": self.inputs,
            "sourceInfo": self.source_info,
            "_type": "flake",
        }
        if self.is_root:
            metadata["self"] = self
        return metadata

    def attach_reloader(self, reload: Callable[[Mapping[str, Any]], ResolvedNode]) -> None:
        self._reload = reload

    def override_inputs(self, overrides: Mapping[str, Any]) -> ResolvedNode:
        """Reload the root flake with ``overrides`` replacing any previous ones."""
        if self._reload is None:
            raise InvariantViolationError(
                "Only a loaded root flake can override its inputs.",
                context={"operation": "override_inputs", "node": self.node_id},
            )
        return self._reload(overrides)
