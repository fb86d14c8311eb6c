"""Evaluator protocol and the built-in flake evaluators.

An evaluator turns a fetched source tree into an ``outputs`` function. The
graph evaluator calls that function once per flake node with the node's
resolved inputs, including ``self``.
"""

from __future__ import annotations

import hashlib
import importlib.util
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from flakecompat.errors import InvariantViolationError

if TYPE_CHECKING:
    from flakecompat.node import ResolvedNode

OutputsFunction = Callable[[Mapping[str, "ResolvedNode"]], Mapping[str, Any]]

FLAKE_FILE = "flake.py"


class Evaluator(Protocol):
    def load(self, out_path: Path) -> OutputsFunction:
        """Return the outputs function of the flake rooted at ``out_path``."""


@dataclass(slots=True)
class PythonFlakeEvaluator:
    """Load ``flake.py`` from a source tree and return its ``outputs`` callable."""

    filename: str = FLAKE_FILE

    def load(self, out_path: Path) -> OutputsFunction:
        flake_path = out_path / self.filename
        if not flake_path.is_file():
            raise InvariantViolationError(
                f"Source tree has no {self.filename}.",
                context={"operation": "evaluate", "path": str(out_path)},
            )
        digest = hashlib.sha256(str(flake_path).encode("utf-8")).hexdigest()[:16]
        spec = importlib.util.spec_from_file_location(f"_flakecompat_flake_{digest}", flake_path)
        if spec is None or spec.loader is None:
            raise InvariantViolationError(
                f"Unable to load {self.filename}.",
                context={"operation": "evaluate", "path": str(flake_path)},
            )
        module = importlib.util.module_from_spec(spec)
        # Compiled directly so no bytecode cache lands inside the store entry.
        code = compile(flake_path.read_bytes(), str(flake_path), "exec")
        exec(code, module.__dict__)
        return require_outputs(getattr(module, "outputs", None), path=flake_path)


@dataclass(slots=True)
class StaticEvaluator:
    """Serve outputs functions registered per source tree."""

    flakes: dict[str, OutputsFunction] = field(default_factory=dict)

    def register(self, out_path: str | Path, outputs: OutputsFunction) -> None:
        self.flakes[str(out_path)] = outputs

    def load(self, out_path: Path) -> OutputsFunction:
        outputs = self.flakes.get(str(out_path))
        if outputs is None:
            raise InvariantViolationError(
                "No flake registered for source tree.",
                context={"operation": "evaluate", "path": str(out_path)},
            )
        return require_outputs(outputs, path=out_path)


def require_outputs(outputs: object, *, path: Path) -> OutputsFunction:
    if not callable(outputs):
        raise InvariantViolationError(
            "Flake `outputs` must be callable.",
            context={"operation": "evaluate", "path": str(path)},
        )
    return outputs  # type: ignore[return-value]
