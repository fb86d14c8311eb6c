"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from flakecompat.evaluate import Evaluator, OutputsFunction, PythonFlakeEvaluator
from flakecompat.fetch import SourceFetcher
from flakecompat.node import ResolvedNode
from flakecompat.observability import StructuredLogger
from flakecompat.store import Store


@dataclass(slots=True)
class RecordingEvaluator:
    """Evaluator wrapper that records every outputs call."""

    inner: Evaluator = field(default_factory=PythonFlakeEvaluator)
    calls: list[tuple[Path, tuple[str, ...]]] = field(default_factory=list)

    def load(self, out_path: Path) -> OutputsFunction:
        outputs_fn = self.inner.load(out_path)

        def outputs(inputs: Mapping[str, ResolvedNode]) -> Mapping[str, Any]:
            self.calls.append((out_path, tuple(inputs)))
            return outputs_fn(inputs)

        return outputs


@pytest.fixture
def store(tmp_path: Path) -> Store:
    return Store(tmp_path / "store")


@pytest.fixture
def logger() -> StructuredLogger:
    return StructuredLogger()


@pytest.fixture
def fetcher(store: Store, logger: StructuredLogger) -> SourceFetcher:
    return SourceFetcher(store=store, logger=logger)


@pytest.fixture
def recording_evaluator() -> RecordingEvaluator:
    return RecordingEvaluator()
