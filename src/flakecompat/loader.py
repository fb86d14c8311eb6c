"""Top-level flake loading entrypoints."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.request import urlopen

from flakecompat.evaluate import Evaluator, PythonFlakeEvaluator
from flakecompat.fetch import FetchResult, SourceDescriptor, SourceFetcher, inspect_worktree
from flakecompat.fetch.http import Opener
from flakecompat.graph import GraphEvaluator, Override, resolve_unlocked
from flakecompat.lockfile import load_lockfile
from flakecompat.manifest import SourceManifest
from flakecompat.node import ResolvedNode
from flakecompat.observability import StructuredLogger
from flakecompat.policy import Policy
from flakecompat.store import Store


@dataclass(slots=True)
class FlakeLoader:
    """Load flakes from source trees, resolving their locked inputs."""

    store_dir: Path = field(default_factory=lambda: Path(".flakecompat") / "store")
    policy: Policy = field(default_factory=Policy)
    evaluator: Evaluator = field(default_factory=PythonFlakeEvaluator)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    opener: Opener = urlopen
    _fetcher: SourceFetcher | None = field(init=False, default=None, repr=False)
    _manifest: Callable[[], SourceManifest] | None = field(init=False, default=None, repr=False)

    @property
    def fetcher(self) -> SourceFetcher:
        if self._fetcher is None:
            self._fetcher = SourceFetcher(
                store=Store(self.store_dir),
                policy=self.policy,
                logger=self.logger,
                opener=self.opener,
            )
        return self._fetcher

    @property
    def last_manifest(self) -> SourceManifest | None:
        """Sources resolved so far in the session of the most recent :meth:`load` call."""
        if self._manifest is None:
            return None
        return self._manifest()

    def load(
        self,
        src: str | Path | FetchResult,
        overrides: Mapping[str, Override | None] | None = None,
    ) -> ResolvedNode:
        """Resolve the flake at ``src`` in a fresh session.

        ``overrides`` replace the root's direct inputs by input name; ``None``
        values keep the locked source.
        """
        root_source = self._root_source(src)
        active_overrides = dict(overrides or {})
        graph = load_lockfile(root_source.tree)

        if graph is None:
            self.logger.log(
                operation="load",
                node=None,
                source_type=None,
                message="No lock file found; evaluating the source tree without inputs.",
                extra={"path": str(root_source.tree)},
            )
            root = resolve_unlocked(root_source, self.evaluator, logger=self.logger)
            manifest = SourceManifest(nodes={root.node_id: root.source_info})
            self._manifest = lambda: manifest
        else:
            session = GraphEvaluator(
                graph=graph,
                fetcher=self.fetcher,
                evaluator=self.evaluator,
                root_source=root_source,
                overrides=active_overrides,
                logger=self.logger,
            )
            root = session.resolve_root()
            # Inputs resolve lazily, so the manifest is read from the live session.
            self._manifest = session.manifest

        root.is_root = True
        root.attach_reloader(lambda new_overrides: self.load(root_source, new_overrides))
        return root

    def get_flake(self, descriptor: SourceDescriptor) -> ResolvedNode:
        """Fetch a source and load it as a flake."""
        return self.load(self.fetcher.fetch(descriptor))

    def load_outputs(self, src: str | Path | FetchResult) -> Mapping[str, Any]:
        """Outputs of the flake at ``src``, as a REPL would load them."""
        return self.load(src).outputs

    def _root_source(self, src: str | Path | FetchResult) -> FetchResult:
        if isinstance(src, FetchResult):
            return src
        path = Path(src)
        inspected = inspect_worktree(path)
        if inspected is not None:
            return inspected
        return FetchResult(tree=path)
