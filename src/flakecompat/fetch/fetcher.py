"""Source fetching dispatched over the supported descriptor types."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from urllib.request import urlopen

from flakecompat.errors import InvariantViolationError, UnsupportedSourceTypeError
from flakecompat.fetch.descriptors import (
    FileSource,
    GitHubSource,
    GitLabSource,
    GitSource,
    PathSource,
    SourceDescriptor,
    SourceHutSource,
    TarballSource,
    locator,
    source_name,
)
from flakecompat.fetch.git import fetch_git
from flakecompat.fetch.http import Opener, download, unpacked_tarball
from flakecompat.fetch.result import FetchResult
from flakecompat.observability import StructuredLogger
from flakecompat.policy import Policy, ensure_integrity, ensure_network_allowed
from flakecompat.store import Store


@dataclass(slots=True)
class SourceFetcher:
    """Materialize source descriptors into verified store trees."""

    store: Store
    policy: Policy = field(default_factory=Policy)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    opener: Opener = urlopen
    _backends: dict[type, Callable[..., FetchResult]] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._backends = {
            GitHubSource: self._fetch_archive_host,
            GitLabSource: self._fetch_archive_host,
            SourceHutSource: self._fetch_archive_host,
            GitSource: self._fetch_git,
            PathSource: self._fetch_path,
            FileSource: self._fetch_file,
            TarballSource: self._fetch_tarball,
        }

    def fetch(self, descriptor: SourceDescriptor, *, node: str | None = None) -> FetchResult:
        backend = self._backends.get(type(descriptor))
        if backend is None:
            raise UnsupportedSourceTypeError(
                f"Flake input has unsupported input type '{getattr(descriptor, 'type', descriptor)}'.",
                context={"operation": "fetch", "node": node or ""},
            )
        ensure_integrity(
            policy=self.policy,
            operation=f"fetch_{descriptor.type}",
            nar_hash=descriptor.nar_hash,
            locator=locator(descriptor),
        )
        result = backend(descriptor)
        self.logger.log(
            operation="fetch",
            node=node,
            source_type=descriptor.type,
            message=f"Fetched {locator(descriptor)}.",
            extra={"outPath": str(result.tree), "narHash": result.nar_hash},
        )
        return result

    def adopt_path(self, path: str | Path, *, node: str | None = None) -> FetchResult:
        """Use a local tree as-is without digest verification, as for input overrides."""
        tree = Path(path)
        if not tree.exists():
            raise InvariantViolationError(
                "Override path does not exist.",
                context={"operation": "adopt_path", "node": node or "", "path": str(tree)},
            )
        self.logger.log(
            operation="adopt_path",
            node=node,
            source_type="path",
            message=f"Using {tree} without narHash verification.",
        )
        return FetchResult(tree=tree)

    def _fetch_archive_host(self, source: GitHubSource | GitLabSource | SourceHutSource) -> FetchResult:
        ensure_network_allowed(policy=self.policy, operation=f"fetch_{source.type}")
        tree, digest = self._fetch_and_unpack(
            source.url,
            name=source_name(source),
            expected=source.nar_hash,
        )
        return FetchResult(
            tree=tree,
            rev=source.rev,
            nar_hash=digest,
            last_modified=source.last_modified or 0,
        )

    def _fetch_tarball(self, source: TarballSource) -> FetchResult:
        ensure_network_allowed(policy=self.policy, operation="fetch_tarball")
        tree, digest = self._fetch_and_unpack(source.url, name="source", expected=source.nar_hash)
        return FetchResult(tree=tree, nar_hash=digest, last_modified=source.last_modified or 0)

    def _fetch_git(self, source: GitSource) -> FetchResult:
        ensure_network_allowed(policy=self.policy, operation="fetch_git")
        result = fetch_git(source, store=self.store, mutable_ref_policy=self.policy.mutable_ref_policy)
        if source.rev_count is not None and result.rev_count == 0:
            return FetchResult(
                tree=result.tree,
                rev=result.rev,
                nar_hash=result.nar_hash,
                last_modified=result.last_modified,
                rev_count=source.rev_count,
            )
        return result

    def _fetch_path(self, source: PathSource) -> FetchResult:
        if source.nar_hash is None:
            raise InvariantViolationError(
                "Path inputs must be locked with a narHash.",
                hint="Relock the input or pass the path as an override.",
                context={"operation": "fetch_path", "path": source.path},
            )
        stored = self.store.add_tree(
            source.resolved_path,
            name=source_name(source),
            expected=source.nar_hash,
        )
        return FetchResult(
            tree=stored.path,
            nar_hash=stored.nar_hash,
            last_modified=source.last_modified or 0,
        )

    def _fetch_file(self, source: FileSource) -> FetchResult:
        ensure_network_allowed(policy=self.policy, operation="fetch_file")
        if source.nar_hash is None:
            raise InvariantViolationError(
                "File inputs must be locked with a narHash.",
                context={"operation": "fetch_file", "url": source.url},
            )
        payload = download(source.url, opener=self.opener)
        stored = self.store.add_bytes(name=source.name, payload=payload, expected=source.nar_hash)
        return FetchResult(
            tree=stored.path,
            nar_hash=stored.nar_hash,
            last_modified=source.last_modified or 0,
        )

    def _fetch_and_unpack(self, url: str, *, name: str, expected: str | None) -> tuple[Path, str]:
        payload = download(url, opener=self.opener)
        with unpacked_tarball(payload, scratch_dir=self.store.root, url=url) as tree:
            stored = self.store.add_tree(tree, name=name, expected=expected)
        return stored.path, stored.nar_hash
