"""Typed source descriptors, one per fetch backend."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlsplit

from flakecompat.errors import InvariantViolationError, UnsupportedSourceTypeError


@dataclass(frozen=True, slots=True)
class GitHubSource:
    owner: str
    repo: str
    rev: str
    host: str = "github.com"
    nar_hash: str | None = None
    last_modified: int | None = None

    type = "github"

    @property
    def url(self) -> str:
        return f"https://api.{self.host}/repos/{self.owner}/{self.repo}/tarball/{self.rev}"


@dataclass(frozen=True, slots=True)
class GitLabSource:
    owner: str
    repo: str
    rev: str
    host: str = "gitlab.com"
    nar_hash: str | None = None
    last_modified: int | None = None

    type = "gitlab"

    @property
    def url(self) -> str:
        return (
            f"https://{self.host}/api/v4/projects/{self.owner}%2F{self.repo}"
            f"/repository/archive.tar.gz?sha={self.rev}"
        )


@dataclass(frozen=True, slots=True)
class SourceHutSource:
    owner: str
    repo: str
    rev: str
    host: str = "git.sr.ht"
    nar_hash: str | None = None
    last_modified: int | None = None

    type = "sourcehut"

    @property
    def url(self) -> str:
        return f"https://{self.host}/{self.owner}/{self.repo}/archive/{self.rev}.tar.gz"


@dataclass(frozen=True, slots=True)
class GitSource:
    url: str
    rev: str | None = None
    ref: str | None = None
    submodules: bool = False
    nar_hash: str | None = None
    last_modified: int | None = None
    rev_count: int | None = None

    type = "git"


@dataclass(frozen=True, slots=True)
class PathSource:
    path: str
    nar_hash: str | None = None
    base_dir: Path | None = None
    last_modified: int | None = None

    type = "path"

    @property
    def resolved_path(self) -> Path:
        path = Path(self.path)
        if path.is_absolute():
            return path
        if self.base_dir is None:
            raise InvariantViolationError(
                "Relative path source needs a base directory.",
                hint="Relative paths are resolved against the root source tree.",
                context={"operation": "fetch_path", "path": self.path},
            )
        return self.base_dir / path


@dataclass(frozen=True, slots=True)
class FileSource:
    url: str
    nar_hash: str | None = None
    last_modified: int | None = None

    type = "file"

    @property
    def name(self) -> str:
        return _basename(self.url)


@dataclass(frozen=True, slots=True)
class TarballSource:
    url: str
    nar_hash: str | None = None
    last_modified: int | None = None

    type = "tarball"


SourceDescriptor = (
    GitHubSource
    | GitLabSource
    | SourceHutSource
    | GitSource
    | PathSource
    | FileSource
    | TarballSource
)

ArchiveHostSource = GitHubSource | GitLabSource | SourceHutSource

SOURCE_TYPES: dict[str, type[SourceDescriptor]] = {
    "github": GitHubSource,
    "gitlab": GitLabSource,
    "sourcehut": SourceHutSource,
    "git": GitSource,
    "path": PathSource,
    "file": FileSource,
    "tarball": TarballSource,
}


def parse_source_descriptor(
    attrs: Mapping[str, Any],
    *,
    base_dir: Path | None = None,
) -> SourceDescriptor:
    """Build a descriptor from lock-file attributes (``info`` merged with ``locked``)."""
    kind = attrs.get("type")
    if not isinstance(kind, str) or kind not in SOURCE_TYPES:
        raise UnsupportedSourceTypeError(
            f"Flake input has unsupported input type '{kind}'.",
            hint=f"Supported types: {', '.join(sorted(SOURCE_TYPES))}.",
            context={"operation": "parse_source", "type": str(kind)},
        )
    nar_hash = _optional(attrs, "narHash", str, kind)
    last_modified = _optional(attrs, "lastModified", int, kind)

    if kind in ("github", "gitlab", "sourcehut"):
        host_source = SOURCE_TYPES[kind]
        host = _optional(attrs, "host", str, kind)
        extra = {"host": host} if host is not None else {}
        return host_source(  # type: ignore[call-arg]
            owner=_required(attrs, "owner", kind),
            repo=_required(attrs, "repo", kind),
            rev=_required(attrs, "rev", kind),
            nar_hash=nar_hash,
            last_modified=last_modified,
            **extra,
        )
    if kind == "git":
        return GitSource(
            url=_required(attrs, "url", kind),
            rev=_optional(attrs, "rev", str, kind),
            ref=_optional(attrs, "ref", str, kind),
            submodules=bool(attrs.get("submodules", False)),
            nar_hash=nar_hash,
            last_modified=last_modified,
            rev_count=_optional(attrs, "revCount", int, kind),
        )
    if kind == "path":
        return PathSource(
            path=_required(attrs, "path", kind),
            nar_hash=nar_hash,
            base_dir=base_dir,
            last_modified=last_modified,
        )
    if kind == "file":
        return FileSource(url=_required(attrs, "url", kind), nar_hash=nar_hash, last_modified=last_modified)
    return TarballSource(url=_required(attrs, "url", kind), nar_hash=nar_hash, last_modified=last_modified)


def source_name(descriptor: SourceDescriptor) -> str:
    """Human-readable store name for a descriptor."""
    if isinstance(descriptor, (GitHubSource, GitLabSource, SourceHutSource)):
        return f"{descriptor.repo}-{descriptor.rev[:7]}"
    if isinstance(descriptor, PathSource):
        return Path(descriptor.path).name or "source"
    if isinstance(descriptor, FileSource):
        return descriptor.name
    return "source"


def locator(descriptor: SourceDescriptor) -> str:
    if isinstance(descriptor, PathSource):
        return descriptor.path
    return descriptor.url


def _required(attrs: Mapping[str, Any], key: str, kind: str) -> str:
    value = attrs.get(key)
    if not isinstance(value, str) or not value:
        raise InvariantViolationError(
            f"Source of type '{kind}' requires `{key}`.",
            context={"operation": "parse_source", "type": kind, "field": key},
        )
    return value


def _optional(attrs: Mapping[str, Any], key: str, expected: type, kind: str) -> Any:
    value = attrs.get(key)
    if value is None:
        return None
    if not isinstance(value, expected) or isinstance(value, bool) != (expected is bool):
        raise InvariantViolationError(
            f"Source of type '{kind}' has an invalid `{key}` value.",
            context={"operation": "parse_source", "type": kind, "field": key},
        )
    return value


def _basename(url: str) -> str:
    path = unquote(urlsplit(url).path).rstrip("/")
    return path.rsplit("/", 1)[-1] or "source"
