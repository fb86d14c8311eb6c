"""Integrity-checked source fetching APIs."""

from .descriptors import (
    SOURCE_TYPES,
    FileSource,
    GitHubSource,
    GitLabSource,
    GitSource,
    PathSource,
    SourceDescriptor,
    SourceHutSource,
    TarballSource,
    parse_source_descriptor,
)
from .fetcher import SourceFetcher
from .git import MutableRefWarning, fetch_git, inspect_worktree
from .http import download
from .result import DIRTY_REVISION, FetchResult

__all__ = [
    "DIRTY_REVISION",
    "FetchResult",
    "FileSource",
    "GitHubSource",
    "GitLabSource",
    "GitSource",
    "MutableRefWarning",
    "PathSource",
    "SOURCE_TYPES",
    "SourceDescriptor",
    "SourceFetcher",
    "SourceHutSource",
    "TarballSource",
    "download",
    "fetch_git",
    "inspect_worktree",
    "parse_source_descriptor",
]
