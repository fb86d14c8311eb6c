"""Lock file parsing and follows-path resolution APIs."""

from .io import LOCK_FILE_NAME, load_lockfile, parse_lockfile, read_lockfile
from .model import SUPPORTED_VERSIONS, FollowsPath, InputSpec, LockGraph, LockNode, NodeId
from .resolve import input_by_path, resolve_input, root_override_keys

__all__ = [
    "FollowsPath",
    "InputSpec",
    "LOCK_FILE_NAME",
    "LockGraph",
    "LockNode",
    "NodeId",
    "SUPPORTED_VERSIONS",
    "input_by_path",
    "load_lockfile",
    "parse_lockfile",
    "read_lockfile",
    "resolve_input",
    "root_override_keys",
]
