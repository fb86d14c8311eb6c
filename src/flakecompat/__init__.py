"""Public package entrypoint for lock-file driven flake resolution."""

from .datestamp import CalendarTime, format_timestamp, to_calendar
from .errors import (
    ErrorCode,
    FetchError,
    FlakeCompatError,
    InvariantViolationError,
    LockfileError,
    PolicyError,
    UnresolvedInputError,
    UnsupportedLockVersionError,
    UnsupportedSourceTypeError,
)
from .evaluate import Evaluator, PythonFlakeEvaluator, StaticEvaluator
from .fetch import FetchResult, SourceFetcher, parse_source_descriptor
from .graph import GraphEvaluator
from .loader import FlakeLoader
from .lockfile import LockGraph, LockNode, parse_lockfile, read_lockfile, resolve_input
from .manifest import SourceManifest
from .node import ResolvedNode
from .policy import Policy
from .store import Store

__all__ = [
    "CalendarTime",
    "ErrorCode",
    "Evaluator",
    "FetchError",
    "FetchResult",
    "FlakeCompatError",
    "FlakeLoader",
    "GraphEvaluator",
    "InvariantViolationError",
    "LockGraph",
    "LockNode",
    "LockfileError",
    "Policy",
    "PolicyError",
    "PythonFlakeEvaluator",
    "ResolvedNode",
    "SourceFetcher",
    "SourceManifest",
    "StaticEvaluator",
    "Store",
    "UnresolvedInputError",
    "UnsupportedLockVersionError",
    "UnsupportedSourceTypeError",
    "format_timestamp",
    "parse_lockfile",
    "parse_source_descriptor",
    "read_lockfile",
    "resolve_input",
    "to_calendar",
]
