"""Lock file parser."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from flakecompat.errors import LockfileError, UnresolvedInputError, UnsupportedLockVersionError
from flakecompat.lockfile.model import SUPPORTED_VERSIONS, InputSpec, LockGraph, LockNode

LOCK_FILE_NAME = "flake.lock"


def parse_lockfile(raw: str, *, source: str = LOCK_FILE_NAME) -> LockGraph:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LockfileError("Invalid lock file JSON.", hint=str(exc), context={"path": source}) from exc

    if not isinstance(payload, dict):
        raise LockfileError("Invalid lock file payload type.", context={"path": source})

    version = _required_int(payload, "version")
    if version not in SUPPORTED_VERSIONS:
        raise UnsupportedLockVersionError(
            f"Lock file has unsupported version {version}.",
            hint="Only lock file versions 5 through 7 are understood.",
            context={"path": source, "version": str(version)},
        )

    root = _required_str(payload, "root")
    nodes_raw = payload.get("nodes")
    if not isinstance(nodes_raw, dict):
        raise LockfileError("Invalid lock file `nodes` value.", context={"path": source})
    nodes = {key: _parse_node(key, value) for key, value in nodes_raw.items()}
    if root not in nodes:
        raise UnresolvedInputError(
            "Lock file root does not name a node.",
            context={"path": source, "root": root},
        )
    return LockGraph(version=version, root=root, nodes=nodes)


def read_lockfile(path: str | Path) -> LockGraph:
    lock_path = Path(path)
    try:
        raw = lock_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise LockfileError(
            "Lock file does not exist.",
            context={"path": str(lock_path)},
        ) from exc
    return parse_lockfile(raw, source=str(lock_path))


def load_lockfile(src: str | Path) -> LockGraph | None:
    """Read ``flake.lock`` from a source tree, or ``None`` when the tree has none."""
    lock_path = Path(src) / LOCK_FILE_NAME
    if not lock_path.exists():
        return None
    return read_lockfile(lock_path)


def _parse_node(key: Any, value: Any) -> LockNode:
    if not isinstance(key, str) or not isinstance(value, dict):
        raise LockfileError("Invalid lock file node entry.", context={"node": str(key)})
    flake = value.get("flake", True)
    if not isinstance(flake, bool):
        raise LockfileError("Invalid lock file `flake` value.", context={"node": key})
    return LockNode(
        info=_optional_dict(value, "info", node=key) or {},
        locked=_optional_dict(value, "locked", node=key),
        original=_optional_dict(value, "original", node=key),
        inputs=_parse_inputs(key, value.get("inputs", {})),
        flake=flake,
    )


def _parse_inputs(key: str, value: Any) -> dict[str, InputSpec]:
    if not isinstance(value, dict):
        raise LockfileError("Invalid lock file `inputs` value.", context={"node": key})
    parsed: dict[str, InputSpec] = {}
    for name, spec in value.items():
        if isinstance(spec, str):
            parsed[name] = spec
        elif isinstance(spec, list) and all(isinstance(step, str) for step in spec):
            parsed[name] = tuple(spec)
        else:
            raise LockfileError(
                "Lock file input must be a node id or a follows path.",
                context={"node": key, "input": str(name)},
            )
    return parsed


def _optional_dict(payload: dict[str, Any], key: str, *, node: str) -> dict[str, Any] | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise LockfileError(f"Invalid lock file `{key}` value.", context={"node": node})
    return value


def _required_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise LockfileError(f"Invalid lock file `{key}` value.")
    return value


def _required_int(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise LockfileError(f"Invalid lock file `{key}` value.")
    return value
