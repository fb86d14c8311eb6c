"""Source manifest export and verification."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import cbor2

MismatchReason = Literal["missing_actual", "unexpected_actual", "value_mismatch"]

MANIFEST_KEYS = ("narHash", "rev", "lastModified", "revCount")


@dataclass(frozen=True, slots=True)
class ManifestMismatch:
    node: str
    reason: MismatchReason
    expected: str | None
    actual: str | None


@dataclass(frozen=True, slots=True)
class VerificationResult:
    ok: bool
    mismatches: tuple[ManifestMismatch, ...] = ()


@dataclass(frozen=True, slots=True)
class SourceManifest:
    """Provenance of every source resolved in one session, keyed by node id."""

    nodes: dict[str, dict[str, Any]] = field(default_factory=dict)
    schema_version: int = 1

    def to_json(self, path: str | Path | None = None) -> str:
        encoded = json.dumps(self._payload(), indent=2, sort_keys=True) + "\n"
        if path is not None:
            Path(path).write_text(encoded, encoding="utf-8")
        return encoded

    def to_cbor(self, path: str | Path | None = None) -> bytes:
        encoded = cbor2.dumps(self._payload(), canonical=True)
        if path is not None:
            Path(path).write_bytes(encoded)
        return encoded

    def digests(self) -> dict[str, str]:
        return {
            node: str(info["narHash"])
            for node, info in sorted(self.nodes.items())
            if info.get("narHash") is not None
        }

    def verify(self, expected: dict[str, str]) -> VerificationResult:
        """Compare node narHashes against ``expected`` (node id to narHash)."""
        actual = self.digests()
        mismatches: list[ManifestMismatch] = []
        for node, expected_hash in sorted(expected.items()):
            if node not in actual:
                mismatches.append(ManifestMismatch(node, "missing_actual", expected_hash, None))
            elif actual[node] != expected_hash:
                mismatches.append(ManifestMismatch(node, "value_mismatch", expected_hash, actual[node]))
        for node, actual_hash in actual.items():
            if node not in expected:
                mismatches.append(ManifestMismatch(node, "unexpected_actual", None, actual_hash))
        return VerificationResult(ok=not mismatches, mismatches=tuple(mismatches))

    def _payload(self) -> dict[str, object]:
        return {
            "schema_version": self.schema_version,
            "nodes": {
                node: {key: info[key] for key in MANIFEST_KEYS if info.get(key) is not None}
                for node, info in sorted(self.nodes.items())
            },
        }
