"""Content-addressed source store with narHash verification."""

from __future__ import annotations

import hashlib
import json
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from flakecompat.errors import FetchError
from flakecompat.store.digest import hashes_match, nar_hash, nix32_encode, parse_hash

NAME_PATTERN = re.compile(r"[^A-Za-z0-9+._?=-]")


@dataclass(frozen=True, slots=True)
class StoredTree:
    path: Path
    nar_hash: str


class Store:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def add_tree(self, source: str | Path, *, name: str, expected: str | None = None) -> StoredTree:
        """Copy ``source`` into the store, verifying its narHash when ``expected`` is set."""
        source_path = Path(source)
        actual = nar_hash(source_path)
        if expected is not None and not hashes_match(expected, actual):
            raise FetchError(
                "NAR hash mismatch.",
                hint="Update the locked narHash or the source to a trusted immutable tree.",
                context={
                    "operation": "store_add",
                    "path": str(source_path),
                    "expected": expected,
                    "actual": actual,
                },
            )

        entry = self.root / f"{_store_key(actual)}-{sanitize_name(name)}"
        manifest_path = entry.with_name(entry.name + ".json")
        if entry.exists() or entry.is_symlink():
            self._verify_entry(entry, manifest_path, actual)
            return StoredTree(path=entry, nar_hash=actual)

        staging = Path(tempfile.mkdtemp(prefix=".staging-", dir=str(self.root)))
        try:
            staged = staging / "tree"
            if source_path.is_dir() and not source_path.is_symlink():
                shutil.copytree(source_path, staged, symlinks=True)
            else:
                shutil.copy2(source_path, staged, follow_symlinks=False)
            staged.rename(entry)
        except OSError as exc:
            raise FetchError(
                "Unable to copy source into the store.",
                context={"operation": "store_add", "path": str(source_path), "error": str(exc)},
            ) from exc
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        manifest = {"name": name, "narHash": actual, "path": entry.name}
        manifest_path.write_text(json.dumps(manifest, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        return StoredTree(path=entry, nar_hash=actual)

    def add_bytes(self, *, name: str, payload: bytes, expected: str | None = None) -> StoredTree:
        """Store a single regular file made of ``payload``."""
        staging = Path(tempfile.mkdtemp(prefix=".download-", dir=str(self.root)))
        try:
            staged = staging / sanitize_name(name)
            staged.write_bytes(payload)
            return self.add_tree(staged, name=name, expected=expected)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    def _verify_entry(self, entry: Path, manifest_path: Path, expected: str) -> None:
        recorded = None
        if manifest_path.exists():
            try:
                recorded = json.loads(manifest_path.read_text(encoding="utf-8")).get("narHash")
            except json.JSONDecodeError as exc:
                raise FetchError(
                    "Store manifest is not valid JSON.",
                    hint="Remove the store entry and refetch.",
                    context={"operation": "store_verify", "path": str(manifest_path)},
                ) from exc
        actual = nar_hash(entry)
        if not hashes_match(expected, actual) or (recorded is not None and recorded != actual):
            raise FetchError(
                "Store entry does not match its narHash.",
                hint="Remove the store entry and refetch.",
                context={
                    "operation": "store_verify",
                    "path": str(entry),
                    "expected": expected,
                    "actual": actual,
                },
            )


def sanitize_name(name: str) -> str:
    cleaned = NAME_PATTERN.sub("_", name).lstrip(".")
    return cleaned or "source"


def _store_key(digest: str) -> str:
    return nix32_encode(hashlib.sha256(parse_hash(digest)).digest()[:20])
