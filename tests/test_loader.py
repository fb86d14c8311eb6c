from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

import cbor2
import pytest

from flakecompat import FlakeLoader
from flakecompat.errors import InvariantViolationError, UnsupportedLockVersionError
from flakecompat.evaluate import PythonFlakeEvaluator, StaticEvaluator
from flakecompat.fetch import FetchResult, PathSource
from flakecompat.observability import StructuredLogger
from flakecompat.store import nar_hash

if TYPE_CHECKING:
    from conftest import RecordingEvaluator

ROOT_FLAKE = """
def outputs(inputs):
    result = {"inputNames": sorted(inputs)}
    if "leaf" in inputs:
        result["leafName"] = inputs["leaf"]["name"]
    return result
"""

IGNORING_FLAKE = """
def outputs(inputs):
    return {}
"""

LEAF_FLAKE = """
def outputs(inputs):
    return {"name": inputs["self"]["outPath"].rsplit("/", 1)[-1]}
"""


def test_flake_without_lock_file_is_evaluated_once_with_only_self(
    tmp_path: Path,
    recording_evaluator: RecordingEvaluator,
) -> None:
    root = _flake(tmp_path / "root", ROOT_FLAKE)
    logger = StructuredLogger()
    loader = FlakeLoader(store_dir=tmp_path / "store", evaluator=recording_evaluator, logger=logger)

    resolved = loader.load(root)

    assert recording_evaluator.calls == [(root, ("self",))]
    assert resolved.outputs == {"inputNames": ["self"]}
    assert resolved["outPath"] == str(root)
    assert loader.last_manifest is not None
    assert set(loader.last_manifest.nodes) == {"root"}
    assert [record["operation"] for record in logger.records] == ["load", "evaluate"]


def test_locked_inputs_are_resolved(tmp_path: Path) -> None:
    root, _, _ = _locked_project(tmp_path)
    loader = FlakeLoader(store_dir=tmp_path / "store")

    resolved = loader.load(root)

    assert resolved["inputNames"] == ["leaf", "self"]
    assert resolved["leafName"].endswith("-leaf")
    assert resolved.inputs["leaf"]["narHash"] == nar_hash(tmp_path / "leaf")


def test_last_manifest_lists_inputs_resolved_after_load(tmp_path: Path) -> None:
    root, leaf, _ = _locked_project(tmp_path)
    (root / "flake.py").write_text(IGNORING_FLAKE.lstrip(), encoding="utf-8")
    loader = FlakeLoader(store_dir=tmp_path / "store")

    resolved = loader.load(root)
    before = loader.last_manifest
    resolved.inputs["leaf"]
    after = loader.last_manifest

    assert before is not None
    assert after is not None
    assert set(before.nodes) == {"root"}
    assert set(after.nodes) == {"root", "leaf"}
    assert after.digests() == {"leaf": nar_hash(leaf)}


def test_loaded_root_exposes_itself_as_self(tmp_path: Path) -> None:
    locked_root, _, _ = _locked_project(tmp_path / "locked")
    lockless_root = _flake(tmp_path / "lockless", ROOT_FLAKE)
    loader = FlakeLoader(store_dir=tmp_path / "store")

    locked = loader.load(locked_root)
    lockless = loader.load(lockless_root)

    assert locked["self"] is locked
    assert lockless["self"] is lockless
    assert "self" in locked
    assert locked["self"].outputs == locked.outputs
    assert "self" not in locked.inputs["leaf"]


def test_override_inputs_replace_previous_overrides(tmp_path: Path) -> None:
    root, leaf, replacement = _locked_project(tmp_path)
    loader = FlakeLoader(store_dir=tmp_path / "store")

    locked = loader.load(root)
    overridden = locked.override_inputs({"leaf": replacement})
    restored = overridden.override_inputs({"leaf": None})

    assert overridden is not locked
    assert overridden["leafName"] == "replacement"
    assert overridden.inputs["leaf"].out_path == replacement
    assert restored["leafName"].endswith("-leaf")
    assert restored.inputs["leaf"].out_path != leaf
    assert restored.inputs["leaf"]["narHash"] == nar_hash(leaf)


def test_override_inputs_requires_a_loaded_root(tmp_path: Path) -> None:
    root, _, _ = _locked_project(tmp_path)
    loader = FlakeLoader(store_dir=tmp_path / "store")
    leaf = loader.load(root).inputs["leaf"]

    with pytest.raises(InvariantViolationError):
        leaf.override_inputs({})


def test_unsupported_lock_version_fails_load(tmp_path: Path) -> None:
    root = _flake(tmp_path / "root", ROOT_FLAKE)
    (root / "flake.lock").write_text(
        json.dumps({"version": 4, "root": "root", "nodes": {"root": {}}}),
        encoding="utf-8",
    )
    loader = FlakeLoader(store_dir=tmp_path / "store")

    with pytest.raises(UnsupportedLockVersionError):
        loader.load(root)


def test_get_flake_fetches_then_loads(tmp_path: Path) -> None:
    source = _flake(tmp_path / "remote", LEAF_FLAKE)
    loader = FlakeLoader(store_dir=tmp_path / "store")

    resolved = loader.get_flake(PathSource(path=str(source), nar_hash=nar_hash(source)))

    assert resolved.out_path.parent == tmp_path / "store"
    assert resolved["name"].endswith("-remote")
    assert resolved["narHash"] == nar_hash(source)


def test_load_outputs_returns_the_output_mapping(tmp_path: Path) -> None:
    root = _flake(tmp_path / "root", ROOT_FLAKE)
    loader = FlakeLoader(store_dir=tmp_path / "store")

    assert loader.load_outputs(root) == {"inputNames": ["self"]}


def test_git_worktree_root_reports_revision_until_dirty(tmp_path: Path) -> None:
    root = _flake(tmp_path / "root", ROOT_FLAKE)
    head = _commit_all(root)
    loader = FlakeLoader(store_dir=tmp_path / "store")

    clean = loader.load(root)
    (root / "flake.py").write_text(ROOT_FLAKE.lstrip() + "# edited\n", encoding="utf-8")
    dirty = loader.load(root)

    assert clean["rev"] == head
    assert clean["shortRev"] == head[:7]
    assert clean["revCount"] == 1
    assert clean["lastModified"] > 0
    assert "rev" not in dirty
    assert "shortRev" not in dirty
    assert dirty["revCount"] == 1


def test_static_evaluator_serves_registered_flakes(tmp_path: Path) -> None:
    evaluator = StaticEvaluator()
    evaluator.register(tmp_path, lambda inputs: {"self": inputs["self"].node_id})
    loader = FlakeLoader(store_dir=tmp_path / "store", evaluator=evaluator)

    assert loader.load(FetchResult(tree=tmp_path)).outputs == {"self": "root"}

    with pytest.raises(InvariantViolationError):
        evaluator.load(tmp_path / "elsewhere")


def test_python_evaluator_requires_callable_outputs(tmp_path: Path) -> None:
    evaluator = PythonFlakeEvaluator()
    missing = tmp_path / "missing"
    missing.mkdir()
    broken = _flake(tmp_path / "broken", "outputs = {}\n")

    with pytest.raises(InvariantViolationError):
        evaluator.load(missing)
    with pytest.raises(InvariantViolationError):
        evaluator.load(broken)


def test_manifest_exports_json_and_cbor(tmp_path: Path) -> None:
    root, leaf, _ = _locked_project(tmp_path)
    loader = FlakeLoader(store_dir=tmp_path / "store")
    loader.load(root).inputs["leaf"]
    manifest = loader.last_manifest
    assert manifest is not None

    decoded = json.loads(manifest.to_json(tmp_path / "manifest.json"))

    assert decoded["schema_version"] == 1
    assert decoded["nodes"]["leaf"]["narHash"] == nar_hash(leaf)
    assert cbor2.loads(manifest.to_cbor()) == decoded
    assert (tmp_path / "manifest.json").read_text(encoding="utf-8") == manifest.to_json()
    assert manifest.verify({"leaf": nar_hash(leaf)}).ok

    result = manifest.verify({"leaf": nar_hash(root), "extra": nar_hash(leaf)})
    assert not result.ok
    assert [(item.node, item.reason) for item in result.mismatches] == [
        ("extra", "missing_actual"),
        ("leaf", "value_mismatch"),
    ]


def _flake(path: Path, body: str) -> Path:
    path.mkdir(parents=True)
    (path / "flake.py").write_text(body.lstrip(), encoding="utf-8")
    return path


def _locked_project(tmp_path: Path) -> tuple[Path, Path, Path]:
    root = _flake(tmp_path / "root", ROOT_FLAKE)
    leaf = _flake(tmp_path / "leaf", LEAF_FLAKE)
    replacement = _flake(tmp_path / "replacement", LEAF_FLAKE)
    lock = {
        "version": 7,
        "root": "root",
        "nodes": {
            "root": {"inputs": {"leaf": "leaf"}},
            "leaf": {
                "locked": {"type": "path", "path": str(leaf), "narHash": nar_hash(leaf)},
                "original": {"type": "path", "path": str(leaf)},
            },
        },
    }
    (root / "flake.lock").write_text(json.dumps(lock), encoding="utf-8")
    return root, leaf, replacement


def _commit_all(path: Path) -> str:
    for argv in (
        ["init", "--quiet"],
        ["config", "user.email", "flakecompat@example.com"],
        ["config", "user.name", "Flake Compat Test"],
        ["add", "."],
        ["commit", "--quiet", "-m", "initial"],
    ):
        subprocess.run(["git", *argv], cwd=path, check=True, capture_output=True)
    completed = subprocess.run(
        ["git", "rev-parse", "HEAD"],
        cwd=path,
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout.strip()
