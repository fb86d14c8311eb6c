"""Git fetch with commit resolution, revision counting, and store integration."""

from __future__ import annotations

import re
import shutil
import subprocess
import tempfile
import warnings
from pathlib import Path

from flakecompat.errors import FetchError, PolicyError
from flakecompat.fetch.descriptors import GitSource
from flakecompat.fetch.result import DIRTY_REVISION, FetchResult
from flakecompat.policy import MutableRefPolicy
from flakecompat.store import Store

COMMIT_PATTERN = re.compile(r"^[0-9a-f]{40}$")


class MutableRefWarning(UserWarning):
    """Warning raised when fetching a git ref that is not pinned to a commit."""


def fetch_git(
    source: GitSource,
    *,
    store: Store,
    mutable_ref_policy: MutableRefPolicy = "allow",
) -> FetchResult:
    """Fetch a git repository at a pinned revision or a named ref into the store."""
    if source.rev is None:
        _enforce_mutable_ref_policy(source=source, policy=mutable_ref_policy)

    workdir = Path(tempfile.mkdtemp(prefix=".git-", dir=str(store.root)))
    try:
        checkout = workdir / "checkout"
        _run_git(["init", "--quiet", str(checkout)])
        _run_git(["remote", "add", "origin", source.url], cwd=checkout)
        commit = _fetch_commit(source=source, cwd=checkout)
        _run_git(["checkout", "--quiet", commit], cwd=checkout)
        if source.submodules:
            _run_git(["submodule", "update", "--init", "--recursive", "--quiet"], cwd=checkout)
        rev_count = _rev_count(commit, cwd=checkout)
        last_modified = int(_run_git(["log", "-1", "--format=%ct", commit], cwd=checkout))
        for metadata in sorted(checkout.rglob(".git"), reverse=True):
            if metadata.is_dir() and not metadata.is_symlink():
                shutil.rmtree(metadata)
            else:
                metadata.unlink()
        stored = store.add_tree(checkout, name=_repo_name(source.url), expected=source.nar_hash)
    finally:
        shutil.rmtree(workdir, ignore_errors=True)

    return FetchResult(
        tree=stored.path,
        rev=commit,
        nar_hash=stored.nar_hash,
        last_modified=last_modified,
        rev_count=rev_count,
    )


def inspect_worktree(path: Path) -> FetchResult | None:
    """Describe a local git working tree, or ``None`` if ``path`` is not a usable repository.

    Shallow clones are not inspected. A tree with uncommitted changes reports
    the all-zero revision.
    """
    if not (path / ".git").exists() or (path / ".git" / "shallow").exists():
        return None
    if shutil.which("git") is None:
        return None

    head = _try_git(["rev-parse", "--verify", "HEAD"], cwd=path)
    if head is None:
        return FetchResult(tree=path, rev=DIRTY_REVISION, rev_count=0)
    dirty = bool(_run_git(["status", "--porcelain", "--untracked-files=no"], cwd=path))
    return FetchResult(
        tree=path,
        rev=DIRTY_REVISION if dirty else head,
        last_modified=int(_run_git(["log", "-1", "--format=%ct", "HEAD"], cwd=path)),
        rev_count=_rev_count("HEAD", cwd=path),
    )


def _enforce_mutable_ref_policy(*, source: GitSource, policy: MutableRefPolicy) -> None:
    ref = source.ref or "HEAD"
    if policy == "allow":
        return
    if policy == "warn":
        warnings.warn(
            f"Git ref `{ref}` of {source.url} is not pinned to a revision; result is not reproducible.",
            MutableRefWarning,
            stacklevel=3,
        )
        return
    raise PolicyError(
        "Unpinned git refs are not allowed by policy.",
        hint="Lock the input to a revision or relax mutable_ref_policy.",
        context={"operation": "fetch_git", "url": source.url, "ref": ref, "policy": policy},
    )


def _fetch_commit(*, source: GitSource, cwd: Path) -> str:
    """Fetch the wanted commit shallowly, or every ref when the remote refuses that."""
    wanted = source.rev or source.ref or "HEAD"
    if _try_git(["fetch", "--quiet", "--depth", "1", "origin", wanted], cwd=cwd) is not None:
        fetched = _try_git(["rev-parse", "--verify", "--quiet", "FETCH_HEAD^{commit}"], cwd=cwd)
        if fetched is not None and (source.rev is None or fetched == source.rev):
            return fetched
    _run_git(["fetch", "--quiet", "--update-head-ok", "origin", "+refs/*:refs/*"], cwd=cwd)
    return _resolve_commit(source=source, cwd=cwd)


def _resolve_commit(*, source: GitSource, cwd: Path) -> str:
    if source.rev is not None:
        candidates = [source.rev]
    elif source.ref is not None:
        ref = source.ref.removeprefix("refs/heads/")
        candidates = [f"refs/heads/{ref}", f"refs/tags/{ref}", source.ref]
    else:
        candidates = ["HEAD"]
    for candidate in candidates:
        commit = _try_git(["rev-parse", "--verify", "--quiet", f"{candidate}^{{commit}}"], cwd=cwd)
        if commit is not None and COMMIT_PATTERN.fullmatch(commit):
            return commit
    raise FetchError(
        "Unable to resolve git revision.",
        hint="Ensure the repository and rev/ref are valid and reachable.",
        context={
            "operation": "fetch_git",
            "url": source.url,
            "rev": source.rev or "",
            "ref": source.ref or "",
        },
    )


def _rev_count(commit: str, *, cwd: Path) -> int:
    # Shallow history cannot be counted.
    if _try_git(["rev-parse", "--is-shallow-repository"], cwd=cwd) == "true":
        return 0
    output = _try_git(["rev-list", "--count", commit], cwd=cwd)
    if output is None or not output.isdigit():
        return 0
    return int(output)


def _repo_name(url: str) -> str:
    name = url.rstrip("/").rsplit("/", 1)[-1].removesuffix(".git")
    return name or "source"


def _try_git(argv: list[str], cwd: Path) -> str | None:
    completed = subprocess.run(
        ["git", *argv],
        cwd=cwd,
        check=False,
        text=True,
        capture_output=True,
    )
    if completed.returncode != 0:
        return None
    return completed.stdout.strip()


def _run_git(argv: list[str], cwd: Path | None = None) -> str:
    command = ["git", *argv]
    try:
        completed = subprocess.run(
            command,
            cwd=cwd,
            check=False,
            text=True,
            capture_output=True,
        )
    except OSError as exc:
        raise FetchError(
            "Unable to run git.",
            hint="Install git to fetch git inputs.",
            context={"operation": "fetch_git", "argv": " ".join(command), "error": str(exc)},
        ) from exc
    if completed.returncode != 0:
        raise FetchError(
            "Git command failed.",
            hint="Inspect repository/ref inputs and git installation.",
            context={
                "operation": "fetch_git",
                "argv": " ".join(command),
                "stderr": completed.stderr.strip(),
            },
        )
    return completed.stdout.strip()
