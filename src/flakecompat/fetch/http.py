"""URL download and tarball unpacking."""

from __future__ import annotations

import io
import shutil
import tarfile
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any
from urllib.error import URLError
from urllib.request import urlopen

from flakecompat.errors import FetchError

Opener = Callable[[str], Any]


def download(url: str, *, opener: Opener = urlopen) -> bytes:
    """Read the whole body behind ``url``."""
    try:
        with opener(url) as response:  # noqa: S310 - digest verified by the store
            return response.read()
    except (URLError, OSError, ValueError) as exc:
        raise FetchError(
            "Download failed.",
            hint="Check that the URL is reachable and the network is available.",
            context={"operation": "download", "url": url, "error": str(exc)},
        ) from exc


@contextmanager
def unpacked_tarball(payload: bytes, *, scratch_dir: Path, url: str) -> Iterator[Path]:
    """Unpack a tarball into a scratch directory and yield its source root.

    A tarball holding a single top-level directory yields that directory.
    """
    scratch_dir.mkdir(parents=True, exist_ok=True)
    workdir = Path(tempfile.mkdtemp(prefix=".unpack-", dir=str(scratch_dir)))
    try:
        target = workdir / "unpacked"
        target.mkdir()
        try:
            with tarfile.open(fileobj=io.BytesIO(payload), mode="r:*") as archive:
                archive.extractall(target, filter="tar")
        except (tarfile.TarError, OSError) as exc:
            raise FetchError(
                "Unable to unpack tarball.",
                hint="The URL must serve a (possibly compressed) tar archive.",
                context={"operation": "unpack", "url": url, "error": str(exc)},
            ) from exc
        entries = list(target.iterdir())
        if len(entries) == 1 and entries[0].is_dir() and not entries[0].is_symlink():
            yield entries[0]
        else:
            yield target
    finally:
        shutil.rmtree(workdir, ignore_errors=True)
