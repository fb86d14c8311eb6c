"""Fetched source tree plus provenance metadata."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from flakecompat.datestamp import format_timestamp

DIRTY_REVISION = "0" * 40


@dataclass(frozen=True, slots=True)
class FetchResult:
    tree: Path
    rev: str | None = None
    nar_hash: str | None = None
    last_modified: int = 0
    rev_count: int | None = None

    @property
    def short_rev(self) -> str | None:
        if self.rev is None:
            return None
        return self.rev[:7]

    @property
    def last_modified_date(self) -> str:
        return format_timestamp(self.last_modified)

    @property
    def is_dirty(self) -> bool:
        return self.rev == DIRTY_REVISION

    def strip_dirty_revision(self) -> FetchResult:
        """Drop the all-zero revision reported for an uncommitted working tree."""
        if not self.is_dirty:
            return self
        return replace(self, rev=None)

    def to_source_info(self) -> dict[str, Any]:
        info: dict[str, Any] = {
            "outPath": str(self.tree),
            "lastModified": self.last_modified,
            "lastModifiedDate": self.last_modified_date,
        }
        if self.rev is not None:
            info["rev"] = self.rev
            info["shortRev"] = self.short_rev
        if self.nar_hash is not None:
            info["narHash"] = self.nar_hash
        if self.rev_count is not None:
            info["revCount"] = self.rev_count
        return info
