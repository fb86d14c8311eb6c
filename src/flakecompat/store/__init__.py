"""Content-addressed store APIs."""

from .digest import hashes_match, nar_hash, nar_serialize, parse_hash
from .store import Store, StoredTree

__all__ = ["Store", "StoredTree", "hashes_match", "nar_hash", "nar_serialize", "parse_hash"]
