"""NAR serialization and narHash digest helpers."""

from __future__ import annotations

import base64
import hashlib
import os
import re
import stat
from collections.abc import Callable
from pathlib import Path

from flakecompat.errors import FetchError, InvariantViolationError

NIX32_ALPHABET = "0123456789abcdfghijklmnpqrsvwxyz"
SHA256_SIZE = 32

HEX_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


def nar_serialize(path: str | Path) -> bytes:
    """Serialize ``path`` in the Nix archive format."""
    chunks: list[bytes] = []
    _write_nar(Path(path), chunks.append)
    return b"".join(chunks)


def nar_hash(path: str | Path) -> str:
    """Return the SRI ``sha256-<base64>`` digest of the NAR of ``path``."""
    digest = hashlib.sha256()
    _write_nar(Path(path), digest.update)
    return to_sri(digest.digest())


def to_sri(raw: bytes) -> str:
    return "sha256-" + base64.b64encode(raw).decode("ascii")


def parse_hash(text: str) -> bytes:
    """Decode a sha256 digest given as SRI, ``sha256:<hex|nix32>`` or bare hex."""
    if text.startswith("sha256-"):
        try:
            raw = base64.b64decode(text.removeprefix("sha256-"), validate=True)
        except ValueError as exc:
            raise _bad_hash(text) from exc
    else:
        body = text.removeprefix("sha256:")
        if HEX_PATTERN.fullmatch(body):
            raw = bytes.fromhex(body)
        else:
            raw = nix32_decode(body)
    if len(raw) != SHA256_SIZE:
        raise _bad_hash(text)
    return raw


def hashes_match(expected: str, actual: str) -> bool:
    return parse_hash(expected) == parse_hash(actual)


def nix32_decode(text: str) -> bytes:
    """Decode the base-32 variant Nix uses for store paths and legacy hashes."""
    size = len(text) * 5 // 8
    out = bytearray(size)
    for n, char in enumerate(reversed(text)):
        digit = NIX32_ALPHABET.find(char)
        if digit < 0:
            raise _bad_hash(text)
        bit = n * 5
        index, offset = divmod(bit, 8)
        out[index] |= (digit << offset) & 0xFF
        carry = digit >> (8 - offset)
        if index + 1 < size:
            out[index + 1] |= carry
        elif carry:
            raise _bad_hash(text)
    return bytes(out)


def nix32_encode(raw: bytes) -> str:
    length = (len(raw) * 8 - 1) // 5 + 1
    chars: list[str] = []
    for n in range(length - 1, -1, -1):
        bit = n * 5
        index, offset = divmod(bit, 8)
        value = raw[index] >> offset
        if index + 1 < len(raw):
            value |= raw[index + 1] << (8 - offset)
        chars.append(NIX32_ALPHABET[value & 0x1F])
    return "".join(chars)


def _write_nar(path: Path, sink: Callable[[bytes], object]) -> None:
    if not path.exists() and not path.is_symlink():
        raise FetchError(
            "Cannot hash a path that does not exist.",
            context={"operation": "nar_hash", "path": str(path)},
        )
    _write_str(sink, b"nix-archive-1")
    _write_entry(path, sink)


def _write_entry(path: Path, sink: Callable[[bytes], object]) -> None:
    mode = os.lstat(path).st_mode
    _write_str(sink, b"(")
    _write_str(sink, b"type")
    if stat.S_ISLNK(mode):
        _write_str(sink, b"symlink")
        _write_str(sink, b"target")
        _write_str(sink, os.fsencode(os.readlink(path)))
    elif stat.S_ISDIR(mode):
        _write_str(sink, b"directory")
        for name in sorted(os.fsencode(entry) for entry in os.listdir(path)):
            _write_str(sink, b"entry")
            _write_str(sink, b"(")
            _write_str(sink, b"name")
            _write_str(sink, name)
            _write_str(sink, b"node")
            _write_entry(path / os.fsdecode(name), sink)
            _write_str(sink, b")")
    elif stat.S_ISREG(mode):
        _write_str(sink, b"regular")
        if mode & stat.S_IXUSR:
            _write_str(sink, b"executable")
            _write_str(sink, b"")
        _write_str(sink, b"contents")
        _write_str(sink, path.read_bytes())
    else:
        raise InvariantViolationError(
            "Only regular files, directories and symlinks can be archived.",
            context={"operation": "nar_hash", "path": str(path)},
        )
    _write_str(sink, b")")


def _write_str(sink: Callable[[bytes], object], value: bytes) -> None:
    sink(len(value).to_bytes(8, "little"))
    sink(value)
    padding = -len(value) % 8
    if padding:
        sink(b"\0" * padding)


def _bad_hash(text: str) -> InvariantViolationError:
    return InvariantViolationError(
        "Unrecognized sha256 digest encoding.",
        hint="Use an SRI hash such as 'sha256-<base64>'.",
        context={"operation": "parse_hash", "hash": text},
    )
