from __future__ import annotations
import hashlib
from pathlib import Path
from typing import Iterable


def sha256_file(path: str | Path, chunk_size: int = 1 << 20) -> str:
    sha = hashlib.sha256()
    with open(path, "rb") as f:
        while chunk := f.read(chunk_size):
            sha.update(chunk)
    return sha.hexdigest()


def combined_digest(hashes: Iterable[str]) -> str:
    """
    Digest over an ordered sequence of per-document hashes.
    Callers fix the order (label order or sorted hashes) before calling.
    """
    sha = hashlib.sha256()
    for h in hashes:
        sha.update(h.encode("utf-8"))
        sha.update(b"\n")
    return sha.hexdigest()
