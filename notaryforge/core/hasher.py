"""Canonical hashing helpers for bundle layouts and distributables.

The layout digest covers the bundle's file set and metadata keys but not
signature or ticket bytes, so two runs over the same artifact with the same
inputs produce the same digest whether or not they were signed.
"""

from __future__ import annotations

import hashlib
import json
import plistlib
from pathlib import Path
from typing import Any

# Paths written by codesign / stapler, excluded from layout comparison
_SIGNATURE_PARTS = frozenset({"_CodeSignature", "CodeResources"})

_CHUNK = 1024 * 1024


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes: sorted keys, compact separators."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def file_sha256(path: Path) -> str:
    """Stream a file through SHA-256."""
    digest = hashlib.sha256()
    with Path(path).open("rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def bundle_file_set(bundle_path: Path) -> list[str]:
    """Sorted POSIX paths of every file in the bundle, signature files excluded."""
    root = Path(bundle_path)
    files: list[str] = []
    for path in root.rglob("*"):
        rel = path.relative_to(root)
        if _SIGNATURE_PARTS.intersection(rel.parts):
            continue
        if path.is_file():
            files.append(rel.as_posix())
    return sorted(files)


def bundle_layout_digest(bundle_path: Path) -> str:
    """SHA-256 of canonical(file set + Info.plist key order)."""
    root = Path(bundle_path)
    info = root / "Contents" / "Info.plist"
    keys: list[str] = []
    if info.exists():
        with info.open("rb") as fh:
            keys = list(plistlib.load(fh).keys())
    payload = {"files": bundle_file_set(root), "metadata_keys": keys}
    return f"sha256:{sha256_hex(canonical_json_bytes(payload))}"
