"""Content-addressed fingerprints for application directories."""

from __future__ import annotations

import hashlib
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Dict, Mapping

from .ignore import should_skip_dir, should_skip_file

_CHUNK_SIZE = 1024 * 1024


def iter_app_files(app_root: Path) -> Iterator[tuple[str, Path]]:
    """Yield ``(posix_relative_path, absolute_path)`` for every tracked file.

    Entries are visited in lexicographic order; symlinks and other
    non-regular files are skipped.
    """
    root = app_root.resolve()

    def _walk_error(exc: OSError) -> None:
        raise exc

    for current, dirnames, filenames in os.walk(root, onerror=_walk_error):
        dirnames[:] = sorted(
            d
            for d in dirnames
            if not should_skip_dir(d) and not os.path.islink(os.path.join(current, d))
        )
        for filename in sorted(filenames):
            if should_skip_file(filename):
                continue
            abs_path = Path(current) / filename
            if abs_path.is_symlink() or not abs_path.is_file():
                continue
            yield abs_path.relative_to(root).as_posix(), abs_path


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(_CHUNK_SIZE)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def compute_file_map(app_root: Path) -> Dict[str, str]:
    """Return ``{relative_path: sha256}`` for every non-ignored file under ``app_root``."""
    root = Path(app_root)
    if not root.is_dir():
        raise FileNotFoundError(f"App path not found: {root.resolve()}")
    return {rel: sha256_file(abs_path) for rel, abs_path in iter_app_files(root)}


def fingerprint_from_file_map(file_map: Mapping[str, str]) -> str:
    """Hash the sorted ``path=hash`` lines of a file map into one digest."""
    normalised = {key.replace("\\", "/"): value for key, value in file_map.items()}
    joined = "\n".join(f"{key}={normalised[key]}" for key in sorted(normalised))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


def compute_fingerprint(app_root: Path) -> str:
    return fingerprint_from_file_map(compute_file_map(app_root))


__all__ = [
    "compute_file_map",
    "compute_fingerprint",
    "fingerprint_from_file_map",
    "iter_app_files",
    "sha256_file",
]
