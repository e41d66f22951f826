"""Tests for buildguard.manifest.fingerprint."""

from __future__ import annotations

from hashlib import sha256
from pathlib import Path

import pytest

from buildguard.manifest import compute_file_map, compute_fingerprint, fingerprint_from_file_map


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_file_map_uses_posix_paths_and_sha256(tmp_path: Path) -> None:
    _write(tmp_path / "src" / "routes" / "users.js", "module.exports = {};\n")
    _write(tmp_path / "index.js", "require('./src/routes/users');\n")

    file_map = compute_file_map(tmp_path)

    assert list(file_map) == ["index.js", "src/routes/users.js"]
    expected = sha256((tmp_path / "index.js").read_bytes()).hexdigest()
    assert file_map["index.js"] == expected


def test_fingerprint_is_independent_of_creation_order(tmp_path: Path) -> None:
    first = tmp_path / "first"
    second = tmp_path / "second"
    files = {"b.txt": "bee\n", "a/c.txt": "sea\n", "a/b/d.txt": "dee\n"}
    for name, content in files.items():
        _write(first / name, content)
    for name, content in reversed(list(files.items())):
        _write(second / name, content)

    assert compute_fingerprint(first) == compute_fingerprint(second)


def test_fingerprint_ignores_separator_convention() -> None:
    posix = {"src/app.py": "aa", "main.py": "bb"}
    windows = {"src\\app.py": "aa", "main.py": "bb"}
    assert fingerprint_from_file_map(posix) == fingerprint_from_file_map(windows)


def test_single_byte_change_changes_fingerprint(tmp_path: Path) -> None:
    _write(tmp_path / "main.py", "print('hi')\n")
    before = compute_fingerprint(tmp_path)

    _write(tmp_path / "main.py", "print('ho')\n")

    assert compute_fingerprint(tmp_path) != before


@pytest.mark.parametrize(
    "ignored",
    [
        "package-lock.json",
        "yarn.lock",
        "builder.manifest.json",
        ".DS_Store",
        "node_modules/express/index.js",
        ".git/HEAD",
        ".builder_snapshots/one.json",
        "__pycache__/main.cpython-312.pyc",
    ],
)
def test_ignored_files_do_not_affect_fingerprint(tmp_path: Path, ignored: str) -> None:
    _write(tmp_path / "main.py", "print('hi')\n")
    before = compute_fingerprint(tmp_path)

    _write(tmp_path / ignored, "noise\n")

    assert compute_fingerprint(tmp_path) == before
    assert ignored not in compute_file_map(tmp_path)


def test_file_map_rejects_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        compute_file_map(tmp_path / "missing")
