"""Centralised ignore rules for fingerprinting and app discovery."""

from __future__ import annotations

from fnmatch import fnmatchcase

MANIFEST_NAME = "builder.manifest.json"
SNAPSHOT_DIR_NAME = ".builder_snapshots"
PYTHON_DEPS_DIR_NAME = ".deps"

# Name-based directory excludes, applied at every depth.
EXCLUDED_DIRS = frozenset(
    {
        ".git",
        "node_modules",
        SNAPSHOT_DIR_NAME,
        PYTHON_DEPS_DIR_NAME,
        "__pycache__",
    }
)

# Name-based file excludes. Installers and shells rewrite these without
# changing application logic, so they never affect the fingerprint.
EXCLUDED_FILES = frozenset(
    {
        MANIFEST_NAME.lower(),
        "package-lock.json",
        "npm-shrinkwrap.json",
        "pnpm-lock.yaml",
        "yarn.lock",
        ".npmrc",
        "npm-debug.log",
        "yarn-error.log",
        ".ds_store",
        "thumbs.db",
    }
)

EXCLUDED_FILE_PATTERNS = ("*.pyc",)


def should_skip_dir(name: str) -> bool:
    return name in EXCLUDED_DIRS


def should_skip_file(name: str) -> bool:
    lowered = name.lower()
    if lowered in EXCLUDED_FILES:
        return True
    return any(fnmatchcase(lowered, pattern) for pattern in EXCLUDED_FILE_PATTERNS)


def ignore_rules_payload() -> dict[str, list[str]]:
    """Return the ignore rules in the form persisted inside a manifest."""
    return {
        "excludedDirs": sorted(EXCLUDED_DIRS),
        "excludedFiles": sorted(EXCLUDED_FILES) + list(EXCLUDED_FILE_PATTERNS),
    }


__all__ = [
    "EXCLUDED_DIRS",
    "EXCLUDED_FILES",
    "MANIFEST_NAME",
    "PYTHON_DEPS_DIR_NAME",
    "SNAPSHOT_DIR_NAME",
    "ignore_rules_payload",
    "should_skip_dir",
    "should_skip_file",
]
