"""Manifest persistence and integrity verification."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import ManifestError
from ..logging import get_logger
from ..models import IntegrityResult
from ..output import write_text_atomic
from .fingerprint import compute_file_map, fingerprint_from_file_map
from .ignore import MANIFEST_NAME, ignore_rules_payload

MANIFEST_SCHEMA_VERSION = 2

APP_NOT_FOUND = "APP_NOT_FOUND"
MANIFEST_MISSING = "MANIFEST_MISSING"
MANIFEST_INVALID = "MANIFEST_INVALID"
MANIFEST_NO_FINGERPRINT = "MANIFEST_NO_FINGERPRINT"
FINGERPRINT_COMPUTE_FAILED = "FINGERPRINT_COMPUTE_FAILED"
MANIFEST_DRIFT = "MANIFEST_DRIFT"

_LOGGER = get_logger("manifest")


@dataclass
class ManifestRead:
    """Result of reading ``builder.manifest.json`` from an app root."""

    path: Path
    manifest: Optional[Dict[str, Any]] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.manifest is not None


@dataclass
class RefreshSummary:
    """What a manifest refresh computed and whether it was written."""

    applied: bool
    fingerprint: str
    file_map_entries: int
    manifest_path: Path
    app_path: Path

    def to_dict(self) -> Dict[str, Any]:
        rules = ignore_rules_payload()
        return {
            "applied": self.applied,
            "fingerprint": self.fingerprint,
            "fileMapEntries": self.file_map_entries,
            "excludedDirs": rules["excludedDirs"],
            "excludedFiles": rules["excludedFiles"],
            "manifestSchemaVersion": MANIFEST_SCHEMA_VERSION,
            "manifestPath": str(self.manifest_path),
            "appPath": str(self.app_path),
        }


@dataclass
class DriftReport:
    """Per-file differences between the manifest baseline and the app on disk."""

    app_path: Path
    manifest_path: Path
    added: List[str]
    removed: List[str]
    modified: List[str]
    baseline_fingerprint: Optional[str]
    current_fingerprint: str
    template: Optional[str] = None
    template_dir: Optional[str] = None

    @property
    def drifted(self) -> bool:
        return bool(self.added or self.removed or self.modified)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "appPath": str(self.app_path),
            "manifestPath": str(self.manifest_path),
            "template": self.template or "(unknown)",
            "templateDir": self.template_dir or "(unknown)",
            "added": list(self.added),
            "removed": list(self.removed),
            "modified": list(self.modified),
            "baselineFingerprint": self.baseline_fingerprint or "(none)",
            "currentFingerprint": self.current_fingerprint,
            "drifted": self.drifted,
            "fingerprintMatches": self.baseline_fingerprint == self.current_fingerprint,
        }

def manifest_path_for(app_root: Path) -> Path:
    return Path(app_root).resolve() / MANIFEST_NAME


def read_manifest(app_root: Path) -> ManifestRead:
    """Load and shape-check the manifest without raising."""
    path = manifest_path_for(app_root)
    if not path.is_file():
        return ManifestRead(
            path=path,
            error_kind=MANIFEST_MISSING,
            error_message=f"{MANIFEST_NAME} not found at: {path}",
        )
    try:
        parsed = json.loads(path.read_text(encoding="utf-8-sig"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        return ManifestRead(
            path=path,
            error_kind=MANIFEST_INVALID,
            error_message=f"Failed to parse {MANIFEST_NAME}.",
            error_details={"error": str(exc)},
        )
    if not isinstance(parsed, dict):
        return ManifestRead(
            path=path,
            error_kind=MANIFEST_INVALID,
            error_message=f"{MANIFEST_NAME} must be a JSON object.",
        )
    return ManifestRead(path=path, manifest=parsed)


def manifest_template(app_root: Path) -> Optional[str]:
    """Return the template recorded in the manifest, if any."""
    loaded = read_manifest(app_root)
    if not loaded.ok or loaded.manifest is None:
        return None
    for key in ("template", "templateName"):
        value = loaded.manifest.get(key)
        if isinstance(value, str) and value.strip() and value != "(unknown)":
            return value.strip()
    return None


def verify_integrity(app_root: Path, *, require_manifest: bool = True) -> IntegrityResult:
    """Recompute the app fingerprint and compare it with the stored baseline.

    This is a hard gate: callers must not spawn anything for the app when
    ``ok`` is false, and must not retry.
    """
    root = Path(app_root).resolve()
    manifest_path = str(root / MANIFEST_NAME)

    if not root.is_dir():
        return IntegrityResult(
            ok=False,
            matches=False,
            manifest_path=manifest_path,
            error_kind=APP_NOT_FOUND,
            error_message=f"App path not found: {root}",
        )

    loaded = read_manifest(root)
    if not loaded.ok:
        if not require_manifest and loaded.error_kind == MANIFEST_MISSING:
            return IntegrityResult(
                ok=True,
                matches=True,
                manifest_path=manifest_path,
                notes=["Manifest not required; skipping integrity lock."],
            )
        return IntegrityResult(
            ok=False,
            matches=False,
            manifest_path=manifest_path,
            error_kind=loaded.error_kind,
            error_message=loaded.error_message,
            error_details=dict(loaded.error_details or {}),
        )

    manifest = loaded.manifest or {}
    raw_expected = manifest.get("fingerprint")
    expected = raw_expected.strip() if isinstance(raw_expected, str) else ""
    if not expected:
        return IntegrityResult(
            ok=False,
            matches=False,
            manifest_path=manifest_path,
            error_kind=MANIFEST_NO_FINGERPRINT,
            error_message=f"{MANIFEST_NAME} is missing required key: fingerprint",
        )

    try:
        current = fingerprint_from_file_map(compute_file_map(root))
    except OSError as exc:
        return IntegrityResult(
            ok=False,
            matches=False,
            manifest_path=manifest_path,
            expected=expected,
            error_kind=FINGERPRINT_COMPUTE_FAILED,
            error_message="Failed to compute current fingerprint.",
            error_details={"error": str(exc)},
        )

    if current != expected:
        _LOGGER.debug("Fingerprint drift for %s: %s != %s", root, current, expected)
        return IntegrityResult(
            ok=False,
            matches=False,
            manifest_path=manifest_path,
            expected=expected,
            current=current,
            error_kind=MANIFEST_DRIFT,
            error_message=(
                "Manifest fingerprint does not match current app fingerprint (drift detected)."
            ),
            error_details={"expectedFingerprint": expected, "currentFingerprint": current},
        )

    template = manifest.get("template")
    template_dir = manifest.get("templateDir")
    return IntegrityResult(
        ok=True,
        matches=True,
        manifest_path=manifest_path,
        expected=expected,
        current=current,
        template=template if isinstance(template, str) else None,
        template_dir=template_dir if isinstance(template_dir, str) else None,
    )


def init_manifest(
    app_root: Path,
    template_dir: Path,
    *,
    template: Optional[str] = None,
) -> Dict[str, Any]:
    """Create or overwrite the manifest baseline for ``app_root``."""
    root = Path(app_root).resolve()
    if not root.is_dir():
        raise ManifestError(f"App path not found: {root}", code="ERR_APP_NOT_FOUND")
    template_dir_abs = Path(template_dir).resolve()
    if not template_dir_abs.is_dir():
        raise ManifestError(
            f"Template directory not found: {template_dir_abs}", code="ERR_TEMPLATE_DIR_NOT_FOUND"
        )

    path = root / MANIFEST_NAME
    existing = _load_existing(path) if path.exists() else {}
    file_map = compute_file_map(root)
    template_name = template or template_dir_abs.name or existing.get("template") or "(unknown)"

    updated = dict(existing)
    updated.update(
        {
            "manifestSchemaVersion": MANIFEST_SCHEMA_VERSION,
            "ignoreRules": ignore_rules_payload(),
            "template": template_name,
            "templateDir": str(template_dir_abs),
            "fingerprint": fingerprint_from_file_map(file_map),
            "fileMap": file_map,
            "lastManifestInitUtc": _utc_now(),
        }
    )
    _write_manifest(path, updated)
    _LOGGER.info("Manifest written for %s (%d files)", root, len(file_map))
    return updated


def refresh_manifest(app_root: Path, *, apply: bool = True) -> RefreshSummary:
    """Recompute the baseline of an existing manifest, writing it only when ``apply``."""
    root = Path(app_root).resolve()
    path = root / MANIFEST_NAME
    if not path.is_file():
        raise ManifestError(f"{MANIFEST_NAME} not found at: {path}", code="ERR_MANIFEST_MISSING")

    existing = _load_existing(path)
    file_map = compute_file_map(root)
    fingerprint = fingerprint_from_file_map(file_map)

    if apply:
        updated = dict(existing)
        updated.update(
            {
                "manifestSchemaVersion": MANIFEST_SCHEMA_VERSION,
                "ignoreRules": ignore_rules_payload(),
                "fingerprint": fingerprint,
                "fileMap": file_map,
                "lastManifestRefreshUtc": _utc_now(),
            }
        )
        _write_manifest(path, updated)
        _LOGGER.info("Manifest refreshed for %s", root)
    else:
        _LOGGER.info("Manifest refresh dry-run for %s", root)

    return RefreshSummary(
        applied=apply,
        fingerprint=fingerprint,
        file_map_entries=len(file_map),
        manifest_path=path,
        app_path=root,
    )


def drift_report(app_root: Path) -> DriftReport:
    """Compare the manifest's ``fileMap`` baseline with the files on disk, per file.

    Raises ``ManifestError`` when the manifest cannot be read or carries no
    ``fileMap`` baseline.
    """
    root = Path(app_root).resolve()
    path = root / MANIFEST_NAME
    if not path.is_file():
        raise ManifestError(f"{MANIFEST_NAME} not found at: {path}", code="ERR_MANIFEST_MISSING")

    manifest = _load_existing(path)
    baseline = manifest.get("fileMap")
    if not isinstance(baseline, dict) or not baseline:
        raise ManifestError(
            "Manifest missing fileMap baseline. Cannot compute drift.",
            code="ERR_MANIFEST_NO_FILEMAP",
        )

    current = compute_file_map(root)
    added = sorted(rel for rel in current if rel not in baseline)
    removed = sorted(rel for rel in baseline if rel not in current)
    modified = sorted(
        rel for rel, digest in baseline.items() if rel in current and current[rel] != digest
    )

    expected = manifest.get("fingerprint")
    template = manifest.get("template")
    template_dir = manifest.get("templateDir")
    return DriftReport(
        app_path=root,
        manifest_path=path,
        added=added,
        removed=removed,
        modified=modified,
        baseline_fingerprint=expected if isinstance(expected, str) and expected else None,
        current_fingerprint=fingerprint_from_file_map(current),
        template=template if isinstance(template, str) else None,
        template_dir=template_dir if isinstance(template_dir, str) else None,
    )


def _load_existing(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8-sig"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ManifestError(
            f"Failed to parse {MANIFEST_NAME}: {exc}", code="ERR_MANIFEST_INVALID"
        ) from exc
    if not isinstance(data, dict):
        raise ManifestError(f"{MANIFEST_NAME} must be a JSON object.", code="ERR_MANIFEST_INVALID")
    return data


def _write_manifest(path: Path, payload: Dict[str, Any]) -> None:
    write_text_atomic(path, json.dumps(payload, indent=2) + "\n")


def _utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


__all__ = [
    "APP_NOT_FOUND",
    "DriftReport",
    "FINGERPRINT_COMPUTE_FAILED",
    "MANIFEST_DRIFT",
    "MANIFEST_INVALID",
    "MANIFEST_MISSING",
    "MANIFEST_NO_FINGERPRINT",
    "MANIFEST_SCHEMA_VERSION",
    "ManifestRead",
    "RefreshSummary",
    "drift_report",
    "init_manifest",
    "manifest_path_for",
    "manifest_template",
    "read_manifest",
    "refresh_manifest",
    "verify_integrity",
]
