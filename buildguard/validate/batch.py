"""Batch commands over a root of generated apps: validate:all, report:ci, refresh:all."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..config import RuntimeSettings
from ..errors import BuildGuardError, ManifestError
from ..logging import get_logger
from ..manifest import MANIFEST_NAME, SNAPSHOT_DIR_NAME, refresh_manifest
from .classes import UNKNOWN_FAIL, exit_code_for
from .pipeline import failure_report, utc_now_iso
from .runner import validate_app

ProgressCallback = Callable[[str, int, int, Path], None]

_DISCOVERY_SKIP_DIRS = frozenset({"node_modules", SNAPSHOT_DIR_NAME, ".git"})

_LOGGER = get_logger("validate.batch")


@dataclass
class BatchOutcome:
    payload: Dict[str, Any]
    exit_code: int


def discover_apps(root: Path) -> List[Path]:
    """Return every directory under ``root`` holding a manifest, in lexicographic order.

    App directories are not descended into.
    """
    found: List[Path] = []

    def _walk(directory: Path) -> None:
        try:
            entries = sorted(os.scandir(directory), key=lambda entry: entry.name)
        except OSError as exc:
            _LOGGER.warning("Skipping unreadable directory %s: %s", directory, exc)
            return
        for entry in entries:
            if not entry.is_dir(follow_symlinks=False) or entry.name in _DISCOVERY_SKIP_DIRS:
                continue
            child = Path(entry.path)
            if (child / MANIFEST_NAME).is_file():
                found.append(child)
                continue
            _walk(child)

    _walk(Path(root).resolve())
    return sorted(found, key=lambda path: str(path))


def filter_apps(
    apps: Sequence[Path], *, include: Optional[str] = None, max_apps: Optional[int] = None
) -> List[Path]:
    selected = list(apps)
    if include:
        needle = include.lower()
        selected = [app for app in selected if needle in str(app).lower()]
    if max_apps is not None and max_apps > 0:
        selected = selected[:max_apps]
    return selected


def validate_all(
    root: Path,
    settings: RuntimeSettings,
    *,
    include: Optional[str] = None,
    max_apps: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
) -> BatchOutcome:
    """Validate every discovered app sequentially; exit code is the worst per-app code."""
    root_abs = Path(root).resolve()
    apps = filter_apps(discover_apps(root_abs), include=include, max_apps=max_apps)
    started_at = utc_now_iso()
    results: List[Dict[str, Any]] = []
    worst = 0

    for index, app in enumerate(apps, start=1):
        if progress is not None:
            progress("validate:all", index, len(apps), app)
        try:
            outcome = validate_app(app, settings)
        except (BuildGuardError, OSError) as exc:
            _LOGGER.error("Validation crashed for %s: %s", app, exc)
            results.append(_crash_result(app, settings, exc))
            worst = max(worst, exit_code_for(UNKNOWN_FAIL))
            continue
        results.append(outcome.to_dict())
        worst = max(worst, outcome.exit_code)

    payload = {
        "ok": worst == 0,
        "rootPath": str(root_abs),
        "startedAt": started_at,
        "finishedAt": utc_now_iso(),
        "appsFound": len(apps),
        "installMode": settings.install_mode,
        "results": results,
    }
    return BatchOutcome(payload=payload, exit_code=worst)


def classify_for_ci(validate: Any) -> Dict[str, Any]:
    """Grade one validate result as pass, warn (manifest-only failure) or fail."""
    if not isinstance(validate, dict):
        return {"severity": "fail", "hardFail": True, "warn": False, "reason": "no-validate-object"}
    if validate.get("ok") is True:
        return {"severity": "pass", "hardFail": False, "warn": False, "reason": None}

    integrity = validate.get("manifestIntegrity") or {}
    validation = validate.get("validation") or {}
    checks = validation.get("checks") if isinstance(validation.get("checks"), list) else []
    first_id = checks[0].get("id") if checks and isinstance(checks[0], dict) else None
    if integrity.get("ok") is False and len(checks) == 1 and first_id == "manifest_integrity":
        return {"severity": "warn", "hardFail": False, "warn": True, "reason": "manifest_integrity"}

    failure_class = validation.get("failureClass") or "unknown"
    return {
        "severity": "fail",
        "hardFail": True,
        "warn": False,
        "reason": f"failure:{failure_class}:{first_id or 'unknown'}",
    }


def report_ci(
    root: Path,
    settings: RuntimeSettings,
    *,
    include: Optional[str] = None,
    max_apps: Optional[int] = None,
    heal_manifest: bool = False,
    progress: Optional[ProgressCallback] = None,
) -> BatchOutcome:
    """CI gate: only runtime failures are hard; manifest-only failures are warnings.

    With ``heal_manifest`` a manifest-only failure is healed by refreshing the
    baseline and re-validating exactly once. A pass after healing is still a
    warning, never a pass.
    """
    root_abs = Path(root).resolve()
    discovered = discover_apps(root_abs)
    apps = filter_apps(discovered, include=include, max_apps=max_apps)
    started_at = utc_now_iso()
    results: List[Dict[str, Any]] = []

    for index, app in enumerate(apps, start=1):
        if progress is not None:
            progress("report:ci", index, len(apps), app)
        initial = validate_app(app, settings)
        initial_dict = initial.to_dict()
        ci = classify_for_ci(initial_dict)
        entry: Dict[str, Any] = {
            "appPath": str(app),
            "validate": initial_dict,
            "exitCode": initial.exit_code,
            "ci": ci,
            "healedManifest": None,
            "validateAfterHeal": None,
            "ciAfterHeal": None,
        }

        if heal_manifest and ci["reason"] == "manifest_integrity":
            heal = _heal_manifest(app)
            entry["healedManifest"] = heal
            if heal["ok"]:
                _LOGGER.info("Re-validating %s after manifest refresh", app)
                after = validate_app(app, settings)
                after_dict = after.to_dict()
                after_ci = classify_for_ci(after_dict)
                entry["validateAfterHeal"] = after_dict
                entry["ciAfterHeal"] = after_ci
                entry["validate"] = after_dict
                if after.ok:
                    entry["ci"] = {
                        "severity": "warn",
                        "hardFail": False,
                        "warn": True,
                        "reason": "healed_manifest",
                    }
                    entry["exitCode"] = 0
                else:
                    entry["ci"] = after_ci
                    entry["exitCode"] = after.exit_code

        results.append(entry)

    hard_fail_count = sum(1 for item in results if item["ci"]["hardFail"])
    warn_count = sum(1 for item in results if item["ci"]["warn"])
    pass_count = sum(1 for item in results if item["ci"]["severity"] == "pass")
    payload = {
        "ok": hard_fail_count == 0,
        "rootPath": str(root_abs),
        "startedAt": started_at,
        "finishedAt": utc_now_iso(),
        "appsDiscovered": len(discovered),
        "appsFound": len(apps),
        "passCount": pass_count,
        "warnCount": warn_count,
        "hardFailCount": hard_fail_count,
        "installMode": settings.install_mode,
        "include": include,
        "max": max_apps,
        "profile": settings.profile,
        "healManifest": heal_manifest,
        "results": results,
    }
    return BatchOutcome(payload=payload, exit_code=0 if hard_fail_count == 0 else 1)


def refresh_all(
    root: Path,
    *,
    apply: bool = False,
    include: Optional[str] = None,
    max_apps: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
) -> BatchOutcome:
    """Refresh (or dry-run) the manifest of every discovered app."""
    root_abs = Path(root).resolve()
    apps = filter_apps(discover_apps(root_abs), include=include, max_apps=max_apps)
    started_at = utc_now_iso()
    results: List[Dict[str, Any]] = []

    for index, app in enumerate(apps, start=1):
        if progress is not None:
            progress("manifest:refresh:all", index, len(apps), app)
        try:
            summary = refresh_manifest(app, apply=apply)
        except (ManifestError, OSError) as exc:
            error = exc.to_dict() if isinstance(exc, ManifestError) else {
                "code": "ERR_MANIFEST_REFRESH",
                "message": str(exc),
            }
            results.append({"appPath": str(app), "ok": False, "result": None, "error": error})
            continue
        results.append({"appPath": str(app), "ok": True, "result": summary.to_dict()})

    ok_count = sum(1 for item in results if item["ok"])
    fail_count = len(results) - ok_count
    payload = {
        "ok": fail_count == 0,
        "rootPath": str(root_abs),
        "startedAt": started_at,
        "finishedAt": utc_now_iso(),
        "appsFound": len(apps),
        "okCount": ok_count,
        "failCount": fail_count,
        "apply": apply,
        "include": include,
        "max": max_apps,
        "results": results,
    }
    return BatchOutcome(payload=payload, exit_code=0 if fail_count == 0 else 1)


def _heal_manifest(app: Path) -> Dict[str, Any]:
    _LOGGER.info("Healing manifest for %s", app)
    try:
        summary = refresh_manifest(app, apply=True)
    except (ManifestError, OSError) as exc:
        return {"attempted": True, "ok": False, "error": {"message": str(exc)}}
    return {"attempted": True, "ok": True, "result": summary.to_dict()}


def _crash_result(app: Path, settings: RuntimeSettings, exc: BaseException) -> Dict[str, Any]:
    report = failure_report("unknown", str(app), UNKNOWN_FAIL, "validate_all_crash", {"error": str(exc)})
    return {
        "ok": False,
        "appPath": str(app),
        "template": "unknown",
        "profile": settings.profile or "unknown",
        "installMode": settings.install_mode,
        "didInstall": False,
        "manifestIntegrity": {
            "ok": False,
            "manifestPath": str(app / MANIFEST_NAME),
            "expectedFingerprint": None,
            "currentFingerprint": None,
        },
        "validation": report.to_dict(),
    }


__all__ = [
    "BatchOutcome",
    "classify_for_ci",
    "discover_apps",
    "filter_apps",
    "refresh_all",
    "report_ci",
    "validate_all",
]
