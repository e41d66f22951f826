"""Content-addressed manifest and drift detection for generated apps."""

from .fingerprint import compute_file_map, compute_fingerprint, fingerprint_from_file_map
from .ignore import MANIFEST_NAME, SNAPSHOT_DIR_NAME
from .integrity import (
    APP_NOT_FOUND,
    DriftReport,
    FINGERPRINT_COMPUTE_FAILED,
    MANIFEST_DRIFT,
    MANIFEST_INVALID,
    MANIFEST_MISSING,
    MANIFEST_NO_FINGERPRINT,
    RefreshSummary,
    drift_report,
    init_manifest,
    manifest_template,
    read_manifest,
    refresh_manifest,
    verify_integrity,
)

__all__ = [
    "APP_NOT_FOUND",
    "DriftReport",
    "FINGERPRINT_COMPUTE_FAILED",
    "MANIFEST_DRIFT",
    "MANIFEST_INVALID",
    "MANIFEST_MISSING",
    "MANIFEST_NAME",
    "MANIFEST_NO_FINGERPRINT",
    "RefreshSummary",
    "SNAPSHOT_DIR_NAME",
    "compute_file_map",
    "compute_fingerprint",
    "drift_report",
    "fingerprint_from_file_map",
    "init_manifest",
    "manifest_template",
    "read_manifest",
    "refresh_manifest",
    "verify_integrity",
]
