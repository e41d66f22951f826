"""Core data models shared across buildguard components."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class CheckResult:
    """Outcome of one pipeline check."""

    id: str
    required: bool
    ok: bool
    failure_kind: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "required": self.required,
            "ok": self.ok,
            "failureKind": self.failure_kind,
            "details": self.details,
        }


@dataclass
class ValidationReport:
    """Structured result of a validation pipeline run."""

    template: str
    app_path: str
    base_url: Optional[str]
    started_at: str
    finished_at: str
    duration_ms: int
    checks: List[CheckResult] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def first_failure(self) -> Optional[CheckResult]:
        for check in self.checks:
            if check.required and not check.ok:
                return check
        return None

    @property
    def ok(self) -> bool:
        return self.first_failure is None

    @property
    def failure_class(self) -> Optional[str]:
        failed = self.first_failure
        return failed.failure_kind if failed is not None else None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "ok": self.ok,
            "template": self.template,
            "appPath": self.app_path,
            "baseUrl": self.base_url,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "durationMs": self.duration_ms,
            "checks": [check.to_dict() for check in self.checks],
            "failureClass": self.failure_class,
        }
        payload.update(self.extra)
        return payload


@dataclass
class IntegrityResult:
    """Outcome of a manifest integrity verification."""

    ok: bool
    matches: bool
    manifest_path: str
    expected: Optional[str] = None
    current: Optional[str] = None
    template: Optional[str] = None
    template_dir: Optional[str] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    error_details: Dict[str, Any] = field(default_factory=dict)
    notes: List[str] = field(default_factory=list)

    def error_dict(self) -> Optional[Dict[str, Any]]:
        if self.error_kind is None:
            return None
        payload: Dict[str, Any] = {"code": self.error_kind, "message": self.error_message or ""}
        if self.error_details:
            payload["details"] = self.error_details
        return payload

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "ok": self.ok,
            "matches": self.matches,
            "manifestPath": self.manifest_path,
            "expectedFingerprint": self.expected,
            "currentFingerprint": self.current,
        }
        error = self.error_dict()
        if error is not None:
            payload["error"] = error
        if self.notes:
            payload["notes"] = list(self.notes)
        return payload
