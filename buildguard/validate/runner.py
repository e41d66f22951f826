"""End-to-end validation of one generated application."""

from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional

from ..config import RuntimeSettings
from ..errors import ProcessStartError
from ..logging import get_logger
from ..manifest import manifest_template, verify_integrity
from ..models import IntegrityResult, ValidationReport
from ..output import one_line
from ..process import allocate_ephemeral_port, detect_runtime, run_install, should_install, start_process
from ..process.runtime import Runtime
from .classes import BOOT_FAIL, ENDPOINT_FAIL, HEALTH_FAIL, SCHEMA_FAIL, exit_code_for
from .pipeline import failure_report, run_validation_contract
from .probe import PROCESS_EXITED, probe_health
from .profiles import ValidationProfile, get_profile
from .template import infer_template, resolve_template

ATTEMPTS = 2
INTEGRITY_ERROR_CODE = "ERR_MANIFEST_INTEGRITY"

_LOGGER = get_logger("validate.runner")

_LOCKS_GUARD = threading.Lock()
_PATH_LOCKS: Dict[str, threading.Lock] = {}


@dataclass
class ValidateResult:
    """Envelope returned by ``validate``; ``to_dict`` is the JSON contract."""

    app_path: Path
    template: str
    profile: str
    install_mode: str
    did_install: bool
    integrity: IntegrityResult
    validation: ValidationReport
    port: Optional[int] = None
    base_url: Optional[str] = None
    health_json: Any = None

    @property
    def ok(self) -> bool:
        return self.validation.ok

    @property
    def failure_class(self) -> Optional[str]:
        return self.validation.failure_class

    @property
    def exit_code(self) -> int:
        return exit_code_for(self.validation.failure_class)

    @property
    def failure_code(self) -> Optional[str]:
        """The ``ERR_*`` diagnostic code of the first failed required check."""
        failed = self.validation.first_failure
        if failed is None:
            return None
        code = failed.details.get("code")
        return code if isinstance(code, str) else None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"ok": self.ok}
        if self.port is not None and self.base_url is not None:
            payload.update(
                {
                    "port": self.port,
                    "url": f"{self.base_url}/health",
                    "baseUrl": self.base_url,
                    "response": self.health_json if self.health_json is not None else {"status": "ok"},
                }
            )
        payload.update(
            {
                "appPath": str(self.app_path),
                "template": self.template,
                "profile": self.profile,
                "installMode": self.install_mode,
                "didInstall": self.did_install,
                "manifestIntegrity": self.integrity.to_dict(),
                "validation": self.validation.to_dict(),
            }
        )
        return payload


@dataclass
class _AttemptFailure:
    check_id: str
    failure_class: str
    details: Dict[str, Any] = field(default_factory=dict)
    did_install: bool = False


@contextmanager
def _path_lock(root: Path) -> Iterator[None]:
    key = os.path.normcase(str(root))
    with _LOCKS_GUARD:
        lock = _PATH_LOCKS.setdefault(key, threading.Lock())
    with lock:
        yield


def validate_app(
    app_path: Path,
    settings: Optional[RuntimeSettings] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
) -> ValidateResult:
    """Gate on manifest integrity, then install, boot, probe and run the profile.

    Validations of the same resolved path are serialised within this process.
    """
    resolved_settings = settings or RuntimeSettings()
    root = Path(app_path).resolve()
    with _path_lock(root):
        return _validate_locked(root, resolved_settings, dict(env if env is not None else os.environ))


def _validate_locked(root: Path, settings: RuntimeSettings, env: Dict[str, str]) -> ValidateResult:
    integrity = verify_integrity(root, require_manifest=True)
    if not integrity.ok:
        return _integrity_failure(root, integrity, settings)

    template = resolve_template(root)
    profile_name = settings.profile or template
    profile = get_profile(profile_name, settings.profiles)
    runtime = detect_runtime(root)
    _LOGGER.info("Validating %s (template=%s, profile=%s)", root, template, profile_name)

    outcome = _run_attempt(root, runtime, template, profile_name, profile, settings, env, integrity)
    for attempt in range(2, ATTEMPTS + 1):
        if isinstance(outcome, ValidateResult):
            break
        _LOGGER.warning(
            "Attempt %d/%d failed at %s (%s); retrying",
            attempt - 1,
            ATTEMPTS,
            outcome.check_id,
            outcome.details.get("code"),
        )
        outcome = _run_attempt(root, runtime, template, profile_name, profile, settings, env, integrity)
    if isinstance(outcome, ValidateResult):
        return outcome

    failure = outcome
    report = failure_report(template, str(root), failure.failure_class, failure.check_id, failure.details)
    return ValidateResult(
        app_path=root,
        template=template,
        profile=profile_name,
        install_mode=settings.install_mode,
        did_install=failure.did_install,
        integrity=integrity,
        validation=report,
    )


def _run_attempt(
    root: Path,
    runtime: Runtime,
    template: str,
    profile_name: str,
    profile: ValidationProfile,
    settings: RuntimeSettings,
    env: Dict[str, str],
    integrity: IntegrityResult,
) -> ValidateResult | _AttemptFailure:
    did_install = False
    decision = should_install(settings.install_mode, runtime, root)
    if decision.install:
        try:
            installed = run_install(
                runtime,
                root,
                env=env,
                timeout=settings.install_seconds,
                quiet=settings.silence_children,
                forward_stdout_to_stderr=settings.forward_child_output_to_stderr,
            )
        except ProcessStartError as exc:
            return _AttemptFailure(
                "install",
                BOOT_FAIL,
                {
                    "code": "ERR_INSTALL_EXCEPTION",
                    "message": one_line(exc),
                    "installMode": settings.install_mode,
                },
            )
        if not installed.ok:
            reason = "timed out" if installed.timed_out else f"exit {installed.exit_code}"
            return _AttemptFailure(
                "install",
                BOOT_FAIL,
                {
                    "code": "ERR_INSTALL_EXIT",
                    "message": f"{runtime.name} install failed ({reason}).",
                    "exitCode": installed.exit_code,
                    "installMode": settings.install_mode,
                },
            )
        did_install = not installed.skipped

    port = allocate_ephemeral_port()
    base_url = f"http://127.0.0.1:{port}"
    health_url = f"{base_url}/health"
    try:
        handle = start_process(
            runtime.start_argv(root),
            cwd=root,
            env=runtime.start_env(root, port, env),
            quiet=settings.silence_children,
            forward_stdout_to_stderr=settings.forward_child_output_to_stderr,
        )
    except ProcessStartError as exc:
        return _AttemptFailure(
            "start",
            BOOT_FAIL,
            {"code": "ERR_START_EXCEPTION", "message": one_line(exc)},
            did_install,
        )

    try:
        probe = probe_health(
            health_url,
            per_attempt_timeout=settings.health_attempt_seconds,
            deadline=settings.health_deadline_seconds,
            process=handle,
        )
        if probe.failure is not None:
            if probe.failure.kind == PROCESS_EXITED:
                return _AttemptFailure("start", BOOT_FAIL, probe.failure.to_dict(), did_install)
            return _AttemptFailure(
                "health",
                HEALTH_FAIL,
                {"code": probe.failure.code, "message": probe.failure.message, "url": health_url},
                did_install,
            )

        try:
            report = run_validation_contract(profile_name, str(root), base_url, profile=profile)
        except Exception as exc:  # pragma: no cover - defensive guard
            _LOGGER.debug("Validation pipeline raised", exc_info=True)
            report = failure_report(
                template,
                str(root),
                ENDPOINT_FAIL,
                "contract",
                {"code": "ERR_CONTRACT_EXCEPTION", "message": one_line(exc)},
            )
        report.extra = {"templateOriginal": template, "profileUsed": profile_name}
        return ValidateResult(
            app_path=root,
            template=template,
            profile=profile_name,
            install_mode=settings.install_mode,
            did_install=did_install,
            integrity=integrity,
            validation=report,
            port=port,
            base_url=base_url,
            health_json=probe.json,
        )
    finally:
        handle.stop()


def _integrity_failure(
    root: Path, integrity: IntegrityResult, settings: RuntimeSettings
) -> ValidateResult:
    template = manifest_template(root) if root.is_dir() else None
    if template is None:
        template = infer_template(root) if root.is_dir() else "unknown"
    details: Dict[str, Any] = {
        "code": INTEGRITY_ERROR_CODE,
        "message": one_line(integrity.error_message or "Manifest integrity check failed.", max_chars=220),
        "integrityErrorCode": integrity.error_kind,
        "manifestPath": integrity.manifest_path,
        "expectedFingerprint": integrity.expected,
        "currentFingerprint": integrity.current,
    }
    if integrity.error_details:
        details["details"] = integrity.error_details
    _LOGGER.warning("Manifest integrity failed for %s: %s", root, integrity.error_kind)
    return ValidateResult(
        app_path=root,
        template=template,
        profile=settings.profile or template,
        install_mode=settings.install_mode,
        did_install=False,
        integrity=integrity,
        validation=failure_report(template, str(root), SCHEMA_FAIL, "manifest_integrity", details),
    )


__all__ = ["ATTEMPTS", "INTEGRITY_ERROR_CODE", "ValidateResult", "validate_app"]
