"""Ordered, profile-driven execution of validation checks."""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import Mapping, Optional

from ..logging import get_logger
from ..models import CheckResult, ValidationReport
from .checks import BUILTIN_CHECKS, Check, CheckContext
from .classes import UNKNOWN_FAIL
from .profiles import ValidationProfile, get_profile

_LOGGER = get_logger("validate.pipeline")


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def run_validation_contract(
    template: str,
    app_path: str,
    base_url: Optional[str],
    *,
    profile: Optional[ValidationProfile] = None,
    checks: Optional[Mapping[str, Check]] = None,
) -> ValidationReport:
    """Run the profile's checks in order, stopping at the first required failure."""
    started_at = utc_now_iso()
    started = time.monotonic()
    resolved = profile if profile is not None else get_profile(template)
    registry = checks if checks is not None else BUILTIN_CHECKS
    results: list[CheckResult] = []

    for item in resolved.checks:
        check = registry.get(item.id)
        if check is None:
            results.append(
                CheckResult(
                    id=item.id,
                    required=item.required,
                    ok=not item.required,
                    failure_kind=UNKNOWN_FAIL if item.required else None,
                    details={"reason": "unknown_check_id"},
                )
            )
        else:
            ctx = CheckContext(
                template=template,
                app_path=app_path,
                base_url=base_url,
                required=item.required,
            )
            result = check(ctx, item.config)
            # The profile decides whether a check gates the run.
            result.required = item.required
            results.append(result)
        last = results[-1]
        _LOGGER.debug("check %s ok=%s required=%s", last.id, last.ok, last.required)
        if last.required and not last.ok:
            break

    return ValidationReport(
        template=template,
        app_path=app_path,
        base_url=base_url,
        started_at=started_at,
        finished_at=utc_now_iso(),
        duration_ms=int((time.monotonic() - started) * 1000),
        checks=results,
    )


def failure_report(
    template: str,
    app_path: str,
    failure_class: str,
    check_id: str,
    details: Mapping[str, object],
) -> ValidationReport:
    """Build a one-check failed report for failures that happen before the pipeline runs."""
    now = utc_now_iso()
    return ValidationReport(
        template=template,
        app_path=app_path,
        base_url=None,
        started_at=now,
        finished_at=now,
        duration_ms=0,
        checks=[
            CheckResult(
                id=check_id,
                required=True,
                ok=False,
                failure_kind=failure_class,
                details=dict(details),
            )
        ],
    )


__all__ = ["failure_report", "run_validation_contract", "utc_now_iso"]
