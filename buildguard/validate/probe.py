"""Bounded health polling for a freshly started application."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from ..logging import get_logger
from ..output import one_line
from ..process.handle import ProcessHandle
from .http import TIMEOUT, HTTP_NON_2XX, HttpError, code_for_kind, http_request_json

HEALTH_DEADLINE_SECONDS = 15.0
HEALTH_ATTEMPT_SECONDS = 0.9
HEALTH_INTERVAL_SECONDS = 0.25

PROCESS_EXITED = "PROCESS_EXITED"
START_EXIT_CODE = "ERR_START_EXIT"

_LOGGER = get_logger("validate.probe")


@dataclass
class ProbeFailure:
    kind: str
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        payload.update(self.details)
        return payload


@dataclass
class ProbeResult:
    ok: bool
    json: Any = None
    failure: Optional[ProbeFailure] = None
    attempts: int = 0


def probe_health(
    url: str,
    *,
    per_attempt_timeout: float = HEALTH_ATTEMPT_SECONDS,
    deadline: float = HEALTH_DEADLINE_SECONDS,
    process: Optional[ProcessHandle] = None,
    interval: float = HEALTH_INTERVAL_SECONDS,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> ProbeResult:
    """Poll ``GET url`` until a 2xx response, the deadline, or the process exiting.

    A process that exits before the app becomes healthy is a start failure
    (``PROCESS_EXITED``), never a health failure.
    """
    started = clock()
    attempts = 0
    last_error: Optional[HttpError] = None
    last_status: Optional[int] = None

    while clock() - started < deadline:
        if process is not None and not process.is_running():
            return ProbeResult(ok=False, failure=_process_exited(process), attempts=attempts)

        attempts += 1
        result = http_request_json(url, method="GET", timeout=per_attempt_timeout)
        if result.is_success:
            _LOGGER.debug("Health OK at %s after %d attempt(s)", url, attempts)
            return ProbeResult(ok=True, json=result.json, attempts=attempts)
        if result.ok:
            last_status = result.status_code
            last_error = None
        else:
            last_error = result.error
            last_status = None
        sleep(interval)

    if process is not None and not process.is_running():
        return ProbeResult(ok=False, failure=_process_exited(process), attempts=attempts)

    if last_status is not None:
        failure = ProbeFailure(
            kind=HTTP_NON_2XX,
            code=code_for_kind(HTTP_NON_2XX, last_status),
            message=f"HTTP {last_status}",
            details={"statusCode": last_status},
        )
    elif last_error is not None:
        failure = ProbeFailure(
            kind=last_error.kind,
            code=last_error.code,
            message=one_line(last_error.message, max_chars=220),
        )
    else:
        failure = ProbeFailure(kind=TIMEOUT, code=code_for_kind(TIMEOUT), message="health timeout")
    _LOGGER.debug("Health probe for %s gave up: %s", url, failure.code)
    return ProbeResult(ok=False, failure=failure, attempts=attempts)


def _process_exited(process: ProcessHandle) -> ProbeFailure:
    # Joins the reader threads so the captured output is complete.
    code = process.wait(1.0)
    output = process.capture()
    return ProbeFailure(
        kind=PROCESS_EXITED,
        code=START_EXIT_CODE,
        message=f"start command exited early (exit {code}).",
        details={
            "exitCode": code,
            "stdoutSnippet": one_line(output.stdout) or None,
            "stderrSnippet": one_line(output.stderr) or None,
        },
    )


__all__ = [
    "HEALTH_ATTEMPT_SECONDS",
    "HEALTH_DEADLINE_SECONDS",
    "HEALTH_INTERVAL_SECONDS",
    "PROCESS_EXITED",
    "ProbeFailure",
    "ProbeResult",
    "START_EXIT_CODE",
    "probe_health",
]
