"""Built-in validation checks run by the pipeline."""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol
from urllib.parse import urljoin

from ..models import CheckResult
from .classes import BOOT_FAIL, ENDPOINT_FAIL, HEALTH_FAIL, SCHEMA_FAIL
from .http import http_request_json

BOOT_ATTEMPT_SECONDS = 1.2
BOOT_INTERVAL_SECONDS = 0.2
DEFAULT_BOOT_TIMEOUT_MS = 12000
DEFAULT_REQUEST_TIMEOUT_MS = 4000


@dataclass(frozen=True)
class CheckContext:
    template: str
    app_path: str
    base_url: Optional[str]
    required: bool = True


class Check(Protocol):
    def __call__(self, ctx: CheckContext, config: Mapping[str, Any]) -> CheckResult: ...


def check_boot(ctx: CheckContext, config: Mapping[str, Any]) -> CheckResult:
    """Succeed as soon as ``/health`` returns any HTTP response at all."""
    started = time.monotonic()
    timeout_ms = _as_number(config.get("bootTimeoutMs"), DEFAULT_BOOT_TIMEOUT_MS)
    if not ctx.base_url:
        return CheckResult("boot", ctx.required, False, BOOT_FAIL, {"reason": "baseUrl_missing"})

    probe_url = urljoin(ctx.base_url, "/health")
    last_error: Any = None
    while (time.monotonic() - started) * 1000 < timeout_ms:
        result = http_request_json(probe_url, method="GET", timeout=BOOT_ATTEMPT_SECONDS)
        if result.ok and result.status_code:
            return CheckResult(
                "boot",
                ctx.required,
                True,
                None,
                {
                    "baseUrl": ctx.base_url,
                    "probeUrl": probe_url,
                    "ms": int((time.monotonic() - started) * 1000),
                },
            )
        last_error = result.error.to_dict() if result.error else f"status={result.status_code}"
        time.sleep(BOOT_INTERVAL_SECONDS)

    return CheckResult(
        "boot",
        ctx.required,
        False,
        BOOT_FAIL,
        {
            "baseUrl": ctx.base_url,
            "probeUrl": probe_url,
            "timeoutMs": timeout_ms,
            "lastErr": last_error,
        },
    )


def check_health(ctx: CheckContext, config: Mapping[str, Any]) -> CheckResult:
    path = str(config.get("path") or "/health")
    timeout_ms = _as_number(config.get("timeoutMs"), DEFAULT_REQUEST_TIMEOUT_MS)
    expect_status = config.get("expectStatus", 200)
    url = urljoin(ctx.base_url or "", path)

    def _fail(details: Dict[str, Any]) -> CheckResult:
        return CheckResult("health", ctx.required, False, HEALTH_FAIL, {"url": url, **details})

    result = http_request_json(url, method="GET", timeout=timeout_ms / 1000)
    if not result.ok:
        return _fail({"error": result.error.to_dict() if result.error else None})

    if result.status_code != expect_status:
        return _fail(
            {
                "statusCode": result.status_code,
                "expectStatus": expect_status,
                "bodySnippet": (result.body_text or "")[:200],
            }
        )

    expect_json = config.get("expectJson")
    if isinstance(expect_json, Mapping):
        body = result.json
        if not isinstance(body, dict):
            return _fail(
                {
                    "reason": "invalid_json",
                    "jsonError": result.json_error,
                    "bodySnippet": (result.body_text or "")[:200],
                }
            )
        expected_status = expect_json.get("status")
        if expected_status and body.get("status") != expected_status:
            return _fail(
                {"reason": "status_field_mismatch", "got": body.get("status"), "expect": expected_status}
            )
        for key in expect_json.get("requiredKeys") or []:
            if key not in body:
                return _fail({"reason": "missing_key", "key": key})
        for key, expected_type in (expect_json.get("types") or {}).items():
            if key in body and json_type_of(body[key]) != expected_type:
                return _fail(
                    {
                        "reason": "type_mismatch",
                        "key": key,
                        "expect": expected_type,
                        "got": json_type_of(body[key]),
                    }
                )

    return CheckResult("health", ctx.required, True, None, {"url": url, "statusCode": result.status_code})


def check_endpoints(ctx: CheckContext, config: Mapping[str, Any]) -> CheckResult:
    """Request every configured endpoint and collect all failures in one pass."""
    timeout_ms = _as_number(config.get("timeoutMs"), DEFAULT_REQUEST_TIMEOUT_MS)
    endpoints = [ep for ep in config.get("endpoints") or [] if isinstance(ep, Mapping)]
    failures: List[Dict[str, Any]] = []

    for endpoint in endpoints:
        method = str(endpoint.get("method") or "GET").upper()
        path = str(endpoint.get("path") or "/")
        url = urljoin(ctx.base_url or "", path)
        result = http_request_json(url, method=method, timeout=timeout_ms / 1000)
        if not result.ok:
            failures.append(
                {
                    "method": method,
                    "path": path,
                    "url": url,
                    "error": result.error.to_dict() if result.error else None,
                }
            )
            continue
        expect_status = endpoint.get("expectStatus", 200)
        if result.status_code != expect_status:
            failures.append(
                {
                    "method": method,
                    "path": path,
                    "url": url,
                    "statusCode": result.status_code,
                    "expectStatus": expect_status,
                    "bodySnippet": (result.body_text or "")[:200],
                }
            )

    if failures:
        return CheckResult("endpoints", ctx.required, False, ENDPOINT_FAIL, {"failures": failures})
    checked = [
        {"method": str(ep.get("method") or "GET").upper(), "path": ep.get("path")} for ep in endpoints
    ]
    return CheckResult("endpoints", ctx.required, True, None, {"checked": checked})


def check_schema(ctx: CheckContext, config: Mapping[str, Any]) -> CheckResult:
    candidates = [str(item) for item in config.get("dbPathCandidates") or []]
    root = Path(ctx.app_path)
    for candidate in candidates:
        if (root / candidate).is_file():
            return CheckResult("schema", ctx.required, True, None, {"dbFile": candidate})
    return CheckResult(
        "schema",
        ctx.required,
        False,
        SCHEMA_FAIL,
        {"reason": "db_file_not_found", "candidates": candidates},
    )


BUILTIN_CHECKS: Dict[str, Check] = {
    "boot": check_boot,
    "health": check_health,
    "endpoints": check_endpoints,
    "schema": check_schema,
}


def json_type_of(value: Any) -> str:
    """Name ``value``'s JSON type; booleans are never numbers."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _as_number(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return value


__all__ = [
    "BUILTIN_CHECKS",
    "Check",
    "CheckContext",
    "check_boot",
    "check_endpoints",
    "check_health",
    "check_schema",
    "json_type_of",
]
