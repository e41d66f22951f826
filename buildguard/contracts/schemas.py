"""Structural shape checks for the JSON emitted by buildguard commands.

Each checker walks a decoded JSON value and returns a list of
``{"path": ..., "message": ...}`` issues; an empty list means the document has
the expected shape.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List

Issue = Dict[str, str]
SchemaChecker = Callable[[Any], List[Issue]]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


_PREDICATES: Dict[str, Callable[[Any], bool]] = {
    "boolean": lambda value: isinstance(value, bool),
    "string": lambda value: isinstance(value, str),
    "number": _is_number,
    "array": lambda value: isinstance(value, list),
    "object": lambda value: isinstance(value, dict),
    "string|null": lambda value: value is None or isinstance(value, str),
    "number|null": lambda value: value is None or _is_number(value),
    "object|null": lambda value: value is None or isinstance(value, dict),
}


class _Collector:
    def __init__(self) -> None:
        self.issues: List[Issue] = []

    def add(self, path: str, message: str) -> None:
        self.issues.append({"path": path, "message": message})

    def require(self, obj: Dict[str, Any], key: str, expected: str, prefix: str = "$") -> bool:
        path = f"{prefix}.{key}"
        if key not in obj:
            self.add(path, "missing key")
            return False
        return self.expect(obj[key], expected, path)

    def expect(self, value: Any, expected: str, path: str) -> bool:
        if not _PREDICATES[expected](value):
            self.add(path, f"expected {expected}")
            return False
        return True

    def extend(self, issues: List[Issue], prefix: str) -> None:
        for issue in issues:
            suffix = issue["path"][1:] if issue["path"].startswith("$") else issue["path"]
            self.issues.append({"path": f"{prefix}{suffix}", "message": issue["message"]})


def check_validate_shape(value: Any) -> List[Issue]:
    out = _Collector()
    if not isinstance(value, dict):
        out.add("$", "expected object")
        return out.issues

    out.require(value, "ok", "boolean")
    out.require(value, "template", "string")
    out.require(value, "profile", "string")
    out.require(value, "installMode", "string")
    out.require(value, "didInstall", "boolean")

    if out.require(value, "manifestIntegrity", "object"):
        integrity = value["manifestIntegrity"]
        prefix = "$.manifestIntegrity"
        out.require(integrity, "ok", "boolean", prefix)
        out.require(integrity, "manifestPath", "string", prefix)
        out.require(integrity, "expectedFingerprint", "string|null", prefix)
        out.require(integrity, "currentFingerprint", "string|null", prefix)
        if integrity.get("ok") is True and "matches" in integrity:
            out.expect(integrity["matches"], "boolean", f"{prefix}.matches")

    validation: Any = None
    if out.require(value, "validation", "object"):
        validation = value["validation"]
        prefix = "$.validation"
        out.require(validation, "ok", "boolean", prefix)
        out.require(validation, "checks", "array", prefix)
        out.require(validation, "failureClass", "string|null", prefix)
        out.require(validation, "startedAt", "string", prefix)
        out.require(validation, "finishedAt", "string", prefix)
        if "appPath" in validation:
            out.expect(validation["appPath"], "string", f"{prefix}.appPath")
        if isinstance(validation.get("checks"), list):
            for index, check in enumerate(validation["checks"]):
                _check_result_shape(out, check, f"{prefix}.checks[{index}]")

    if "appPath" in value:
        out.expect(value["appPath"], "string", "$.appPath")
    else:
        nested = validation.get("appPath") if isinstance(validation, dict) else None
        if not isinstance(nested, str) or not nested:
            out.add("$.appPath", "missing key (or $.validation.appPath)")
    return out.issues


def _check_result_shape(out: _Collector, check: Any, path: str) -> None:
    if not out.expect(check, "object", path):
        return
    out.require(check, "id", "string", path)
    out.require(check, "required", "boolean", path)
    out.require(check, "ok", "boolean", path)
    out.require(check, "failureKind", "string|null", path)
    out.require(check, "details", "object", path)


def check_validate_all_shape(value: Any) -> List[Issue]:
    out = _Collector()
    if not isinstance(value, dict):
        out.add("$", "expected object")
        return out.issues

    out.require(value, "ok", "boolean")
    out.require(value, "rootPath", "string")
    out.require(value, "startedAt", "string")
    out.require(value, "finishedAt", "string")
    out.require(value, "appsFound", "number")
    out.require(value, "installMode", "string")
    if out.require(value, "results", "array"):
        for index, result in enumerate(value["results"]):
            out.extend(check_validate_shape(result), f"$.results[{index}]")
    return out.issues


def check_report_ci_shape(value: Any) -> List[Issue]:
    out = _Collector()
    if not isinstance(value, dict):
        out.add("$", "expected object")
        return out.issues

    for key in ("ok", "healManifest"):
        out.require(value, key, "boolean")
    for key in ("rootPath", "startedAt", "finishedAt"):
        out.require(value, key, "string")
    for key in ("appsDiscovered", "appsFound", "passCount", "warnCount", "hardFailCount"):
        out.require(value, key, "number")
    for key in ("installMode", "include", "profile"):
        out.require(value, key, "string|null")
    out.require(value, "max", "number|null")

    if not out.require(value, "results", "array"):
        return out.issues
    for index, result in enumerate(value["results"]):
        path = f"$.results[{index}]"
        if not out.expect(result, "object", path):
            continue
        out.require(result, "appPath", "string", path)
        out.require(result, "exitCode", "number", path)
        if out.require(result, "validate", "object", path):
            out.require(result["validate"], "ok", "boolean", f"{path}.validate")
        if out.require(result, "ci", "object", path):
            ci = result["ci"]
            out.require(ci, "severity", "string", f"{path}.ci")
            out.require(ci, "hardFail", "boolean", f"{path}.ci")
            out.require(ci, "warn", "boolean", f"{path}.ci")
            out.require(ci, "reason", "string|null", f"{path}.ci")
        for key in ("healedManifest", "validateAfterHeal", "ciAfterHeal"):
            out.require(result, key, "object|null", path)
    return out.issues


def check_manifest_refresh_all_shape(value: Any) -> List[Issue]:
    out = _Collector()
    if not isinstance(value, dict):
        out.add("$", "expected object")
        return out.issues

    out.require(value, "ok", "boolean")
    out.require(value, "apply", "boolean")
    for key in ("rootPath", "startedAt", "finishedAt"):
        out.require(value, key, "string")
    for key in ("appsFound", "okCount", "failCount"):
        out.require(value, key, "number")
    out.require(value, "include", "string|null")
    out.require(value, "max", "number|null")

    if not out.require(value, "results", "array"):
        return out.issues
    for index, result in enumerate(value["results"]):
        path = f"$.results[{index}]"
        if not out.expect(result, "object", path):
            continue
        out.require(result, "appPath", "string", path)
        out.require(result, "ok", "boolean", path)
        if "result" not in result:
            out.add(f"{path}.result", "missing key")
        if result.get("ok") is False and "error" not in result:
            out.add(f"{path}.error", "missing key")
    return out.issues


SCHEMA_CHECKERS: Dict[str, SchemaChecker] = {
    "validate": check_validate_shape,
    "validate:all": check_validate_all_shape,
    "report:ci": check_report_ci_shape,
    "manifest:refresh:all": check_manifest_refresh_all_shape,
}


def check_schema(command: str, value: Any) -> List[Issue]:
    """Run the checker registered for ``command`` (``validate@...`` keys use ``validate``)."""
    checker = SCHEMA_CHECKERS.get(command.split("@", 1)[0])
    if checker is None:
        return [{"path": "$", "message": f"no schema checker for '{command}'"}]
    return checker(value)


__all__ = [
    "Issue",
    "SCHEMA_CHECKERS",
    "SchemaChecker",
    "check_manifest_refresh_all_shape",
    "check_report_ci_shape",
    "check_schema",
    "check_validate_all_shape",
    "check_validate_shape",
]
