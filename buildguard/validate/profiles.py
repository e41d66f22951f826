"""Validation profiles: which checks run for which template, and in what order."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

UNKNOWN_TEMPLATE = "unknown"

_STRICT_HEALTH = {
    "path": "/health",
    "timeoutMs": 4000,
    "expectStatus": 200,
    "expectJson": {
        "status": "ok",
        "requiredKeys": ["status", "uptimeSeconds", "timestamp"],
        "types": {"uptimeSeconds": "number", "timestamp": "string"},
    },
}


@dataclass
class ProfileCheck:
    id: str
    required: bool = True
    config: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationProfile:
    name: str
    checks: List[ProfileCheck] = field(default_factory=list)


def _builtin_profiles() -> Dict[str, ValidationProfile]:
    return {
        "node-express-api-sqlite": ValidationProfile(
            name="node-express-api-sqlite",
            checks=[
                ProfileCheck("boot", True, {"bootTimeoutMs": 12000}),
                ProfileCheck("health", True, copy.deepcopy(_STRICT_HEALTH)),
                ProfileCheck(
                    "endpoints",
                    True,
                    {
                        "timeoutMs": 4000,
                        "endpoints": [
                            {"method": "GET", "path": "/", "expectStatus": 200},
                            {"method": "GET", "path": "/api/v1/ping", "expectStatus": 200},
                            {"method": "GET", "path": "/api/v1/users", "expectStatus": 200},
                        ],
                    },
                ),
            ],
        ),
        "python-fastapi-api": ValidationProfile(
            name="python-fastapi-api",
            checks=[
                ProfileCheck("boot", True, {"bootTimeoutMs": 12000}),
                ProfileCheck("health", True, copy.deepcopy(_STRICT_HEALTH)),
                ProfileCheck(
                    "endpoints",
                    True,
                    {
                        "timeoutMs": 4000,
                        "endpoints": [{"method": "GET", "path": "/health", "expectStatus": 200}],
                    },
                ),
            ],
        ),
    }


def fallback_profile(name: str = UNKNOWN_TEMPLATE) -> ValidationProfile:
    """Boot plus a lenient health check, used for templates without a profile."""
    return ValidationProfile(
        name=name,
        checks=[
            ProfileCheck("boot", True, {"bootTimeoutMs": 12000}),
            ProfileCheck("health", True, {"path": "/health", "timeoutMs": 4000, "expectStatus": 200}),
        ],
    )


def builtin_profile_names() -> List[str]:
    return sorted(_builtin_profiles())


def get_profile(
    template: str, overrides: Optional[Mapping[str, ValidationProfile]] = None
) -> ValidationProfile:
    """Resolve ``template`` to a profile; configured overrides win over built-ins."""
    if overrides and template in overrides:
        return copy.deepcopy(overrides[template])
    builtins = _builtin_profiles()
    if template in builtins:
        return builtins[template]
    return fallback_profile(template)


def profile_from_mapping(name: str, data: Mapping[str, Any]) -> ValidationProfile:
    """Build a profile from its YAML form; raise ``ValueError`` on malformed entries."""
    raw_checks = data.get("checks")
    if not isinstance(raw_checks, list):
        raise ValueError(f"profile '{name}' must define a 'checks' list")
    checks: List[ProfileCheck] = []
    for index, item in enumerate(raw_checks):
        if not isinstance(item, Mapping):
            raise ValueError(f"profile '{name}' check #{index} must be a mapping")
        check_id = item.get("id")
        if not isinstance(check_id, str) or not check_id.strip():
            raise ValueError(f"profile '{name}' check #{index} is missing an id")
        config = item.get("config") or {}
        if not isinstance(config, Mapping):
            raise ValueError(f"profile '{name}' check '{check_id}' config must be a mapping")
        checks.append(
            ProfileCheck(
                id=check_id.strip(),
                required=bool(item.get("required", True)),
                config=dict(config),
            )
        )
    return ValidationProfile(name=name, checks=checks)


__all__ = [
    "ProfileCheck",
    "UNKNOWN_TEMPLATE",
    "ValidationProfile",
    "builtin_profile_names",
    "fallback_profile",
    "get_profile",
    "profile_from_mapping",
]
