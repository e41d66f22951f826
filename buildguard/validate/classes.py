"""Failure taxonomy for validation runs and its process exit codes."""

from __future__ import annotations

from typing import Dict, Optional

BOOT_FAIL = "BOOT_FAIL"
HEALTH_FAIL = "HEALTH_FAIL"
ENDPOINT_FAIL = "ENDPOINT_FAIL"
SCHEMA_FAIL = "SCHEMA_FAIL"
UNKNOWN_FAIL = "UNKNOWN_FAIL"

FAILURE_CLASSES = (BOOT_FAIL, HEALTH_FAIL, ENDPOINT_FAIL, SCHEMA_FAIL, UNKNOWN_FAIL)

EXIT_OK = 0
EXIT_CODES: Dict[str, int] = {
    BOOT_FAIL: 10,
    HEALTH_FAIL: 11,
    ENDPOINT_FAIL: 12,
    SCHEMA_FAIL: 13,
    UNKNOWN_FAIL: 1,
}


def exit_code_for(failure_class: Optional[str]) -> int:
    """Map a failure class to the process exit code; unrecognised classes exit 1."""
    if failure_class is None:
        return EXIT_OK
    return EXIT_CODES.get(failure_class, EXIT_CODES[UNKNOWN_FAIL])


__all__ = [
    "BOOT_FAIL",
    "ENDPOINT_FAIL",
    "EXIT_CODES",
    "EXIT_OK",
    "FAILURE_CLASSES",
    "HEALTH_FAIL",
    "SCHEMA_FAIL",
    "UNKNOWN_FAIL",
    "exit_code_for",
]
