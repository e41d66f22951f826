"""Runtime validation of generated applications.

The end-to-end runner and batch commands live in ``buildguard.validate.runner``
and ``buildguard.validate.batch``; this package root only re-exports the
building blocks they are made of.
"""

from .checks import BUILTIN_CHECKS, CheckContext
from .classes import (
    BOOT_FAIL,
    ENDPOINT_FAIL,
    HEALTH_FAIL,
    SCHEMA_FAIL,
    UNKNOWN_FAIL,
    exit_code_for,
)
from .http import HttpResult, http_request_json
from .pipeline import run_validation_contract
from .probe import ProbeResult, probe_health
from .profiles import ValidationProfile, get_profile

__all__ = [
    "BOOT_FAIL",
    "BUILTIN_CHECKS",
    "CheckContext",
    "ENDPOINT_FAIL",
    "HEALTH_FAIL",
    "HttpResult",
    "ProbeResult",
    "SCHEMA_FAIL",
    "UNKNOWN_FAIL",
    "ValidationProfile",
    "exit_code_for",
    "get_profile",
    "http_request_json",
    "probe_health",
    "run_validation_contract",
]
