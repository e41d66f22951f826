"""Exception hierarchy shared by buildguard components."""

from __future__ import annotations

from typing import Any, Dict, Optional


class BuildGuardError(RuntimeError):
    """Base class for errors raised by buildguard.

    ``code`` is a stable ``ERR_*`` identifier that ends up in JSON output.
    """

    code = "ERR_BUILDGUARD"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.details = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": str(self)}
        if self.details:
            payload["details"] = self.details
        return payload


class ConfigError(BuildGuardError):
    """Raised when the configuration file cannot be parsed."""

    code = "ERR_CONFIG"


class ManifestError(BuildGuardError):
    """Raised by explicit manifest operations (init/refresh) that cannot proceed."""

    code = "ERR_MANIFEST"


class ProcessStartError(BuildGuardError):
    """Raised when a child process cannot be launched at all."""

    code = "ERR_PROCESS_START"


class ContractInputError(BuildGuardError):
    """Raised when contract input or a stored snapshot cannot be loaded."""

    code = "ERR_CONTRACT_INPUT"


__all__ = [
    "BuildGuardError",
    "ConfigError",
    "ContractInputError",
    "ManifestError",
    "ProcessStartError",
]
