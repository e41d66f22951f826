"""Dependency installation policy for candidate applications."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from ..logging import get_logger
from ..output import one_line
from .handle import run_to_completion
from .runtime import Runtime

INSTALL_MODES = ("always", "never", "if-missing")
DEFAULT_INSTALL_TIMEOUT_SECONDS = 600.0

_LOGGER = get_logger("process.install")


@dataclass
class InstallDecision:
    install: bool
    reason: str


@dataclass
class InstallResult:
    """Outcome of one install attempt. ``skipped`` means no command was run."""

    ok: bool
    skipped: bool = False
    exit_code: Optional[int] = None
    timed_out: bool = False
    stdout_snippet: Optional[str] = None
    stderr_snippet: Optional[str] = None


def parse_install_mode(value: object) -> Optional[str]:
    """Return the canonical install mode for ``value``, or ``None`` if it is not one."""
    if not isinstance(value, str):
        return None
    lowered = value.strip().lower()
    return lowered if lowered in INSTALL_MODES else None


def should_install(mode: str, runtime: Runtime, app_root: Path) -> InstallDecision:
    if mode == "always":
        return InstallDecision(True, "install_mode_always")
    if mode == "never":
        return InstallDecision(False, "install_mode_never")
    if not runtime.deps_dir(app_root).is_dir() and runtime.install_argv(app_root) is not None:
        return InstallDecision(True, "deps_missing")
    health = runtime.deps_healthy(app_root)
    if not health.ok:
        _LOGGER.info("Dependencies look broken in %s (%s)", app_root, health.detail or "no detail")
        return InstallDecision(True, "deps_unhealthy")
    return InstallDecision(False, "deps_present")


def run_install(
    runtime: Runtime,
    app_root: Path,
    *,
    env: Optional[Mapping[str, str]] = None,
    timeout: float = DEFAULT_INSTALL_TIMEOUT_SECONDS,
    quiet: bool = False,
    forward_stdout_to_stderr: bool = False,
) -> InstallResult:
    """Run the runtime's install command bounded by ``timeout``.

    Raises ``ProcessStartError`` when the installer itself cannot be launched.
    """
    argv = runtime.install_argv(app_root)
    if argv is None:
        return InstallResult(ok=True, skipped=True)
    _LOGGER.info("Installing dependencies for %s (%s)", app_root, runtime.name)
    code, output, timed_out = run_to_completion(
        argv,
        cwd=app_root,
        env=env,
        timeout=timeout,
        quiet=quiet,
        forward_stdout_to_stderr=forward_stdout_to_stderr,
    )
    return InstallResult(
        ok=code == 0 and not timed_out,
        exit_code=code,
        timed_out=timed_out,
        stdout_snippet=one_line(output.stdout) or None,
        stderr_snippet=one_line(output.stderr) or None,
    )


__all__ = [
    "DEFAULT_INSTALL_TIMEOUT_SECONDS",
    "INSTALL_MODES",
    "InstallDecision",
    "InstallResult",
    "parse_install_mode",
    "run_install",
    "should_install",
]
