"""Install/start command families for the languages generated apps are written in."""

from __future__ import annotations

import os
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from ..errors import ProcessStartError
from ..logging import get_logger
from ..manifest.ignore import PYTHON_DEPS_DIR_NAME
from .handle import run_to_completion

_LOGGER = get_logger("process.runtime")

DEPS_CHECK_TIMEOUT_SECONDS = 60.0


@dataclass(frozen=True)
class DepsHealth:
    ok: bool
    exit_code: Optional[int] = None
    detail: Optional[str] = None


class Runtime:
    """Describes how to install dependencies for, and start, one kind of app."""

    name = "generic"
    deps_dir_name = ""

    def deps_dir(self, app_root: Path) -> Path:
        return app_root / self.deps_dir_name

    def install_argv(self, app_root: Path) -> Optional[List[str]]:
        """Return the install command, or ``None`` when there is nothing to install."""
        raise NotImplementedError

    def start_argv(self, app_root: Path) -> List[str]:
        raise NotImplementedError

    def start_env(self, app_root: Path, port: int, base_env: Mapping[str, str]) -> Dict[str, str]:
        env = dict(base_env)
        env["PORT"] = str(port)
        return env

    def deps_healthy(self, app_root: Path) -> DepsHealth:
        return DepsHealth(ok=self.deps_dir(app_root).is_dir())


class NodeRuntime(Runtime):
    name = "node"
    deps_dir_name = "node_modules"

    def install_argv(self, app_root: Path) -> Optional[List[str]]:
        return self._npm("install")

    def start_argv(self, app_root: Path) -> List[str]:
        return self._npm("start")

    def deps_healthy(self, app_root: Path) -> DepsHealth:
        # ``npm ls`` exits nonzero for missing or invalid dependencies.
        try:
            code, output, timed_out = run_to_completion(
                self._npm("ls", "--depth=0", "--json"),
                cwd=app_root,
                timeout=DEPS_CHECK_TIMEOUT_SECONDS,
                quiet=True,
            )
        except ProcessStartError as exc:
            return DepsHealth(ok=False, detail=str(exc))
        if timed_out:
            return DepsHealth(ok=False, detail="npm ls timed out")
        return DepsHealth(ok=code == 0, exit_code=code, detail=output.stderr.strip()[:200] or None)

    @staticmethod
    def _npm(*args: str) -> List[str]:
        if os.name == "nt":
            return ["cmd.exe", "/d", "/s", "/c", "npm", *args]
        return [shutil.which("npm") or "npm", *args]


class PythonRuntime(Runtime):
    """Dependencies install into ``.deps`` inside the app so the host stays clean."""

    name = "python"
    deps_dir_name = PYTHON_DEPS_DIR_NAME
    requirements_name = "requirements.txt"
    entrypoint_name = "main.py"

    def install_argv(self, app_root: Path) -> Optional[List[str]]:
        if not (app_root / self.requirements_name).is_file():
            return None
        return [
            sys.executable,
            "-m",
            "pip",
            "install",
            "--disable-pip-version-check",
            "--no-input",
            "--target",
            self.deps_dir_name,
            "-r",
            self.requirements_name,
        ]

    def start_argv(self, app_root: Path) -> List[str]:
        return [sys.executable, self.entrypoint_name]

    def start_env(self, app_root: Path, port: int, base_env: Mapping[str, str]) -> Dict[str, str]:
        env = super().start_env(app_root, port, base_env)
        entries = [str(self.deps_dir(app_root)), str(app_root)]
        existing = env.get("PYTHONPATH")
        if existing:
            entries.append(existing)
        env["PYTHONPATH"] = os.pathsep.join(entries)
        env.setdefault("PYTHONUNBUFFERED", "1")
        return env

    def deps_healthy(self, app_root: Path) -> DepsHealth:
        if not (app_root / self.requirements_name).is_file():
            return DepsHealth(ok=True, detail="no requirements file")
        return super().deps_healthy(app_root)


_RUNTIMES: Dict[str, Runtime] = {
    NodeRuntime.name: NodeRuntime(),
    PythonRuntime.name: PythonRuntime(),
}


def detect_runtime(app_root: Path) -> Runtime:
    """Pick the runtime from marker files; ``package.json`` wins over Python markers."""
    if (app_root / "package.json").is_file():
        return _RUNTIMES["node"]
    for marker in (PythonRuntime.entrypoint_name, PythonRuntime.requirements_name):
        if (app_root / marker).is_file():
            return _RUNTIMES["python"]
    _LOGGER.debug("No runtime markers in %s; defaulting to node", app_root)
    return _RUNTIMES["node"]


def get_runtime(name: str) -> Runtime:
    try:
        return _RUNTIMES[name]
    except KeyError as exc:
        raise KeyError(f"Unknown runtime: {name}") from exc


__all__ = [
    "DepsHealth",
    "NodeRuntime",
    "PythonRuntime",
    "Runtime",
    "detect_runtime",
    "get_runtime",
]
