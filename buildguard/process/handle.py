"""Child process lifecycle: spawn, capture, and process-tree termination."""

from __future__ import annotations

import os
import signal
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, List, Mapping, Optional, Sequence, TextIO

from ..errors import ProcessStartError
from ..logging import get_logger

GRACEFUL_WAIT_SECONDS = 0.6
FORCE_WAIT_SECONDS = 0.3
GROUP_EXIT_SECONDS = 2.0

_LOGGER = get_logger("process")


@dataclass
class CapturedOutput:
    stdout: str
    stderr: str


class _Terminator:
    """Platform-specific spawn options and termination strategy."""

    def popen_kwargs(self) -> dict[str, object]:
        raise NotImplementedError

    def graceful(self, popen: subprocess.Popen[str]) -> None:
        raise NotImplementedError

    def kill_tree(self, popen: subprocess.Popen[str]) -> None:
        raise NotImplementedError

    def group_alive(self, popen: subprocess.Popen[str]) -> bool:
        raise NotImplementedError


class _PosixTerminator(_Terminator):
    """Children lead their own session so the whole group can be signalled."""

    def popen_kwargs(self) -> dict[str, object]:
        return {"start_new_session": True}

    def graceful(self, popen: subprocess.Popen[str]) -> None:
        self._signal_group(popen, signal.SIGTERM)

    def kill_tree(self, popen: subprocess.Popen[str]) -> None:
        self._signal_group(popen, signal.SIGKILL)

    def group_alive(self, popen: subprocess.Popen[str]) -> bool:
        try:
            os.killpg(popen.pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return _group_has_live_member(popen.pid)

    @staticmethod
    def _signal_group(popen: subprocess.Popen[str], sig: int) -> None:
        try:
            os.killpg(popen.pid, sig)
        except (ProcessLookupError, PermissionError):
            # Group already gone; fall back to the direct child.
            try:
                popen.send_signal(sig)
            except ProcessLookupError:
                pass


class _WindowsTerminator(_Terminator):
    """Uses ``taskkill /T`` because child shims (npm.cmd) spawn grandchildren."""

    def popen_kwargs(self) -> dict[str, object]:
        flags = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)
        flags |= getattr(subprocess, "CREATE_NO_WINDOW", 0)
        return {"creationflags": flags}

    def graceful(self, popen: subprocess.Popen[str]) -> None:
        try:
            popen.terminate()
        except OSError as exc:
            _LOGGER.debug("terminate() failed for pid %s: %s", popen.pid, exc)

    def kill_tree(self, popen: subprocess.Popen[str]) -> None:
        subprocess.run(
            ["taskkill", "/PID", str(popen.pid), "/T", "/F"],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )

    def group_alive(self, popen: subprocess.Popen[str]) -> bool:
        return popen.poll() is None


def _group_has_live_member(pgid: int) -> bool:
    """Scan ``/proc`` for a non-zombie member of ``pgid``.

    Orphaned members are reparented to init, which may never reap them in a
    container, and ``killpg(pgid, 0)`` still succeeds for zombies. Without
    ``/proc`` the group is assumed alive.
    """
    proc = Path("/proc")
    if not proc.is_dir():
        return True
    for entry in proc.iterdir():
        if not entry.name.isdigit():
            continue
        try:
            stat = (entry / "stat").read_text(encoding="utf-8", errors="replace")
        except OSError:
            continue
        # Fields after the parenthesised command: state, ppid, pgrp, ...
        fields = stat[stat.rfind(")") + 1 :].split()
        if len(fields) < 3:
            continue
        if fields[2] == str(pgid) and fields[0] not in ("Z", "X"):
            return True
    return False


_TERMINATOR: _Terminator = _WindowsTerminator() if os.name == "nt" else _PosixTerminator()


class ProcessHandle:
    """A running child whose stdout/stderr are captured on reader threads."""

    def __init__(
        self,
        popen: subprocess.Popen[str],
        argv: Sequence[str],
        *,
        quiet: bool = False,
        forward_stdout_to_stderr: bool = False,
    ) -> None:
        self._popen = popen
        self.argv = list(argv)
        self._quiet = quiet
        self._forward_stdout_to_stderr = forward_stdout_to_stderr
        self._lock = threading.Lock()
        self._stdout: List[str] = []
        self._stderr: List[str] = []
        self._readers = [
            self._start_reader(popen.stdout, self._stdout, is_stderr=False),
            self._start_reader(popen.stderr, self._stderr, is_stderr=True),
        ]

    @property
    def pid(self) -> int:
        return self._popen.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._popen.poll()

    def is_running(self) -> bool:
        return self._popen.poll() is None

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Wait for exit; return the exit code, or ``None`` when still running."""
        try:
            code = self._popen.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None
        self._join_readers()
        return code

    def capture(self) -> CapturedOutput:
        with self._lock:
            return CapturedOutput(stdout="".join(self._stdout), stderr="".join(self._stderr))

    def stop(self, *, graceful: bool = True) -> bool:
        """Terminate the child and every descendant.

        The tree is always force-killed after the grace period, including when
        the child itself already exited. Returns ``True`` only once no member
        of the group is left alive.
        """
        if graceful and not self._wait_for_group(0.0):
            _TERMINATOR.graceful(self._popen)
            self._wait_for_group(GRACEFUL_WAIT_SECONDS)
        _LOGGER.debug("Killing process tree for pid %s", self.pid)
        _TERMINATOR.kill_tree(self._popen)
        self.wait(FORCE_WAIT_SECONDS)
        stopped = self._wait_for_group(GROUP_EXIT_SECONDS)
        if not stopped:
            _LOGGER.warning("Process group %s still alive after forced termination", self.pid)
        self._join_readers()
        return stopped

    def _wait_for_group(self, timeout: float) -> bool:
        """Poll until no member of the child's group is alive; ``False`` on timeout."""
        deadline = time.monotonic() + timeout
        while True:
            # Reaps the leader so it does not linger as a zombie member.
            self._popen.poll()
            if not _TERMINATOR.group_alive(self._popen):
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.05)

    def _start_reader(
        self, stream: Optional[IO[str]], sink: List[str], *, is_stderr: bool
    ) -> Optional[threading.Thread]:
        if stream is None:
            return None
        forward: Optional[TextIO] = None
        if not self._quiet:
            forward = sys.stderr if (is_stderr or self._forward_stdout_to_stderr) else sys.stdout
        thread = threading.Thread(
            target=self._pump,
            args=(stream, sink, forward),
            name=f"buildguard-{'stderr' if is_stderr else 'stdout'}-{self._popen.pid}",
            daemon=True,
        )
        thread.start()
        return thread

    def _pump(self, stream: IO[str], sink: List[str], forward: Optional[TextIO]) -> None:
        try:
            for chunk in iter(stream.readline, ""):
                with self._lock:
                    sink.append(chunk)
                if forward is not None:
                    forward.write(chunk)
                    forward.flush()
        except ValueError:
            # Stream closed underneath us during shutdown.
            pass
        finally:
            stream.close()

    def _join_readers(self) -> None:
        for thread in self._readers:
            if thread is not None:
                thread.join(timeout=1.0)


def start_process(
    argv: Sequence[str],
    *,
    cwd: Path,
    env: Optional[Mapping[str, str]] = None,
    quiet: bool = False,
    forward_stdout_to_stderr: bool = False,
) -> ProcessHandle:
    """Launch ``argv`` without waiting; raise ``ProcessStartError`` if it cannot spawn."""
    _LOGGER.debug("Starting %s in %s", " ".join(argv), cwd)
    try:
        popen = subprocess.Popen(
            list(argv),
            cwd=str(cwd),
            env=dict(env) if env is not None else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            **_TERMINATOR.popen_kwargs(),
        )
    except OSError as exc:
        raise ProcessStartError(
            f"Failed to start {argv[0]}: {exc}", details={"argv": list(argv), "cwd": str(cwd)}
        ) from exc
    return ProcessHandle(
        popen,
        argv,
        quiet=quiet,
        forward_stdout_to_stderr=forward_stdout_to_stderr,
    )


def run_to_completion(
    argv: Sequence[str],
    *,
    cwd: Path,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
    quiet: bool = False,
    forward_stdout_to_stderr: bool = False,
) -> tuple[Optional[int], CapturedOutput, bool]:
    """Run ``argv`` to exit, killing its process tree if ``timeout`` elapses.

    Returns ``(exit_code, output, timed_out)``.
    """
    handle = start_process(
        argv,
        cwd=cwd,
        env=env,
        quiet=quiet,
        forward_stdout_to_stderr=forward_stdout_to_stderr,
    )
    started = time.monotonic()
    code = handle.wait(timeout)
    timed_out = False
    if code is None:
        timed_out = True
        _LOGGER.warning(
            "%s exceeded %.0fs after %.1fs; terminating",
            argv[0],
            timeout or 0,
            time.monotonic() - started,
        )
        handle.stop()
        code = handle.returncode
    return code, handle.capture(), timed_out


__all__ = [
    "CapturedOutput",
    "FORCE_WAIT_SECONDS",
    "GRACEFUL_WAIT_SECONDS",
    "GROUP_EXIT_SECONDS",
    "ProcessHandle",
    "run_to_completion",
    "start_process",
]
