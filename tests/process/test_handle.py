"""Tests for child process handling."""

from __future__ import annotations

import os
import socket
import sys
import time
from pathlib import Path

import pytest

from buildguard.errors import ProcessStartError
from buildguard.process import ProcessHandle, allocate_ephemeral_port, run_to_completion, start_process


def test_run_to_completion_captures_both_streams(tmp_path: Path) -> None:
    code, output, timed_out = run_to_completion(
        [sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr)"],
        cwd=tmp_path,
        quiet=True,
    )

    assert code == 0
    assert timed_out is False
    assert output.stdout.strip() == "out"
    assert output.stderr.strip() == "err"


def test_run_to_completion_reports_exit_code(tmp_path: Path) -> None:
    code, _, timed_out = run_to_completion(
        [sys.executable, "-c", "raise SystemExit(7)"], cwd=tmp_path, quiet=True
    )
    assert code == 7
    assert timed_out is False


def test_run_to_completion_kills_on_timeout(tmp_path: Path) -> None:
    started = time.monotonic()
    code, _, timed_out = run_to_completion(
        [sys.executable, "-c", "import time; time.sleep(60)"],
        cwd=tmp_path,
        timeout=0.5,
        quiet=True,
    )

    assert timed_out is True
    assert code is not None
    assert time.monotonic() - started < 10


def test_stop_terminates_running_process(tmp_path: Path) -> None:
    handle = start_process([sys.executable, "-c", "import time; time.sleep(60)"], cwd=tmp_path, quiet=True)
    assert handle.is_running()

    assert handle.stop() is True
    assert handle.is_running() is False


def test_stop_is_a_no_op_for_exited_process(tmp_path: Path) -> None:
    handle = start_process([sys.executable, "-c", "pass"], cwd=tmp_path, quiet=True)
    handle.wait(10)
    assert handle.stop() is True


def test_start_failure_raises(tmp_path: Path) -> None:
    with pytest.raises(ProcessStartError):
        start_process([str(tmp_path / "does-not-exist")], cwd=tmp_path, quiet=True)


def test_allocated_port_can_be_bound() -> None:
    port = allocate_ephemeral_port()
    assert 0 < port < 65536
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", port))


_STUBBORN_CHILD = """
import os, signal, sys, time
from pathlib import Path
signal.signal(signal.SIGTERM, signal.SIG_IGN)
target = Path(sys.argv[1])
tmp = target.with_suffix(".tmp")
tmp.write_text(str(os.getpid()))
os.replace(tmp, target)
time.sleep(60)
"""

_LEADER = """
import subprocess, sys, time
subprocess.Popen([sys.executable, "-c", sys.argv[1], sys.argv[2]])
if sys.argv[3] == "stay":
    time.sleep(60)
"""


def _spawn_leader_with_stubborn_child(tmp_path: Path, mode: str) -> tuple[ProcessHandle, int]:
    pid_file = tmp_path / "child.pid"
    handle = start_process(
        [sys.executable, "-c", _LEADER, _STUBBORN_CHILD, str(pid_file), mode],
        cwd=tmp_path,
        quiet=True,
    )
    deadline = time.monotonic() + 10
    while not pid_file.exists():
        assert time.monotonic() < deadline, "child never reported its pid"
        time.sleep(0.05)
    return handle, int(pid_file.read_text())


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    stat_path = Path(f"/proc/{pid}/stat")
    if not Path("/proc").is_dir():
        return True
    try:
        stat = stat_path.read_text()
    except FileNotFoundError:
        return False
    # Zombies count as gone.
    return stat[stat.rfind(")") + 1 :].split()[0] not in ("Z", "X")


@pytest.mark.skipif(os.name == "nt", reason="process groups are POSIX only")
def test_stop_kills_descendant_that_ignores_sigterm(tmp_path: Path) -> None:
    handle, child_pid = _spawn_leader_with_stubborn_child(tmp_path, "stay")
    assert handle.is_running()

    assert handle.stop() is True
    assert handle.is_running() is False
    assert _pid_alive(child_pid) is False


@pytest.mark.skipif(os.name == "nt", reason="process groups are POSIX only")
def test_stop_kills_descendants_after_leader_already_exited(tmp_path: Path) -> None:
    handle, child_pid = _spawn_leader_with_stubborn_child(tmp_path, "exit")
    assert handle.wait(5) == 0
    assert _pid_alive(child_pid) is True

    assert handle.stop() is True
    assert _pid_alive(child_pid) is False
