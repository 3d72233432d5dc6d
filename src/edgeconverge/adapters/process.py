"""Start and stop daemon processes tracked through PID files."""

from __future__ import annotations

import asyncio
import os
import signal
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Sequence

log = getLogger(__name__)

PID_POLL_INTERVAL_SECONDS: Final[float] = 0.1

# Reaper tasks for daemons started in background, kept until the daemon exits.
_reapers: set[asyncio.Task[int]] = set()


class ProcessError(RuntimeError):
    """Raised when a managed process cannot be started or stopped."""


class StartTimeoutError(ProcessError):
    def __init__(self, pid_file: Path, timeout: float) -> None:
        super().__init__(f"Process did not write a live PID to {pid_file} within {timeout:g}s")
        self.pid_file = pid_file
        self.timeout = timeout


class StopTimeoutError(ProcessError):
    def __init__(self, pid: int, timeout: float) -> None:
        super().__init__(f"Process {pid} did not exit within {timeout:g}s")
        self.pid = pid
        self.timeout = timeout


def read_pid_file(path: Path) -> int | None:
    """Return the PID stored in ``path`` or ``None`` if it is missing or unparsable."""

    try:
        content = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return None
    try:
        pid = int(content)
    except ValueError:
        log.debug("Ignoring malformed PID file %s: %r", path, content)
        return None
    return pid if pid > 0 else None


def is_process_running(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return not _is_zombie(pid)


def _is_zombie(pid: int) -> bool:
    try:
        stat = Path(f"/proc/{pid}/stat").read_text(encoding="utf-8")
    except OSError:
        return False
    # The state field follows the parenthesised command name.
    return stat.rpartition(")")[2].split()[:1] == ["Z"]


async def start_process(
    cmd: str,
    args: Sequence[str],
    pid_file: Path,
    timeout: float,
    *,
    background: bool,
) -> int:
    """Run ``cmd`` and wait until ``pid_file`` names a running process.

    With ``background`` the command is left running (e.g. under ``nohup``) and
    may exit with status 0 once it has forked the daemon; a non-zero exit
    raises ``ProcessError`` right away. Otherwise it is awaited and a non-zero
    exit raises ``ProcessError``. Returns the PID from the file.
    """

    log.info("Starting %s %s", cmd, " ".join(args))
    try:
        process = await asyncio.create_subprocess_exec(
            cmd,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL if background else asyncio.subprocess.PIPE,
            start_new_session=background,
        )
    except OSError as exc:
        raise ProcessError(f"Failed to execute {cmd}: {exc}") from exc

    if background:
        reaper = asyncio.create_task(process.wait(), name=f"reap {cmd}")
        _reapers.add(reaper)
        reaper.add_done_callback(_reapers.discard)
    else:
        _, stderr = await process.communicate()
        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip() if stderr else ""
            raise ProcessError(f"{cmd} exited with status {process.returncode}: {detail}")

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        pid = read_pid_file(pid_file)
        if pid is not None and is_process_running(pid):
            log.debug("%s is running with PID %d", cmd, pid)
            return pid
        if background and process.returncode not in (None, 0):
            raise ProcessError(
                f"{cmd} exited with status {process.returncode} before writing {pid_file}"
            )
        if loop.time() >= deadline:
            raise StartTimeoutError(pid_file, timeout)
        await asyncio.sleep(PID_POLL_INTERVAL_SECONDS)


async def stop_process(pid_file: Path, timeout: float) -> None:
    """Send SIGTERM to the process named in ``pid_file`` and wait for it to exit.

    A missing PID file or an already exited process counts as stopped.
    """

    pid = read_pid_file(pid_file)
    if pid is None or not is_process_running(pid):
        log.debug("No running process recorded in %s", pid_file)
        return

    log.info("Stopping process %d from %s", pid, pid_file)
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        return
    except PermissionError as exc:
        raise ProcessError(f"Not allowed to signal process {pid}: {exc}") from exc

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while is_process_running(pid):
        if loop.time() >= deadline:
            raise StopTimeoutError(pid, timeout)
        await asyncio.sleep(PID_POLL_INTERVAL_SECONDS)


async def run_command(cmd: str, args: Sequence[str]) -> str:
    """Run a short-lived command to completion and return its stdout.

    A non-zero exit raises ``ProcessError`` carrying the command's stderr.
    """

    log.debug("Running %s %s", cmd, " ".join(args))
    try:
        process = await asyncio.create_subprocess_exec(
            cmd,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise ProcessError(f"Failed to execute {cmd}: {exc}") from exc
    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip()
        command = " ".join((cmd, *args))
        raise ProcessError(f"{command} exited with status {process.returncode}: {detail}")
    return stdout.decode("utf-8", errors="replace")
