"""
ProcessRunner — runs one external command and reports what happened.

A non-zero exit code is data, not an exception: callers inspect
ProcessResult.exit_code and decide.  A timeout kills the subprocess and
sets ProcessResult.timed_out.  Only a command that cannot be started at
all raises (ProcessSpawnError); for shell commands that includes the
shell's own 126/127 exits.
"""

from __future__ import annotations

import asyncio
import os
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from buildpipe.core.constants import DEFAULT_BUILD_TIMEOUT_MS
from buildpipe.core.logging import get_logger
from buildpipe.pipeline.errors import ProcessSpawnError

logger = get_logger(__name__)

_POSIX = os.name == "posix"

# Exit codes the POSIX shell uses when it cannot start the command itself.
_SHELL_SPAWN_FAILURES = {
    126: "not executable",
    127: "command not found",
}


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of a single command invocation."""

    command: str
    exit_code: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.exit_code == 0

    @property
    def output(self) -> str:
        """stdout and stderr joined, for parsers that don't care which."""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr


class ProcessRunner:
    """
    Stateless async subprocess runner.

    A string command runs through the shell; a sequence runs directly.
    """

    def __init__(self, cwd: Path | str | None = None, env: dict[str, str] | None = None) -> None:
        self.cwd = Path(cwd) if cwd is not None else None
        self.env = env

    async def run(
        self,
        command: str | Sequence[str],
        *,
        timeout_ms: int = DEFAULT_BUILD_TIMEOUT_MS,
        capture_output: bool = True,
    ) -> ProcessResult:
        """
        Run a command to completion or until the timeout expires.

        Raises:
            ProcessSpawnError: If the command could not be started.
        """
        display = command if isinstance(command, str) else " ".join(command)
        stream = asyncio.subprocess.PIPE if capture_output else None
        env = {**os.environ, **self.env} if self.env else None

        started = time.monotonic()
        try:
            if isinstance(command, str):
                proc = await asyncio.create_subprocess_shell(
                    command, stdout=stream, stderr=stream, cwd=self.cwd, env=env,
                    start_new_session=_POSIX,
                )
            else:
                proc = await asyncio.create_subprocess_exec(
                    *command, stdout=stream, stderr=stream, cwd=self.cwd, env=env,
                    start_new_session=_POSIX,
                )
        except OSError as exc:
            raise ProcessSpawnError(
                f"Could not start '{display}': {exc}",
                command=display,
                details={"command": display},
            ) from exc

        log = logger.bind(command=display, pid=proc.pid, timeout_ms=timeout_ms)
        log.debug("Process started")

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            _kill(proc)
            await proc.wait()
            duration_ms = int((time.monotonic() - started) * 1000)
            log.warning("Process timed out and was killed", duration_ms=duration_ms)
            return ProcessResult(
                command=display,
                exit_code=proc.returncode,
                timed_out=True,
                duration_ms=duration_ms,
            )

        duration_ms = int((time.monotonic() - started) * 1000)
        log.debug("Process exited", exit_code=proc.returncode, duration_ms=duration_ms)
        if isinstance(command, str) and proc.returncode in _SHELL_SPAWN_FAILURES:
            reason = _SHELL_SPAWN_FAILURES[proc.returncode]
            log.error("Shell could not start command", exit_code=proc.returncode, reason=reason)
            raise ProcessSpawnError(
                f"Could not start '{display}': {reason} (exit {proc.returncode})",
                command=display,
                details={
                    "command": display,
                    "exit_code": proc.returncode,
                    "stderr": _decode(stderr).strip(),
                },
            )
        return ProcessResult(
            command=display,
            exit_code=proc.returncode,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
            duration_ms=duration_ms,
        )


def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill the process and, on POSIX, the shell children in its session."""
    if _POSIX:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
            return
        except ProcessLookupError:
            return
        except PermissionError:
            pass
    proc.kill()


def _decode(data: bytes | None) -> str:
    return data.decode("utf-8", errors="replace") if data else ""
