"""Deadline-bound execution of the external Dr.Web binaries.

:class:`ProcessRunner` is the capability interface the license guard, daemon
controller and scanner depend on.  Production code uses
:class:`AsyncProcessRunner`; tests substitute a scripted fake so no real
engine binaries are spawned.

The runner never retries and never interprets output.  It only classifies
how the process ended:

* ``OK`` – exit code 0.
* ``NON_ZERO_EXIT`` – any other exit code (callers decide whether e.g. 13 is
  a detection rather than a failure).
* ``TIMED_OUT`` – the deadline expired; the child has been killed and reaped.
"""

from __future__ import annotations

import abc
import asyncio
import logging
import os
import signal
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

from drwebguard.core.exceptions import ProcessStartError

logger = logging.getLogger(__name__)


class ProcessStatus(str, Enum):
    OK = "ok"
    NON_ZERO_EXIT = "non_zero_exit"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ProcessResult:
    """Captured output and classified completion of one process run.

    Attributes:
        stdout: Standard output decoded as UTF-8 (undecodable bytes replaced).
        status: How the process ended.
        returncode: Exit code; ``None`` when the process was killed on timeout.
        stderr: Standard error, kept for logging only.
    """

    stdout: str
    status: ProcessStatus
    returncode: int | None = None
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.status is ProcessStatus.OK

    @property
    def timed_out(self) -> bool:
        return self.status is ProcessStatus.TIMED_OUT

    def error_text(self) -> str:
        """Human-readable failure description; empty for a successful run."""
        if self.status is ProcessStatus.NON_ZERO_EXIT:
            return f"exit status {self.returncode}"
        if self.status is ProcessStatus.TIMED_OUT:
            return "command timed out"
        return ""


class Deadline:
    """An absolute point in time by which a whole operation must finish.

    Built once per scan from a relative timeout and shared by every process
    the scan spawns, so the remaining budget shrinks as steps complete.
    ``Deadline(None)`` never expires.
    """

    def __init__(
        self,
        timeout: float | None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._expires_at = None if timeout is None else clock() + timeout

    def remaining(self) -> float | None:
        """Seconds left, clamped at zero; ``None`` when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0


class ProcessRunner(abc.ABC):
    """Runs an external command and classifies its completion."""

    @abc.abstractmethod
    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        deadline: Deadline | None = None,
    ) -> ProcessResult:
        """Run *command* with *args* until it exits or *deadline* expires.

        Raises:
            ProcessStartError: If the command cannot be launched.
        """


class AsyncProcessRunner(ProcessRunner):
    """:class:`ProcessRunner` backed by :func:`asyncio.create_subprocess_exec`.

    Each child is started in a new session.  On deadline expiry or task
    cancellation its whole process group is killed and the child reaped
    before control returns, so no engine process (nor anything it forked)
    outlives its caller.
    """

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        deadline: Deadline | None = None,
    ) -> ProcessResult:
        argv = [command, *args]
        if deadline is not None and deadline.expired:
            logger.warning("deadline already expired, not starting: %s", " ".join(argv))
            return ProcessResult(stdout="", status=ProcessStatus.TIMED_OUT)

        logger.debug("exec: %s", " ".join(argv))
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            raise ProcessStartError(f"failed to start {command}: {exc}") from exc

        timeout = deadline.remaining() if deadline is not None else None
        try:
            out, err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await _kill(proc)
            logger.warning("timed out after %.1fs: %s", timeout or 0.0, " ".join(argv))
            return ProcessResult(stdout="", status=ProcessStatus.TIMED_OUT)
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        stdout = out.decode("utf-8", errors="replace") if out else ""
        stderr = err.decode("utf-8", errors="replace") if err else ""
        if proc.returncode != 0:
            logger.debug(
                "non-zero exit (%d) command=%s stderr=%s",
                proc.returncode,
                command,
                stderr.strip(),
            )
            return ProcessResult(
                stdout=stdout,
                status=ProcessStatus.NON_ZERO_EXIT,
                returncode=proc.returncode,
                stderr=stderr,
            )
        return ProcessResult(stdout=stdout, status=ProcessStatus.OK, returncode=0, stderr=stderr)


async def _kill(proc: asyncio.subprocess.Process) -> None:
    # The child leads its own session; descendants holding the output pipes
    # share its process group and must die with it.
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    await proc.wait()
