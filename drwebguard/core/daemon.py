"""Lifecycle of the ``drweb-configd`` background daemon.

``drweb-ctl`` refuses to work until the configuration daemon is running, and
the daemon needs a moment after start before it accepts requests.  The daemon
is a shared singleton owned by the engine, so :meth:`DaemonController.start`
is safe to call on every scan: a start attempt against an already-running
daemon exits non-zero and is only logged.

Readiness is awaited by polling a cheap ``drweb-ctl`` probe with exponential
back-off.  The total wait is capped at the settle budget, which matches the
fixed one-second pause the engine has always been given; when no probe is
configured the controller simply sleeps for that budget.  Either way the
wait is a best-effort stabilisation delay, not a guarantee.
"""

from __future__ import annotations

import asyncio
import logging

from drwebguard.core.process import Deadline, ProcessRunner

logger = logging.getLogger(__name__)

_PROBE_INITIAL_DELAY = 0.1
_PROBE_MAX_DELAY = 1.0


class DaemonController:
    """Starts ``drweb-configd`` and waits for it to accept requests.

    Args:
        runner: Process runner used for all engine invocations.
        configd: Path of the ``drweb-configd`` binary.
        ctl: Path of the ``drweb-ctl`` binary (used by the probe).
        settle_seconds: Upper bound on the readiness wait.
        probe: ``drweb-ctl`` sub-command used as health probe, or ``None``
            to fall back to a fixed delay of *settle_seconds*.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        configd: str,
        ctl: str,
        settle_seconds: float = 1.0,
        probe: str | None = "appinfo",
    ) -> None:
        self._runner = runner
        self._configd = configd
        self._ctl = ctl
        self._settle_seconds = settle_seconds
        self._probe = probe or None

    async def start(self, deadline: Deadline | None = None) -> None:
        """Run ``drweb-configd -d``.

        Raises:
            ProcessStartError: If the daemon binary cannot be launched.
        """
        result = await self._runner.run(self._configd, ["-d"], deadline)
        if not result.ok:
            logger.debug(
                "drweb-configd start returned %s (daemon probably already running)",
                result.error_text(),
            )

    async def wait_ready(self, deadline: Deadline | None = None) -> bool:
        """Wait until the daemon answers the probe or the settle budget elapses.

        Each probe run is bounded by whatever is left of the settle budget
        (and of *deadline*), so a hanging probe cannot hold the caller longer
        than *settle_seconds*.

        Returns:
            ``True`` if the probe succeeded, ``False`` when the budget ran
            out (or no probe is configured) and the caller proceeds anyway.
        """
        settle = Deadline(self._settle_seconds)
        if self._probe is None:
            await asyncio.sleep(_budget(settle, deadline))
            return False

        delay = _PROBE_INITIAL_DELAY
        while True:
            result = await self._runner.run(
                self._ctl, [self._probe], Deadline(_budget(settle, deadline))
            )
            if result.ok:
                return True
            left = _budget(settle, deadline)
            if left <= 0:
                logger.debug("drweb-configd not confirmed ready after %.1fs", self._settle_seconds)
                return False
            await asyncio.sleep(min(delay, left))
            delay = min(delay * 2, _PROBE_MAX_DELAY)

    async def ensure_running(self, deadline: Deadline | None = None) -> bool:
        await self.start(deadline)
        return await self.wait_ready(deadline)


def _budget(settle: Deadline, deadline: Deadline | None) -> float:
    """Seconds left of the settle budget, capped by the request deadline."""
    left = settle.remaining() or 0.0
    if deadline is not None:
        request_left = deadline.remaining()
        if request_left is not None:
            left = min(left, request_left)
    return left
