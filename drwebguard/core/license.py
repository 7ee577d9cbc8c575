"""License guard: make sure Dr.Web holds an active license before scanning.

The engine refuses to scan without a license, and the resulting failure is
easy to confuse with a broken engine, so the guard checks first and renews
when needed::

    UNCHECKED ──check──▶ VALID ─────────────────────────────▶ READY
         │
         └──────────────▶ EXPIRED ──renew──▶ RENEWING ──ok──▶ READY

A renewed license is trusted on the strength of the renew command's exit
status alone; the license is not queried a second time.
"""

from __future__ import annotations

import logging

from drwebguard.core.daemon import DaemonController
from drwebguard.core.exceptions import LicenseError
from drwebguard.core.models import LicenseGuardState, LicenseState
from drwebguard.core.process import Deadline, ProcessRunner

logger = logging.getLogger(__name__)

_NO_LICENSE_MARKER = "No license"
_EXPIRES_MARKER = "expires"


def classify_license_output(output: str) -> LicenseState:
    """Classify ``drweb-ctl license`` output.

    Anything that is neither an explicit "no license" nor a license with an
    expiry date is treated as expired.
    """
    if _NO_LICENSE_MARKER in output:
        return LicenseState.ABSENT
    if _EXPIRES_MARKER in output:
        return LicenseState.VALID
    return LicenseState.EXPIRED


class LicenseGuard:
    """Checks the Dr.Web license and renews it when it is not valid.

    Args:
        runner: Process runner used for ``drweb-ctl``.
        daemon: Controller for ``drweb-configd``; started before the check.
        ctl: Path of the ``drweb-ctl`` binary.
        license_key: Registered key for renewal; when empty a demo license
            is requested instead.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        daemon: DaemonController,
        ctl: str,
        license_key: str = "",
    ) -> None:
        self._runner = runner
        self._daemon = daemon
        self._ctl = ctl
        self._license_key = license_key
        self.state = LicenseGuardState.UNCHECKED

    async def ensure_licensed(self, deadline: Deadline | None = None) -> LicenseGuardState:
        """Drive the guard to ``READY``.

        Raises:
            LicenseError: If the license cannot be queried or renewed.
            ProcessStartError: If an engine binary cannot be launched.
        """
        self.state = LicenseGuardState.UNCHECKED
        await self._daemon.ensure_running(deadline)

        license_state = await self.check(deadline)
        if license_state is LicenseState.VALID:
            self.state = LicenseGuardState.VALID
        else:
            self.state = LicenseGuardState.EXPIRED
            await self.renew(deadline)

        self.state = LicenseGuardState.READY
        return self.state

    async def check(self, deadline: Deadline | None = None) -> LicenseState:
        logger.debug("checking Dr.WEB license")
        result = await self._runner.run(self._ctl, ["license"], deadline)
        if not result.ok:
            raise LicenseError(f"license check failed: {result.error_text()}")

        license_state = classify_license_output(result.stdout)
        if license_state is LicenseState.ABSENT:
            logger.debug("no licence found or licence has been invalidated")
        elif license_state is LicenseState.EXPIRED:
            logger.debug("licence expired output=%s", result.stdout.strip())
        return license_state

    async def renew(self, deadline: Deadline | None = None) -> None:
        self.state = LicenseGuardState.RENEWING
        if self._license_key:
            logger.debug("updating Dr.WEB license with registered key")
            args = ["license", "--GetRegistered", self._license_key]
        else:
            logger.debug("requesting Dr.WEB demo license")
            args = ["license", "--GetDemo"]

        result = await self._runner.run(self._ctl, args, deadline)
        if not result.ok:
            raise LicenseError(f"license renewal failed: {result.error_text()}")
        logger.debug("license renewed output=%s", result.stdout.strip())
