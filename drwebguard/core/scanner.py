"""Dr.Web scan executor.

:class:`DrWebScanner` runs one scan end to end, strictly in sequence:

1. :class:`~drwebguard.core.license.LicenseGuard` (starts the daemon, renews
   the license when needed).
2. Daemon start and readiness wait.
3. ``drweb-ctl scan <path>``, retried once after a pause on failure.
4. ``drweb-ctl --version`` and ``drweb-ctl baseinfo`` for engine metadata.
5. :func:`~drwebguard.core.parser.parse_scan_output`.

Steps 1 to 3 share one :class:`Deadline`, so the ``timeout`` bounds the
whole scan rather than each step.  Once it runs out the retry is skipped.
The metadata commands of step 4 each get a separate, short deadline: they
still have to run after a timed-out scan so the timeout can be reported in
the outcome.

Exit codes of ``drweb-ctl scan``:

* ``13`` – a threat was found.  This is a successful scan, not a failure.
* ``119`` – the scan engine is unavailable; reported as
  ``"ScanEngine is not available"``.
* anything else non-zero – generic failure, retried once, then reported
  in :attr:`ScanOutcome.error`.

License and metadata failures abort the scan with an exception; scan
failures never do.

Usage::

    scanner = DrWebScanner.from_settings(get_settings())
    outcome = await scanner.scan(ScanTarget.from_path("/malware/sample"), timeout=120)
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import date
from pathlib import Path
from typing import Callable

from prometheus_client import Counter

from drwebguard.config import Settings
from drwebguard.core.daemon import DaemonController
from drwebguard.core.exceptions import (
    EngineUnavailableError,
    MetadataFetchError,
    ScanCommandError,
    ScanTimeoutError,
)
from drwebguard.core.license import LicenseGuard
from drwebguard.core.models import ScanOutcome, ScanTarget
from drwebguard.core.parser import DEFAULT_DIALECT, ScanDialect, get_dialect, parse_scan_output
from drwebguard.core.process import AsyncProcessRunner, Deadline, ProcessResult, ProcessRunner

logger = logging.getLogger(__name__)

#: Incremented once per completed scan.  Label ``verdict`` is
#: "clean" | "infected" | "error".
drweb_scans_total = Counter(
    "drweb_scans_total",
    "Total number of Dr.Web scans by verdict",
    ["verdict"],
)

EXIT_THREAT_FOUND = 13
EXIT_ENGINE_UNAVAILABLE = 119

_NO_LICENSE_MARKER = "No license"
DEFAULT_METADATA_TIMEOUT = 30.0
_VERSION_PREFIX = "drweb-ctl "


class DrWebScanner:
    """Runs ``drweb-ctl`` scans and turns their output into a :class:`ScanOutcome`.

    The scanner itself holds configuration only; all per-scan state lives in
    local variables and the :class:`ScanTarget`, so one instance can serve
    concurrent requests.

    Args:
        runner: Process runner for all engine invocations.
        ctl: Path of ``drweb-ctl``.
        configd: Path of ``drweb-configd``.
        license_key: Registered license key, empty for a demo license.
        updated_file: Update marker file holding ``YYYYMMDD``.
        build_time: Fallback update date when the marker is absent.
        settle_seconds: Readiness budget after daemon start.
        probe: ``drweb-ctl`` readiness probe sub-command, ``None`` for a
            fixed delay.
        retry_delay: Pause before the single scan retry.
        dialect: Scan output grammar.
        metadata_timeout: Deadline in seconds for each of ``--version`` and
            ``baseinfo``, measured independently of the scan deadline.
        clock: Monotonic clock the deadlines are measured against.
    """

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        *,
        ctl: str = "/opt/drweb.com/bin/drweb-ctl",
        configd: str = "/opt/drweb.com/bin/drweb-configd",
        license_key: str = "",
        updated_file: str = "/opt/malice/UPDATED",
        build_time: str = "",
        settle_seconds: float = 1.0,
        probe: str | None = "appinfo",
        retry_delay: float = 10.0,
        dialect: ScanDialect = DEFAULT_DIALECT,
        metadata_timeout: float = DEFAULT_METADATA_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._runner = runner or AsyncProcessRunner()
        self._ctl = ctl
        self._updated_file = Path(updated_file)
        self._build_time = build_time
        self._retry_delay = retry_delay
        self._dialect = dialect
        self._metadata_timeout = metadata_timeout
        self._clock = clock
        self.daemon = DaemonController(
            self._runner,
            configd=configd,
            ctl=ctl,
            settle_seconds=settle_seconds,
            probe=probe,
        )
        self.license_guard = LicenseGuard(
            self._runner,
            self.daemon,
            ctl=ctl,
            license_key=license_key,
        )

    @classmethod
    def from_settings(cls, settings: Settings, runner: ProcessRunner | None = None) -> "DrWebScanner":
        return cls(
            runner,
            ctl=settings.DRWEB_CTL,
            configd=settings.DRWEB_CONFIGD,
            license_key=settings.DRWEB_LICENSE_KEY,
            updated_file=settings.UPDATED_FILE,
            build_time=settings.BUILD_TIME,
            settle_seconds=settings.DAEMON_SETTLE_SECONDS,
            probe=settings.DAEMON_PROBE or None,
            retry_delay=settings.SCAN_RETRY_DELAY_SECONDS,
            dialect=get_dialect(settings.SCAN_OUTPUT_DIALECT),
            metadata_timeout=settings.METADATA_TIMEOUT_SECONDS,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def scan(self, target: ScanTarget, timeout: float | None) -> ScanOutcome:
        """Scan *target* under a deadline of *timeout* seconds.

        Returns:
            The parsed :class:`ScanOutcome`.  Scan failures are reported in
            :attr:`ScanOutcome.error`.

        Raises:
            LicenseError: If the license cannot be checked or renewed.
            MetadataFetchError: If engine metadata cannot be fetched.
            ProcessStartError: If an engine binary cannot be launched.
        """
        deadline = Deadline(timeout, clock=self._clock)

        await self.license_guard.ensure_licensed(deadline)
        await self.daemon.ensure_running(deadline)

        logger.debug("running drweb-ctl scan path=%s", target.path)
        output, scan_error = await self._run_scan(target, deadline)
        if scan_error is not None and _NO_LICENSE_MARKER in output:
            logger.warning("drweb-ctl scan refused, no license path=%s", target.path)
        elif scan_error is not None and deadline.expired:
            logger.warning("scan deadline exhausted, not retrying path=%s", target.path)
        elif scan_error is not None:
            delay = self._retry_delay
            remaining = deadline.remaining()
            if remaining is not None:
                delay = min(delay, remaining)
            logger.debug("re-running drweb-ctl scan in %.1fs path=%s", delay, target.path)
            await asyncio.sleep(delay)
            output, scan_error = await self._run_scan(target, deadline)

        # Metadata is fetched even after a timed-out scan, so it gets its own
        # budget instead of the scan deadline.
        engine = await self.fetch_version(self._metadata_deadline())
        base_info = await self.fetch_base_info(self._metadata_deadline())

        outcome = parse_scan_output(
            output,
            base_info,
            scan_error,
            path=target.path,
            engine=engine,
            updated=self.read_updated_date(),
            dialect=self._dialect,
        )
        drweb_scans_total.labels(verdict=outcome.verdict).inc()
        logger.info(
            "Dr.WEB scan complete path=%s sha256=%s verdict=%s result=%s",
            target.path,
            target.sha256,
            outcome.verdict,
            outcome.result or outcome.error,
        )
        return outcome

    async def fetch_version(self, deadline: Deadline | None = None) -> str:
        result = await self._runner.run(self._ctl, ["--version"], deadline)
        if not result.ok:
            raise MetadataFetchError(f"drweb-ctl --version failed: {result.error_text()}")
        logger.debug("DrWEB Version: %s", result.stdout.strip())
        return result.stdout.strip().removeprefix(_VERSION_PREFIX).strip()

    async def fetch_base_info(self, deadline: Deadline | None = None) -> str:
        result = await self._runner.run(self._ctl, ["baseinfo"], deadline)
        if not result.ok:
            raise MetadataFetchError(f"drweb-ctl baseinfo failed: {result.error_text()}")
        return result.stdout

    def read_updated_date(self) -> str:
        """Return the last signature update date, or the build time when unknown."""
        if not self._updated_file.exists():
            return self._build_time
        return self._updated_file.read_text(encoding="utf-8").strip()

    async def update(self, timeout: float | None = None) -> ProcessResult:
        """Update virus definitions and record today's date in the update marker.

        Raises:
            ScanCommandError: If ``drweb-ctl update`` fails.
            OSError: If the update marker cannot be written.
        """
        deadline = Deadline(timeout, clock=self._clock)
        await self.daemon.ensure_running(deadline)

        logger.info("Updating Dr.WEB...")
        result = await self._runner.run(self._ctl, ["update"], deadline)
        if not result.ok:
            raise ScanCommandError(f"drweb-ctl update failed: {result.error_text()}")

        self._updated_file.parent.mkdir(parents=True, exist_ok=True)
        self._updated_file.write_text(date.today().strftime("%Y%m%d"), encoding="utf-8")
        logger.info("Dr.WEB updated, marker written to %s", self._updated_file)
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _metadata_deadline(self) -> Deadline:
        return Deadline(self._metadata_timeout, clock=self._clock)

    async def _run_scan(
        self,
        target: ScanTarget,
        deadline: Deadline,
    ) -> tuple[str, ScanCommandError | None]:
        result = await self._runner.run(self._ctl, ["scan", target.path], deadline)
        return result.stdout, self._classify_scan(result)

    @staticmethod
    def _classify_scan(result: ProcessResult) -> ScanCommandError | None:
        if result.ok or result.returncode == EXIT_THREAT_FOUND:
            return None
        if result.timed_out:
            return ScanTimeoutError(result.error_text())
        if result.returncode == EXIT_ENGINE_UNAVAILABLE:
            return EngineUnavailableError(result.error_text())
        return ScanCommandError(result.error_text())
