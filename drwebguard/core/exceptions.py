"""Exception hierarchy for the Dr.Web scan pipeline.

Two families exist:

* **Fatal** errors (:class:`ProcessStartError`, :class:`LicenseError`,
  :class:`MetadataFetchError`) abort the scan; no outcome is produced.
* **Scan command** errors (:class:`ScanCommandError` and subclasses) are
  captured into :attr:`~drwebguard.core.models.ScanOutcome.error` so the
  caller still receives a degraded, well-formed result.

A detected threat (``drweb-ctl`` exit code 13) is not an error at all.
"""

from __future__ import annotations


class DrWebError(Exception):
    """Base exception for all drwebguard errors."""


class ProcessStartError(DrWebError):
    """Raised when an engine binary cannot be launched (missing, not executable)."""


class LicenseError(DrWebError):
    """Raised when the license cannot be checked or renewed."""


class MetadataFetchError(DrWebError):
    """Raised when ``drweb-ctl --version`` or ``drweb-ctl baseinfo`` fails.

    Engine and database fields cannot be populated without them, so the scan
    is aborted rather than reported half-empty.
    """


class ScanCommandError(DrWebError):
    """``drweb-ctl scan`` failed after its single retry.

    The message is the runner's error text (e.g. ``"exit status 2"``) and is
    copied verbatim into the outcome.
    """


class ScanTimeoutError(ScanCommandError):
    """The scan deadline expired and the engine process was killed."""


class EngineUnavailableError(ScanCommandError):
    """``drweb-ctl`` exited with 119: the scan engine is not available."""
