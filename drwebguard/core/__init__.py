"""Dr.Web scan pipeline: process runner, license guard, scanner and parser.

Public re-exports so callers do not couple to the internal module layout::

    from drwebguard.core import DrWebScanner, ScanTarget
"""

from drwebguard.core.exceptions import (
    DrWebError,
    EngineUnavailableError,
    LicenseError,
    MetadataFetchError,
    ProcessStartError,
    ScanCommandError,
    ScanTimeoutError,
)
from drwebguard.core.models import ScanOutcome, ScanTarget
from drwebguard.core.parser import parse_scan_output
from drwebguard.core.process import AsyncProcessRunner, Deadline, ProcessResult, ProcessRunner
from drwebguard.core.scanner import DrWebScanner

__all__ = [
    "AsyncProcessRunner",
    "Deadline",
    "DrWebError",
    "DrWebScanner",
    "EngineUnavailableError",
    "LicenseError",
    "MetadataFetchError",
    "ProcessResult",
    "ProcessRunner",
    "ProcessStartError",
    "ScanCommandError",
    "ScanOutcome",
    "ScanTarget",
    "ScanTimeoutError",
    "parse_scan_output",
]
