"""Shared pytest configuration and fixtures for drwebguard tests.

Sets environment variables before any drwebguard module is imported so that
``drwebguard.config.get_settings()`` never points at real engine paths, and
provides :class:`FakeProcessRunner`, a scripted stand-in for the Dr.Web
binaries.
"""
from __future__ import annotations

import os
from collections import defaultdict
from typing import Sequence

import pytest

os.environ.setdefault("DRWEB_CTL", "/opt/drweb.com/bin/drweb-ctl")
os.environ.setdefault("DRWEB_CONFIGD", "/opt/drweb.com/bin/drweb-configd")
os.environ.setdefault("DAEMON_SETTLE_SECONDS", "0")
os.environ.setdefault("DAEMON_PROBE", "")
os.environ.setdefault("SCAN_RETRY_DELAY_SECONDS", "0")
os.environ.setdefault("BUILD_TIME", "20240101")
os.environ.setdefault("UPDATED_FILE", "/nonexistent/drwebguard/UPDATED")

from drwebguard.core.process import (  # noqa: E402
    Deadline,
    ProcessResult,
    ProcessRunner,
    ProcessStatus,
)
from drwebguard.core.scanner import DrWebScanner  # noqa: E402

VALID_LICENSE_OUTPUT = (
    "License number 0123456789 (Dr.Web Anti-virus for Linux), "
    "expires 2030-01-01 00:00:00 (1000 days left)\n"
)

BASE_INFO_OUTPUT = (
    "Core engine: 7.00.47.04280\n"
    "Virus database timestamp: 2024-Jan-01 10:00:00\n"
    "Virus database fingerprint: 5F1A3E\n"
    "Virus databases loaded: 180\n"
    "Virus base records: 9361543\n"
    "Anti-spam core is not loaded\n"
)


class FakeProcessRunner(ProcessRunner):
    """Scripted :class:`ProcessRunner`.

    Results are scripted per argument tuple with :meth:`on`.  Several
    results scripted for the same arguments are returned in order; the last
    one repeats.  Unscripted invocations succeed with empty output.  Every
    started invocation is recorded in :attr:`calls` as ``(command, *args)``.

    Like :class:`AsyncProcessRunner`, an invocation whose deadline has
    already expired is not started and comes back ``TIMED_OUT``; it is
    recorded in :attr:`expired_calls` instead.  :meth:`clock` is a fake
    monotonic clock that scripted calls advance by their ``elapse``, so a
    scanner built with ``clock=runner.clock`` sees its deadline run out.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.expired_calls: list[tuple[str, ...]] = []
        self.deadlines: list[Deadline | None] = []
        self.now = 0.0
        self._scripts: dict[
            tuple[str, ...], list[tuple[ProcessResult | Exception, float]]
        ] = defaultdict(list)

    def clock(self) -> float:
        return self.now

    def on(
        self,
        *args: str,
        stdout: str = "",
        returncode: int = 0,
        timed_out: bool = False,
        raises: Exception | None = None,
        elapse: float = 0.0,
    ) -> "FakeProcessRunner":
        result: ProcessResult | Exception
        if raises is not None:
            result = raises
        elif timed_out:
            result = ProcessResult(stdout="", status=ProcessStatus.TIMED_OUT)
        elif returncode:
            result = ProcessResult(stdout=stdout, status=ProcessStatus.NON_ZERO_EXIT, returncode=returncode)
        else:
            result = ProcessResult(stdout=stdout, status=ProcessStatus.OK, returncode=0)
        self._scripts[args].append((result, elapse))
        return self

    def count(self, *args: str) -> int:
        return sum(1 for call in self.calls if call[1:] == args)

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        deadline: Deadline | None = None,
    ) -> ProcessResult:
        key = tuple(args)
        self.deadlines.append(deadline)
        if deadline is not None and deadline.expired:
            self.expired_calls.append((command, *key))
            return ProcessResult(stdout="", status=ProcessStatus.TIMED_OUT)

        self.calls.append((command, *key))
        script = self._scripts.get(key)
        if not script:
            return ProcessResult(stdout="", status=ProcessStatus.OK, returncode=0)
        result, elapse = script.pop(0) if len(script) > 1 else script[0]
        self.now += elapse
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture()
def bare_runner() -> FakeProcessRunner:
    """A runner with nothing scripted."""
    return FakeProcessRunner()


@pytest.fixture()
def fake_runner() -> FakeProcessRunner:
    """A runner whose license is valid and whose metadata commands succeed."""
    runner = FakeProcessRunner()
    runner.on("license", stdout=VALID_LICENSE_OUTPUT)
    runner.on("--version", stdout="drweb-ctl 11.1.3.2006260124\n")
    runner.on("baseinfo", stdout=BASE_INFO_OUTPUT)
    return runner


@pytest.fixture()
def make_scanner(tmp_path):
    """Factory building a :class:`DrWebScanner` with no delays."""

    def _make(runner: ProcessRunner, **overrides) -> DrWebScanner:
        options = {
            "updated_file": str(tmp_path / "UPDATED"),
            "build_time": "20240101",
            "settle_seconds": 0.0,
            "probe": None,
            "retry_delay": 0.0,
        }
        options.update(overrides)
        return DrWebScanner(runner, **options)

    return _make
