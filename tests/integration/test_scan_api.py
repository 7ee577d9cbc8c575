"""Integration tests for POST /scan.

The full FastAPI app (middleware, router, response schema) is exercised over
``httpx.ASGITransport``.  The scanner dependency is overridden with a
:class:`DrWebScanner` whose process runner is scripted, so no Dr.Web binaries
are needed; uploads are staged in a per-test temporary directory.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Sequence

import pytest
from httpx import ASGITransport, AsyncClient

from drwebguard.api.routes.scan import get_scanner
from drwebguard.config import get_settings
from drwebguard.core.process import Deadline, ProcessResult, ProcessRunner, ProcessStatus
from drwebguard.main import app

EICAR = b"X5O!P%@AP[4\\PZX54(P^)7CC)7}$EICAR-STANDARD-ANTIVIRUS-TEST-FILE!$H+H*"


class _StagedFileRunner(ProcessRunner):
    """Answers ``drweb-ctl scan`` for whatever path the route staged.

    Everything else is delegated to the wrapped scripted runner.
    """

    def __init__(self, inner: ProcessRunner, verdict: str, returncode: int = 0) -> None:
        self._inner = inner
        self._verdict = verdict
        self._returncode = returncode
        self.scanned: list[str] = []

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        deadline: Deadline | None = None,
    ) -> ProcessResult:
        if args and args[0] == "scan":
            path = args[1]
            self.scanned.append(path)
            assert os.path.exists(path)
            status = ProcessStatus.NON_ZERO_EXIT if self._returncode else ProcessStatus.OK
            return ProcessResult(
                stdout=f"{path} - {self._verdict}\n", status=status, returncode=self._returncode
            )
        return await self._inner.run(command, args, deadline)


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    directory = tmp_path / "malware"
    monkeypatch.setenv("UPLOAD_DIR", str(directory))
    get_settings.cache_clear()
    yield directory
    get_settings.cache_clear()
    app.dependency_overrides.clear()


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def _use_runner(make_scanner, runner: ProcessRunner) -> None:
    app.dependency_overrides[get_scanner] = lambda: make_scanner(runner)


class TestScanUpload:
    async def test_infected_upload(self, client, fake_runner, make_scanner, upload_dir) -> None:
        runner = _StagedFileRunner(fake_runner, "infected with EICAR Test File", returncode=13)
        _use_runner(make_scanner, runner)

        response = await client.post("/scan", files={"malware": ("eicar.com", EICAR)})

        assert response.status_code == 200
        body = response.json()
        assert body == {
            "drweb": {
                "infected": True,
                "result": "infected with EICAR Test File",
                "engine": "7.00.47.04280",
                "database": "9361543",
                "updated": "20240101",
            }
        }

    async def test_clean_upload(self, client, fake_runner, make_scanner) -> None:
        runner = _StagedFileRunner(fake_runner, "Ok")
        _use_runner(make_scanner, runner)

        response = await client.post("/scan", files={"malware": ("readme.txt", b"hello")})

        assert response.status_code == 200
        assert response.json()["drweb"]["infected"] is False
        assert "error" not in response.json()["drweb"]

    async def test_staged_file_removed_after_scan(
        self, client, fake_runner, make_scanner, upload_dir
    ) -> None:
        runner = _StagedFileRunner(fake_runner, "Ok")
        _use_runner(make_scanner, runner)

        await client.post("/scan", files={"malware": ("readme.txt", b"hello")})

        assert len(runner.scanned) == 1
        assert os.path.dirname(runner.scanned[0]) == str(upload_dir)
        assert os.path.basename(runner.scanned[0]).startswith("web_")
        assert not os.path.exists(runner.scanned[0])

    async def test_engine_unavailable_reported_in_body(self, client, fake_runner, make_scanner) -> None:
        runner = _StagedFileRunner(fake_runner, "", returncode=119)
        _use_runner(make_scanner, runner)

        response = await client.post("/scan", files={"malware": ("eicar.com", EICAR)})

        assert response.status_code == 200
        assert response.json()["drweb"]["error"] == "ScanEngine is not available"

    async def test_missing_file_returns_400(self, client, fake_runner, make_scanner) -> None:
        _use_runner(make_scanner, fake_runner)

        response = await client.post("/scan", files={"document": ("eicar.com", EICAR)})

        assert response.status_code == 400
        assert response.text == "Please supply a valid file to scan.\n"
        assert fake_runner.calls == []

    async def test_license_failure_returns_500(
        self, client, bare_runner, make_scanner, upload_dir
    ) -> None:
        bare_runner.on("license", returncode=1)
        _use_runner(make_scanner, bare_runner)

        response = await client.post("/scan", files={"malware": ("eicar.com", EICAR)})

        assert response.status_code == 500
        assert response.json()["drweb"]["error"] == "license check failed: exit status 1"
        assert list(upload_dir.iterdir()) == []

    async def test_correlation_id_echoed(self, client, fake_runner, make_scanner) -> None:
        _use_runner(make_scanner, _StagedFileRunner(fake_runner, "Ok"))

        response = await client.post(
            "/scan",
            files={"malware": ("readme.txt", b"hello")},
            headers={"X-Correlation-ID": "scan-42"},
        )

        assert response.headers["x-correlation-id"] == "scan-42"

    async def test_request_log_carries_scan_verdict(
        self, client, fake_runner, make_scanner, caplog
    ) -> None:
        _use_runner(make_scanner, _StagedFileRunner(fake_runner, "Trojan.Test", returncode=13))

        with caplog.at_level(logging.INFO, logger="drwebguard.api.middleware.logging"):
            await client.post("/scan", files={"malware": ("eicar.com", EICAR)})

        records = [r for r in caplog.records if r.name == "drwebguard.api.middleware.logging"]
        entry = json.loads(records[-1].message)
        assert entry["path"] == "/scan"
        assert entry["verdict"] == "infected"
        assert entry["upload_bytes"] > len(EICAR)
