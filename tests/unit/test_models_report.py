"""Unit tests for drwebguard/core/models.py and drwebguard/report.py."""

from __future__ import annotations

import hashlib

import pytest

from drwebguard.core.models import ScanOutcome, ScanTarget, sha256_file
from drwebguard.report import render_markdown


class TestScanTarget:
    def test_from_path_resolves_and_hashes(self, tmp_path) -> None:
        sample = tmp_path / "sample.bin"
        sample.write_bytes(b"X5O!P%@AP")
        target = ScanTarget.from_path(sample)
        assert target.path == str(sample.resolve())
        assert target.sha256 == hashlib.sha256(b"X5O!P%@AP").hexdigest()

    def test_from_path_missing_file_raises(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            ScanTarget.from_path(tmp_path / "missing")

    def test_target_is_immutable(self) -> None:
        target = ScanTarget(path="/tmp/x")
        with pytest.raises((AttributeError, TypeError)):
            target.path = "/tmp/y"  # type: ignore[misc]

    def test_sha256_file_of_empty_file(self, tmp_path) -> None:
        empty = tmp_path / "empty"
        empty.write_bytes(b"")
        assert sha256_file(empty) == hashlib.sha256(b"").hexdigest()


class TestScanOutcome:
    def test_json_document_omits_empty_markdown_and_error(self) -> None:
        outcome = ScanOutcome(infected=True, result="Trojan.Test", engine="7.0.1", database="99", updated="20240101")
        assert outcome.to_json_dict() == {
            "drweb": {
                "infected": True,
                "result": "Trojan.Test",
                "engine": "7.0.1",
                "database": "99",
                "updated": "20240101",
            }
        }

    def test_error_is_included_when_set(self) -> None:
        data = ScanOutcome(error="ScanEngine is not available").as_dict()
        assert data["error"] == "ScanEngine is not available"
        assert data["infected"] is False

    def test_verdict(self) -> None:
        assert ScanOutcome().verdict == "clean"
        assert ScanOutcome(infected=True).verdict == "infected"
        assert ScanOutcome(infected=True, error="boom").verdict == "error"


class TestRenderMarkdown:
    def test_infected_table(self) -> None:
        md = render_markdown(
            ScanOutcome(infected=True, result="EICAR Test File", engine="7.0.1", updated="20240101")
        )
        assert md.startswith("#### Dr.WEB\n")
        assert "| Infected | Result | Engine | Updated |" in md
        assert "| **true** | EICAR Test File | 7.0.1 | 20240101 |" in md

    def test_clean_table(self) -> None:
        md = render_markdown(ScanOutcome(engine="7.0.1", updated="20240101"))
        assert "| false | - | 7.0.1 | 20240101 |" in md

    def test_pipes_are_escaped(self) -> None:
        md = render_markdown(ScanOutcome(infected=True, result="a|b"))
        assert "a\\|b" in md

    def test_error_rendered_instead_of_table(self) -> None:
        md = render_markdown(ScanOutcome(error="ScanEngine is not available"))
        assert " - ScanEngine is not available" in md
        assert "| Infected |" not in md
