"""Pydantic schemas for the scan API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from drwebguard.core.models import ScanOutcome


class DrWebResults(BaseModel):
    """Read schema for a single Dr.Web verdict.

    When ``error`` is present the scan did not complete: ``infected`` is
    still serialised as ``false`` for Malice consumers that expect the key,
    but it is not a verdict.
    """

    infected: bool = Field(
        default=False,
        description="Threat reported by the engine; ignore it when error is present, the scan did not complete",
    )
    result: str = ""
    engine: str = ""
    database: str = ""
    updated: str = Field(default="", description="Last signature update, YYYYMMDD")
    markdown: str | None = None
    error: str | None = Field(
        default=None,
        description="Set when the scan could not be completed; the verdict is then not authoritative",
    )


class ScanResponse(BaseModel):
    """Response body of ``POST /scan``: ``{"drweb": {...}}``."""

    drweb: DrWebResults

    @classmethod
    def from_outcome(cls, outcome: ScanOutcome) -> "ScanResponse":
        return cls(drweb=DrWebResults(**outcome.as_dict()))
