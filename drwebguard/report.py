"""Markdown rendering of a :class:`~drwebguard.core.models.ScanOutcome`."""

from __future__ import annotations

from drwebguard.core.models import ScanOutcome

_HEADER = "#### Dr.WEB\n"


def _cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ")


def render_markdown(outcome: ScanOutcome) -> str:
    """Render *outcome* as the Malice plugin Markdown table.

    A failed scan is rendered as a single error line instead of the table.
    """
    if outcome.error:
        return f"{_HEADER}\n - {_cell(outcome.error)}\n"

    infected = "**true**" if outcome.infected else "false"
    result = _cell(outcome.result) if outcome.infected else "-"
    lines = [
        _HEADER,
        "| Infected | Result | Engine | Updated |",
        "|:--------:|--------|--------|---------|",
        f"| {infected} | {result} | {_cell(outcome.engine)} | {_cell(outcome.updated)} |",
        "",
    ]
    return "\n".join(lines)
