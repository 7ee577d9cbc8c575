"""Conversion of raw ``drweb-ctl`` transcripts into a :class:`ScanOutcome`.

Everything here is pure: no processes, no files, no clock.  The scanner
collects the transcripts and metadata and hands them to
:func:`parse_scan_output`.

``drweb-ctl scan`` prints one line per scanned object::

    /malware/sample.exe - Ok
    /malware/eicar.com - infected with EICAR Test File (NOT a Virus!)

Two output grammars exist across engine builds, so scan-line handling is
driven by a :class:`ScanDialect` table:

``default``
    A line containing ``- Ok`` means clean and ends parsing.  Every other
    non-empty line is an infection report whose text after the
    ``"<path> - "`` prefix is the result.  The last such line wins.

``legacy``
    Only lines containing ``infected with`` or a non-empty
    ``threats found:`` list count as infection reports; other lines are
    ignored.  ``- Ok`` still ends parsing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from drwebguard.core.exceptions import EngineUnavailableError
from drwebguard.core.models import ScanOutcome

logger = logging.getLogger(__name__)

ENGINE_UNAVAILABLE_MESSAGE = "ScanEngine is not available"

_ENGINE_UNAVAILABLE_EXIT = "exit status 119"
_CLEAN_MARKER = "- Ok"
_CORE_ENGINE_PREFIX = "Core engine:"
_VIRUS_BASE_PREFIX = "Virus base records:"
_INFECTED_WITH = "infected with"
_THREATS_FOUND = "threats found:"


def _strip_prefix(text: str, prefix: str) -> str:
    return text[len(prefix):] if prefix and text.startswith(prefix) else text


def _after_path(line: str, path: str) -> str | None:
    return _strip_prefix(line, f"{path} - ").strip()


def _after_infected_with(line: str, path: str) -> str | None:
    _, _, threat = line.partition(_INFECTED_WITH)
    return threat.strip()


def _threats_found(line: str, path: str) -> str | None:
    threats = _strip_prefix(line.strip(), _THREATS_FOUND).strip()
    if not threats:
        return None
    return _after_path(line, path)


@dataclass(frozen=True)
class LineRule:
    """One infection-report pattern.

    Attributes:
        marker: Substring a line must contain for the rule to apply; an
            empty marker matches every line.
        extract: ``(line, path) -> result`` returning the signature text,
            or ``None`` when the line turns out not to report a threat.
    """

    marker: str
    extract: Callable[[str, str], str | None]

    def apply(self, line: str, path: str) -> str | None:
        if self.marker not in line:
            return None
        return self.extract(line, path)


@dataclass(frozen=True)
class ScanDialect:
    name: str
    rules: tuple[LineRule, ...]
    clean_marker: str = _CLEAN_MARKER


DEFAULT_DIALECT = ScanDialect(name="default", rules=(LineRule("", _after_path),))

LEGACY_DIALECT = ScanDialect(
    name="legacy",
    rules=(
        LineRule(_INFECTED_WITH, _after_infected_with),
        LineRule(_THREATS_FOUND, _threats_found),
    ),
)

DIALECTS: dict[str, ScanDialect] = {
    DEFAULT_DIALECT.name: DEFAULT_DIALECT,
    LEGACY_DIALECT.name: LEGACY_DIALECT,
}


def get_dialect(name: str) -> ScanDialect:
    try:
        return DIALECTS[name.lower()]
    except KeyError:
        raise ValueError(f"unknown scan output dialect: {name!r}") from None


def is_engine_unavailable(error: BaseException) -> bool:
    return isinstance(error, EngineUnavailableError) or str(error) == _ENGINE_UNAVAILABLE_EXIT


def parse_scan_output(
    scan_output: str,
    base_info: str,
    scan_error: BaseException | None = None,
    *,
    path: str = "",
    engine: str = "",
    updated: str = "",
    dialect: ScanDialect = DEFAULT_DIALECT,
) -> ScanOutcome:
    """Build a :class:`ScanOutcome` from ``drweb-ctl`` output.

    Args:
        scan_output: Standard output of ``drweb-ctl scan <path>``.
        base_info: Standard output of ``drweb-ctl baseinfo``.
        scan_error: Terminal error of the scan step, if any.  When set, the
            transcript is not trusted and only the error is reported.
        path: Scanned path, stripped from the front of result lines.
        engine: Provisional engine version (from ``drweb-ctl --version``);
            replaced by ``Core engine:`` from *base_info* when present.
        updated: Date of the last signature update, ``YYYYMMDD``.
        dialect: Scan-line grammar, see the module docstring.
    """
    logger.debug("Dr.WEB Output path=%s: %s", path, scan_output)

    if scan_error is not None:
        if is_engine_unavailable(scan_error):
            return ScanOutcome(error=ENGINE_UNAVAILABLE_MESSAGE)
        return ScanOutcome(error=str(scan_error))

    outcome = ScanOutcome(infected=False, engine=engine, updated=updated)

    for line in scan_output.split("\n"):
        if not line:
            continue
        if dialect.clean_marker in line:
            break
        for rule in dialect.rules:
            result = rule.apply(line, path)
            if result is not None:
                outcome.infected = True
                outcome.result = result
                break

    logger.debug("Dr.WEB Base Info path=%s: %s", path, base_info)

    for line in base_info.split("\n"):
        if _CORE_ENGINE_PREFIX in line:
            outcome.engine = line.split(_CORE_ENGINE_PREFIX, 1)[1].strip()
        if _VIRUS_BASE_PREFIX in line:
            outcome.database = line.split(_VIRUS_BASE_PREFIX, 1)[1].strip()

    return outcome
