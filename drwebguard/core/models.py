"""Value types shared by the Dr.Web scan pipeline.

:class:`ScanTarget` is created once at the CLI or HTTP entry point and passed
explicitly through every pipeline step, so concurrent requests never share
a path or hash.  :class:`ScanOutcome` is the structured verdict handed back
to the result consumers (JSON/Markdown rendering, storage, webhook).
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

_HASH_CHUNK_SIZE = 64 * 1024


class LicenseState(str, Enum):
    """License status as reported by ``drweb-ctl license``."""

    VALID = "valid"
    EXPIRED = "expired"
    ABSENT = "absent"


class LicenseGuardState(str, Enum):
    """Lifecycle of a single :class:`~drwebguard.core.license.LicenseGuard` run."""

    UNCHECKED = "unchecked"
    VALID = "valid"
    EXPIRED = "expired"
    RENEWING = "renewing"
    READY = "ready"


@dataclass(frozen=True)
class ScanTarget:
    """The file being scanned.

    Attributes:
        path: Absolute filesystem path of the file.
        sha256: Hex SHA-256 of the file content.  Used only as an external
            identifier (storage document id, webhook ``X-Malice-ID``).
    """

    path: str
    sha256: str = ""

    @classmethod
    def from_path(cls, path: str | Path) -> "ScanTarget":
        """Resolve *path* to an absolute path and hash its content.

        Raises:
            FileNotFoundError: If *path* does not exist.
        """
        resolved = Path(path).resolve()
        if not resolved.is_file():
            raise FileNotFoundError(f"File not found: {resolved}")
        return cls(path=str(resolved), sha256=sha256_file(resolved))


def sha256_file(path: str | Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_HASH_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


@dataclass
class ScanOutcome:
    """Structured verdict of one Dr.Web scan.

    Attributes:
        infected: ``True`` when the engine reported a threat.  Meaningless
            when :attr:`error` is set.
        result: Signature name reported by the engine; empty when clean.
        engine: Engine version (``Core engine:`` from ``baseinfo``, falling
            back to ``drweb-ctl --version``).
        database: Virus base record count from ``baseinfo``.
        updated: Date of the last signature update, ``YYYYMMDD``.
        markdown: Rendered Markdown table, filled in by the CLI when needed.
        error: Non-empty when the scan could not be completed; the verdict
            fields are then not authoritative.
    """

    infected: bool = False
    result: str = ""
    engine: str = ""
    database: str = ""
    updated: str = ""
    markdown: str = ""
    error: str = ""

    @property
    def verdict(self) -> str:
        """``"error"``, ``"infected"`` or ``"clean"``."""
        if self.error:
            return "error"
        return "infected" if self.infected else "clean"

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "infected": self.infected,
            "result": self.result,
            "engine": self.engine,
            "database": self.database,
            "updated": self.updated,
        }
        if self.markdown:
            data["markdown"] = self.markdown
        if self.error:
            data["error"] = self.error
        return data

    def to_json_dict(self) -> dict[str, Any]:
        """Return the plugin JSON document ``{"drweb": {...}}``."""
        return {"drweb": self.as_dict()}
