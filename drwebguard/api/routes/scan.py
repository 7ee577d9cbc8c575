"""API route for scanning an uploaded file.

Endpoint
--------
POST /scan
    Multipart upload with the file in the ``malware`` form field.  The file
    is staged under ``UPLOAD_DIR``, scanned with a deadline of
    ``WEB_SCAN_TIMEOUT`` seconds, and removed again.

    Returns:
        ``200 OK`` with ``{"drweb": {...}}``; scan failures (timeout, engine
        unavailable, other non-zero exits) are reported in ``drweb.error``.
        ``400 Bad Request`` when no file was supplied.
        ``500 Internal Server Error`` with ``{"drweb": {"error": ...}}`` when
        the license or engine metadata could not be obtained.

Each request builds its own :class:`~drwebguard.core.models.ScanTarget`;
nothing about the file is kept in module state, so concurrent uploads do not
interfere.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from drwebguard.config import get_settings
from drwebguard.core.exceptions import DrWebError
from drwebguard.core.models import ScanOutcome, ScanTarget, sha256_file
from drwebguard.core.scanner import DrWebScanner
from drwebguard.schemas.scan import ScanResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["scan"])


def get_scanner() -> DrWebScanner:
    """FastAPI dependency returning a scanner built from the current settings."""
    return DrWebScanner.from_settings(get_settings())


def _stage_upload(data: bytes, upload_dir: str) -> str:
    os.makedirs(upload_dir, exist_ok=True)
    with tempfile.NamedTemporaryFile(dir=upload_dir, prefix="web_", delete=False) as tmp:
        tmp.write(data)
    return tmp.name


@router.post(
    "/scan",
    response_model=ScanResponse,
    response_model_exclude_none=True,
    responses={400: {"description": "No file supplied"}},
)
async def scan_upload(
    request: Request,
    malware: UploadFile | None = File(default=None),
    scanner: DrWebScanner = Depends(get_scanner),
) -> Response | ScanResponse:
    """Scan the uploaded ``malware`` file with Dr.Web."""
    correlation_id = getattr(request.state, "correlation_id", None)
    if malware is None:
        logger.error("scan request without a file correlation_id=%s", correlation_id)
        return PlainTextResponse("Please supply a valid file to scan.\n", status_code=400)

    settings = get_settings()
    logger.debug(
        "Uploaded fileName: %s correlation_id=%s", malware.filename, correlation_id
    )
    data = await malware.read()
    path = await asyncio.to_thread(_stage_upload, data, settings.UPLOAD_DIR)
    try:
        target = ScanTarget(path=path, sha256=await asyncio.to_thread(sha256_file, path))
        outcome = await scanner.scan(target, timeout=settings.WEB_SCAN_TIMEOUT)
    except DrWebError as exc:
        logger.error(
            "scan aborted file=%s correlation_id=%s error=%s",
            malware.filename,
            correlation_id,
            exc,
        )
        request.state.scan_verdict = "error"
        return JSONResponse(ScanOutcome(error=str(exc)).to_json_dict(), status_code=500)
    finally:
        os.remove(path)

    request.state.scan_verdict = outcome.verdict
    return ScanResponse.from_outcome(outcome)
