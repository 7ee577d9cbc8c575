import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from drwebguard import __version__
from drwebguard.api.middleware.logging import RequestLoggingMiddleware
from drwebguard.api.routes.scan import router as scan_router
from drwebguard.config import get_settings

logging.basicConfig(
    level=get_settings().LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="drwebguard",
    description="Malice Dr.WEB AntiVirus Plugin",
    version=__version__,
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(scan_router)
app.mount("/metrics", make_asgi_app())


@app.get("/healthz", tags=["health"])
async def health_check() -> JSONResponse:
    return JSONResponse({"status": "ok"})


@app.on_event("startup")
async def startup_event() -> None:
    settings = get_settings()
    logger.info(
        "web service listening on port :%d plugin=drweb category=av", settings.WEB_PORT
    )
