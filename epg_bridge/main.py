from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from epg_bridge.config import settings, setup_logging
from epg_bridge.database import close_db, init_db
from epg_bridge.dependencies import build_services
from epg_bridge.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open storage, wire the services and start the refresh schedule"""
    logger.info("Starting EPG Bridge with %s EPG source(s)", len(settings.epg_sources))

    try:
        await init_db()
        services = build_services(settings)
        app.state.services = services
        services.scheduler.start()
    except Exception as e:
        logger.error(f"Failed to start EPG Bridge: {e}", exc_info=True)
        raise

    logger.info("EPG Bridge ready; first request will load the EPG cache")

    yield

    logger.info("Shutting down EPG Bridge...")
    try:
        await services.aclose()
    except Exception as e:
        logger.error(f"Error while closing services: {e}", exc_info=True)
    await close_db()
    logger.info("EPG Bridge stopped")


app = FastAPI(
    title="EPG Bridge",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(main_router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log rejected requests; player query strings are logged without passwords"""
    safe_query = {
        key: ("***" if key == "password" else value)
        for key, value in request.query_params.items()
    }
    logger.warning(
        "Rejected %s %s (query %s): %s",
        request.method,
        request.url.path,
        safe_query,
        exc.errors(),
    )

    errors = [
        {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input", ""))[:100],
        }
        for error in exc.errors()
    ]
    return JSONResponse(status_code=422, content={"detail": errors})
