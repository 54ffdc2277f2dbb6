"""
firecontrol Daemon - Main Entry Point

Runs the firecontrol HTTP API server (default port 81).

Endpoints:
- GET      /health              - Health check and counters
- GET|POST {endpoint}/add       - Grant a source temporary access to a zone
- GET|POST {endpoint}/list      - Live firewalld summary of a zone
- GET      {endpoint}/grants    - Active grants held by this daemon
- GET      /                    - Test page (only with test=true)
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse

from . import __version__
from .api.access import create_access_router
from .config.settings import Settings, get_settings
from .control_system import FireControl

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("firecontrol.daemon")


def configure_logging(settings: Settings) -> None:
    """``logs`` switches the firecontrol loggers between INFO and WARNING."""
    level = logging.INFO if settings.logs else logging.WARNING
    logging.getLogger("firecontrol").setLevel(level)


def create_app(
    settings: Optional[Settings] = None,
    firecontrol: Optional[FireControl] = None,
) -> FastAPI:
    """Build the FastAPI app around a FireControl service."""
    settings = settings or get_settings()
    firecontrol = firecontrol or FireControl.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("firecontrol daemon starting up...")
        await firecontrol.start()
        try:
            yield
        finally:
            logger.info("firecontrol daemon shutting down...")
            await firecontrol.stop()

    app = FastAPI(
        title="firecontrol",
        description="Temporary firewall access for remote callers",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.firecontrol = firecontrol

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept"],
    )

    app.include_router(create_access_router(settings.endpoint), tags=["access"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "ok",
            "service": "firecontrol",
            "version": __version__,
            "timestamp": datetime.utcnow().isoformat() + "Z",
            **firecontrol.stats(),
        }

    if settings.test:

        @app.get("/", response_class=HTMLResponse)
        async def test_page():
            return "firecontrol seems to be working!"

    return app


# === Main Entry Point ===


def main(settings: Optional[Settings] = None):
    """Run the firecontrol daemon."""
    settings = settings or get_settings()
    configure_logging(settings)

    logger.info(f"Starting firecontrol v{__version__}")
    logger.info(f"   Listening on http://{settings.host}:{settings.port}")
    logger.info(f"   Allowlist record: {settings.folder_path / 'iptable.json'}")
    logger.info(f"   Default zone: {settings.zone or '(none)'}")

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level="info" if settings.logs else "warning",
        access_log=False,
    )


if __name__ == "__main__":
    main()
