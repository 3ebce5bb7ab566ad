"""Airdrop Watch HTTP API.

Run:
    python -m airdrop_watch.apps.server --port 3000

Provides:
  GET /fetch-data   -> cached or freshly refreshed airdrop payload
  GET /last-update  -> time of the last successful fetch
  GET /health       -> refresh counters and snapshot age

When the configured static directory exists it is served at '/'.
"""
from __future__ import annotations
import argparse
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from loguru import logger

from airdrop_watch.airdrops.service import AirdropService, RefreshScheduler
from airdrop_watch.core.config import ConfigError, Settings, load_settings
from airdrop_watch.core.timeutils import iso_utc


def error_body(exc: Exception) -> dict:
    return {
        'error': str(exc),
        'details': {
            'type': type(exc).__name__,
            'timestamp': iso_utc(datetime.now(timezone.utc)),
        },
    }


def create_app(service: AirdropService, scheduler: Optional[RefreshScheduler] = None,
               static_dir: Optional[str] = None) -> FastAPI:
    """Build the API around an existing service.

    The scheduler (if any) is started and stopped with the app lifespan, and
    the service's upstream client is closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if scheduler is not None:
            await scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                await scheduler.stop()
            await service.close()

    app = FastAPI(title="Airdrop Watch", lifespan=lifespan)
    app.state.service = service

    @app.get('/fetch-data')
    async def fetch_data():
        try:
            return JSONResponse(await service.get_or_refresh())
        except Exception as e:
            logger.error(f"/fetch-data failed: {e}")
            return JSONResponse(error_body(e), status_code=500)

    @app.get('/last-update')
    def last_update():
        return JSONResponse(service.last_update())

    @app.get('/health')
    def health():
        return JSONResponse(service.health())

    if static_dir and Path(static_dir).is_dir():
        app.mount('/', StaticFiles(directory=static_dir, html=True), name='static')
        logger.info(f"Serving static files from {static_dir}")

    return app


def build_app(settings: Settings) -> FastAPI:
    service = AirdropService(settings)
    scheduler = RefreshScheduler(service)
    return create_app(service, scheduler, static_dir=settings.server.static_dir)


def setup_logging(level: str = "INFO"):
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        colorize=True,
    )


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Airdrop Watch API server")
    ap.add_argument('--config', type=str, default=None, help="Path to settings YAML (defaults + env when omitted)")
    ap.add_argument('--host', type=str, default=None)
    ap.add_argument('--port', type=int, default=None)
    return ap.parse_args(argv)


def main(argv=None):  # pragma: no cover
    import uvicorn
    load_dotenv()
    args = parse_args(argv)
    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        logger.error(f"Failed to start due to configuration error: {e}")
        raise SystemExit(2)
    setup_logging(settings.logging.level)
    host = args.host or settings.server.host
    port = args.port or settings.server.port
    app = build_app(settings)
    logger.info(f"[AirdropWatch] starting on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level='info')


if __name__ == '__main__':  # pragma: no cover
    main()
