"""FastAPI application — token endpoint and health check."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import HOST, LOG_DIR, LOG_FILE, LOG_RETENTION_DAYS, PORT, ensure_dirs
from .handler import CredentialHandler

logger = logging.getLogger(__name__)

_FORCE_VALUES = {"1", "yes", "true"}


def parse_force(raw: str | None) -> bool:
    return (raw or "").lower() in _FORCE_VALUES


def _list_log_files() -> list[Path]:
    ensure_dirs()
    files = [p for p in LOG_DIR.glob("server.log*") if p.is_file()]
    return sorted(files, key=lambda p: p.stat().st_mtime, reverse=True)


def _cleanup_old_logs() -> None:
    cutoff_ts = (datetime.now() - timedelta(days=LOG_RETENTION_DAYS)).timestamp()
    for path in _list_log_files():
        if path.stat().st_mtime < cutoff_ts:
            try:
                path.unlink(missing_ok=True)
            except OSError:
                logger.debug("Failed to delete old log file: %s", path)


def configure_logging() -> None:
    ensure_dirs()
    _cleanup_old_logs()
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)

    file_handler = TimedRotatingFileHandler(
        filename=str(LOG_FILE),
        when="midnight",
        interval=1,
        backupCount=LOG_RETENTION_DAYS,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    logging.basicConfig(level=logging.INFO, handlers=[stream_handler, file_handler], force=True)


def create_app(handler: CredentialHandler | None = None, *, warm_up: bool = True) -> FastAPI:
    """Build the app around ``handler`` (a fresh one is made at startup if omitted)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.handler is None:
            app.state.handler = CredentialHandler()
        if warm_up:
            app.state.handler.start()
        try:
            yield
        finally:
            await app.state.handler.shutdown()

    app = FastAPI(title="Spotify Token API", version="0.1.0", lifespan=lifespan)
    app.state.handler = handler

    @app.exception_handler(Exception)
    async def on_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
        return JSONResponse({"error": "Internal Server Error"}, status_code=500)

    @app.get("/spotifytoken")
    async def spotify_token(request: Request, force: str | None = None):
        is_force = parse_force(force)
        ip = request.client.host if request.client else "unknown"
        user_agent = request.headers.get("user-agent", "no ua")
        started = time.monotonic()
        try:
            credential = await request.app.state.handler.request_credential(force=is_force)
            result = JSONResponse(credential.to_payload(), status_code=200)
        except Exception:
            logger.exception("Token request failed")
            result = JSONResponse({}, status_code=500)
        elapsed = (time.monotonic() - started) * 1000
        logger.info(
            "Handled Spotify token request from IP: %s, UA: %s (force: %s) in %dms",
            ip, user_agent, is_force, elapsed,
        )
        return result

    @app.get("/health")
    async def health(request: Request):
        handler = request.app.state.handler
        cached = handler is not None and handler.store.get() is not None
        valid = handler is not None and handler.store.is_valid()
        return {"status": "ok", "cached": cached, "valid": valid}

    return app


app = create_app()


# ── Entrypoint ────────────────────────────────────────────────────────────

def main(host: str = HOST, port: int = PORT) -> None:
    """Start the token server."""
    configure_logging()
    logger.info("Spotify Token API listening on http://%s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level="info", log_config=None)
