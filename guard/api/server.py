"""
Portal guard HTTP server.

Every request except the gateway's own health check is handed to the
decision engine, which fetches the origin and decides what the visitor gets.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import Response

from guard.auth.config import load_guard_config
from guard.gateway.engine import GatewayEngine
from guard.gateway.origin import OriginClient

logger = logging.getLogger(__name__)

HEALTHZ_PATH = "/__guard/healthz"
_PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

_engine: Optional[GatewayEngine] = None
_engine_lock: Optional[asyncio.Lock] = None


async def _get_engine() -> GatewayEngine:
    """
    Return the process-wide engine, creating it (and its origin connection pool) on first use.
    """
    global _engine, _engine_lock
    if _engine is not None:
        return _engine
    if _engine_lock is None:
        _engine_lock = asyncio.Lock()
    async with _engine_lock:
        if _engine is not None:
            return _engine
        cfg = load_guard_config()
        if not cfg.origin_url:
            raise HTTPException(status_code=500, detail="GUARD_ORIGIN_URL is required")
        _engine = GatewayEngine(cfg, OriginClient(cfg.origin_url))
        logger.info(
            "Gateway engine ready: origin=%s login_location=%s omit_restricted=%s inject_reload=%s",
            cfg.origin_url,
            cfg.login_location,
            cfg.omit_restricted,
            cfg.inject_reload,
        )
        return _engine


app = FastAPI(title="Portal guard gateway")


@app.on_event("startup")
def _startup_configure_logging() -> None:
    cfg = load_guard_config()
    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    if not cfg.jwt_secret:
        logger.warning("FX_JWT_SECRET is not set: every visitor will be treated as anonymous")


@app.on_event("shutdown")
async def _shutdown_close_origin() -> None:
    global _engine
    if _engine is not None:
        await _engine.origin.aclose()
        _engine = None


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming HTTP requests."""
    start_time = time.time()
    logger.debug("%s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
        raise


@app.get(HEALTHZ_PATH)
def healthz() -> Dict[str, Any]:
    return {"ok": True}


@app.api_route("/{path:path}", methods=_PROXY_METHODS)
async def guard_proxy(request: Request, path: str) -> Response:
    engine = await _get_engine()
    return await engine.handle(request)
