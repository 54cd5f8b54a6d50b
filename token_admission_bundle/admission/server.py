# token_admission_bundle/admission/server.py
"""
HTTP surface for the admission pipeline (aiohttp.web).

    POST /add-token          -> AdmissionPipeline.check_rate_limit + admit
    GET  /search?q=&network= -> AdmissionPipeline.search
    POST /submit-whitepaper  -> AdmissionPipeline.submit_whitepaper

AdmissionError subclasses carry their own HTTP status and JSON payload; the
error middleware is the only place they are turned into responses.
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp
from aiohttp import web

from token_admission_bundle.common.constants import LOGGER_NAME

from .errors import AdmissionError, ValidationError
from .models import AdmissionSubmission
from .pipeline import AdmissionPipeline, Settings
from .rate_limiter import client_id_from_headers
from .utils_exec import cfg_get

logger = logging.getLogger(LOGGER_NAME)

PIPELINE_KEY = web.AppKey("pipeline", AdmissionPipeline)


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except AdmissionError as e:
        if e.http_status >= 500:
            logger.error("%s %s failed: %s", request.method, request.path, e.message)
        else:
            logger.info("%s %s rejected (%s): %s", request.method, request.path, e.http_status, e.message)
        return web.json_response(e.to_payload(), status=e.http_status)
    except Exception as e:
        logger.exception("Unhandled error in %s %s", request.method, request.path)
        return web.json_response({"error": f"Unexpected error: {e}"}, status=500)


async def _json_body(request: web.Request) -> Any:
    try:
        return await request.json()
    except ValueError as e:
        raise ValidationError("Request body must be valid JSON.") from e


# =========================
# Handlers
# =========================
async def add_token_handler(request: web.Request) -> web.Response:
    pipeline = request.app[PIPELINE_KEY]
    # malformed bodies still count against the client
    pipeline.check_rate_limit(client_id_from_headers(request.headers))
    body = await _json_body(request)
    return web.json_response(await pipeline.admit(AdmissionSubmission.from_body(body)))


async def search_handler(request: web.Request) -> web.Response:
    pipeline = request.app[PIPELINE_KEY]
    query = request.query.get("q", "")
    network = request.query.get("network") or None
    result = await pipeline.search(query, network)
    return web.json_response(result.to_dict())


async def submit_whitepaper_handler(request: web.Request) -> web.Response:
    pipeline = request.app[PIPELINE_KEY]
    body = await _json_body(request)
    return web.json_response(await pipeline.submit_whitepaper(body))


async def health_handler(request: web.Request) -> web.Response:
    return web.json_response({"ok": True})


# =========================
# App factory
# =========================
def create_app(
    cfg: Optional[Dict[str, Any]] = None,
    *,
    pipeline: Optional[AdmissionPipeline] = None,
) -> web.Application:
    """
    Build the application. With no `pipeline`, settings are read here so a
    missing ingestion credential fails at startup; the pipeline itself is
    built inside the cleanup context around one shared ClientSession.
    """
    cfg = cfg or {}
    settings = None if pipeline is not None else Settings.from_config(cfg)

    app = web.Application(middlewares=[error_middleware])

    async def _pipeline_ctx(app: web.Application) -> AsyncIterator[None]:
        session: Optional[aiohttp.ClientSession] = None
        pl = pipeline
        if pl is None:
            session = aiohttp.ClientSession()
            pl = AdmissionPipeline.from_config(cfg, session=session, settings=settings)
        app[PIPELINE_KEY] = pl
        await pl.start()
        logger.info("Admission service ready")
        try:
            yield
        finally:
            await pl.close()
            if session is not None:
                await session.close()
            logger.info("Admission service stopped")

    app.cleanup_ctx.append(_pipeline_ctx)
    app.router.add_post("/add-token", add_token_handler)
    app.router.add_get("/search", search_handler)
    app.router.add_post("/submit-whitepaper", submit_whitepaper_handler)
    app.router.add_get("/health", health_handler)
    return app


def run(cfg: Dict[str, Any]) -> None:
    host = str(cfg_get(cfg, "server.host"))
    port = int(cfg_get(cfg, "server.port"))
    app = create_app(cfg)
    logger.info("Serving admission API on http://%s:%s", host, port)
    web.run_app(app, host=host, port=port, print=None)
