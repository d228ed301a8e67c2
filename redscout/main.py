"""RedScout Backend — FastAPI application entry point.

Provides plain keyword search, AI-assisted context search, discussion
excerpts and content ideas over Reddit's public search index.
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from redscout.config import settings
from redscout.errors import AdmissionDeniedError, ConfigurationMissingError, ScoutError
from redscout.orchestrator.router import SearchService
from redscout.orchestrator.schemas import (
    AnalyzeRequest,
    ContextSearchRequest,
    DiscussionRequest,
    PlainSearchRequest,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
)
logger = logging.getLogger("redscout")


def client_identity(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer."""
    client_ip = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"
    return client_ip


def error_response(e: ScoutError) -> JSONResponse:
    """Map a service error onto an HTTP response the frontend can act on."""
    if isinstance(e, AdmissionDeniedError):
        retry_seconds = max(1, -(-e.retry_after_ms // 1000))
        return JSONResponse(
            status_code=429,
            headers={"Retry-After": str(retry_seconds)},
            content={
                "error": "Too many requests. Please wait a moment and try again.",
                "kind": e.kind,
                "retry_after_ms": e.retry_after_ms,
            },
        )
    if isinstance(e, ConfigurationMissingError):
        return JSONResponse(
            status_code=503,
            content={
                "error": "AI features are not configured: set ANTHROPIC_API_KEY on the server.",
                "kind": e.kind,
                "retryable": False,
            },
        )
    return JSONResponse(
        status_code=502,
        content={
            "error": "Search could not be completed. Please try again.",
            "kind": e.kind,
            "retryable": True,
        },
    )


def internal_error_response() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "error": "Something went wrong. Please try again later.",
            "kind": "internal_error",
            "retryable": True,
        },
    )


def create_app(service: SearchService | None = None) -> FastAPI:
    search_service = service if service is not None else SearchService()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("RedScout backend starting | has_anthropic=%s", settings.has_anthropic_key)
        search_service.start()
        yield
        await search_service.stop()
        logger.info("RedScout backend shutting down")

    app = FastAPI(
        title="RedScout API",
        description="Reddit keyword and context search API",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.search_service = search_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["POST", "OPTIONS", "GET"],
        allow_headers=["Content-Type"],
    )

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "has_anthropic": settings.has_anthropic_key,
            "cache_entries": len(search_service.cache),
            "tracked_clients": len(search_service.rate_limiter),
        }

    @app.get("/api/search")
    async def search(request: Request):
        """Plain keyword search — cached for ``cache_ttl_seconds``."""
        try:
            params = {k: v for k, v in request.query_params.items() if v}
            search_req = PlainSearchRequest(**params)
        except ValidationError as e:
            return JSONResponse(
                status_code=400,
                content={"error": "Invalid search parameters.", "details": _error_fields(e)},
            )

        client_ip = client_identity(request)
        start = time.monotonic()
        try:
            result = await search_service.search_plain(
                search_req.keywords, search_req.sort, search_req.time, client_id=client_ip,
            )
        except ScoutError as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning("Search failed | kind=%s | %dms | %s", e.kind, elapsed_ms, e.message[:200])
            return error_response(e)
        except Exception as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.error("Search failed | %dms | %s", elapsed_ms, str(e)[:300])
            return internal_error_response()

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Search completed | posts=%d | cached=%s | %dms | ip=%s",
            result.total_results, result.cached, elapsed_ms, client_ip,
        )
        return JSONResponse(content=result.model_dump(mode="json", exclude_none=True))

    @app.post("/api/context/search")
    async def context_search(request: Request):
        """AI-assisted search: plan queries, fan out, filter by relevance."""
        body = await _json_body(request)
        if body is None:
            return JSONResponse(status_code=400, content={"error": "Invalid request format."})
        try:
            search_req = ContextSearchRequest(**body)
        except ValidationError as e:
            return JSONResponse(
                status_code=400,
                content={"error": "Invalid search parameters.", "details": _error_fields(e)},
            )

        client_ip = client_identity(request)
        start = time.monotonic()
        try:
            result = await search_service.search_with_context(
                search_req.query, search_req.sort, search_req.time, client_id=client_ip,
            )
        except ScoutError as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.error("Context search failed | kind=%s | %dms | %s", e.kind, elapsed_ms, e.message[:200])
            return error_response(e)
        except Exception as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.error("Context search failed | %dms | %s", elapsed_ms, str(e)[:300])
            return internal_error_response()

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Context search completed | posts=%d | %dms | ip=%s",
            len(result.posts), elapsed_ms, client_ip,
        )
        return JSONResponse(content=result.model_dump(mode="json", exclude_none=True))

    @app.post("/api/discussions")
    async def discussions(request: Request):
        """Top-level replies for a handful of posts."""
        body = await _json_body(request)
        if body is None:
            return JSONResponse(status_code=400, content={"error": "Invalid request format."})
        try:
            discussion_req = DiscussionRequest(**body)
        except ValidationError as e:
            return JSONResponse(
                status_code=400,
                content={"error": "Invalid request.", "details": _error_fields(e)},
            )

        try:
            result = await search_service.fetch_discussions(
                discussion_req.permalinks, client_id=client_identity(request),
            )
        except ScoutError as e:
            return error_response(e)
        except Exception as e:
            logger.error("Discussions failed | %s", str(e)[:300])
            return internal_error_response()
        return JSONResponse(content=result.model_dump(mode="json"))

    @app.post("/api/analyze")
    async def analyze(request: Request):
        """Content ideas from the selected posts and their top replies."""
        body = await _json_body(request)
        if body is None:
            return JSONResponse(status_code=400, content={"error": "Invalid posts data provided."})
        try:
            analyze_req = AnalyzeRequest(**body)
        except ValidationError as e:
            return JSONResponse(
                status_code=400,
                content={"error": "Invalid posts data provided.", "details": _error_fields(e)},
            )

        client_ip = client_identity(request)
        start = time.monotonic()
        try:
            result = await search_service.analyze(analyze_req.posts, client_id=client_ip)
        except ScoutError as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.error("Analyze failed | kind=%s | %dms | %s", e.kind, elapsed_ms, e.message[:200])
            return error_response(e)
        except Exception as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.error("Analyze failed | %dms | %s", elapsed_ms, str(e)[:300])
            return internal_error_response()

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Analyze completed | posts=%d | ideas=%d | %dms | ip=%s",
            result.analyzed_posts, len(result.ideas), elapsed_ms, client_ip,
        )
        return JSONResponse(content=result.model_dump(mode="json"))

    return app


async def _json_body(request: Request) -> dict | None:
    try:
        body = await request.json()
    except Exception:
        return None
    return body if isinstance(body, dict) else None


def _error_fields(e: ValidationError) -> list[str]:
    return [".".join(str(p) for p in err["loc"]) for err in e.errors()]


app = create_app()


def run():
    """Entry point for the ``redscout`` console script."""
    import uvicorn

    uvicorn.run("redscout.main:app", host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    run()
