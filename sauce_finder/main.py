"""Anime Sauce Finder — FastAPI application entry point.

Provides /api/search (file upload or image URL), cancellation, metrics and
history endpoints on top of the search router.
"""

import asyncio
import hashlib
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import BackgroundTasks, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from sauce_finder.config import settings
from sauce_finder.errors import Cancelled, SearchError, ValidationRejected
from sauce_finder.orchestrator.router import SearchRouter
from sauce_finder.orchestrator.schemas import FileSource, UrlSource
from sauce_finder.services.cache import run_cache_maintenance
from sauce_finder.services.history import DatabaseHistoryStore, MemoryHistoryStore, SearchHistoryLog
from sauce_finder.utils.formatting import describe_error

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
)
logger = logging.getLogger("sauce_finder")

search_router = SearchRouter()
history_log = SearchHistoryLog(MemoryHistoryStore())


# ═══════════════ LIFESPAN ═══════════════

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Sauce Finder starting | service=%s", settings.trace_moe_base_url)

    db_ok = False
    if settings.uses_database_history:
        from sauce_finder.database import init_db
        db_ok = await init_db()
        if db_ok:
            history_log.store = DatabaseHistoryStore()
    logger.info("History: %s", "database" if db_ok else "in-memory")

    sweeper = asyncio.create_task(run_cache_maintenance(search_router.cache))

    yield

    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper
    search_router.metrics.log_summary()
    if db_ok:
        from sauce_finder.database import close_db
        await close_db()
    logger.info("Sauce Finder shutting down")


# ═══════════════ APP ═══════════════

app = FastAPI(
    title="Anime Sauce Finder API",
    description="Find the anime scene an image came from",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["POST", "DELETE", "OPTIONS", "GET"],
    allow_headers=["Content-Type", "X-Client-Id"],
)


def _client_slot(request: Request) -> str:
    """Slot id: explicit X-Client-Id, else a hash of the caller's IP."""
    client_id = request.headers.get("x-client-id", "").strip()
    if client_id:
        return client_id
    client_ip = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"
    return hashlib.sha256(client_ip.encode()).hexdigest()


# ═══════════════ ENDPOINTS ═══════════════

@app.get("/health")
async def health():
    return {
        "status": "ok",
        "service": settings.trace_moe_base_url,
        "cache_size": len(search_router.cache),
    }


@app.post("/api/search")
async def search(
    request: Request,
    background_tasks: BackgroundTasks,
    image: UploadFile | None = File(None),
    url: str | None = Form(None),
):
    """Search by uploaded image (field `image`) or by image URL (field `url`)."""
    try:
        if image is not None:
            data = await image.read()
            source = FileSource(
                data=data,
                mime_type=image.content_type or "",
                file_name=image.filename or "image",
            )
        elif url and url.strip():
            source = UrlSource(url=url)
        else:
            return JSONResponse(
                status_code=400,
                content={"error": "Please upload an image or provide an image URL."},
            )
    except ValidationError:
        return JSONResponse(status_code=400, content={"error": "Please provide a valid image URL."})

    slot_id = _client_slot(request)

    try:
        outcome = await search_router.route(source, slot_id=slot_id)
    except ValidationRejected as e:
        return JSONResponse(status_code=422, content={"error": e.reason, "warnings": e.warnings})
    except Cancelled:
        return JSONResponse(status_code=409, content={"error": "Search was cancelled"})
    except SearchError as e:
        return JSONResponse(
            status_code=502,
            content={"error": describe_error(e), "attempts": e.attempts, "status": e.status_code},
        )

    background_tasks.add_task(history_log.record, source, outcome.results)

    response_data = outcome.model_dump()
    response_data["_pipeline"] = {"ms": outcome.search_time_ms, "cache_hit": outcome.cache_hit}
    return JSONResponse(content=response_data)


@app.delete("/api/search")
async def cancel_search(request: Request):
    """Cancel the caller's running search, if any."""
    return {"cancelled": search_router.cancel(_client_slot(request))}


@app.get("/api/metrics")
async def metrics():
    snapshot = search_router.metrics.snapshot().model_dump()
    snapshot["cache_size"] = len(search_router.cache)
    return snapshot


@app.get("/api/history")
async def history():
    entries = await history_log.recent()
    return {"items": [e.model_dump(mode="json") for e in entries], "total": len(entries)}


@app.delete("/api/history")
async def clear_history():
    cleared = await history_log.clear()
    if not cleared:
        return JSONResponse(status_code=503, content={"error": "History could not be cleared", "cleared": False})
    return {"cleared": True}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("sauce_finder.main:app", host=settings.host, port=settings.port)
