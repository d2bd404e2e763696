"""FastAPI application serving the quick search endpoint."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from quicksearch.config import AppConfig
from quicksearch.index.search import Searcher
from quicksearch.index.storage import CacheError
from quicksearch.localization import widget_strings

LOGGER = logging.getLogger(__name__)


class RebuildResponse(BaseModel):
    ok: bool = True
    rebuilt: bool = True


def _get_searcher(request: Request) -> Searcher:
    """Searcher bound to the app, created on first use.

    A cache that cannot be opened is a hard failure (503), never an empty
    result list.
    """
    state = request.app.state
    with state.searcher_lock:
        if state.searcher is None:
            try:
                state.searcher = Searcher.from_config(state.config)
            except CacheError as exc:
                LOGGER.error("Search cache unavailable: %s", exc)
                raise HTTPException(status_code=503, detail=f"Search cache unavailable: {exc}")
        return state.searcher


def create_app(config: AppConfig | None = None, searcher: Searcher | None = None) -> FastAPI:
    app = FastAPI(title="QuickSearch", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.config = config or (searcher.config if searcher else AppConfig.from_env())
    app.state.searcher = searcher
    app.state.searcher_lock = threading.Lock()

    @app.on_event("startup")
    async def startup_event() -> None:
        logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")

    @app.middleware("http")
    async def no_store_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["Cache-Control"] = "no-store"
        response.headers["X-Content-Type-Options"] = "nosniff"
        return response

    @app.get("/search")
    def search_pages(
        request: Request,
        q: str = "",
        ww: bool = False,
        limit: int | None = None,
        debug: str | None = None,
        rebuild: bool = False,
    ) -> Dict[str, Any]:
        searcher = _get_searcher(request)
        if rebuild:
            searcher.rebuild()
            return RebuildResponse().model_dump()

        query = q.strip()
        if debug == "scan":
            stats = searcher.diagnostics(query or "pfblocker")
            return {
                "records_indexed": stats["records_indexed"],
                "sample_matching": stats["sample_matching"],
            }

        if not query:
            return {"items": []}

        items: List[Dict[str, Any]] = [
            item.to_payload()
            for item in searcher.search(query, whole_words=ww, limit=limit)
        ]
        if debug:
            stats = searcher.diagnostics()
            return {
                "items": items,
                "debug": {
                    "records_indexed": stats["records_indexed"],
                    "index_age_sec": stats["index_age_sec"],
                },
            }
        return {"items": items}

    @app.post("/rebuild")
    def rebuild_index(request: Request) -> RebuildResponse:
        _get_searcher(request).rebuild()
        return RebuildResponse()

    @app.get("/diagnostics")
    def diagnostics(
        request: Request, debug_filter: str | None = Query(None, alias="filter")
    ) -> Dict[str, Any]:
        return _get_searcher(request).diagnostics(debug_filter)

    @app.get("/i18n")
    def i18n(request: Request) -> Dict[str, str]:
        return widget_strings(_get_searcher(request).translate)

    return app


app = create_app()
