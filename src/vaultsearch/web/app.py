"""FastAPI application exposing one semantic index over HTTP."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import PurePosixPath
from typing import Any, List

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from vaultsearch.config import AppConfig
from vaultsearch.errors import IndexUnavailableError, SearchError
from vaultsearch.service import SemanticIndex

LOGGER = logging.getLogger(__name__)


class SearchPayload(BaseModel):
    query: str
    limit: int = 5
    folder: str | None = None
    threshold: float | None = None


class RawSearchPayload(SearchPayload):
    exclude: List[str] = []


class DocumentPayload(BaseModel):
    path: str


def _validate_note_path(raw: str) -> str:
    path = raw.strip().replace("\\", "/")
    if not path or "\0" in path:
        raise HTTPException(status_code=400, detail="Invalid path")
    pure = PurePosixPath(path)
    if pure.is_absolute() or ".." in pure.parts:
        raise HTTPException(status_code=400, detail="Path must be relative to the vault")
    return pure.as_posix()


def _clean_query(payload: SearchPayload) -> tuple[str, int]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")
    return query, max(1, min(payload.limit, 50))


def _index(request: Request) -> SemanticIndex:
    semantic_index: SemanticIndex = request.app.state.semantic_index
    if not semantic_index.is_available:
        raise HTTPException(status_code=503, detail="Semantic index not available")
    return semantic_index


def create_app(
    config: AppConfig | None = None,
    *,
    semantic_index: SemanticIndex | None = None,
) -> FastAPI:
    """Build the app; the index starts with the server and shuts down with it."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
        index = semantic_index or SemanticIndex(config or AppConfig.from_env())
        app.state.semantic_index = index
        index.start()
        try:
            yield
        finally:
            index.shutdown()

    app = FastAPI(title="vaultsearch", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/status")
    async def status(request: Request) -> dict[str, Any]:
        return request.app.state.semantic_index.status()

    @app.post("/search")
    async def search(payload: SearchPayload, request: Request) -> dict[str, str]:
        query, limit = _clean_query(payload)
        semantic_index = _index(request)
        try:
            text = await asyncio.to_thread(
                semantic_index.search,
                query,
                limit=limit,
                folder=payload.folder,
                threshold=payload.threshold,
            )
        except IndexUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        except SearchError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {"result": text}

    @app.post("/search/raw")
    async def search_raw(payload: RawSearchPayload, request: Request) -> dict[str, Any]:
        query, limit = _clean_query(payload)
        semantic_index = _index(request)
        try:
            hits = await asyncio.to_thread(
                semantic_index.search_raw,
                query,
                limit=limit,
                folder=payload.folder,
                threshold=payload.threshold,
                exclude=set(payload.exclude),
            )
        except IndexUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        except SearchError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {"results": [hit.to_dict() for hit in hits]}

    @app.post("/documents/reindex")
    async def reindex_document(payload: DocumentPayload, request: Request) -> dict[str, str]:
        path = _validate_note_path(payload.path)
        semantic_index = _index(request)
        try:
            result = await asyncio.to_thread(semantic_index.reindex_file, path)
        except Exception as exc:
            LOGGER.error("Reindex of %s failed: %s", path, exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return {"status": result, "path": path}

    @app.post("/documents/remove")
    async def remove_document(payload: DocumentPayload, request: Request) -> dict[str, Any]:
        path = _validate_note_path(payload.path)
        semantic_index = _index(request)
        removed = await asyncio.to_thread(semantic_index.remove_file, path)
        return {"status": "ok", "removed": removed, "path": path}

    return app
