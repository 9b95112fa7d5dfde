from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, StrictStr

from hmem import __version__
from hmem.config import RelevancePolicy, ServerSettings, StoreSettings
from hmem.core import MemoryStore
from hmem.errors import ValidationError
from hmem.metrics import LAT, mark
from hmem.models import MemoryEntry
from hmem.vectorize import build_embedder

logger = logging.getLogger(__name__)

AUTH_HEADER = "X-Auth"
OPEN_PATHS = ("/health", "/metrics")
DEFAULT_K = 5


class AddRequest(BaseModel):
    role: StrictStr
    content: StrictStr


class EntryOut(BaseModel):
    id: int
    timestamp: str
    role: str
    content: str


class StatusOut(BaseModel):
    status: str
    message: str


def build_store(server: Optional[ServerSettings] = None) -> MemoryStore:
    server = server or ServerSettings.from_env()
    settings = StoreSettings.from_env()
    embedder = build_embedder(server.embedder, dim=settings.dimension, model_name=server.model_name)
    store = MemoryStore(embedder, settings=settings, policy=RelevancePolicy.from_env())
    try:
        store.warm_up()
    except Exception:
        logger.exception("Embedding model failed to load; new turns stay unindexed until it does")
    return store


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "error", "message": message})


def _parse_int(raw: str, name: str, minimum: int, expected: str) -> int:
    # plain ASCII digits only; int() would also take " 5", "+5" and "5_0"
    if not (raw.isascii() and raw.isdigit()):
        raise ValidationError(f"Invalid '{name}' parameter: must be {expected}")
    value = int(raw)
    if value < minimum:
        raise ValidationError(f"Invalid '{name}' parameter: must be {expected}")
    return value


def _entries_out(entries: List[MemoryEntry]) -> List[EntryOut]:
    return [EntryOut(**e.to_dict()) for e in entries]


def create_app(store: Optional[MemoryStore] = None, auth_token: Optional[str] = None) -> FastAPI:
    """
    Build the HTTP surface. When no store is passed one is built from HMEM_*
    environment variables and closed (with a final flush) on shutdown.
    """
    server = ServerSettings.from_env()
    token = auth_token if auth_token is not None else server.auth_token
    owns_store = store is None
    mem = store if store is not None else build_store(server)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_store:
            mem.close()

    app = FastAPI(
        title="hmem",
        description="Hybrid conversational memory: short-term recall plus semantic recall.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.store = mem

    @app.middleware("http")
    async def require_token(request: Request, call_next):
        if request.url.path not in OPEN_PATHS and request.headers.get(AUTH_HEADER) != token:
            return _error(401, "unauthorized")
        return await call_next(request)

    @app.exception_handler(RequestValidationError)
    async def on_request_validation(request: Request, exc: RequestValidationError):
        if any(err.get("type") == "json_invalid" for err in exc.errors()):
            return _error(400, "Invalid JSON")
        return _error(400, "Invalid request body: 'role' and 'content' required")

    @app.exception_handler(ValidationError)
    async def on_validation(request: Request, exc: ValidationError):
        return _error(400, str(exc))

    @app.post("/memory/add", response_model=StatusOut)
    def add(req: AddRequest):
        mark("add")
        t0 = time.perf_counter()
        try:
            mem.add(req.role, req.content)
            return StatusOut(status="success", message="Memory entry added")
        finally:
            LAT.labels(endpoint="add").observe((time.perf_counter() - t0) * 1000.0)

    @app.get("/memory/retrieve/recent", response_model=List[EntryOut])
    def recent(last: Optional[str] = None):
        mark("recent")
        t0 = time.perf_counter()
        try:
            if last is None:
                n = mem.short_term_size
            else:
                n = _parse_int(last, "last", 0, "a non-negative integer")
            return _entries_out(mem.retrieve_recent(n))
        finally:
            LAT.labels(endpoint="recent").observe((time.perf_counter() - t0) * 1000.0)

    @app.get("/memory/retrieve/semantic", response_model=List[EntryOut])
    def semantic(query: Optional[str] = None, k: Optional[str] = None):
        mark("semantic")
        t0 = time.perf_counter()
        try:
            if query is None:
                raise ValidationError("Missing 'query' parameter")
            kk = DEFAULT_K if k is None else _parse_int(k, "k", 1, "a positive integer")
            return _entries_out(mem.retrieve_relevant(query, kk))
        finally:
            LAT.labels(endpoint="semantic").observe((time.perf_counter() - t0) * 1000.0)

    @app.get("/health")
    def health():
        return {"status": "ok", "version": __version__, **mem.stats()}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
