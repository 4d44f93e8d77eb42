"""Web app construction helpers."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from kvsession.backend import CacheBackend, create_cache_backend
from kvsession.errors import BackendUnavailable, SessionNotMaterialized
from kvsession.ids import IdGenerator
from kvsession.middleware import SessionMiddleware, get_session
from kvsession.settings import Settings, load_settings
from kvsession.store import UNSET, SessionStore

_READY_PROBE_KEY = "__kvsession_ready__"


class ValueBody(BaseModel):
    value: Any = None


def session_router() -> APIRouter:
    """Routes exercising the full session lifecycle over HTTP."""
    router = APIRouter()

    @router.get("/session")
    def dump_session(store: SessionStore = Depends(get_session)) -> dict[str, Any]:
        data = store.dump_session()
        return {"session_id": store.session_id, "data": data}

    @router.get("/sessions")
    def list_sessions(store: SessionStore = Depends(get_session)) -> dict[str, Any]:
        return {"sessions": store.list_sessions()}

    @router.post("/session/destroy")
    def destroy_session(store: SessionStore = Depends(get_session)) -> dict[str, bool]:
        store.destroy_session()
        return {"destroyed": True}

    @router.post("/session/rotate")
    def rotate_session(store: SessionStore = Depends(get_session)) -> dict[str, str]:
        store.load()
        return {"session_id": store.change_session_id()}

    @router.post("/session/churn")
    def churn_session(store: SessionStore = Depends(get_session)) -> dict[str, str]:
        return {"session_id": store.churn()}

    @router.get("/session/{key}")
    def read_value(key: str, store: SessionStore = Depends(get_session)) -> dict[str, Any]:
        value = store.read(key)
        if value is UNSET:
            return {"key": key, "present": False, "value": None}
        return {"key": key, "present": True, "value": value}

    @router.put("/session/{key}")
    def write_value(key: str, body: ValueBody, store: SessionStore = Depends(get_session)) -> dict[str, Any]:
        store.write(key, body.value)
        return {"key": key, "value": body.value}

    @router.delete("/session/{key}")
    def remove_value(key: str, store: SessionStore = Depends(get_session)) -> dict[str, str]:
        store.remove(key)
        return {"key": key}

    return router


def build_web_app(
    settings: Settings | None = None,
    backend: CacheBackend | None = None,
    id_generator: IdGenerator | None = None,
) -> FastAPI:
    """Return the session-enabled ASGI app.

    The backend is injected when given (tests pass a MemoryCacheBackend);
    otherwise it is built from settings.backend.
    """
    if settings is None:
        settings = load_settings()
    if backend is None:
        backend = create_cache_backend(settings.backend)

    app = FastAPI(title="kvsession web API")
    app.add_middleware(
        SessionMiddleware,
        backend=backend,
        config=settings.session,
        id_generator=id_generator,
    )

    @app.exception_handler(BackendUnavailable)
    async def backend_unavailable(_request: Request, exc: BackendUnavailable) -> JSONResponse:
        return JSONResponse({"detail": str(exc)}, status_code=503)

    @app.exception_handler(SessionNotMaterialized)
    async def session_missing(_request: Request, exc: SessionNotMaterialized) -> JSONResponse:
        return JSONResponse({"detail": str(exc)}, status_code=409)

    health_router = APIRouter()

    @health_router.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @health_router.get("/ready")
    def ready():
        try:
            backend.get(_READY_PROBE_KEY)
            backend_ok = True
        except BackendUnavailable:
            backend_ok = False
        payload = {"ready": backend_ok, "backend_ok": backend_ok, "store": settings.backend.store}
        return JSONResponse(payload, status_code=200 if backend_ok else 503)

    app.include_router(health_router)
    app.include_router(session_router())
    return app
