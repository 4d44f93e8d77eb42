"""ASGI wiring: one SessionStore per request, cookie applied on the way out."""

from __future__ import annotations

import logging

from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from kvsession.backend import CacheBackend
from kvsession.cookies import CookieTransport
from kvsession.errors import BackendUnavailable
from kvsession.ids import IdGenerator
from kvsession.settings import SessionConfig
from kvsession.store import SessionStore

logger = logging.getLogger(__name__)


class SessionMiddleware(BaseHTTPMiddleware):
    """Attach a lazily materialized session to request.state.session.

    The handler decides whether the session is ever loaded; the middleware
    only finalizes it. Failed requests (5xx) are discarded without writing.
    """

    def __init__(
        self,
        app: ASGIApp,
        backend: CacheBackend,
        config: SessionConfig | None = None,
        id_generator: IdGenerator | None = None,
    ):
        super().__init__(app)
        self.backend = backend
        self.config = config or SessionConfig()
        self.transport = CookieTransport(self.config.cookie)
        self.id_generator = id_generator

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        store = SessionStore(self.backend, self.config, self.id_generator)
        store.resolve(self.transport.extract(request.headers))
        request.state.session = store

        response = await call_next(request)

        if response.status_code >= 500:
            store.discard()
            return response
        try:
            directive = await run_in_threadpool(store.finalize)
        except BackendUnavailable as err:
            logger.error("Session write-through failed: %s", err)
            store.discard()
            return JSONResponse({"detail": "Session backend unavailable"}, status_code=503)
        if directive is not None:
            self.transport.apply(response, directive)
        return response


def get_session(request: Request) -> SessionStore:
    """FastAPI dependency returning the request's SessionStore."""
    store = getattr(request.state, "session", None)
    if store is None:
        raise RuntimeError("SessionMiddleware is not installed on this app")
    return store
