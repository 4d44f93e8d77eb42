"""kvsession — server-side sessions over an expiring key-value cache.

File guide
----------
settings.py           Configuration (kvsession.yaml, env vars)
ids.py                Session id generation
backend.py            CacheBackend protocol + factory
backends/             Memory (cachetools), Redis and SQL adapters
store.py              Per-request session state machine (SessionStore)
cookies.py            Cookie extraction / Set-Cookie directives
middleware.py         Starlette middleware + FastAPI dependency
api.py                FastAPI app with session routes
web.py                uvicorn entry point (`kvsession serve`)
cli.py                Admin CLI (list, show, delete, validate, serve)

Public API
----------
- ``SessionStore``        — lifecycle for one request
- ``create_cache_backend`` — backend from BackendConfig
- ``kvsession.middleware.SessionMiddleware`` — ASGI integration
- ``build_web_app``       — FastAPI app with session routes
"""

from kvsession.backend import CacheBackend, create_cache_backend
from kvsession.cookies import CookieDirective, CookieTransport
from kvsession.errors import BackendUnavailable, SessionError, SessionNotMaterialized
from kvsession.store import UNSET, Session, SessionState, SessionStore


def build_web_app(*args, **kwargs):  # noqa: D103
    from kvsession.api import build_web_app as _build
    return _build(*args, **kwargs)


__all__ = [
    "UNSET",
    "BackendUnavailable",
    "CacheBackend",
    "CookieDirective",
    "CookieTransport",
    "Session",
    "SessionError",
    "SessionNotMaterialized",
    "SessionState",
    "SessionStore",
    "build_web_app",
    "create_cache_backend",
]
