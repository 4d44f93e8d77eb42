"""Configuration for kvsession.

Loads configuration from:
1. kvsession.yaml (backend, session and cookie policy)
2. Environment variables (.env)

Precedence for every field: env vars > kvsession.yaml > defaults.

Example kvsession.yaml::

    backend:
      store: redis
      url: redis://localhost:6379/0
      key_prefix: "kvsession:session:"
    session:
      ttl: 3600
      cookie:
        name: sid
        secure: true
        samesite: lax
    log_level: INFO
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

STORE_TYPES = {"memory", "redis", "sql", "postgres"}
SAMESITE_VALUES = {"lax", "strict", "none"}


@dataclass(frozen=True)
class BackendConfig:
    """Cache backend selection and connection settings."""
    store: str = "memory"  # "memory", "redis" or "sql" ("postgres" is an alias)
    url: str = "redis://localhost:6379"  # redis URL, or SQLAlchemy URL for sql
    maxsize: int = 10000  # Max entries for memory store
    schema: str = "kvsession"  # SQL schema (postgres only)
    key_prefix: str = "kvsession:session:"  # Redis key namespace
    socket_timeout: float = 2.0  # Seconds before a redis call counts as unavailable


@dataclass(frozen=True)
class CookieConfig:
    """Session cookie policy.

    max_age of None issues a browser-session cookie (no Expires attribute).
    """
    name: str = "sid"
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "lax"
    max_age: int | None = None


@dataclass(frozen=True)
class SessionConfig:
    """Session lifecycle configuration passed to every SessionStore."""
    ttl: int = 3600  # CacheEntry TTL in seconds
    id_bytes: int = 32  # Entropy per generated session id
    cookie: CookieConfig = field(default_factory=CookieConfig)


@dataclass(frozen=True)
class Settings:
    """Complete kvsession configuration."""
    project_root: Path
    backend: BackendConfig
    session: SessionConfig
    log_level: str = "INFO"


def _find_project_root() -> Path:
    """Find project root by looking for kvsession.yaml or a .env file."""
    current = Path.cwd().resolve()

    for path in [current] + list(current.parents):
        if (path / "kvsession.yaml").exists():
            return path
        if (path / ".env").exists():
            return path

    return current


def _load_yaml_config(path: Path) -> dict[str, Any]:
    """Load and parse YAML config file."""
    if not path.exists():
        return {}

    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _int_with_default(value: Any, default: int) -> int:
    """Parse int values safely with fallback."""
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _float_with_default(value: Any, default: float) -> float:
    """Parse float values safely with fallback."""
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _bool_value(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _resolve_backend_url(store: str, backend_cfg: dict[str, Any]) -> str:
    if store in {"sql", "postgres"}:
        url = os.getenv("SESSION_URL") or os.getenv("POSTGRES_URL") or backend_cfg.get("url") or ""
        url = str(url).strip()
        if not url or url.startswith("${"):
            raise ValueError(
                "SQL session backend requires POSTGRES_URL. "
                "Set it in .env or backend.url in kvsession.yaml."
            )
        return url
    return str(
        os.getenv("SESSION_URL")
        or os.getenv("REDIS_URL")
        or backend_cfg.get("url")
        or "redis://localhost:6379"
    )


def load_settings() -> Settings:
    """Load kvsession configuration.

    Process:
    1. Find project root
    2. Load .env file
    3. Load kvsession.yaml (if exists)
    4. Apply env overrides and validate
    5. Build Settings object
    """
    # 1. Find project root
    project_root = _find_project_root()

    # 2. Load .env file
    env_file = project_root / ".env"
    if env_file.exists():
        load_dotenv(env_file)

    # 3. Load kvsession.yaml
    config = _load_yaml_config(project_root / "kvsession.yaml")

    # 4. Parse backend config
    backend_cfg = config.get("backend") or {}
    store = str(os.getenv("SESSION_STORE") or backend_cfg.get("store") or "memory").strip().lower()
    if store not in STORE_TYPES:
        raise ValueError(
            f"Unknown session store '{store}'. Expected one of: {', '.join(sorted(STORE_TYPES))}"
        )
    backend = BackendConfig(
        store="sql" if store == "postgres" else store,
        url=_resolve_backend_url(store, backend_cfg),
        maxsize=_int_with_default(os.getenv("SESSION_MAXSIZE"), _int_with_default(backend_cfg.get("maxsize"), 10000)),
        schema=str(os.getenv("SESSION_SCHEMA") or backend_cfg.get("schema") or "kvsession"),
        key_prefix=str(backend_cfg.get("key_prefix") or "kvsession:session:"),
        socket_timeout=_float_with_default(backend_cfg.get("socket_timeout"), 2.0),
    )

    # 5. Parse session + cookie config
    session_cfg = config.get("session") or {}
    cookie_cfg = session_cfg.get("cookie") or {}
    samesite = str(cookie_cfg.get("samesite") or "lax").strip().lower()
    if samesite not in SAMESITE_VALUES:
        raise ValueError(f"cookie.samesite must be one of lax, strict, none (got '{samesite}')")
    cookie = CookieConfig(
        name=str(os.getenv("SESSION_COOKIE_NAME") or cookie_cfg.get("name") or "sid"),
        path=str(cookie_cfg.get("path") or "/"),
        domain=cookie_cfg.get("domain") or None,
        secure=_bool_value(os.getenv("SESSION_COOKIE_SECURE"), _bool_value(cookie_cfg.get("secure"), False)),
        httponly=_bool_value(cookie_cfg.get("httponly"), True),
        samesite=samesite,
        max_age=_int_with_default(cookie_cfg.get("max_age"), 0) or None,  # 0 / unset = session cookie
    )
    session = SessionConfig(
        ttl=_int_with_default(os.getenv("SESSION_TTL"), _int_with_default(session_cfg.get("ttl"), 3600)),
        id_bytes=_int_with_default(session_cfg.get("id_bytes"), 32),
        cookie=cookie,
    )

    # Guardrails for production deployments.
    env_name = str(os.getenv("KVSESSION_ENV", "")).strip().lower()
    if env_name in {"prod", "production"} and not cookie.secure:
        raise RuntimeError(
            "KVSESSION_ENV=production requires session.cookie.secure: true in kvsession.yaml "
            "(or SESSION_COOKIE_SECURE=1)."
        )

    return Settings(
        project_root=project_root,
        backend=backend,
        session=session,
        log_level=str(os.getenv("LOG_LEVEL") or config.get("log_level") or "INFO").upper(),
    )
