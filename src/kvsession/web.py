"""Web entry point for `kvsession serve`.

Exposes `app` for uvicorn so the server works regardless of working directory.
"""
from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv

# Load .env early so SESSION_* overrides are visible to load_settings()
_env_candidates = [
    Path.cwd() / ".env",
    Path(__file__).resolve().parent.parent.parent / ".env",  # project root when dev
]
for _p in _env_candidates:
    if _p.exists():
        load_dotenv(_p, override=True)
        break
else:
    load_dotenv(override=True)

from kvsession.api import build_web_app  # noqa: E402
from kvsession.settings import load_settings  # noqa: E402

APP_SETTINGS = load_settings()
logging.basicConfig(
    level=getattr(logging, APP_SETTINGS.log_level, logging.INFO),
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)

app = build_web_app(APP_SETTINGS)
