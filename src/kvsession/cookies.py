"""Translation between request/response cookies and session ids."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from starlette.requests import cookie_parser
from starlette.responses import Response

from kvsession.settings import CookieConfig

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class CookieDirective:
    """What Set-Cookie, if any, a response should carry.

    expires of None means a browser-session cookie; a past expires asks the
    browser to drop the cookie now.
    """
    name: str
    value: str
    expires: datetime | None = None
    max_age: int | None = None

    @property
    def is_deletion(self) -> bool:
        return self.expires is not None and self.expires <= datetime.now(timezone.utc)

    @classmethod
    def set_session(cls, name: str, session_id: str, max_age: int | None = None) -> CookieDirective:
        if max_age:
            expires = datetime.now(timezone.utc) + timedelta(seconds=max_age)
            return cls(name=name, value=session_id, expires=expires, max_age=max_age)
        return cls(name=name, value=session_id)

    @classmethod
    def expire(cls, name: str) -> CookieDirective:
        return cls(name=name, value="", expires=EPOCH, max_age=0)


class CookieTransport:
    """Reads the session cookie from requests and writes directives to responses."""

    def __init__(self, config: CookieConfig | None = None):
        self.config = config or CookieConfig()

    def extract(self, headers: Mapping[str, str]) -> str | None:
        """Return the session id carried by the request's Cookie header, if any."""
        raw = headers.get("cookie")
        if not raw:
            return None
        value = cookie_parser(raw).get(self.config.name, "").strip()
        return value or None

    def apply(self, response: Response, directive: CookieDirective) -> None:
        """Emit the directive as a single Set-Cookie header."""
        response.set_cookie(
            key=directive.name,
            value=directive.value,
            max_age=directive.max_age,
            expires=directive.expires,
            path=self.config.path,
            domain=self.config.domain,
            secure=self.config.secure,
            httponly=self.config.httponly,
            samesite=self.config.samesite,
        )
