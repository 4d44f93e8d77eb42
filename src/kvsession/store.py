"""Per-request session state machine.

A SessionStore is created for every request and walks through::

    NO_SESSION -> RESOLVED(candidate id) -> MATERIALIZED(id, data)
        -> DESTROYED | rotated | untouched -> FINALIZED

Nothing touches the backend until handler code reads or writes a value, and
nothing reaches the backend or the client until finalize(). A read-only
request never creates server-side or client-side state.

Consistency: instances are never shared between requests. Two concurrent
requests for the same id each load their own copy of the bag and whichever
finalizes last wins. There is no session lock, no distributed lock and no
transaction around churn; the backend ``set`` is the only serialization
point. Every backend call may block on network I/O and no in-process lock is
held across one. Retries, if any, belong to the backend adapter.
"""
from __future__ import annotations

import copy
import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from kvsession.backend import CacheBackend
from kvsession.cookies import CookieDirective
from kvsession.errors import BackendUnavailable, SessionError, SessionNotMaterialized
from kvsession.ids import IdGenerator, TokenIdGenerator
from kvsession.settings import SessionConfig

logger = logging.getLogger(__name__)


class _Unset:
    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()
"""Returned by SessionStore.read for keys that hold no value."""


class SessionState(enum.Enum):
    NO_SESSION = "no_session"
    RESOLVED = "resolved"
    MATERIALIZED = "materialized"
    DESTROYED = "destroyed"
    FINALIZED = "finalized"


@dataclass
class Session:
    """One visitor's session bag.

    is_new marks ids generated in this request; they have no backend entry yet.
    """

    id: str
    data: dict[str, Any] = field(default_factory=dict)
    is_new: bool = False


def encode_data(data: dict[str, Any]) -> str:
    return json.dumps(data, separators=(",", ":"))


def decode_data(raw: str | None) -> dict[str, Any] | None:
    """Decode a stored bag. Corrupt or non-object payloads count as absent."""
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Discarding undecodable session payload")
        return None
    return data if isinstance(data, dict) else None


class SessionStore:
    """Session lifecycle for a single request.

    Args:
        backend: Cache backend holding serialized session bags
        config: TTL, id entropy and cookie policy
        id_generator: Source of new session ids (default: TokenIdGenerator)
    """

    def __init__(
        self,
        backend: CacheBackend,
        config: SessionConfig | None = None,
        id_generator: IdGenerator | None = None,
    ):
        self.backend = backend
        self.config = config or SessionConfig()
        self._ids = id_generator or TokenIdGenerator(self.config.id_bytes)
        self._state = SessionState.NO_SESSION
        self._candidate_id: str | None = None
        self._client_had_cookie = False
        self._session: Session | None = None
        self._dirty = False
        self._destroyed = False
        self._used_ids: set[str] = set()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_id(self) -> str | None:
        """Current id: materialized id, else the unloaded candidate, else None."""
        if self._session is not None:
            return self._session.id
        return self._candidate_id

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def resolve(self, cookie_id: str | None) -> None:
        """Remember the id presented by the visitor. Does not read the backend."""
        self._require_open()
        if self._state is not SessionState.NO_SESSION:
            raise SessionError("Session already resolved for this request")
        if cookie_id:
            self._candidate_id = cookie_id
            self._client_had_cookie = True
            self._used_ids.add(cookie_id)
            self._state = SessionState.RESOLVED

    def _new_id(self) -> str:
        sid = self._ids.new_id()
        while sid in self._used_ids:
            sid = self._ids.new_id()
        self._used_ids.add(sid)
        return sid

    def _fresh(self) -> Session:
        return Session(id=self._new_id(), is_new=True)

    def _materialize(self) -> Session:
        self._require_open()
        if self._state is SessionState.MATERIALIZED:
            return self._session
        if self._state is SessionState.RESOLVED:
            data = decode_data(self.backend.get(self._candidate_id))
            if data is None:
                session = self._fresh()
                logger.info("Session cookie id unknown or expired; using fresh session id")
            else:
                session = Session(id=self._candidate_id, data=data)
            self._candidate_id = None
        else:
            session = self._fresh()
        self._session = session
        self._state = SessionState.MATERIALIZED
        return session

    def load(self) -> Session | None:
        """Materialize the visitor's session if a cookie id was presented."""
        self._require_open()
        if self._state in (SessionState.RESOLVED, SessionState.MATERIALIZED):
            return self._materialize()
        return None

    def read(self, key: str, default: Any = UNSET) -> Any:
        """Return the value stored under key, or default (UNSET) when absent."""
        data = self._materialize().data
        if key not in data:
            return default
        return copy.deepcopy(data[key])

    def write(self, key: str, value: Any) -> None:
        """Store value under key. Persisted at finalize(), not here."""
        try:
            json.dumps(value)
        except (TypeError, ValueError) as err:
            raise TypeError(f"Session value for '{key}' is not JSON-serializable: {err}") from err
        session = self._materialize()
        session.data[key] = copy.deepcopy(value)
        self._dirty = True

    def remove(self, key: str) -> None:
        """Remove key from the bag. Removing an absent key changes nothing."""
        session = self._materialize()
        if key in session.data:
            del session.data[key]
            self._dirty = True

    def dump_session(self) -> dict[str, Any]:
        """Read-only snapshot of the active bag."""
        return copy.deepcopy(self._materialize().data)

    def destroy_session(self) -> None:
        """Delete the current session's entry now. No-op without a session."""
        self._require_open()
        if self._state is SessionState.MATERIALIZED:
            sid = self._session.id
            persisted = not self._session.is_new
        elif self._state is SessionState.RESOLVED:
            sid = self._candidate_id
            persisted = True
        else:
            return
        if persisted:
            self.backend.delete(sid)
        logger.debug("Destroyed session %s", sid[:8])
        self._session = None
        self._candidate_id = None
        self._dirty = False
        self._destroyed = True
        self._state = SessionState.DESTROYED

    def change_session_id(self) -> str:
        """Move the materialized session to a fresh id and return it."""
        self._require_open()
        if self._state is not SessionState.MATERIALIZED:
            raise SessionNotMaterialized(
                "change_session_id() requires a loaded session; read, write or load() first"
            )
        session = self._session
        old_id = session.id
        new_id = self._new_id()
        if not session.is_new:
            self.backend.delete(old_id)
        session.id = new_id
        session.is_new = True
        self._dirty = True
        logger.debug("Rotated session %s -> %s", old_id[:8], new_id[:8])
        return new_id

    def churn(self) -> str:
        """Destroy the current session and start an empty one in its place."""
        self.destroy_session()
        self._session = self._fresh()
        self._state = SessionState.MATERIALIZED
        self._dirty = True
        return self._session.id

    def list_sessions(self) -> list[str]:
        """Ids of live sessions in the backend; empty if it cannot enumerate."""
        try:
            return list(self.backend.list_keys())
        except BackendUnavailable as err:
            logger.warning("Session listing unavailable: %s", err)
            return []

    def finalize(self) -> CookieDirective | None:
        """Write dirty sessions through and decide the response cookie."""
        self._require_open()
        cookie = self.config.cookie
        directive: CookieDirective | None = None
        if self._state is SessionState.MATERIALIZED and self._dirty:
            session = self._session
            self.backend.set(session.id, encode_data(session.data), self.config.ttl)
            logger.debug("Wrote session %s (%d keys)", session.id[:8], len(session.data))
            directive = CookieDirective.set_session(cookie.name, session.id, cookie.max_age)
        elif self._destroyed and self._client_had_cookie:
            directive = CookieDirective.expire(cookie.name)
        self._state = SessionState.FINALIZED
        return directive

    def discard(self) -> None:
        """Abandon in-memory changes; nothing is written and no cookie is sent."""
        self._session = None
        self._candidate_id = None
        self._dirty = False
        self._state = SessionState.FINALIZED

    def _require_open(self) -> None:
        if self._state is SessionState.FINALIZED:
            raise SessionError("Session already finalized for this request")
