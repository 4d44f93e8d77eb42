"""Session identifier generation."""

from __future__ import annotations

import secrets
from typing import Protocol


class IdGenerator(Protocol):
    """Interface for session identifier sources."""

    def new_id(self) -> str:
        """Return a fresh, unguessable session identifier."""
        ...


class TokenIdGenerator:
    """URL-safe random tokens from the OS CSPRNG.

    32 bytes of entropy give a 43 character id; collisions are negligible for
    any realistic keyspace, and ids carry no relation to each other.
    """

    def __init__(self, nbytes: int = 32):
        if nbytes < 16:
            raise ValueError("Session ids need at least 16 bytes of entropy")
        self._nbytes = nbytes

    def new_id(self) -> str:
        return secrets.token_urlsafe(self._nbytes)
