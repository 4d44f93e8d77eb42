"""Exceptions raised by the session layer."""

from __future__ import annotations


class SessionError(Exception):
    """Base class for session errors."""


class BackendUnavailable(SessionError):
    """The cache backend could not be reached (connection failure or timeout).

    Never converted into an absent result: callers either fail the request
    or retry at the adapter level.
    """


class SessionNotMaterialized(SessionError):
    """An operation needs a loaded session and none exists in this request."""
