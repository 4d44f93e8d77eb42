from __future__ import annotations

import itertools

import pytest

from kvsession.backends.memory import MemoryCacheBackend
from kvsession.errors import BackendUnavailable, SessionError, SessionNotMaterialized
from kvsession.settings import CookieConfig, SessionConfig
from kvsession.store import UNSET, SessionState, SessionStore, decode_data, encode_data


class _SeqIds:
    def __init__(self, prefix: str = "sid"):
        self._counter = itertools.count(1)
        self._prefix = prefix

    def new_id(self) -> str:
        return f"{self._prefix}{next(self._counter)}"


class _RecordingBackend(MemoryCacheBackend):
    def __init__(self):
        super().__init__(maxsize=100)
        self.calls: list[tuple[str, str]] = []

    def get(self, key):
        self.calls.append(("get", key))
        return super().get(key)

    def set(self, key, value, ttl):
        self.calls.append(("set", key))
        super().set(key, value, ttl)

    def delete(self, key):
        self.calls.append(("delete", key))
        super().delete(key)


class _DownBackend:
    def get(self, key):
        raise BackendUnavailable("connection refused")

    def set(self, key, value, ttl):
        raise BackendUnavailable("connection refused")

    def delete(self, key):
        raise BackendUnavailable("connection refused")

    def list_keys(self):
        raise BackendUnavailable("connection refused")


@pytest.fixture
def backend():
    return _RecordingBackend()


@pytest.fixture
def ids():
    return _SeqIds()


def _store(backend, ids, cookie_id=None, config=None):
    store = SessionStore(backend, config or SessionConfig(ttl=60), ids)
    store.resolve(cookie_id)
    return store


def _persist(backend, sid, data):
    backend.set(sid, encode_data(data), 60)
    backend.calls.clear()


def test_untouched_request_has_no_backend_io_and_no_cookie(backend, ids):
    store = _store(backend, ids, cookie_id="sid-existing")

    assert store.state is SessionState.RESOLVED
    assert store.finalize() is None
    assert backend.calls == []


def test_request_without_cookie_and_no_access_is_noop(backend, ids):
    store = _store(backend, ids)

    assert store.state is SessionState.NO_SESSION
    assert store.finalize() is None
    assert backend.calls == []


def test_read_only_fresh_session_creates_nothing(backend, ids):
    store = _store(backend, ids)

    assert store.read("name") is UNSET
    assert store.state is SessionState.MATERIALIZED
    assert store.finalize() is None
    assert backend.list_keys() == []


def test_read_only_existing_session_emits_no_cookie(backend, ids):
    _persist(backend, "sid-a", {"name": "larry"})
    store = _store(backend, ids, cookie_id="sid-a")

    assert store.read("name") == "larry"
    assert store.finalize() is None
    assert backend.calls == [("get", "sid-a")]


def test_write_then_finalize_persists_and_sets_cookie(backend, ids):
    store = _store(backend, ids)
    store.write("name", "larry")

    directive = store.finalize()

    assert directive is not None
    assert directive.name == "sid"
    assert directive.value == "sid1"
    assert directive.expires is None
    assert not directive.is_deletion
    assert decode_data(backend.get("sid1")) == {"name": "larry"}


def test_write_visible_to_later_reads_before_finalize(backend, ids):
    store = _store(backend, ids)
    store.write("cart", [1, 2])

    assert store.read("cart") == [1, 2]
    assert ("set", "sid1") not in backend.calls


def test_persisted_write_is_visible_to_next_request(backend, ids):
    first = _store(backend, ids)
    first.write("prefs", {"theme": "dark", "size": 12, "flags": [True, None]})
    sid = first.finalize().value

    second = _store(backend, ids, cookie_id=sid)

    assert second.read("prefs") == {"theme": "dark", "size": 12, "flags": [True, None]}


def test_unknown_cookie_id_gets_fresh_id_never_reused(backend, ids):
    store = _store(backend, ids, cookie_id="stale")

    assert store.read("name") is UNSET
    assert store.session_id == "sid1"
    store.write("name", "x")

    directive = store.finalize()

    assert directive.value == "sid1"
    assert backend.get("stale") is None


def test_write_rejects_non_json_values(backend, ids):
    store = _store(backend, ids)

    with pytest.raises(TypeError, match="JSON-serializable"):
        store.write("when", object())
    assert store.finalize() is None


def test_remove_marks_dirty_only_when_key_present(backend, ids):
    _persist(backend, "sid-a", {"name": "larry", "age": 3})
    store = _store(backend, ids, cookie_id="sid-a")

    store.remove("missing")
    assert store.is_dirty is False
    store.remove("age")
    assert store.is_dirty is True
    store.finalize()

    assert decode_data(backend.get("sid-a")) == {"name": "larry"}


def test_change_session_id_keeps_data_and_kills_old_id(backend, ids):
    _persist(backend, "sid-a", {"name": "larry"})
    store = _store(backend, ids, cookie_id="sid-a")
    assert store.read("name") == "larry"

    new_id = store.change_session_id()

    assert new_id != "sid-a"
    assert backend.get("sid-a") is None
    assert store.read("name") == "larry"
    directive = store.finalize()
    assert directive.value == new_id
    assert decode_data(backend.get(new_id)) == {"name": "larry"}


def test_change_session_id_without_session_is_rejected(backend, ids):
    store = _store(backend, ids)

    with pytest.raises(SessionNotMaterialized):
        store.change_session_id()
    assert store.finalize() is None
    assert backend.calls == []


def test_change_session_id_after_load(backend, ids):
    _persist(backend, "sid-a", {"name": "larry"})
    store = _store(backend, ids, cookie_id="sid-a")

    assert store.load() is not None
    assert store.change_session_id() == "sid1"


def test_load_without_cookie_does_not_materialize(backend, ids):
    store = _store(backend, ids)

    assert store.load() is None
    assert store.state is SessionState.NO_SESSION


def test_destroy_deletes_entry_and_expires_cookie(backend, ids):
    _persist(backend, "sid-a", {"name": "larry"})
    store = _store(backend, ids, cookie_id="sid-a")

    store.destroy_session()

    assert backend.calls == [("delete", "sid-a")]
    assert backend.get("sid-a") is None
    directive = store.finalize()
    assert directive.is_deletion
    assert directive.max_age == 0
    assert directive.value == ""


def test_destroyed_cookie_reads_as_fresh_session(backend, ids):
    _persist(backend, "sid-a", {"name": "larry"})
    _store(backend, ids, cookie_id="sid-a").destroy_session()

    follow_up = _store(backend, ids, cookie_id="sid-a")

    assert follow_up.read("name") is UNSET
    assert follow_up.session_id != "sid-a"


def test_destroy_without_session_is_noop(backend, ids):
    store = _store(backend, ids)

    store.destroy_session()

    assert store.state is SessionState.NO_SESSION
    assert store.finalize() is None
    assert backend.calls == []


def test_destroy_of_fresh_session_without_cookie_emits_nothing(backend, ids):
    store = _store(backend, ids)
    store.write("name", "larry")

    store.destroy_session()

    assert store.finalize() is None
    assert backend.list_keys() == []


def test_churn_yields_new_empty_session(backend, ids):
    _persist(backend, "sid-a", {"name": "larry", "cart": [1]})
    store = _store(backend, ids, cookie_id="sid-a")
    store.read("name")

    new_id = store.churn()

    assert new_id != "sid-a"
    assert store.dump_session() == {}
    store.write("name", "damian")
    directive = store.finalize()
    assert directive.value == new_id
    assert backend.get("sid-a") is None
    assert decode_data(backend.get(new_id)) == {"name": "damian"}


def test_churn_after_rotation_uses_distinct_id(backend, ids):
    _persist(backend, "sid-a", {"name": "larry"})
    store = _store(backend, ids, cookie_id="sid-a")
    store.read("name")
    rotated = store.change_session_id()

    churned = store.churn()

    assert churned not in {"sid-a", rotated}
    assert backend.get(rotated) is None


def test_churn_is_persisted_even_without_writes(backend, ids):
    store = _store(backend, ids)

    new_id = store.churn()

    assert store.finalize().value == new_id
    assert decode_data(backend.get(new_id)) == {}


def test_generator_collisions_within_request_are_skipped(backend):
    class _Repeating:
        def __init__(self):
            self._values = iter(["dup", "dup", "other"])

        def new_id(self):
            return next(self._values)

    store = SessionStore(backend, SessionConfig(), _Repeating())
    store.resolve(None)
    store.read("x")

    assert store.session_id == "dup"
    assert store.change_session_id() == "other"


def test_finalize_twice_raises(backend, ids):
    store = _store(backend, ids)
    store.finalize()

    with pytest.raises(SessionError, match="finalized"):
        store.finalize()


def test_discard_drops_mutations(backend, ids):
    store = _store(backend, ids)
    store.write("name", "larry")

    store.discard()

    assert store.state is SessionState.FINALIZED
    assert backend.list_keys() == []


def test_backend_failure_propagates_from_read(ids):
    store = _store(_DownBackend(), ids, cookie_id="sid-a")

    with pytest.raises(BackendUnavailable):
        store.read("name")
    assert store.state is SessionState.RESOLVED


def test_backend_failure_in_finalize_emits_no_cookie(ids):
    store = _store(_DownBackend(), ids)
    store.write("name", "larry")

    with pytest.raises(BackendUnavailable):
        store.finalize()


def test_list_sessions_returns_empty_when_backend_cannot_enumerate(ids):
    store = _store(_DownBackend(), ids)

    assert store.list_sessions() == []


def test_list_sessions_and_dump(backend, ids):
    _persist(backend, "sid-a", {"name": "larry"})
    _persist(backend, "sid-b", {})
    store = _store(backend, ids, cookie_id="sid-a")

    assert sorted(store.list_sessions()) == ["sid-a", "sid-b"]
    snapshot = store.dump_session()
    snapshot["name"] = "changed"
    assert store.read("name") == "larry"
    assert store.finalize() is None


def test_persistent_cookie_policy_sets_expiry(backend, ids):
    config = SessionConfig(ttl=60, cookie=CookieConfig(name="app_sid", max_age=600))
    store = _store(backend, ids, config=config)
    store.write("a", 1)

    directive = store.finalize()

    assert directive.name == "app_sid"
    assert directive.max_age == 600
    assert directive.expires is not None
    assert not directive.is_deletion


def test_decode_data_treats_corrupt_payload_as_absent():
    assert decode_data("{not json") is None
    assert decode_data("[1, 2]") is None
    assert decode_data(None) is None
    assert decode_data('{"a": 1}') == {"a": 1}


def test_mutating_a_read_value_does_not_change_the_bag(backend, ids):
    _persist(backend, "sid-a", {"cart": [1]})
    store = _store(backend, ids, cookie_id="sid-a")

    store.read("cart").append(2)
    store.write("other", 1)
    store.finalize()

    assert decode_data(backend.get("sid-a")) == {"cart": [1], "other": 1}


def test_read_missing_key_returns_default(backend, ids):
    store = _store(backend, ids)

    assert store.read("missing") is UNSET
    assert store.read("missing", default=[]) == []


def test_fresh_session_destroy_and_rotate_skip_backend_deletes(backend, ids):
    store = _store(backend, ids)
    store.write("name", "larry")
    store.change_session_id()

    store.destroy_session()

    assert [call for call in backend.calls if call[0] == "delete"] == []


def test_stale_cookie_destroy_clears_client_cookie(backend, ids):
    store = _store(backend, ids, cookie_id="stale")
    store.read("name")

    store.destroy_session()
    directive = store.finalize()

    assert directive.is_deletion
    assert directive.value == ""
    assert backend.calls == [("get", "stale")]
