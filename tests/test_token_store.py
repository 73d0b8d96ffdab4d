"""TokenStore and FileStorage: round-trips, clearing, self-healing loads."""

import json

from portal_core.constants import SESSION_KEY
from portal_core.state import Session
from portal_core.storage import FileStorage, MemoryStorage
from portal_core.token_store import TokenStore

from conftest import make_record


def test_save_then_load_round_trips(storage, session_record):
    store = TokenStore(storage)
    session = Session.from_record(session_record)

    store.save(session)

    assert store.load() == session


def test_clear_then_load_is_absent(storage, session_record):
    store = TokenStore(storage)
    store.save(Session.from_record(session_record))

    store.clear()

    assert store.load() is None
    assert storage.get(SESSION_KEY) is None


def test_load_without_record_is_absent(storage):
    assert TokenStore(storage).load() is None


def test_unparseable_record_is_cleared(storage):
    storage.set(SESSION_KEY, "{not json")

    assert TokenStore(storage).load() is None
    assert SESSION_KEY not in storage


def test_partial_record_is_treated_as_absent(storage):
    record = make_record()
    del record["company"]
    storage.set(SESSION_KEY, json.dumps(record))

    assert TokenStore(storage).load() is None
    assert SESSION_KEY not in storage


def test_blank_token_is_treated_as_absent(storage):
    storage.set(SESSION_KEY, json.dumps(make_record(token="")))

    assert TokenStore(storage).load() is None


def test_bad_expiry_is_treated_as_absent(storage):
    record = make_record()
    record["expiresAt"] = "tomorrow"
    storage.set(SESSION_KEY, json.dumps(record))

    assert TokenStore(storage).load() is None


def test_unknown_company_fields_survive(storage, session_record):
    store = TokenStore(storage)
    store.save(Session.from_record(session_record))

    stored = json.loads(storage.get(SESSION_KEY))

    assert stored["company"]["industry"] == "Unknown"
    assert stored["sessionToken"] == "tok-1"
    assert stored["expiresAt"].endswith("Z")


def test_file_storage_survives_new_instance(tmp_path, session_record):
    session = Session.from_record(session_record)
    TokenStore(FileStorage(tmp_path)).save(session)

    assert TokenStore(FileStorage(tmp_path)).load() == session


def test_file_storage_leaves_no_temp_files(tmp_path):
    fs = FileStorage(tmp_path)
    fs.set("summit_session", "{}")
    fs.set("summit_session", "{\"a\": 1}")

    assert sorted(p.name for p in tmp_path.iterdir()) == ["summit_session.json"]
    assert fs.get("summit_session") == "{\"a\": 1}"


def test_file_storage_remove_missing_key_is_quiet(tmp_path):
    FileStorage(tmp_path).remove("nothing_here")


def test_memory_storage_contains():
    ms = MemoryStorage({"a": "1"})
    assert "a" in ms
    ms.remove("a")
    assert "a" not in ms
