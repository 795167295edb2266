from datetime import date, datetime, timedelta, timezone

from interests import dates
from interests.store import JsonFileBackend, MemoryBackend, StateStore


def test_memory_backend_does_not_alias_state():
    backend = MemoryBackend()
    store = StateStore(backend)
    store.set("k", {"a": 1})
    store.state["k"]["a"] = 2
    assert backend.load() == {"k": {"a": 1}}


def test_state_store_set_and_delete(tmp_path):
    path = tmp_path / "nested" / "state.json"
    store = StateStore(JsonFileBackend(path))
    store.set("domains", {"all": {}})
    assert StateStore(JsonFileBackend(path)).get("domains") == {"all": {}}

    store.delete("domains")
    assert StateStore(JsonFileBackend(path)).get("domains") is None


def test_corrupt_state_file_loads_empty(tmp_path, caplog):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    store = StateStore(JsonFileBackend(path))
    assert store.state == {}
    assert "Unreadable state file" in caplog.text


def test_non_mapping_state_file_loads_empty(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("[1, 2]", encoding="utf-8")
    assert StateStore(JsonFileBackend(path)).state == {}


def test_backend_delete(tmp_path):
    path = tmp_path / "state.json"
    backend = JsonFileBackend(path)
    backend.save({"a": 1})
    backend.delete()
    assert not path.exists()
    assert backend.load() is None


def test_day_index():
    assert dates.day_index(date(1970, 1, 1)) == 0
    assert dates.day_index(date(1970, 1, 31)) == 30
    late_evening = datetime(1970, 1, 2, 23, 0, tzinfo=timezone(timedelta(hours=-5)))
    assert dates.day_index(late_evening) == 2


def test_day_key_and_timestamp():
    assert dates.day_key(19000) == "19000"
    assert dates.day_key(date(1970, 1, 11)) == "10"
    assert dates.day_from_timestamp(86400 * 5 + 10) == 5


def test_today_matches_utc_date():
    assert dates.today() == dates.day_index(datetime.now(timezone.utc).date())
