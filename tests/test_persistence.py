from meter_remote.models import SessionInfo
from meter_remote.persistence import SessionStore


def test_save_and_load(tmp_path):
    store = SessionStore(str(tmp_path / "session.json"))
    store.save(SessionInfo(username="paci", role="user", meter_number="12345678"))
    loaded = store.load()
    assert loaded == SessionInfo(username="paci", role="user", meter_number="12345678")
    assert not (tmp_path / "session.json.tmp").exists()


def test_missing_file_loads_none(tmp_path):
    assert SessionStore(str(tmp_path / "none.json")).load() is None


def test_corrupt_file_loads_none(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{not json")
    assert SessionStore(str(path)).load() is None
    path.write_text('{"role": "user"}')
    assert SessionStore(str(path)).load() is None


def test_clear(tmp_path):
    path = tmp_path / "session.json"
    store = SessionStore(str(path))
    store.save(SessionInfo(username="paci"))
    store.clear()
    assert not path.exists()
    store.clear()
