import json

import pytest

from ride_telemetry import storage
from ride_telemetry.models import TelemetrySession
from ride_telemetry.storage import RIDING_RECORDS_KEY, FileStore, MemoryStore, RideLedger


@pytest.fixture
def completed(base_time_ms):
    def build(session_id: str, distance_km: float = 1.0) -> TelemetrySession:
        return TelemetrySession(
            session_id=session_id,
            start_time=base_time_ms,
            end_time=base_time_ms + 600_000,
            distance_km=distance_km,
            duration_s=600,
        )
    return build


class TestMemoryStore:
    def test_get_set_remove(self):
        store = MemoryStore()
        assert store.get("k") is None
        store.set("k", b"value")
        assert store.get("k") == b"value"
        store.remove("k")
        assert store.get("k") is None

    def test_remove_missing_is_noop(self):
        MemoryStore().remove("missing")


class TestFileStore:
    def test_get_set_remove(self, tmp_path):
        store = FileStore(tmp_path / "store")
        assert store.get("current_session") is None
        store.set("current_session", b"\x00\x01binary")
        assert store.get("current_session") == b"\x00\x01binary"
        assert (tmp_path / "store" / "current_session.bin").exists()
        store.remove("current_session")
        assert store.get("current_session") is None

    def test_overwrite(self, tmp_path):
        store = FileStore(tmp_path)
        store.set("k", b"one")
        store.set("k", b"two")
        assert store.get("k") == b"two"
        assert not (tmp_path / "k.tmp").exists()

    @pytest.mark.parametrize("key", ["../escape", "a/b", "", "with space"])
    def test_rejects_unsafe_keys(self, tmp_path, key):
        with pytest.raises(ValueError, match="Invalid store key"):
            FileStore(tmp_path).set(key, b"x")

    def test_default_directory(self):
        assert FileStore().directory == storage.STORE_DIR


class TestRideLedger:
    def test_empty(self, store):
        assert RideLedger(store).records() == []

    def test_newest_first(self, store, completed):
        ledger = RideLedger(store)
        ledger.save_record(completed("first"))
        ledger.save_record(completed("second"))
        assert [r.session_id for r in ledger.records()] == ["second", "first"]

    def test_find(self, store, completed):
        ledger = RideLedger(store)
        ledger.save_record(completed("abc", distance_km=12.5))
        assert ledger.find("abc").distance_km == 12.5
        assert ledger.find("missing") is None

    def test_rejects_active_session(self, store, base_time_ms):
        with pytest.raises(ValueError, match="has not been stopped"):
            RideLedger(store).save_record(TelemetrySession(session_id="x", start_time=base_time_ms))

    def test_stored_as_json_list(self, store, completed):
        RideLedger(store).save_record(completed("abc"))
        data = json.loads(store.get(RIDING_RECORDS_KEY))
        assert isinstance(data, list)
        assert data[0]["session_id"] == "abc"

    def test_corrupt_ledger_reads_empty(self, store):
        store.set(RIDING_RECORDS_KEY, b"{not json")
        assert RideLedger(store).records() == []
