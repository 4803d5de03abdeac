"""
Unit tests for UPA storage layer.
"""

import json

import pytest

from upa.core.errors import PersistenceError
from upa.core.models import AuctionPhase, AuctionState, PlacedBid
from upa.core.storage.json_adapter import JSONFileAdapter
from upa.core.storage.storage_manager import StorageManager


# =============================================================================
# JSON Adapter Tests
# =============================================================================


class TestJSONFileAdapter:
    """Tests for the atomic JSON file backend."""

    def test_creates_parent_dir(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "state.json"
        JSONFileAdapter(path)
        assert path.parent.is_dir()

    def test_missing_file_reads_none(self, tmp_path):
        adapter = JSONFileAdapter(tmp_path / "state.json")
        assert not adapter.exists()
        assert adapter.read() is None

    def test_write_read(self, tmp_path):
        adapter = JSONFileAdapter(tmp_path / "state.json")
        adapter.write({"a": [1, 2, 3]})

        assert adapter.exists()
        assert adapter.read() == {"a": [1, 2, 3]}

    def test_write_leaves_no_temp_files(self, tmp_path):
        adapter = JSONFileAdapter(tmp_path / "state.json")
        adapter.write({"a": 1})
        adapter.write({"a": 2})
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        with pytest.raises(PersistenceError):
            JSONFileAdapter(path).read()

    def test_non_object_top_level(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("[1, 2]")
        with pytest.raises(PersistenceError, match="not an object"):
            JSONFileAdapter(path).read()

    def test_unserializable_write(self, tmp_path):
        adapter = JSONFileAdapter(tmp_path / "state.json")
        adapter.write({"ok": True})
        with pytest.raises(PersistenceError):
            adapter.write({"bad": object()})
        # Previous document untouched
        assert adapter.read() == {"ok": True}


# =============================================================================
# Storage Manager Tests
# =============================================================================


class TestStorageManager:
    """Tests for load fallback and background saves."""

    def test_load_missing_uses_factory(self, tmp_path, build_state):
        seeded = build_state(assets=[("A1", 100, 1)])
        manager = StorageManager(tmp_path / "state.json", default_factory=lambda: seeded)
        assert manager.load() is seeded
        manager.close()

    def test_load_corrupt_uses_factory(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("garbage")
        manager = StorageManager(path)
        assert manager.load() == AuctionState()
        manager.close()

    def test_load_malformed_document_uses_factory(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"assets": [{"name": "missing id"}]}))
        manager = StorageManager(path)
        assert manager.load().assets == {}
        manager.close()

    def test_background_save(self, tmp_path, build_state):
        state = build_state(assets=[("A1", 100, 2)], teams=[("T1", 1_000)],
                            phase=AuctionPhase.RUNNING)
        state.assets["A1"].current_bids["T1"] = PlacedBid(150, 1)
        state.bid_sequence = 1

        manager = StorageManager(tmp_path / "state.json")
        manager.save(state)
        manager.flush()

        loaded = manager.load()
        assert loaded.assets["A1"].current_bids["T1"] == PlacedBid(150, 1)
        assert loaded.run.phase == AuctionPhase.RUNNING
        assert loaded.bid_sequence == 1
        manager.close()

    def test_save_snapshots_immediately(self, tmp_path, build_state):
        state = build_state(teams=[("T1", 1_000)])
        manager = StorageManager(tmp_path / "state.json")

        manager.save(state)
        state.teams["T1"].budget = 1
        manager.flush()

        assert manager.load().teams["T1"].budget == 1_000
        manager.close()

    def test_saves_land_in_order(self, tmp_path, build_state):
        state = build_state(teams=[("T1", 1_000)])
        manager = StorageManager(tmp_path / "state.json")

        for budget in range(10):
            state.teams["T1"].budget = budget
            manager.save(state)
        manager.flush()

        assert manager.load().teams["T1"].budget == 9
        manager.close()

    def test_save_now(self, tmp_path, build_state):
        manager = StorageManager(tmp_path / "state.json")
        manager.save_now(build_state(assets=[("A1", 100, 1)]))
        assert list(manager.load().assets) == ["A1"]
        manager.close()

    def test_failed_background_save_is_logged(self, tmp_path, caplog, monkeypatch):
        manager = StorageManager(tmp_path / "state.json")

        def broken_write(data):
            raise PersistenceError("disk full")

        monkeypatch.setattr(manager.adapter, "write", broken_write)
        manager.save(AuctionState())
        manager.flush()

        assert "State save failed: disk full" in caplog.text
        manager.close()
