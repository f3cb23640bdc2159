"""Tests for config bootstrap and caching."""

import pytest

from goal_sync import config
from goal_sync.config import SCHEMA_ID, default_config, load_sync_config, reset_config_cache


class FakeCollection:
    def __init__(self, doc=None):
        self.doc = doc
        self.inserted = []

    def find_one(self, filter_):
        if self.doc and self.doc.get("_id") == filter_.get("_id"):
            return self.doc
        return None

    def insert_one(self, doc):
        self.inserted.append(doc)
        self.doc = doc


class FakeDb(dict):
    def __init__(self, doc=None):
        super().__init__(config=FakeCollection(doc))


@pytest.fixture(autouse=True)
def fresh_cache():
    reset_config_cache()
    yield
    reset_config_cache()


class TestLoadSyncConfig:
    def test_bootstraps_missing_document(self):
        db = FakeDb()
        cfg = load_sync_config(db)

        inserted = db["config"].inserted
        assert len(inserted) == 1
        assert inserted[0]["_id"] == SCHEMA_ID
        assert inserted[0]["defaults"] == default_config()
        assert cfg == default_config()

    def test_stored_values_override_builtins(self):
        db = FakeDb({"_id": SCHEMA_ID, "defaults": {"tolerance": 0.5, "max_retries": 5}})
        cfg = load_sync_config(db)

        assert cfg["tolerance"] == 0.5
        assert cfg["max_retries"] == 5
        assert cfg["single_timeout"] == 10.0
        assert db["config"].inserted == []

    def test_empty_action_ids_fall_back(self):
        db = FakeDb({"_id": SCHEMA_ID, "defaults": {"action_ids": {}}})
        assert load_sync_config(db)["action_ids"] == config.DEFAULT_ACTION_IDS

    def test_cached_until_refresh(self):
        first = load_sync_config(FakeDb({"_id": SCHEMA_ID, "defaults": {"tolerance": 0.2}}))
        other = FakeDb({"_id": SCHEMA_ID, "defaults": {"tolerance": 0.9}})

        assert load_sync_config(other) is first
        assert load_sync_config(other, refresh=True)["tolerance"] == 0.9

    def test_default_config_is_a_copy(self):
        cfg = default_config()
        cfg["action_ids"]["atividade"] = "changed"
        assert default_config()["action_ids"]["atividade"] == "atividade"
