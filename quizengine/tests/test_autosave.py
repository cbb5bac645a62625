"""Autosave store and key-value backends"""
import json
import logging

import pytest

from quizengine.core.exceptions import StorageUnavailableError
from quizengine.services.autosave import AutosaveStore
from quizengine.services.storage import (
    DatabaseKeyValueStore,
    FileKeyValueStore,
    MemoryKeyValueStore,
    get_key_value_store,
)


class TestAutosaveStore:

    def test_entry_layout(self, autosave, kv, clock):
        saved_at = autosave.save("quiz-1", "attempt-1", {"q-single": 2}, started_at=clock(), remaining_seconds=45)
        assert saved_at == clock()

        raw = json.loads(kv.get("quiz-1:answers"))
        assert raw["attemptId"] == "attempt-1"
        assert raw["answers"] == {"q-single": 2}
        assert raw["remainingSeconds"] == 45
        assert "savedAt" in raw and "startedAt" in raw

    def test_load_round_trip(self, autosave):
        autosave.save("quiz-1", "attempt-1", {"q-match": {"1": "a"}})
        payload = autosave.load("quiz-1")
        assert payload.attempt_id == "attempt-1"
        assert payload.answers == {"q-match": {"1": "a"}}

    def test_stale_entry_removed_before_new_attempt(self, autosave, kv, clock):
        autosave.save("quiz-1", "old", {"q-single": 1})
        clock.advance(25 * 3600)
        autosave.prepare_for_new_attempt("quiz-1")
        assert kv.get("quiz-1:answers") is None

    def test_fresh_entry_left_for_overwrite(self, autosave, kv, clock):
        autosave.save("quiz-1", "old", {"q-single": 1})
        clock.advance(3600)
        autosave.prepare_for_new_attempt("quiz-1")
        assert kv.get("quiz-1:answers") is not None

    def test_recovery_requires_matching_attempt(self, autosave):
        autosave.save("quiz-1", "attempt-1", {"q-single": 2})
        assert autosave.load_for_recovery("quiz-1", "attempt-2") is None
        assert autosave.load_for_recovery("quiz-1", "attempt-1").answers == {"q-single": 2}

    def test_recovery_rejects_stale_entry(self, autosave, kv, clock):
        autosave.save("quiz-1", "attempt-1", {"q-single": 2})
        clock.advance(24 * 3600 + 1)
        assert autosave.load_for_recovery("quiz-1", "attempt-1") is None
        assert kv.get("quiz-1:answers") is None

    def test_corrupt_payload_is_dropped(self, autosave, kv, caplog):
        kv.set("quiz-1:answers", "{not json")
        with caplog.at_level(logging.WARNING):
            assert autosave.load("quiz-1") is None
        assert "Corrupt autosave entry" in caplog.text
        assert kv.get("quiz-1:answers") is None

    def test_write_failure_returns_none(self, clock, failing_kv):
        store = AutosaveStore(failing_kv(), clock=clock)
        assert store.save("quiz-1", "attempt-1", {}) is None

    def test_read_failure_returns_none(self, clock, failing_kv):
        store = AutosaveStore(failing_kv(fail_reads=True), clock=clock)
        assert store.load("quiz-1") is None
        store.prepare_for_new_attempt("quiz-1")

    def test_purge_expired(self, autosave, kv, clock):
        autosave.save("quiz-1", "a", {})
        clock.advance(20 * 3600)
        autosave.save("quiz-2", "b", {})
        clock.advance(5 * 3600)
        kv.set("unrelated", "x")

        assert autosave.purge_expired() == 1
        assert sorted(kv.keys()) == ["quiz-2:answers", "unrelated"]

    def test_user_stores_do_not_share_entries(self, autosave, kv):
        alice = autosave.for_user("alice")
        bob = autosave.for_user("bob")

        alice.save("quiz-1", "attempt-a", {"q-single": 1})
        bob.save("quiz-1", "attempt-b", {"q-single": 2})
        bob.discard("quiz-1")

        assert sorted(kv.keys()) == ["alice/quiz-1:answers"]
        assert alice.load("quiz-1").answers == {"q-single": 1}
        assert bob.load("quiz-1") is None

    def test_discard_keeps_entry_of_another_attempt(self, autosave, kv):
        autosave.save("quiz-1", "attempt-2", {"q-single": 2})

        assert autosave.discard("quiz-1", "attempt-1") is False
        assert autosave.load("quiz-1").attempt_id == "attempt-2"

        assert autosave.discard("quiz-1", "attempt-2") is True
        assert kv.get("quiz-1:answers") is None

    def test_purge_covers_user_stores(self, autosave, kv, clock):
        autosave.for_user("alice").save("quiz-1", "a", {})
        clock.advance(25 * 3600)
        assert autosave.purge_expired() == 1
        assert kv.keys() == []


class TestBackends:

    def test_memory_store(self):
        store = MemoryKeyValueStore("ns")
        store.set("k", "v")
        assert store.get("k") == "v"
        store.delete("k")
        store.delete("k")
        assert store.get("k") is None

    def test_file_store(self, tmp_path):
        store = FileKeyValueStore(cache_dir=str(tmp_path), namespace="quiz")
        store.set("quiz-1:answers", '{"a": 1}')

        assert (tmp_path / "quiz").is_dir()
        assert store.get("quiz-1:answers") == '{"a": 1}'
        assert store.keys() == ["quiz-1:answers"]

        store.delete("quiz-1:answers")
        assert store.get("quiz-1:answers") is None
        assert store.keys() == []

    def test_database_store_namespaces(self, session_factory):
        first = DatabaseKeyValueStore(session_factory, namespace="one")
        second = DatabaseKeyValueStore(session_factory, namespace="two")

        first.set("quiz-1:answers", "v1")
        first.set("quiz-1:answers", "v2")
        second.set("quiz-1:answers", "other")

        assert first.get("quiz-1:answers") == "v2"
        assert second.get("quiz-1:answers") == "other"
        assert first.keys() == ["quiz-1:answers"]

        first.delete("quiz-1:answers")
        assert first.get("quiz-1:answers") is None
        assert second.get("quiz-1:answers") == "other"

    def test_failing_store_raises_storage_error(self, failing_kv):
        with pytest.raises(StorageUnavailableError):
            failing_kv().set("k", "v")

    def test_factory(self):
        assert isinstance(get_key_value_store("memory"), MemoryKeyValueStore)
        with pytest.raises(NotImplementedError):
            get_key_value_store("redis")
