"""
Tests for the session store and envelope serialization.
"""

import json

import pytest

from circle_onboarding.state import SessionRecord, SessionStore


class TestSessionRecord:
    """Envelope round trips and validation."""

    def test_envelope_excludes_timestamp(self):
        record = SessionRecord(step_index=3, data={"name": "Jordan"}, last_persisted_at="2026-01-01T00:00:00")
        assert record.to_envelope() == {"step_index": 3, "data": {"name": "Jordan"}}

    def test_from_json(self):
        record = SessionRecord.from_json('{"step_index": 2, "data": {"weight": 180}}')
        assert record.step_index == 2
        assert record.data == {"weight": 180}

    def test_missing_keys_default(self):
        record = SessionRecord.from_envelope({})
        assert record.step_index == 0
        assert record.data == {}

    @pytest.mark.parametrize("raw", [
        "not json",
        "[]",
        '{"step_index": "2", "data": {}}',
        '{"step_index": true, "data": {}}',
        '{"step_index": 1, "data": []}',
    ])
    def test_invalid_envelopes(self, raw):
        with pytest.raises(ValueError):
            SessionRecord.from_json(raw)


class TestSessionStore:
    """Mutations, snapshots and listeners."""

    def test_update_merges(self):
        store = SessionStore()
        store.update({"name": "Jordan"})
        store.update({"weight": 180})
        store.update({"name": "Sam"})
        assert store.snapshot().data == {"name": "Sam", "weight": 180}

    def test_update_is_shallow(self):
        store = SessionStore()
        store.update({"equipment_details": {"dumbbells": {"max": 50}}})
        store.update({"equipment_details": {"barbell": {"max": 225}}})
        assert store.data["equipment_details"] == {"barbell": {"max": 225}}

    def test_snapshot_is_a_copy(self):
        store = SessionStore()
        store.update({"gym_locations": ["home"]})
        snap = store.snapshot()
        snap.data["gym_locations"].append("outdoor")
        assert store.data["gym_locations"] == ["home"]

    def test_update_copies_input(self):
        store = SessionStore()
        days = ["monday"]
        store.update({"workout_days": days})
        days.append("friday")
        assert store.data["workout_days"] == ["monday"]

    def test_data_is_read_only(self):
        store = SessionStore()
        with pytest.raises(TypeError):
            store.data["name"] = "x"

    def test_listeners_get_snapshots(self):
        store = SessionStore()
        seen = []
        store.subscribe(seen.append)
        store.update({"name": "Jordan"})
        store.set_step_index(1)
        assert [r.step_index for r in seen] == [0, 1]
        assert seen[1].data == {"name": "Jordan"}

    def test_unsubscribe(self):
        store = SessionStore()
        seen = []
        unsubscribe = store.subscribe(seen.append)
        unsubscribe()
        unsubscribe()
        store.update({"name": "Jordan"})
        assert seen == []

    def test_hydrate_does_not_notify(self):
        store = SessionStore()
        seen = []
        store.subscribe(seen.append)
        store.hydrate(SessionRecord(step_index=4, data={"name": "Jordan"}))
        assert seen == []
        assert store.step_index == 4

    def test_snapshot_serializes(self):
        store = SessionStore()
        store.update({"name": "Jordan"})
        assert json.loads(store.snapshot().to_json()) == {"step_index": 0, "data": {"name": "Jordan"}}
