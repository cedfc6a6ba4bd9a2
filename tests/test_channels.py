"""
Tests for the persistence channels, the equipment catalog and settings.

Supabase is mocked; no network access.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from circle_onboarding.catalog import EquipmentCatalog
from circle_onboarding.channels import (
    FileCache,
    SupabaseEquipmentLookup,
    SupabaseProgressStore,
)
from circle_onboarding.config import OnboardingSettings, get_settings


def run(coro):
    return asyncio.run(coro)


class TestFileCache:

    def test_missing_file(self, tmp_path):
        assert FileCache("user-1", tmp_path).get() is None

    def test_set_get_clear(self, tmp_path):
        cache = FileCache("user-1", tmp_path / "nested")
        cache.set('{"step_index": 1, "data": {}}')
        assert cache.get() == '{"step_index": 1, "data": {}}'
        assert (tmp_path / "nested" / "user-1.json").exists()
        assert not (tmp_path / "nested" / "user-1.tmp").exists()

        cache.clear()
        assert cache.get() is None
        cache.clear()

    def test_users_are_isolated(self, tmp_path):
        FileCache("a", tmp_path).set("A")
        assert FileCache("b", tmp_path).get() is None


class TestSupabaseProgressStore:

    def test_read_no_row(self, mock_supabase):
        store = SupabaseProgressStore("user-1", client=mock_supabase, table="onboarding_progress")
        assert run(store.read()) is None
        mock_supabase.table.assert_called_with("onboarding_progress")
        mock_supabase.table.return_value.eq.assert_called_with("user_id", "user-1")

    def test_read_in_progress(self, mock_supabase):
        mock_supabase.table.return_value.execute.return_value.data = [
            {"phase_index": 3, "extracted_data": {"name": "Jordan"}, "completed_at": None},
        ]
        record = run(SupabaseProgressStore("user-1", client=mock_supabase).read())
        assert record.step_index == 3
        assert record.data == {"name": "Jordan"}
        assert not record.completed

    def test_read_completed(self, mock_supabase):
        mock_supabase.table.return_value.execute.return_value.data = [
            {"phase_index": 100, "extracted_data": {}, "completed_at": "2026-01-01T00:00:00+00:00"},
        ]
        assert run(SupabaseProgressStore("user-1", client=mock_supabase).read()).completed

    def test_read_rejects_non_object_data(self, mock_supabase):
        mock_supabase.table.return_value.execute.return_value.data = [
            {"phase_index": 1, "extracted_data": ["oops"], "completed_at": None},
        ]
        with pytest.raises(ValueError):
            run(SupabaseProgressStore("user-1", client=mock_supabase).read())

    def test_write_upserts(self, mock_supabase):
        run(SupabaseProgressStore("user-1", client=mock_supabase).write(2, {"name": "Jordan"}))

        upsert = mock_supabase.table.return_value.upsert
        row = upsert.call_args.args[0]
        assert row["user_id"] == "user-1"
        assert row["phase_index"] == 2
        assert row["current_phase"] == "section_2"
        assert row["extracted_data"] == {"name": "Jordan"}
        assert upsert.call_args.kwargs["on_conflict"] == "user_id"

    def test_complete_sets_completed_at(self, mock_supabase):
        run(SupabaseProgressStore("user-1", client=mock_supabase).complete({"name": "Jordan"}))

        row = mock_supabase.table.return_value.upsert.call_args.args[0]
        assert row["current_phase"] == "complete"
        assert row["completed_at"]
        assert row["extracted_data"] == {"name": "Jordan"}


class TestEquipmentLookup:

    def test_lookup_by_slug(self, mock_supabase):
        mock_supabase.table.return_value.execute.return_value.data = [
            {"id": "eq-1", "slug": "dumbbells"},
        ]
        lookup = SupabaseEquipmentLookup(client=mock_supabase, table="equipment")
        assert run(lookup.lookup_ids(["dumbbells", "rings"])) == {"dumbbells": "eq-1"}
        mock_supabase.table.return_value.in_.assert_called_with("slug", ["dumbbells", "rings"])

    def test_empty_names_skip_query(self, mock_supabase):
        assert run(SupabaseEquipmentLookup(client=mock_supabase).lookup_ids([])) == {}
        mock_supabase.table.assert_not_called()


class TestEquipmentCatalog:

    def test_resolves_and_caches(self):
        lookup = AsyncMock()
        lookup.lookup_ids.return_value = {"dumbbells": "eq-1"}
        catalog = EquipmentCatalog(lookup)

        async def scenario():
            first = await catalog.resolve(["dumbbells", "rings"])
            second = await catalog.resolve(["rings", "dumbbells"])
            return first, second

        first, second = run(scenario())
        assert first == {"dumbbells": "eq-1", "rings": None}
        assert second == {"rings": None, "dumbbells": "eq-1"}
        lookup.lookup_ids.assert_awaited_once_with(["dumbbells", "rings"])

    def test_only_new_names_are_fetched(self):
        lookup = AsyncMock()
        lookup.lookup_ids.side_effect = [{"dumbbells": "eq-1"}, {"bench": "eq-2"}]
        catalog = EquipmentCatalog(lookup)

        async def scenario():
            await catalog.ids(["dumbbells"])
            return await catalog.ids(["dumbbells", "bench", "dumbbells"])

        assert run(scenario()) == ["eq-1", "eq-2"]
        assert lookup.lookup_ids.await_args.args[0] == ["bench"]

    def test_without_lookup(self):
        assert run(EquipmentCatalog().ids(["dumbbells"])) == []


class TestSettings:

    def test_defaults(self):
        settings = OnboardingSettings(_env_file=None)
        assert settings.durable_write_debounce_seconds == 0.5
        assert settings.progress_table == "onboarding_progress"
        assert settings.is_development
        assert not settings.supabase_configured

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("DURABLE_WRITE_DEBOUNCE_SECONDS", "2")
        monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
        monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-key")
        settings = OnboardingSettings(_env_file=None)
        assert settings.durable_write_debounce_seconds == 2.0
        assert settings.supabase_configured

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
