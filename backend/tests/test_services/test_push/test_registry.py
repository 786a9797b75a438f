"""
Tests for the Device Registry backends.

Both backends are exercised against the same contract: closed roster,
NotFound on unknown ids, whole-record replacement on update.
"""
import json
from datetime import datetime, timedelta, timezone

import pytest

from coursepush.services.push.constants import DEFAULT_ROSTER
from coursepush.services.push.exceptions import NotFound
from coursepush.services.push.models import DeviceRecord
from coursepush.services.push.registry import (
    InMemoryDeviceRegistry,
    SqlDeviceRegistry,
    build_registry,
    load_roster,
)


@pytest.fixture(params=["memory", "sql"])
def any_registry(request, empty_registry, sql_registry):
    """Run a test once per backend."""
    return empty_registry if request.param == "memory" else sql_registry


# =============================================================================
# Contract Tests
# =============================================================================

class TestRegistryContract:
    """Behaviour shared by every registry backend."""

    def test_get_provisioned_record(self, any_registry):
        """Provisioned records start unregistered with their courses."""
        record = any_registry.get("poc1qa654321")

        assert record.id == "poc1qa654321"
        assert record.token == ""
        assert record.partner == ""
        assert record.courses == frozenset({"123", "555"})
        assert record.updated_at is None
        assert not record.has_token

    def test_get_unknown_id_raises_not_found(self, any_registry):
        """Ids outside the roster are NotFound."""
        with pytest.raises(NotFound) as exc_info:
            any_registry.get("nobody")

        assert exc_info.value.message == "Student nobody not found."

    def test_list_returns_every_roster_entry(self, any_registry, roster):
        """list() covers the whole roster."""
        ids = {r.id for r in any_registry.list()}

        assert ids == set(roster)

    def test_update_replaces_registration_fields(self, any_registry):
        """update() overwrites token, partner, environment and version."""
        stamp = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        updated = any_registry.update(
            "poc1qa123456", token="tok-1", partner="poc1",
            environment="qa", version="1.0.0", updated_at=stamp,
        )

        assert updated.token == "tok-1"
        assert updated.partner == "poc1"
        assert updated.environment == "qa"
        assert updated.version == "1.0.0"
        assert updated.updated_at == stamp
        assert any_registry.get("poc1qa123456") == updated

    def test_update_keeps_courses(self, any_registry):
        """Courses come from the roster and survive registration."""
        any_registry.update(
            "poc1qa654321", token="tok-2", partner="poc1",
            environment="qa", version="1.0.0",
        )

        assert any_registry.get("poc1qa654321").courses == frozenset({"123", "555"})

    def test_update_stamps_time_when_not_given(self, any_registry):
        """updated_at defaults to the current UTC time."""
        before = datetime.now(timezone.utc) - timedelta(seconds=1)

        updated = any_registry.update(
            "poc1qa123456", token="tok-1", partner="poc1",
            environment="qa", version="1.0.0",
        )

        assert updated.updated_at is not None
        assert updated.updated_at >= before

    def test_update_unknown_id_never_inserts(self, any_registry, roster):
        """update() on an unknown id fails and leaves the roster unchanged."""
        with pytest.raises(NotFound):
            any_registry.update(
                "intruder", token="tok", partner="poc1",
                environment="qa", version="1.0.0",
            )

        assert {r.id for r in any_registry.list()} == set(roster)

    def test_list_is_a_snapshot(self, any_registry):
        """Records in a list() result do not change after later updates."""
        snapshot = any_registry.list()

        any_registry.update(
            "poc1qa123456", token="tok-new", partner="poc1",
            environment="qa", version="2.0.0",
        )

        old = next(r for r in snapshot if r.id == "poc1qa123456")
        assert old.token == ""


# =============================================================================
# InMemoryDeviceRegistry Tests
# =============================================================================

class TestInMemoryDeviceRegistry:
    """Tests specific to the in-memory backend."""

    def test_from_roster(self, roster):
        """from_roster provisions one record per id."""
        registry = InMemoryDeviceRegistry.from_roster(roster)

        assert len(registry) == len(roster)

    def test_records_are_immutable(self, empty_registry):
        """Returned records cannot be mutated in place."""
        record = empty_registry.get("poc1qa123456")

        with pytest.raises(AttributeError):
            record.token = "hijack"

    def test_update_returns_new_record(self, empty_registry):
        """update() swaps in a new object instead of mutating the old one."""
        before = empty_registry.get("poc1qa123456")

        after = empty_registry.update(
            "poc1qa123456", token="tok", partner="poc1",
            environment="qa", version="1.0.0",
        )

        assert before is not after
        assert before.token == ""


# =============================================================================
# SqlDeviceRegistry Tests
# =============================================================================

class TestSqlDeviceRegistry:
    """Tests specific to the SQLAlchemy backend."""

    def test_seed_inserts_missing_only(self, sql_session_factory, roster):
        """seed() is idempotent and keeps existing registrations."""
        registry = SqlDeviceRegistry(sql_session_factory)

        assert registry.seed(roster) == len(roster)
        registry.update(
            "poc1qa123456", token="tok-1", partner="poc1",
            environment="qa", version="1.0.0",
        )

        assert registry.seed(roster) == 0
        assert registry.get("poc1qa123456").token == "tok-1"

    def test_seed_adds_new_roster_ids(self, sql_registry):
        """Ids added to the roster later are provisioned on the next seed."""
        inserted = sql_registry.seed({"newstudent": ["999"]})

        assert inserted == 1
        assert sql_registry.get("newstudent").courses == frozenset({"999"})

    def test_updated_at_is_timezone_aware(self, sql_registry):
        """Timestamps read back from SQLite carry UTC tzinfo."""
        stamp = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

        sql_registry.update(
            "poc1qa123456", token="tok-1", partner="poc1",
            environment="qa", version="1.0.0", updated_at=stamp,
        )

        assert sql_registry.get("poc1qa123456").updated_at == stamp


# =============================================================================
# Roster Loading Tests
# =============================================================================

class TestLoadRoster:
    """Tests for roster file loading."""

    def test_default_roster(self):
        """Without a path the built-in roster is used."""
        roster = load_roster(None)

        assert roster == {sid: list(c) for sid, c in DEFAULT_ROSTER.items()}
        assert len(roster) == 6

    def test_load_object_entries(self, tmp_path):
        """Entries may be objects with a courses list."""
        path = tmp_path / "roster.json"
        path.write_text(json.dumps({"s1": {"courses": ["1", 2]}, "s2": {}}))

        roster = load_roster(str(path))

        assert roster == {"s1": ["1", "2"], "s2": []}

    def test_load_list_entries(self, tmp_path):
        """Entries may be plain course lists."""
        path = tmp_path / "roster.json"
        path.write_text(json.dumps({"s1": ["123"]}))

        assert load_roster(str(path)) == {"s1": ["123"]}

    def test_rejects_non_object(self, tmp_path):
        """A JSON array is not a roster."""
        path = tmp_path / "roster.json"
        path.write_text("[]")

        with pytest.raises(ValueError):
            load_roster(str(path))

    def test_rejects_bad_courses(self, tmp_path):
        """Courses must be a list."""
        path = tmp_path / "roster.json"
        path.write_text(json.dumps({"s1": {"courses": "123"}}))

        with pytest.raises(ValueError):
            load_roster(str(path))


class TestBuildRegistry:
    """Tests for the registry factory."""

    def test_memory_backend(self, roster):
        registry = build_registry("memory", roster)

        assert isinstance(registry, InMemoryDeviceRegistry)
        assert registry.backend == "memory"

    def test_sql_backend(self, roster, sql_session_factory):
        registry = build_registry("sql", roster, session_factory=sql_session_factory)

        assert isinstance(registry, SqlDeviceRegistry)
        assert len(registry.list()) == len(roster)

    def test_sql_backend_requires_session_factory(self, roster):
        with pytest.raises(ValueError):
            build_registry("sql", roster)

    def test_unknown_backend(self, roster):
        with pytest.raises(ValueError):
            build_registry("redis", roster)


class TestDeviceRecord:
    """Tests for DeviceRecord helpers."""

    def test_to_dict_shape(self):
        """to_dict renders the public JSON shape."""
        stamp = datetime(2025, 1, 1, tzinfo=timezone.utc)
        record = DeviceRecord(
            id="s1", token="t", partner="poc1", environment="qa",
            version="1.0.0", courses=frozenset({"b", "a"}), updated_at=stamp,
        )

        assert record.to_dict() == {
            "id": "s1",
            "token": "t",
            "partner": "poc1",
            "environment": "qa",
            "courses": ["a", "b"],
            "version": "1.0.0",
            "updatedAt": stamp.isoformat(),
        }

    def test_to_dict_unregistered(self):
        """Unregistered records have no updatedAt."""
        assert DeviceRecord.provision("s1", ["1"]).to_dict()["updatedAt"] is None
