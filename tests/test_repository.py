"""
Tests for folio.repository module.

Tests entity repositories, the profile singleton and contact messages.
"""

from datetime import date
from unittest import mock

import pytest

from folio.backend import Backend
from folio.cache import QueryCache
from folio.errors import BackendError, NotFoundError, ValidationError
from folio.repository import Repositories, from_wire, parse_date, to_wire
from folio.schemas import EXPERIENCE_SCHEMA


@pytest.fixture
def backend(ctx):
    return mock.Mock(wraps=Backend())


@pytest.fixture
def repos(backend):
    return Repositories(backend, QueryCache())


class TestWireConversion:
    """Tests for date conversion helpers."""

    def test_parse_date(self):
        assert parse_date("2020-01-15") == date(2020, 1, 15)
        assert parse_date("2020-01-15T10:00:00") == date(2020, 1, 15)
        assert parse_date(date(2021, 3, 1)) == date(2021, 3, 1)

    def test_parse_date_empty_and_invalid(self):
        assert parse_date(None) is None
        assert parse_date("") is None
        assert parse_date("not a date") is None

    def test_to_wire_serializes_dates(self):
        assert to_wire({"start_date": date(2020, 1, 1), "role": "Dev", "end_date": None}) == {
            "start_date": "2020-01-01",
            "role": "Dev",
            "end_date": None,
        }

    def test_from_wire_parses_schema_dates_only(self):
        record = {"role": "Dev", "start_date": "2020-01-01", "end_date": None, "created_at": "2024-01-01T00:00:00"}

        values = from_wire(EXPERIENCE_SCHEMA, record)

        assert values["start_date"] == date(2020, 1, 1)
        assert values["end_date"] is None
        assert values["created_at"] == "2024-01-01T00:00:00"


class TestEntityRepository:
    """Tests for CRUD on owned entity tables."""

    def test_save_inserts_once(self, repos, backend, user_id):
        row = repos.entity("skills").save(user_id, {"name": "Python", "category": "Hard Skill"})

        assert row["user_id"] == user_id
        backend.insert.assert_called_once()
        backend.update.assert_not_called()

    def test_save_with_id_updates_once(self, repos, backend, user_id):
        skills = repos.entity("skills")
        row = skills.save(user_id, {"name": "Python", "category": "Hard Skill"})
        backend.reset_mock()

        updated = skills.save(user_id, {"name": "Rust", "category": "Hard Skill"}, record_id=row["id"])

        assert updated["id"] == row["id"]
        assert updated["name"] == "Rust"
        backend.update.assert_called_once()
        backend.insert.assert_not_called()

    def test_save_converts_dates(self, repos, user_id):
        row = repos.entity("experience").save(
            user_id,
            {"role": "Dev", "company": "Acme", "start_date": date(2020, 1, 1), "end_date": None},
        )

        assert row["start_date"] == "2020-01-01"
        assert row["end_date"] is None

    def test_save_rejects_category_outside_fixed_set(self, repos, backend, user_id):
        with pytest.raises(ValidationError) as exc_info:
            repos.entity("skills").save(user_id, {"name": "Python", "category": "Expert"})

        assert "category" in exc_info.value.field_errors
        backend.insert.assert_not_called()

    def test_list_is_newest_first(self, repos, user_id):
        skills = repos.entity("skills")
        skills.save(user_id, {"name": "Old", "category": "Hard Skill"})
        skills.save(user_id, {"name": "New", "category": "Soft Skill"})

        assert [r["name"] for r in skills.list(user_id)] == ["New", "Old"]

    def test_list_uses_cache_until_mutation(self, repos, backend, user_id):
        skills = repos.entity("skills")
        skills.save(user_id, {"name": "Python", "category": "Hard Skill"})
        backend.reset_mock()

        skills.list(user_id)
        skills.list(user_id)
        assert backend.select.call_count == 1

        skills.save(user_id, {"name": "Go", "category": "Hard Skill"})
        assert len(skills.list(user_id)) == 2
        assert backend.select.call_count == 2

    def test_list_only_returns_own_records(self, repos, user_id, other_user_id):
        repos.entity("hobbies").save(user_id, {"name": "Chess"})
        repos.entity("hobbies").save(other_user_id, {"name": "Golf"})

        assert [r["name"] for r in repos.entity("hobbies").list(user_id)] == ["Chess"]

    def test_get_missing_raises_not_found(self, repos, user_id):
        with pytest.raises(NotFoundError, match="Skill not found"):
            repos.entity("skills").get(user_id, "missing")

    def test_get_foreign_record_raises_not_found(self, repos, user_id, other_user_id):
        row = repos.entity("hobbies").save(other_user_id, {"name": "Golf"})

        with pytest.raises(NotFoundError):
            repos.entity("hobbies").get(user_id, row["id"])

    def test_delete_once_and_invalidate(self, repos, backend, user_id):
        hobbies = repos.entity("hobbies")
        row = hobbies.save(user_id, {"name": "Chess"})
        assert len(hobbies.list(user_id)) == 1
        backend.reset_mock()

        hobbies.delete(user_id, row["id"])

        backend.delete.assert_called_once()
        assert hobbies.list(user_id) == []

    def test_failed_write_leaves_cache_untouched(self, repos, backend, user_id):
        hobbies = repos.entity("hobbies")
        hobbies.save(user_id, {"name": "Chess"})
        hobbies.list(user_id)
        generation = repos.cache.generation(hobbies.cache_key(user_id))

        backend.insert.side_effect = BackendError("connection refused")
        with pytest.raises(BackendError):
            hobbies.save(user_id, {"name": "Golf"})

        assert repos.cache.generation(hobbies.cache_key(user_id)) == generation

    def test_count(self, repos, user_id):
        repos.entity("hobbies").save(user_id, {"name": "Chess"})
        repos.entity("hobbies").save(user_id, {"name": "Reading"})

        assert repos.entity("hobbies").count(user_id) == 2

    def test_unknown_table(self, repos):
        with pytest.raises(NotFoundError, match="Unknown section"):
            repos.entity("certificates")


class TestProfileRepository:
    """Tests for the profile singleton."""

    def test_upsert_creates_then_updates(self, repos, user_id):
        created = repos.profiles.upsert(user_id, {"name": "Ada Lovelace", "bio": "Mathematician"})
        updated = repos.profiles.upsert(user_id, {"name": "Ada King"})

        assert updated["id"] == created["id"]
        assert updated["name"] == "Ada King"
        assert updated["bio"] == "Mathematician"

    def test_upsert_drops_none_values(self, repos, user_id):
        repos.profiles.upsert(user_id, {"name": "Ada", "location": "London"})

        row = repos.profiles.upsert(user_id, {"name": "Ada", "location": None})

        assert row["location"] == "London"

    def test_set_photo(self, repos, user_id):
        row = repos.profiles.set_photo(user_id, f"{user_id}/abc.png")

        assert row["photo_url"] == f"{user_id}/abc.png"

    def test_get_without_profile(self, repos, user_id):
        assert repos.profiles.get(user_id) is None


class TestMessageRepository:
    """Tests for contact messages."""

    def _submit(self, repos, name="Visitor"):
        return repos.messages.submit({"name": name, "email": "v@example.com", "message": "Hello, nice site!"})

    def test_submit_is_anonymous(self, repos, backend):
        self._submit(repos)

        assert backend.insert.call_args.kwargs["identity"] is None

    def test_list_and_unread_count(self, repos, user_id):
        first = self._submit(repos, "First")
        self._submit(repos, "Second")

        assert [m["name"] for m in repos.messages.list(user_id)] == ["Second", "First"]
        assert repos.messages.unread_count(user_id) == 2

        repos.messages.set_read(user_id, first["id"])
        assert repos.messages.unread_count(user_id) == 1

        repos.messages.set_read(user_id, first["id"], False)
        assert repos.messages.unread_count(user_id) == 2

    def test_delete(self, repos, user_id):
        row = self._submit(repos)

        repos.messages.delete(user_id, row["id"])

        assert repos.messages.list(user_id) == []

    def test_get(self, repos, user_id):
        row = self._submit(repos)

        assert repos.messages.get(user_id, row["id"])["name"] == "Visitor"
        with pytest.raises(NotFoundError):
            repos.messages.get(user_id, "missing")
