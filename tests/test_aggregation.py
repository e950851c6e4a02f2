"""
Tests for folio.aggregation module.

Tests public section reads, ordering, owner resolution and timeouts.
"""

import logging
import threading
from datetime import date
from unittest import mock

import pytest

from folio.aggregation import PUBLIC_SECTIONS, PublicAggregator, group_skills
from folio.backend import Backend
from folio.errors import BackendError
from folio.repository import Repositories


@pytest.fixture
def repos(app):
    return Repositories(Backend())


@pytest.fixture
def aggregator(app, services):
    agg = PublicAggregator(app, Backend(), services.storage, timeout=10)
    yield agg
    agg.shutdown()


def _seed(app, repos, user_id):
    with app.app_context():
        repos.profiles.upsert(user_id, {"name": "Ada Lovelace", "photo_url": f"{user_id}/me.png"})
        repos.entity("skills").save(user_id, {"name": "Teamwork", "category": "Soft Skill"})
        repos.entity("skills").save(user_id, {"name": "Python", "category": "Hard Skill"})
        repos.entity("experience").save(
            user_id, {"role": "Junior", "company": "Acme", "start_date": date(2018, 1, 1), "end_date": date(2019, 1, 1)}
        )
        repos.entity("experience").save(
            user_id, {"role": "Senior", "company": "Acme", "start_date": date(2020, 1, 1), "end_date": None}
        )
        repos.entity("projects").save(user_id, {"title": "Folio", "image_url": f"{user_id}/cover.png"})
        repos.entity("hobbies").save(user_id, {"name": "Chess"})
        repos.entity("hobbies").save(user_id, {"name": "Hiking"})


class TestGroupSkills:
    """Tests for skill grouping."""

    def test_groups_by_fixed_categories(self):
        groups = group_skills([
            {"name": "Python", "category": "Hard Skill"},
            {"name": "Teamwork", "category": "Soft Skill"},
            {"name": "SQL", "category": "Hard Skill"},
        ])

        assert list(groups) == ["Hard Skill", "Soft Skill"]
        assert [s["name"] for s in groups["Hard Skill"]] == ["Python", "SQL"]

    def test_empty_categories_present(self):
        assert group_skills([]) == {"Hard Skill": [], "Soft Skill": []}


class TestGather:
    """Tests for parallel section reads."""

    def test_all_sections_in_display_order(self, app, aggregator, repos, user_id):
        _seed(app, repos, user_id)

        outcomes = aggregator.gather(user_id)

        assert list(outcomes) == [s.name for s in PUBLIC_SECTIONS]
        assert all(o.error is None and not o.loading for o in outcomes.values())

    def test_section_ordering(self, app, aggregator, repos, user_id):
        _seed(app, repos, user_id)

        outcomes = aggregator.gather(user_id)

        assert [s["category"] for s in outcomes["skills"].data] == ["Hard Skill", "Soft Skill"]
        assert [e["role"] for e in outcomes["experience"].data] == ["Senior", "Junior"]
        assert [h["name"] for h in outcomes["hobbies"].data] == ["Chess", "Hiking"]

    def test_profile_avatar_url_is_versioned(self, app, aggregator, repos, user_id):
        _seed(app, repos, user_id)

        profile = aggregator.gather(user_id)["profile"].data

        assert profile["name"] == "Ada Lovelace"
        assert profile["avatar_url"].startswith(f"/storage/avatars/{user_id}/me.png?t=")

    def test_project_image_src(self, app, aggregator, repos, user_id):
        _seed(app, repos, user_id)

        project = aggregator.gather(user_id)["projects"].data[0]

        assert project["image_src"] == f"/storage/project-images/{user_id}/cover.png"

    def test_empty_sections(self, aggregator, user_id):
        outcomes = aggregator.gather(user_id)

        assert outcomes["profile"].data is None
        assert outcomes["skills"].data == []
        assert all(o.empty for o in outcomes.values())

    def test_failed_section_does_not_block_others(self, app, aggregator, repos, user_id):
        _seed(app, repos, user_id)
        original = aggregator.fetch_section

        def flaky(name, uid):
            if name == "skills":
                raise BackendError("connection refused", table="skills")
            return original(name, uid)

        with mock.patch.object(aggregator, "fetch_section", side_effect=flaky):
            outcomes = aggregator.gather(user_id)

        assert outcomes["skills"].error == "connection refused"
        assert outcomes["skills"].data is None
        assert outcomes["profile"].data["name"] == "Ada Lovelace"

    def test_slow_section_comes_back_loading(self, app, aggregator, repos, user_id):
        _seed(app, repos, user_id)
        release = threading.Event()
        original = aggregator.fetch_section

        def slow(name, uid):
            if name == "projects":
                release.wait(5)
            return original(name, uid)

        with mock.patch.object(aggregator, "fetch_section", side_effect=slow):
            outcomes = aggregator.gather(user_id, timeout=0.3)
            release.set()

        assert outcomes["projects"].loading
        assert not outcomes["projects"].empty
        assert outcomes["skills"].data

    def test_other_users_data_is_not_shown(self, app, aggregator, repos, user_id, other_user_id):
        _seed(app, repos, user_id)

        outcomes = aggregator.gather(other_user_id)

        assert outcomes["skills"].data == []


class TestResolveOwner:
    """Tests for choosing whose portfolio is public."""

    def test_configured_owner_wins(self, app, services):
        agg = PublicAggregator(app, Backend(), services.storage, owner_user_id="configured")
        try:
            assert agg.resolve_owner() == "configured"
        finally:
            agg.shutdown()

    def test_no_profiles(self, app, aggregator):
        with app.app_context():
            assert aggregator.resolve_owner() is None

    def test_falls_back_to_first_profile_and_warns_once(self, app, aggregator, repos, user_id, other_user_id, caplog):
        with app.app_context():
            repos.profiles.upsert(user_id, {"name": "First"})
            repos.profiles.upsert(other_user_id, {"name": "Second"})

            with caplog.at_level(logging.WARNING, logger="folio.aggregation"):
                assert aggregator.resolve_owner() == user_id
                assert aggregator.resolve_owner() == user_id

        warnings = [r for r in caplog.records if "owner_user_id is not set" in r.getMessage()]
        assert len(warnings) == 1
