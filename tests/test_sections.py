"""
Tests for folio.sections module.

Tests section configuration, renderers and concurrent loading.
"""

import threading
from unittest import mock

import pytest
from markupsafe import Markup

from folio.backend import Backend
from folio.cache import QueryCache
from folio.errors import BackendError
from folio.repository import Repositories
from folio.sections import (
    EMPTY_MESSAGE,
    PAGES,
    SECTIONS,
    SKELETON_ROWS,
    SectionLoader,
    link_renderer,
    load_section,
    page_for,
    truncate_renderer,
)


@pytest.fixture
def repos(app):
    return Repositories(Backend(), QueryCache())


class TestSectionConfig:
    """Tests for the section registry."""

    def test_every_section_is_on_exactly_one_page(self):
        hosted = [table for tables in PAGES.values() for table in tables]

        assert sorted(hosted) == sorted(SECTIONS)

    def test_page_for(self):
        assert page_for("skills") == "skills"
        assert page_for("hobbies") == "profile"
        with pytest.raises(KeyError):
            page_for("messages")

    def test_skeleton_and_cell_count(self):
        section = SECTIONS["experience"]

        assert section.skeleton_rows == SKELETON_ROWS == 2
        assert section.cell_count == len(section.columns) + 1
        assert EMPTY_MESSAGE == "No items found."

    def test_experience_period_column(self):
        cells = SECTIONS["experience"].cells({"role": "Dev", "company": "Acme", "start_date": "2020-01-01"})

        assert cells == ["Dev", "Acme", "Jan 2020 - Present"]

    def test_period_column_locale(self):
        cells = SECTIONS["education"].cells(
            {"institution": "ITB", "start_date": "2015-08-01", "end_date": None}, "id"
        )

        assert cells[-1] == "Agu 2015 - Sekarang"

    def test_missing_values_render_empty(self):
        assert SECTIONS["education"].cells({"institution": "ITB"})[1] == ""

    def test_achievement_date_column(self):
        assert SECTIONS["achievements"].cells({"title": "Award", "date": None})[1] == "N/A"


class TestRenderers:
    """Tests for column renderers."""

    def test_link_renderer_escapes(self):
        html = link_renderer("url")({"url": 'https://example.com/"><script>'}, "en")

        assert isinstance(html, Markup)
        assert "<script>" not in html

    def test_link_renderer_empty(self):
        assert link_renderer("url")({"url": None}, "en") == ""

    def test_truncate_renderer(self):
        render = truncate_renderer("description", limit=10)

        assert render({"description": "short"}, "en") == "short"
        assert render({"description": "a much longer description"}, "en").endswith("…")
        assert render({"description": None}, "en") == ""


class TestLoadSection:
    """Tests for single-section loading."""

    def test_loads_rows(self, app, repos, user_id):
        with app.app_context():
            repos.entity("hobbies").save(user_id, {"name": "Chess"})
            state = load_section(SECTIONS["hobbies"], repos, user_id)

        assert [r["name"] for r in state.rows] == ["Chess"]
        assert not state.loading
        assert not state.empty
        assert state.error is None

    def test_empty_section(self, app, repos, user_id):
        with app.app_context():
            state = load_section(SECTIONS["hobbies"], repos, user_id)

        assert state.empty

    def test_error_keeps_last_known_rows(self, app, repos, user_id):
        with app.app_context():
            hobbies = repos.entity("hobbies")
            hobbies.save(user_id, {"name": "Chess"})
            hobbies.list(user_id)
            repos.cache.invalidate("hobbies", user_id)

            with mock.patch.object(hobbies, "fetch", side_effect=BackendError("connection refused")):
                state = load_section(SECTIONS["hobbies"], repos, user_id)

        assert state.error == "connection refused"
        assert [r["name"] for r in state.rows] == ["Chess"]


class TestSectionLoader:
    """Tests for concurrent loading with a render budget."""

    def test_loads_all_sections_in_order(self, app, repos, user_id):
        loader = SectionLoader(app, repos, timeout=10)
        tables = PAGES["profile"]
        try:
            states = loader.load([SECTIONS[t] for t in tables], user_id)
        finally:
            loader.shutdown()

        assert [s.section.table for s in states] == list(tables)
        assert all(not s.loading for s in states)

    def test_slow_section_is_returned_loading(self, app, repos, user_id):
        release = threading.Event()
        hobbies = repos.entity("hobbies")
        original_fetch = hobbies.fetch

        def slow_fetch(owner):
            release.wait(5)
            return original_fetch(owner)

        loader = SectionLoader(app, repos, timeout=0.2)
        try:
            with mock.patch.object(hobbies, "fetch", side_effect=slow_fetch):
                states = loader.load([SECTIONS["skills"], SECTIONS["hobbies"]], user_id)
                release.set()
        finally:
            loader.shutdown()

        skills, hobby_state = states
        assert not skills.loading
        assert hobby_state.loading
        assert not hobby_state.empty
        assert hobby_state.rows == []
