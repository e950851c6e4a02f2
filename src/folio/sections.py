"""
Generic CRUD sections for the admin area.

A section is one entity table shown as a card with a table of records and
add / edit / delete actions. Sections differ only in their configuration:
table name, title, column list (with optional renderers) and dialog schema.

Sections of one page load concurrently. A section that has not finished
within the render budget is rendered in loading state (skeleton rows) and its
rows are fetched afterwards from the rows fragment endpoint.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from markupsafe import Markup

from .errors import BackendError
from .formatting import format_date, format_date_range
from .schemas import ENTITY_SCHEMAS, EntitySchema

logger = logging.getLogger(__name__)

SKELETON_ROWS = 2
EMPTY_MESSAGE = "No items found."

Row = Dict[str, Any]
Renderer = Callable[[Row, str], Any]


@dataclass(frozen=True)
class Column:
    key: str
    label: str
    render: Optional[Renderer] = None

    def value(self, record: Row, locale: str = "en") -> Any:
        if self.render is not None:
            return self.render(record, locale)
        value = record.get(self.key)
        return "" if value is None else value


@dataclass(frozen=True)
class CrudSection:
    table: str
    title: str
    columns: Tuple[Column, ...]
    schema: EntitySchema

    @property
    def skeleton_rows(self) -> int:
        return SKELETON_ROWS

    @property
    def cell_count(self) -> int:
        # one cell per column plus the actions cell
        return len(self.columns) + 1

    def cells(self, record: Row, locale: str = "en") -> List[Any]:
        return [column.value(record, locale) for column in self.columns]


@dataclass
class SectionState:
    """What a section shows right now."""

    section: CrudSection
    rows: List[Row] = field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None

    @property
    def empty(self) -> bool:
        return not self.loading and not self.rows


def date_range_renderer(start: str = "start_date", end: str = "end_date") -> Renderer:
    return lambda record, locale: format_date_range(record.get(start), record.get(end), locale)


def date_renderer(key: str) -> Renderer:
    return lambda record, locale: format_date(record.get(key), locale)


def link_renderer(key: str) -> Renderer:
    def render(record: Row, locale: str) -> Any:
        url = record.get(key)
        if not url:
            return ""
        return Markup('<a href="{0}" target="_blank" rel="noopener noreferrer">{0}</a>').format(url)
    return render


def truncate_renderer(key: str, limit: int = 80) -> Renderer:
    def render(record: Row, locale: str) -> str:
        text = record.get(key) or ""
        return text if len(text) <= limit else text[: limit - 1].rstrip() + "…"
    return render


SECTIONS: Dict[str, CrudSection] = {
    s.table: s
    for s in (
        CrudSection(
            "skills",
            "Skills",
            (Column("name", "Name"), Column("category", "Category")),
            ENTITY_SCHEMAS["skills"],
        ),
        CrudSection(
            "projects",
            "Projects",
            (
                Column("title", "Title"),
                Column("description", "Description", truncate_renderer("description")),
                Column("project_url", "Link", link_renderer("project_url")),
            ),
            ENTITY_SCHEMAS["projects"],
        ),
        CrudSection(
            "experience",
            "Work Experience",
            (
                Column("role", "Role"),
                Column("company", "Company"),
                Column("period", "Period", date_range_renderer()),
            ),
            ENTITY_SCHEMAS["experience"],
        ),
        CrudSection(
            "education",
            "Education",
            (
                Column("institution", "Institution"),
                Column("degree", "Degree"),
                Column("field_of_study", "Field of Study"),
                Column("period", "Period", date_range_renderer()),
            ),
            ENTITY_SCHEMAS["education"],
        ),
        CrudSection(
            "organizational_experience",
            "Organizational Experience",
            (
                Column("organization", "Organization"),
                Column("role", "Role"),
                Column("period", "Period", date_range_renderer()),
            ),
            ENTITY_SCHEMAS["organizational_experience"],
        ),
        CrudSection(
            "achievements",
            "Achievements",
            (
                Column("title", "Title"),
                Column("date", "Date", date_renderer("date")),
            ),
            ENTITY_SCHEMAS["achievements"],
        ),
        CrudSection(
            "social_media_links",
            "Social Media",
            (
                Column("platform", "Platform"),
                Column("url", "URL", link_renderer("url")),
            ),
            ENTITY_SCHEMAS["social_media_links"],
        ),
        CrudSection(
            "hobbies",
            "Hobbies",
            (Column("name", "Name"),),
            ENTITY_SCHEMAS["hobbies"],
        ),
    )
}

# Admin pages and the sections they show, in order
PAGES: Dict[str, Tuple[str, ...]] = {
    "skills": ("skills",),
    "projects": ("projects",),
    "experience": ("experience",),
    "profile": (
        "education",
        "organizational_experience",
        "achievements",
        "social_media_links",
        "hobbies",
    ),
}


def page_for(table: str) -> str:
    """Admin page that hosts a section."""
    for page, tables in PAGES.items():
        if table in tables:
            return page
    raise KeyError(table)


def load_section(section: CrudSection, repositories, owner: str) -> SectionState:
    """
    Read one section's rows.

    A failed read keeps the last rows the cache ever held and carries the
    backend message in ``error``.
    """
    repository = repositories.entity(section.table)
    try:
        return SectionState(section, rows=repository.list(owner))
    except BackendError as e:
        logger.warning(f"Loading {section.table} failed: {e}")
        last_known = repositories.cache.peek(repository.cache_key(owner)) or []
        return SectionState(section, rows=last_known, error=str(e))


class SectionLoader:
    """
    Loads the sections of a page in parallel on a shared thread pool.

    Each worker pushes its own application context. Reads that miss the
    render budget keep running; their results land in the cache for the
    rows fragment request.
    """

    def __init__(self, app, repositories, timeout: float = 2.0, max_workers: int = 4):
        self.app = app
        self.repositories = repositories
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="folio-section")

    def _run(self, section: CrudSection, owner: str) -> SectionState:
        with self.app.app_context():
            return load_section(section, self.repositories, owner)

    def load(self, sections: List[CrudSection], owner: str) -> List[SectionState]:
        futures = [(section, self._executor.submit(self._run, section, owner)) for section in sections]
        deadline = time.monotonic() + self.timeout

        states = []
        for section, future in futures:
            remaining = max(0.0, deadline - time.monotonic())
            try:
                states.append(future.result(timeout=remaining))
            except FuturesTimeoutError:
                logger.debug(f"Section {section.table} still loading after {self.timeout}s")
                states.append(SectionState(section, loading=True))
        return states

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)
