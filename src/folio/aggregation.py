"""
Public portfolio aggregation.

Fetches every public section of one user's portfolio in parallel. Sections are
independent: each has its own outcome (data, still loading, or failed) and an
empty or failed section never blocks the others.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .backend import Backend
from .errors import BackendError
from .schemas import SKILL_CATEGORIES
from .storage import AVATARS_BUCKET, PROJECT_IMAGES_BUCKET, BucketStorage, timestamp_version

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublicSection:
    name: str
    table: str
    order_by: str = "created_at"
    descending: bool = False
    single: bool = False


PUBLIC_SECTIONS: Tuple[PublicSection, ...] = (
    PublicSection("profile", "profiles", single=True),
    PublicSection("skills", "skills", order_by="category"),
    PublicSection("projects", "projects", descending=True),
    PublicSection("experience", "experience", order_by="start_date", descending=True),
    PublicSection("education", "education", order_by="start_date", descending=True),
    PublicSection("organizational_experience", "organizational_experience", order_by="start_date", descending=True),
    PublicSection("achievements", "achievements", order_by="date", descending=True),
    PublicSection("hobbies", "hobbies"),
    PublicSection("social_links", "social_media_links"),
)

SECTIONS_BY_NAME = {s.name: s for s in PUBLIC_SECTIONS}


@dataclass
class SectionOutcome:
    """Result of fetching one public section."""

    name: str
    data: Any = None
    loading: bool = False
    error: Optional[str] = None

    @property
    def empty(self) -> bool:
        return not self.loading and not self.data


def group_skills(rows: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Split skills into the fixed categories, keeping their order."""
    groups: Dict[str, List[Dict[str, Any]]] = {category: [] for category in SKILL_CATEGORIES}
    for row in rows:
        groups.setdefault(row.get("category"), []).append(row)
    return groups


class PublicAggregator:
    """
    Reads a portfolio for anonymous visitors.

    Args:
        app: Flask app; each worker runs inside its application context.
        backend: Backend used for anonymous (public) reads.
        storage: Builds public URLs for stored images.
        owner_user_id: Configured portfolio owner, if any.
        timeout: Render budget in seconds for :meth:`gather`.
    """

    def __init__(
        self,
        app,
        backend: Backend,
        storage: BucketStorage,
        owner_user_id: Optional[str] = None,
        timeout: float = 2.0,
        max_workers: int = 9,
    ):
        self.app = app
        self.backend = backend
        self.storage = storage
        self.owner_user_id = owner_user_id
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="folio-public")
        self._warned_first_profile = False

    def resolve_owner(self) -> Optional[str]:
        """
        The user whose portfolio the public pages show.

        Uses the configured owner when set; otherwise the owner of the
        first-created profile (single-tenant setups only).
        """
        if self.owner_user_id:
            return self.owner_user_id
        first = self.backend.select_one("profiles", order_by="created_at")
        if first is None:
            return None
        if not self._warned_first_profile:
            logger.warning(
                "public.owner_user_id is not set; showing the first created profile "
                f"(user {first['user_id']}). Set it when more than one user exists."
            )
            self._warned_first_profile = True
        return first["user_id"]

    def fetch_section(self, name: str, user_id: str) -> Any:
        """
        Read one section for ``user_id``. Must run in an application context.

        Returns:
            The profile dict (or None) for "profile", a list of rows otherwise.
        """
        spec = SECTIONS_BY_NAME[name]
        if spec.single:
            row = self.backend.select_one(spec.table, filters={"user_id": user_id})
            return self._decorate(name, row) if row else None
        rows = self.backend.select(
            spec.table,
            filters={"user_id": user_id},
            order_by=spec.order_by,
            descending=spec.descending,
        )
        return [self._decorate(name, row) for row in rows]

    def _decorate(self, name: str, row: Dict[str, Any]) -> Dict[str, Any]:
        if name == "profile":
            row["avatar_url"] = self.storage.public_url(
                AVATARS_BUCKET, row.get("photo_url"), timestamp_version(row.get("updated_at"))
            )
        elif name == "projects":
            row["image_src"] = self.storage.public_url(PROJECT_IMAGES_BUCKET, row.get("image_url"))
        return row

    def outcome(self, name: str, user_id: str) -> SectionOutcome:
        try:
            return SectionOutcome(name, data=self.fetch_section(name, user_id))
        except BackendError as e:
            logger.warning(f"Public section {name} failed: {e}")
            return SectionOutcome(name, error=str(e))

    def _run(self, name: str, user_id: str) -> SectionOutcome:
        with self.app.app_context():
            return self.outcome(name, user_id)

    def gather(self, user_id: str, timeout: Optional[float] = None) -> Dict[str, SectionOutcome]:
        """
        Fetch every public section in parallel.

        Args:
            user_id: Portfolio owner.
            timeout: Overall wait in seconds; None uses the configured budget.
                Sections still running afterwards come back with ``loading=True``.

        Returns:
            Section name -> SectionOutcome, in display order.
        """
        budget = self.timeout if timeout is None else timeout
        futures = [(s.name, self._executor.submit(self._run, s.name, user_id)) for s in PUBLIC_SECTIONS]
        deadline = time.monotonic() + budget

        outcomes: Dict[str, SectionOutcome] = {}
        for name, future in futures:
            try:
                outcomes[name] = future.result(timeout=max(0.0, deadline - time.monotonic()))
            except FuturesTimeoutError:
                outcomes[name] = SectionOutcome(name, loading=True)
        return outcomes

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)
