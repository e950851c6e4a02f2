"""
Standalone HTML CV for a portfolio owner.

The document is built from the same sections the public page shows and
rendered with the ``cv.html`` Jinja2 template.
"""

import logging
from pathlib import Path
from typing import Any, Dict

from jinja2 import Environment, PackageLoader, select_autoescape

from .aggregation import PUBLIC_SECTIONS, PublicAggregator, group_skills
from .errors import ConfigurationError, NotFoundError
from .formatting import register_filters

logger = logging.getLogger(__name__)


def collect_cv_data(aggregator: PublicAggregator, user_id: str) -> Dict[str, Any]:
    """
    Read every section for ``user_id`` (application context required).

    Raises:
        NotFoundError: The user has no profile.
        BackendError: A section read failed.
    """
    data = {spec.name: aggregator.fetch_section(spec.name, user_id) for spec in PUBLIC_SECTIONS}
    if data["profile"] is None:
        raise NotFoundError(f"No profile found for user {user_id}", table="profiles")
    data["skill_groups"] = group_skills(data["skills"])
    return data


def render_cv(data: Dict[str, Any], locale: str = "en") -> str:
    """Render collected CV data to an HTML string."""
    env = Environment(
        loader=PackageLoader("folio", "templates"),
        autoescape=select_autoescape(["html", "xml"]),
    )
    register_filters(env, lambda: locale)
    template = env.get_template("cv.html")
    return template.render(cv=data, profile=data["profile"], locale=locale)


def write_cv(html: str, output_path: Path) -> Path:
    """Write a rendered CV to ``output_path``, creating parent directories."""
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(html, encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot write CV to {output_path}: {e}")
    logger.info(f"CV written: {output_path}")
    return output_path
