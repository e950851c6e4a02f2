"""
Schema descriptors for Folio entities.

A schema lists the editable fields of one table together with the rules the
form layer enforces before anything is sent to the backend. The generic
dialog in :mod:`folio.forms` builds its WTForms class from these.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

SKILL_CATEGORIES = ("Hard Skill", "Soft Skill")

SOCIAL_PLATFORMS = (
    "GitHub",
    "LinkedIn",
    "Twitter",
    "Instagram",
    "Facebook",
    "Website",
    "YouTube",
    "TikTok",
)

# Field kinds understood by the form builder
FIELD_KINDS = ("text", "textarea", "url", "date", "choice", "email", "hidden", "password")


@dataclass(frozen=True)
class FieldSpec:
    key: str
    label: str
    kind: str = "text"
    required: bool = False
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    choices: Tuple[str, ...] = ()
    placeholder: str = ""
    equal_to: Optional[str] = None

    def __post_init__(self):
        if self.kind not in FIELD_KINDS:
            raise ValueError(f"Unknown field kind: {self.kind}")
        if self.kind == "choice" and not self.choices:
            raise ValueError(f"Choice field {self.key} needs choices")


@dataclass(frozen=True)
class EntitySchema:
    """Editable fields of one table, in display order."""

    table: str
    title: str
    fields: Tuple[FieldSpec, ...] = field(default_factory=tuple)

    @property
    def keys(self) -> List[str]:
        return [f.key for f in self.fields]

    def get_field(self, key: str) -> FieldSpec:
        for spec in self.fields:
            if spec.key == key:
                return spec
        raise KeyError(key)

    def date_keys(self) -> List[str]:
        return [f.key for f in self.fields if f.kind == "date"]

    def check_values(self, values: Dict[str, Any]) -> Dict[str, List[str]]:
        """
        Check enumerated fields on already-cleaned values.

        The form layer enforces this too; repositories call it again so a
        value outside the fixed set never reaches the backend.

        Returns:
            Field key -> error messages (empty when everything is valid).
        """
        errors: Dict[str, List[str]] = {}
        for spec in self.fields:
            if spec.kind != "choice" or spec.key not in values:
                continue
            value = values[spec.key]
            if value is None and not spec.required:
                continue
            if value not in spec.choices:
                errors[spec.key] = [f"{spec.label} must be one of: {', '.join(spec.choices)}"]
        return errors


SKILL_SCHEMA = EntitySchema(
    table="skills",
    title="Skill",
    fields=(
        FieldSpec("name", "Skill Name", required=True, min_length=2, max_length=200),
        FieldSpec("category", "Category", kind="choice", required=True, choices=SKILL_CATEGORIES),
    ),
)

PROJECT_SCHEMA = EntitySchema(
    table="projects",
    title="Project",
    fields=(
        FieldSpec("title", "Title", required=True, min_length=3, max_length=200),
        FieldSpec("description", "Description", kind="textarea"),
        FieldSpec("project_url", "Project URL", kind="url", placeholder="https://"),
        FieldSpec("image_url", "Image", kind="hidden"),
    ),
)

EXPERIENCE_SCHEMA = EntitySchema(
    table="experience",
    title="Experience",
    fields=(
        FieldSpec("role", "Role", required=True, min_length=2, max_length=200),
        FieldSpec("company", "Company", required=True, min_length=2, max_length=200),
        FieldSpec("start_date", "Start Date", kind="date", required=True),
        FieldSpec("end_date", "End Date", kind="date"),
        FieldSpec("description", "Description", kind="textarea"),
    ),
)

ORGANIZATIONAL_EXPERIENCE_SCHEMA = EntitySchema(
    table="organizational_experience",
    title="Organizational Experience",
    fields=(
        FieldSpec("organization", "Organization", required=True, min_length=2, max_length=200),
        FieldSpec("role", "Role", required=True, min_length=2, max_length=200),
        FieldSpec("start_date", "Start Date", kind="date"),
        FieldSpec("end_date", "End Date", kind="date"),
        FieldSpec("description", "Description", kind="textarea"),
    ),
)

EDUCATION_SCHEMA = EntitySchema(
    table="education",
    title="Education",
    fields=(
        FieldSpec("institution", "Institution", required=True, min_length=2, max_length=200),
        FieldSpec("degree", "Degree", max_length=200),
        FieldSpec("field_of_study", "Field of Study", max_length=200),
        FieldSpec("start_date", "Start Date", kind="date"),
        FieldSpec("end_date", "End Date", kind="date"),
    ),
)

ACHIEVEMENT_SCHEMA = EntitySchema(
    table="achievements",
    title="Achievement",
    fields=(
        FieldSpec("title", "Title", required=True, min_length=2, max_length=200),
        FieldSpec("description", "Description", kind="textarea"),
        FieldSpec("date", "Date", kind="date"),
    ),
)

HOBBY_SCHEMA = EntitySchema(
    table="hobbies",
    title="Hobby",
    fields=(
        FieldSpec("name", "Hobby", required=True, min_length=2, max_length=200),
    ),
)

SOCIAL_LINK_SCHEMA = EntitySchema(
    table="social_media_links",
    title="Social Media Link",
    fields=(
        FieldSpec("platform", "Platform", kind="choice", required=True, choices=SOCIAL_PLATFORMS),
        FieldSpec("url", "URL", kind="url", required=True, placeholder="https://"),
    ),
)

ENTITY_SCHEMAS: Dict[str, EntitySchema] = {
    s.table: s
    for s in (
        SKILL_SCHEMA,
        PROJECT_SCHEMA,
        EXPERIENCE_SCHEMA,
        ORGANIZATIONAL_EXPERIENCE_SCHEMA,
        EDUCATION_SCHEMA,
        ACHIEVEMENT_SCHEMA,
        HOBBY_SCHEMA,
        SOCIAL_LINK_SCHEMA,
    )
}

# Profile name may be left empty; when given it must be 2..50 characters
PROFILE_SCHEMA = EntitySchema(
    table="profiles",
    title="Profile",
    fields=(
        FieldSpec("name", "Full Name", min_length=2, max_length=50),
        FieldSpec("bio", "Bio", kind="textarea"),
        FieldSpec("location", "Location", max_length=200),
    ),
)

CONTACT_SCHEMA = EntitySchema(
    table="messages",
    title="Message",
    fields=(
        FieldSpec("name", "Name", required=True, min_length=2, max_length=200),
        FieldSpec("email", "Email", kind="email", required=True, max_length=320),
        FieldSpec("message", "Message", kind="textarea", required=True, min_length=10),
    ),
)

PASSWORD_SCHEMA = EntitySchema(
    table="users",
    title="Password",
    fields=(
        FieldSpec("password", "New Password", kind="password", required=True, min_length=6),
        FieldSpec("confirm_password", "Confirm Password", kind="password", required=True, equal_to="password"),
    ),
)

LOGIN_SCHEMA = EntitySchema(
    table="users",
    title="Login",
    fields=(
        FieldSpec("email", "Email", kind="email", required=True),
        FieldSpec("password", "Password", kind="password", required=True),
    ),
)
