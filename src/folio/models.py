from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import declared_attr

db = SQLAlchemy()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _new_id() -> str:
    return str(uuid.uuid4())


def serialize_value(value: Any) -> Any:
    """Column value as it travels over the backend contract (JSON-friendly)."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


class RecordMixin:
    """Columns shared by every table exposed through the backend contract."""

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow, index=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            column.name: serialize_value(getattr(self, column.name))
            for column in self.__table__.columns
        }


class OwnedMixin(RecordMixin):
    # Foreign keys on mixins must be declared per mapped class
    @declared_attr
    def user_id(cls):
        return db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    email = db.Column(db.String(320), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class AuthSession(db.Model):
    """Server-side login session; the token lives in the signed Flask cookie."""
    __tablename__ = "auth_sessions"

    token = db.Column(db.String(64), primary_key=True)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    last_seen_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)

    user = db.relationship("User")


class Profile(OwnedMixin, db.Model):
    """One profile per user (unique user_id)."""
    __tablename__ = "profiles"

    name = db.Column(db.String(50), nullable=True)
    bio = db.Column(db.Text, nullable=True)
    location = db.Column(db.String(200), nullable=True)
    photo_url = db.Column(db.String(500), nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_profile_user"),
    )


class Skill(OwnedMixin, db.Model):
    __tablename__ = "skills"

    name = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(20), nullable=False)

    __table_args__ = (
        db.CheckConstraint("category IN ('Hard Skill', 'Soft Skill')", name="ck_skill_category"),
    )


class Project(OwnedMixin, db.Model):
    __tablename__ = "projects"

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    project_url = db.Column(db.String(500), nullable=True)
    image_url = db.Column(db.String(500), nullable=True)


class Experience(OwnedMixin, db.Model):
    __tablename__ = "experience"

    role = db.Column(db.String(200), nullable=False)
    company = db.Column(db.String(200), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=True)
    description = db.Column(db.Text, nullable=True)


class OrganizationalExperience(OwnedMixin, db.Model):
    __tablename__ = "organizational_experience"

    organization = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(200), nullable=False)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    description = db.Column(db.Text, nullable=True)


class Education(OwnedMixin, db.Model):
    __tablename__ = "education"

    institution = db.Column(db.String(200), nullable=False)
    degree = db.Column(db.String(200), nullable=True)
    field_of_study = db.Column(db.String(200), nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)


class Achievement(OwnedMixin, db.Model):
    __tablename__ = "achievements"

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    date = db.Column(db.Date, nullable=True)


class Hobby(OwnedMixin, db.Model):
    __tablename__ = "hobbies"

    name = db.Column(db.String(200), nullable=False)


class SocialMediaLink(OwnedMixin, db.Model):
    __tablename__ = "social_media_links"

    platform = db.Column(db.String(40), nullable=False)
    url = db.Column(db.String(500), nullable=False)


class Message(RecordMixin, db.Model):
    """Contact-form submission from an anonymous visitor (no owner)."""
    __tablename__ = "messages"

    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(320), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
