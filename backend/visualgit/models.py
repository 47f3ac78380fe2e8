"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Every table carries the same audit columns (`created_at`, `updated_at`,
`deleted_at`) and an application-generated UUID string primary key.
The Alembic revisions under `migrations/versions` describe the same schema
as a sequence of reversible steps.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column, Index, UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


ROLE_USER = "USER"
ROLE_ADMIN = "ADMIN"
SESSION_PASSWORD = "PASSWORD"
SESSION_OAUTH = "OAUTH"

OAUTH_PROVIDERS = ("GOOGLE", "GITHUB", "FACEBOOK")
LESSON_STATUSES = ("DRAFT", "PUBLISHED", "ARCHIVED")
VALIDATION_RULE_TYPES = ("min_commands", "required_commands", "expected_graph_state", "custom")


class AuditMixin(SQLModel):
    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})
    deleted_at: Optional[datetime] = None


class User(AuditMixin, table=True):
    """A registered user.

    `password_hash` is empty for accounts created through an OAuth provider
    that never set a password.
    """
    __tablename__ = "user"

    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: Optional[str] = None
    role: str = Field(default=ROLE_USER, max_length=10)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar: Optional[str] = None
    is_active: bool = True
    oauth_providers: List["OAuthProvider"] = Relationship(
        back_populates="user", sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )


class OAuthProvider(AuditMixin, table=True):
    """Link between a local user and an external identity-provider account."""
    __tablename__ = "oauth_provider"
    __table_args__ = (
        Index("IDX_oauth_provider_provider_provider_id", "provider", "provider_id", unique=True),
    )

    provider: str = Field(max_length=20)
    provider_id: str
    provider_email: str = ""
    provider_name: Optional[str] = None
    provider_avatar: Optional[str] = None
    user_id: str = Field(foreign_key="user.id", ondelete="CASCADE")
    user: Optional[User] = Relationship(back_populates="oauth_providers")


class UserSession(AuditMixin, table=True):
    """A refresh-token session for a user (password or OAuth login)."""
    __tablename__ = "session"

    user_id: str = Field(foreign_key="user.id", ondelete="CASCADE", index=True)
    refresh_token_hash: str
    user_agent: Optional[str] = None
    ip: Optional[str] = Field(default=None, max_length=45)
    expires_at: datetime
    revoked_at: Optional[datetime] = None
    session_type: str = Field(default=SESSION_PASSWORD, max_length=8)
    oauth_provider: Optional[str] = Field(default=None, max_length=8)
    oauth_provider_id: Optional[str] = None
    oauth_access_token_hash: Optional[str] = None
    oauth_refresh_token_hash: Optional[str] = None
    oauth_token_expires_at: Optional[datetime] = None


class Lesson(AuditMixin, table=True):
    """A theory lesson; practices, views and ratings hang off it."""
    title: str
    slug: str = Field(unique=True, index=True)
    description: Optional[str] = None
    content: str
    practice: Optional[str] = None
    views: int = 0
    status: str = Field(default="PUBLISHED", max_length=9)


class Practice(AuditMixin, table=True):
    """A hands-on Git exercise attached to a lesson.

    `goal_repository_state` holds the JSON form of the repository the
    learner must reproduce (commits, branches, tags and HEAD).
    """
    lesson_id: str = Field(foreign_key="lesson.id", ondelete="CASCADE", index=True)
    title: str
    scenario: str
    difficulty: int = 1
    estimated_time: int = 0
    is_active: bool = Field(default=True, index=True)
    order: int = Field(default=0, index=True)
    version: int = 1
    views: int = 0
    completions: int = 0
    goal_repository_state: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    lesson: Optional[Lesson] = Relationship()
    instructions: List["PracticeInstruction"] = Relationship(
        back_populates="practice", sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )
    hints: List["PracticeHint"] = Relationship(
        back_populates="practice", sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )
    expected_commands: List["PracticeExpectedCommand"] = Relationship(
        back_populates="practice", sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )
    validation_rules: List["PracticeValidationRule"] = Relationship(
        back_populates="practice", sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )
    tags: List["PracticeTag"] = Relationship(
        back_populates="practice", sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )


class PracticeInstruction(AuditMixin, table=True):
    __tablename__ = "practice_instruction"

    practice_id: str = Field(foreign_key="practice.id", ondelete="CASCADE", index=True)
    content: str
    order: int = 0
    practice: Optional[Practice] = Relationship(back_populates="instructions")


class PracticeHint(AuditMixin, table=True):
    __tablename__ = "practice_hint"

    practice_id: str = Field(foreign_key="practice.id", ondelete="CASCADE", index=True)
    content: str
    order: int = 0
    practice: Optional[Practice] = Relationship(back_populates="hints")


class PracticeExpectedCommand(AuditMixin, table=True):
    __tablename__ = "practice_expected_command"

    practice_id: str = Field(foreign_key="practice.id", ondelete="CASCADE", index=True)
    command: str
    order: int = 0
    is_required: bool = True
    practice: Optional[Practice] = Relationship(back_populates="expected_commands")


class PracticeValidationRule(AuditMixin, table=True):
    """A rule attached to a practice; `value` is a JSON-encoded string."""
    __tablename__ = "practice_validation_rule"

    practice_id: str = Field(foreign_key="practice.id", ondelete="CASCADE", index=True)
    type: str = Field(max_length=20)
    value: str
    message: Optional[str] = None
    order: int = 0
    practice: Optional[Practice] = Relationship(back_populates="validation_rules")


class PracticeTag(AuditMixin, table=True):
    __tablename__ = "practice_tag"

    practice_id: str = Field(foreign_key="practice.id", ondelete="CASCADE", index=True)
    name: str
    color: Optional[str] = None
    practice: Optional[Practice] = Relationship(back_populates="tags")


class LessonView(AuditMixin, table=True):
    """Per-user view counter for a lesson (one row per user and lesson)."""
    __tablename__ = "lesson_view"
    __table_args__ = (UniqueConstraint("user_id", "lesson_id", name="UQ_lesson_view_user_lesson"),)

    user_id: str = Field(foreign_key="user.id", ondelete="CASCADE", index=True)
    lesson_id: str = Field(foreign_key="lesson.id", ondelete="CASCADE", index=True)
    viewed_at: datetime = Field(default_factory=utcnow, index=True)
    view_count: int = 1
    last_viewed_at: datetime = Field(default_factory=utcnow)


class Rating(AuditMixin, table=True):
    """A 1-5 star rating a user gave a lesson (one per user and lesson)."""
    __table_args__ = (UniqueConstraint("user_id", "lesson_id", name="UQ_rating_user_lesson"),)

    user_id: str = Field(foreign_key="user.id", ondelete="CASCADE", index=True)
    lesson_id: str = Field(foreign_key="lesson.id", ondelete="CASCADE", index=True)
    rating: int = Field(index=True)
    comment: Optional[str] = None
    user: Optional[User] = Relationship()
