"""
SQLAlchemy ORM models for projects, platform connections and in-flight
OAuth authorizations.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class Project(Base):
    """Ownership record only; project CRUD lives elsewhere."""

    __tablename__ = "projects"

    project_id = Column(String(64), primary_key=True, default=_new_id)
    owner_user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class ProjectConnection(Base):
    __tablename__ = "project_connections"
    __table_args__ = (
        UniqueConstraint("project_id", "platform", name="uq_project_connections_project_platform"),
        CheckConstraint(
            "(connected AND access_token_ref IS NOT NULL) OR "
            "(NOT connected AND access_token_ref IS NULL AND refresh_token_ref IS NULL)",
            name="ck_project_connections_token_refs",
        ),
        Index("ix_project_connections_platform_account", "platform", "account_id"),
    )

    id = Column(String(64), primary_key=True, default=_new_id)
    project_id = Column(String(64), ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False)
    platform = Column(String(32), nullable=False)
    connected = Column(Boolean, nullable=False, default=False)
    username = Column(String(255))
    display_name = Column(String(255))
    account_id = Column(String(255))
    site_url = Column(String(512))
    followers_snapshot = Column(Integer)
    auto_post = Column(Boolean, nullable=False, default=False)
    access_token_ref = Column(Text)
    refresh_token_ref = Column(Text)
    token_expires_at = Column(DateTime(timezone=True))
    last_refresh_at = Column(DateTime(timezone=True))
    scopes = Column(JSON, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    # Ordering key for token-state writes; auto-post toggles leave it alone.
    token_written_at = Column(DateTime(timezone=True))


class PendingAuthorization(Base):
    __tablename__ = "oauth_pending_authorizations"
    __table_args__ = (
        Index("ix_oauth_pending_project_platform", "project_id", "platform"),
        Index("ix_oauth_pending_expires_at", "expires_at"),
    )

    state = Column(String(128), primary_key=True)
    platform = Column(String(32), nullable=False)
    project_id = Column(String(64), nullable=False)
    user_id = Column(String(64), nullable=False)
    redirect_uri = Column(Text, nullable=False)
    code_verifier = Column(String(128))
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)
