"""Database tables for categories, sessions, dialog trees, conversations and images."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

logger = logging.getLogger(__name__)

# 64-bit identifiers everywhere except SQLite, which only auto-increments INTEGER keys.
_ID = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    """Declarative base shared by every table."""


class _Model(Base):
    __abstract__ = True

    id: Mapped[int] = mapped_column(_ID, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now
    )


class CategoryModel(_Model):
    __tablename__ = "category_models"
    __table_args__ = (Index("idx_uniq_category_name", "name", unique=True),)

    name: Mapped[str] = mapped_column(String(32), nullable=False)

    sessions: Mapped[List[SessionModel]] = relationship(
        back_populates="category", foreign_keys="SessionModel.category_id"
    )


class SessionModel(_Model):
    __tablename__ = "session_models"

    summary: Mapped[str] = mapped_column(String(256), default="")
    category_id: Mapped[Optional[int]] = mapped_column(
        _ID, ForeignKey("category_models.id")
    )
    root_dialog_id: Mapped[Optional[int]] = mapped_column(
        _ID,
        ForeignKey(
            "dialog_models.id", use_alter=True, name="fk_session_models_root_dialog"
        ),
    )

    root_dialog: Mapped[Optional[DialogModel]] = relationship(
        foreign_keys="SessionModel.root_dialog_id", post_update=True
    )
    category: Mapped[Optional[CategoryModel]] = relationship(
        back_populates="sessions", foreign_keys="SessionModel.category_id"
    )


class DialogModel(_Model):
    __tablename__ = "dialog_models"

    session_id: Mapped[Optional[int]] = mapped_column(
        _ID, ForeignKey("session_models.id"), index=True
    )
    parent_id: Mapped[Optional[int]] = mapped_column(
        _ID, ForeignKey("dialog_models.id"), index=True
    )

    session: Mapped[Optional[SessionModel]] = relationship(
        foreign_keys="DialogModel.session_id"
    )
    parent: Mapped[Optional[DialogModel]] = relationship(
        back_populates="children",
        remote_side="DialogModel.id",
        foreign_keys="DialogModel.parent_id",
    )
    children: Mapped[List[DialogModel]] = relationship(
        back_populates="parent", foreign_keys="DialogModel.parent_id"
    )
    conversations: Mapped[List[ConversationModel]] = relationship(
        back_populates="dialog", passive_deletes=True
    )


class ConversationModel(_Model):
    __tablename__ = "conversation_models"

    prompt: Mapped[str] = mapped_column(Text, default="")
    answer: Mapped[str] = mapped_column(Text, default="")
    session_id: Mapped[Optional[int]] = mapped_column(
        _ID, ForeignKey("session_models.id", ondelete="CASCADE"), index=True
    )
    dialog_id: Mapped[Optional[int]] = mapped_column(
        _ID, ForeignKey("dialog_models.id", ondelete="CASCADE"), index=True
    )
    is_starred: Mapped[bool] = mapped_column(Boolean, default=False)
    comment: Mapped[str] = mapped_column(Text, default="")
    title: Mapped[str] = mapped_column(String(64), default="")
    summary: Mapped[str] = mapped_column(Text, default="")

    session: Mapped[Optional[SessionModel]] = relationship(
        foreign_keys="ConversationModel.session_id", passive_deletes=True
    )
    dialog: Mapped[Optional[DialogModel]] = relationship(
        back_populates="conversations", foreign_keys="ConversationModel.dialog_id"
    )


class ImageModel(_Model):
    __tablename__ = "image_models"

    filename: Mapped[str] = mapped_column(String(64), nullable=False)
    path: Mapped[str] = mapped_column(String(256), default="")
    url: Mapped[str] = mapped_column(String(256), default="")
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    source: Mapped[str] = mapped_column(String(256), default="")


def migrate_db(engine: Engine) -> bool:
    """Create any missing tables; log and return False when that fails."""
    try:
        Base.metadata.create_all(engine)
    except SQLAlchemyError as exc:
        logger.error("failed to migrate DB: %s", exc)
        return False
    logger.info("DB migration successful")
    return True