# backend/models/item_alias.py
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from backend.db.session import Base
from backend.db.types import uuid_col_type


class ItemAliasMaster(Base):
    """Shared raw-name -> standard item alias. Alias strings are globally unique."""

    __tablename__ = "item_aliases_master"
    __table_args__ = (
        UniqueConstraint("alias", name="uq_item_aliases_master_alias"),
    )

    id: Mapped[str] = mapped_column(
        uuid_col_type(), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    alias: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    canonical_name: Mapped[str] = mapped_column(String(255), nullable=False)
    # hospital / instrument the spelling was seen on
    source_hint: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    standard_item_id: Mapped[str] = mapped_column(
        uuid_col_type(), ForeignKey("standard_items_master.id"), index=True, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )


class UserItemAlias(Base):
    """Per-user alias; shadows or extends the master aliases for one user."""

    __tablename__ = "user_item_aliases"
    __table_args__ = (
        UniqueConstraint("user_id", "alias", name="uq_user_item_aliases_user_alias"),
    )

    id: Mapped[str] = mapped_column(
        uuid_col_type(), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        uuid_col_type(), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    alias: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    canonical_name: Mapped[str] = mapped_column(String(255), nullable=False)
    source_hint: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # may point at a master item or at one of the user's custom items, so no FK
    standard_item_id: Mapped[str] = mapped_column(uuid_col_type(), index=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )


class ItemMappingMaster(Base):
    """Raw OCR names recorded against a master item (mapping history)."""

    __tablename__ = "item_mappings_master"
    __table_args__ = (
        UniqueConstraint("raw_name", name="uq_item_mappings_master_raw_name"),
    )

    id: Mapped[str] = mapped_column(
        uuid_col_type(), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    raw_name: Mapped[str] = mapped_column(String(255), nullable=False)
    standard_item_id: Mapped[str] = mapped_column(uuid_col_type(), index=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )


class UserItemMapping(Base):
    __tablename__ = "user_item_mappings"
    __table_args__ = (
        UniqueConstraint("user_id", "raw_name", name="uq_user_item_mappings_user_raw_name"),
    )

    id: Mapped[str] = mapped_column(
        uuid_col_type(), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        uuid_col_type(), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    raw_name: Mapped[str] = mapped_column(String(255), nullable=False)
    standard_item_id: Mapped[str] = mapped_column(uuid_col_type(), index=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
