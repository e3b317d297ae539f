# backend/models/standard_item.py
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from backend.db.session import Base
from backend.db.types import uuid_col_type, json_col_type

# Category assigned to items auto-created for OCR names nobody has curated yet.
UNMAPPED_CATEGORY = "Unmapped"

# Fields a user override may shadow; anything left NULL falls back to master.
ITEM_FIELDS = (
    "name",
    "display_name_ko",
    "category",
    "exam_type",
    "default_unit",
    "organ_tags",
    "description_common",
    "description_high",
    "description_low",
)


class StandardItemMaster(Base):
    """Shared, admin-curated lab test definition."""

    __tablename__ = "standard_items_master"
    __table_args__ = (
        UniqueConstraint("name", name="uq_standard_items_master_name"),
    )

    id: Mapped[str] = mapped_column(
        uuid_col_type(), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    display_name_ko: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    exam_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    default_unit: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    organ_tags: Mapped[Optional[list]] = mapped_column(json_col_type(), nullable=True, default=list)
    description_common: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description_high: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description_low: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sort_order: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        server_onupdate=text("CURRENT_TIMESTAMP"),
    )


class UserStandardItem(Base):
    """
    Per-user item row. With master_item_id set it shadows that master item
    field by field; with master_item_id NULL it is a user custom item.
    """

    __tablename__ = "user_standard_items"
    __table_args__ = (
        UniqueConstraint("user_id", "master_item_id", name="uq_user_standard_items_override"),
    )

    id: Mapped[str] = mapped_column(
        uuid_col_type(), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        uuid_col_type(), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    master_item_id: Mapped[Optional[str]] = mapped_column(
        uuid_col_type(), ForeignKey("standard_items_master.id", ondelete="CASCADE"), index=True, nullable=True
    )

    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    display_name_ko: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    exam_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    default_unit: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    organ_tags: Mapped[Optional[list]] = mapped_column(json_col_type(), nullable=True)
    description_common: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description_high: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description_low: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        server_onupdate=text("CURRENT_TIMESTAMP"),
    )

    @property
    def is_custom(self) -> bool:
        return self.master_item_id is None
