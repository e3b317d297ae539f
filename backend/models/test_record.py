# backend/models/test_record.py
import uuid
from datetime import date, datetime
from typing import Optional, List

from sqlalchemy import String, Text, Float, Date, DateTime, ForeignKey, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.db.session import Base
from backend.db.types import uuid_col_type


class TestRecord(Base):
    """One uploaded report: a test date at a hospital on an instrument."""

    __tablename__ = "test_records"
    __test__ = False  # keep pytest from collecting the model

    id: Mapped[str] = mapped_column(
        uuid_col_type(), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        uuid_col_type(), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    test_date: Mapped[date] = mapped_column(Date, nullable=False)
    hospital_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    machine_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    user = relationship("User", back_populates="test_records")
    results: Mapped[List["TestResult"]] = relationship(
        "TestResult",
        back_populates="record",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class TestResult(Base):
    """One lab value inside a TestRecord."""

    __tablename__ = "test_results"
    __test__ = False

    id: Mapped[str] = mapped_column(
        uuid_col_type(), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    record_id: Mapped[str] = mapped_column(
        uuid_col_type(), ForeignKey("test_records.id", ondelete="CASCADE"), index=True, nullable=False
    )
    # master item id or user custom item id; validated through the item resolver
    standard_item_id: Mapped[str] = mapped_column(uuid_col_type(), index=True, nullable=False)

    value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    raw_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    value_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ref_min: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    ref_max: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    ref_text: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Unknown")
    ocr_raw_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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

    record = relationship("TestRecord", back_populates="results")
