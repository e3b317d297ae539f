# backend/schemas/lab.py
from datetime import date, datetime
from typing import List, Optional, Union

from pydantic import BaseModel, Field


# ---------- Ingest ----------
class IngestItemIn(BaseModel):
    raw_item_name: Optional[str] = Field(default=None, max_length=255, description="Item name as read by OCR")
    raw_value: Optional[Union[float, str]] = Field(default=None, description='e.g. "1,390", "<500", "*14"')
    raw_ref_text: Optional[str] = Field(default=None, max_length=255, description='e.g. "5.65-8.87", "<14"')
    unit: Optional[str] = Field(default=None, max_length=64)
    standard_item_id: Optional[str] = Field(default=None, description="Skip matching and use this item")


class IngestIn(BaseModel):
    test_date: date
    hospital_name: Optional[str] = Field(default=None, max_length=255)
    machine_type: Optional[str] = Field(default=None, max_length=255)
    items: List[IngestItemIn] = Field(..., min_length=1, max_length=500)


class TestResultOut(BaseModel):
    id: str
    record_id: str
    standard_item_id: str
    value: Optional[float] = None
    raw_value: Optional[str] = None
    value_type: Optional[str] = None
    unit: Optional[str] = None
    ref_min: Optional[float] = None
    ref_max: Optional[float] = None
    ref_text: Optional[str] = None
    status: str
    ocr_raw_name: Optional[str] = None

    class Config:
        from_attributes = True


class TestRecordOut(BaseModel):
    id: str
    test_date: date
    hospital_name: Optional[str] = None
    machine_type: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---------- Edit ----------
class TestResultPatch(BaseModel):
    """Partial edit; only fields actually sent are applied."""

    value: Optional[Union[float, str]] = None
    ref_min: Optional[float] = None
    ref_max: Optional[float] = None
    ref_text: Optional[str] = Field(default=None, max_length=255)
    status: Optional[str] = Field(default=None, description="Low|Normal|High|Unknown; omitted = recompute")
    unit: Optional[str] = Field(default=None, max_length=64)
    standard_item_id: Optional[str] = None


# ---------- Preview ----------
class PreviewIn(BaseModel):
    raw_item_name: Optional[str] = Field(default=None, max_length=255)
    raw_value: Optional[Union[float, str]] = None
    raw_ref_text: Optional[str] = Field(default=None, max_length=255)
    unit: Optional[str] = Field(default=None, max_length=64)
