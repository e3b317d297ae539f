# backend/schemas/items.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


# ---------- Standard items ----------
class StandardItemFields(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    display_name_ko: Optional[str] = Field(default=None, max_length=255)
    category: Optional[str] = Field(default=None, max_length=64)
    exam_type: Optional[str] = Field(default=None, max_length=64, description="Also sets category")
    default_unit: Optional[str] = Field(default=None, max_length=64)
    organ_tags: Optional[List[str]] = None
    description_common: Optional[str] = None
    description_high: Optional[str] = None
    description_low: Optional[str] = None


class StandardItemCreate(StandardItemFields):
    name: str = Field(..., min_length=1, max_length=255)


class MasterItemCreate(StandardItemCreate):
    sort_order: Optional[int] = None


class MasterItemPatch(StandardItemFields):
    sort_order: Optional[int] = None


class MasterItemOut(BaseModel):
    id: str
    name: str
    display_name_ko: Optional[str] = None
    category: Optional[str] = None
    exam_type: Optional[str] = None
    default_unit: Optional[str] = None
    organ_tags: Optional[List[str]] = None
    description_common: Optional[str] = None
    description_high: Optional[str] = None
    description_low: Optional[str] = None
    sort_order: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---------- Aliases ----------
class AliasCreate(BaseModel):
    alias: str = Field(..., min_length=1, max_length=255)
    canonical_name: str = Field(..., min_length=1, max_length=255)
    standard_item_id: Optional[str] = None
    source_hint: Optional[str] = Field(default=None, max_length=255)


class AliasOut(BaseModel):
    id: str
    alias: str
    canonical_name: str
    source_hint: Optional[str] = None
    standard_item_id: str

    class Config:
        from_attributes = True


# ---------- Curation ----------
class RemapIn(BaseModel):
    old_item_id: str = Field(..., alias="oldItemId")
    new_item_id: str = Field(..., alias="newItemId")
    delete_after_remap: bool = Field(default=True, alias="deleteAfterRemap")
    register_alias: bool = Field(default=False, alias="registerAlias")

    class Config:
        populate_by_name = True


class CleanupActionIn(BaseModel):
    action: str = Field(..., min_length=1)
    item_id: str = Field(..., alias="itemId")
    target_item_id: Optional[str] = Field(default=None, alias="targetItemId")
    register_alias: bool = Field(default=True, alias="registerAlias")

    class Config:
        populate_by_name = True


class CleanupIn(BaseModel):
    actions: List[CleanupActionIn] = Field(..., min_length=1)
    dry_run: bool = Field(default=False, alias="dryRun")

    class Config:
        populate_by_name = True
