"""End-to-end lab report ingest and result editing."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from backend.models.test_record import TestRecord, TestResult
from backend.services.alias_registry import record_mapping
from backend.services.item_matcher import ItemMatcher, ensure_unmapped_item
from backend.services.item_resolver import enrich_test_results_with_items, resolve_standard_items
from backend.services.reference_ranges import check_value_in_range, format_reference_range, parse_reference_range
from backend.services.status_classifier import TestStatus, classify
from backend.services.unit_normalizer import normalize_unit
from backend.services.value_parser import format_value_with_status, parse_value
from backend.utils.exceptions import NotFoundError, ValidationError

logger = logging.getLogger("petlab")

EDITABLE_RESULT_FIELDS = ("value", "ref_min", "ref_max", "ref_text", "status", "unit", "standard_item_id")
STATUS_INPUTS = ("value", "ref_min", "ref_max")


@dataclass
class IngestLine:
    raw_item_name: Optional[str]
    raw_value: Any = None
    raw_ref_text: Optional[str] = None
    unit: Optional[str] = None
    standard_item_id: Optional[str] = None


def _build_result(line: IngestLine, item_id: str, default_unit: Optional[str]) -> TestResult:
    parsed = parse_value(line.raw_value)
    ref = parse_reference_range(line.raw_ref_text)
    status = classify(parsed.numeric, ref.min, ref.max)
    return TestResult(
        standard_item_id=item_id,
        value=parsed.numeric,
        raw_value=parsed.display or None,
        value_type=parsed.type,
        unit=normalize_unit(line.unit) or default_unit,
        ref_min=ref.min,
        ref_max=ref.max,
        ref_text=ref.original.strip() or None,
        status=status.value,
        ocr_raw_name=(line.raw_item_name or "").strip() or None,
    )


def ingest_report(
    db: Session,
    user_id: str,
    test_date: Optional[date],
    lines: Sequence[IngestLine],
    hospital_name: Optional[str] = None,
    machine_type: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Persist one report. Each line is matched to an item (explicit id,
    exact name, alias, or a new Unmapped item), parsed, classified and
    stored. Garbage lines are skipped and reported back.
    """
    if test_date is None:
        raise ValidationError("test_date is required")
    if not lines:
        raise ValidationError("At least one item is required")

    matcher = ItemMatcher(db, user_id)
    planned: List[tuple] = []
    skipped: List[Dict[str, Any]] = []
    unmapped_created: List[str] = []

    try:
        for line in lines:
            raw_name = (line.raw_item_name or "").strip()
            if line.standard_item_id:
                planned.append((line, str(line.standard_item_id)))
                continue
            match = matcher.match(raw_name)
            if match.is_garbage:
                skipped.append({"raw_item_name": raw_name, "reason": match.garbage_reason})
                continue
            if match.matched:
                planned.append((line, match.standard_item_id))
                continue
            item = ensure_unmapped_item(db, raw_name)
            if raw_name not in unmapped_created:
                unmapped_created.append(raw_name)
            planned.append((line, item.id))

        if not planned:
            raise ValidationError("No valid items to save", details={"skipped": skipped})

        resolved = resolve_standard_items(db, [item_id for _, item_id in planned], user_id)
        invalid = sorted({item_id for _, item_id in planned if item_id not in resolved})
        if invalid:
            raise ValidationError("Invalid standard_item_id", details={"invalid_ids": invalid})

        record = TestRecord(
            user_id=user_id,
            test_date=test_date,
            hospital_name=hospital_name,
            machine_type=machine_type,
        )
        db.add(record)
        results = []
        mapped = set()
        for line, item_id in planned:
            result = _build_result(line, item_id, resolved[item_id].default_unit)
            record.results.append(result)
            results.append(result)
            if result.ocr_raw_name and result.ocr_raw_name not in mapped:
                mapped.add(result.ocr_raw_name)
                record_mapping(db, result.ocr_raw_name, item_id, user_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(record)
    logger.info({
        "function": "ingest_report",
        "status": "inserted",
        "record_id": record.id,
        "results": len(results),
        "skipped": len(skipped),
        "unmapped_created": len(unmapped_created),
    })
    return {
        "record": record,
        "results": results,
        "skipped": skipped,
        "unmapped_created": unmapped_created,
    }


# ---------------- Reads ----------------

def _record_dict(record: TestRecord, results: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "id": record.id,
        "test_date": record.test_date,
        "hospital_name": record.hospital_name,
        "machine_type": record.machine_type,
        "created_at": record.created_at,
        "results": results,
    }


def list_records(db: Session, user_id: str) -> List[Dict[str, Any]]:
    """User's records, newest first, with item metadata. Unresolved results are left out."""
    records = (
        db.query(TestRecord)
        .filter(TestRecord.user_id == user_id)
        .order_by(TestRecord.test_date.desc(), TestRecord.created_at.desc())
        .all()
    )
    if not records:
        return []
    all_results = (
        db.query(TestResult)
        .filter(TestResult.record_id.in_([rec.id for rec in records]))
        .order_by(TestResult.created_at)
        .all()
    )
    enriched = enrich_test_results_with_items(db, all_results, user_id)
    by_record: Dict[str, List[Dict[str, Any]]] = {}
    for row in enriched:
        if row["standard_item"] is None:
            continue
        by_record.setdefault(row["record_id"], []).append(row)
    return [_record_dict(rec, by_record.get(rec.id, [])) for rec in records]


def _owned_result(db: Session, user_id: str, result_id: str) -> TestResult:
    result = (
        db.query(TestResult)
        .join(TestRecord, TestResult.record_id == TestRecord.id)
        .filter(TestResult.id == result_id, TestRecord.user_id == user_id)
        .first()
    )
    if result is None:
        raise NotFoundError("Test result not found", details={"result_id": result_id})
    return result


# ---------------- Edits ----------------

def update_test_result(db: Session, user_id: str, result_id: str, changes: Mapping[str, Any]) -> TestResult:
    """
    Apply a partial edit. When status is not given but value, ref_min or
    ref_max changed, status is reclassified from the new values, falling
    back to the stored ones for whatever was not sent.
    """
    result = _owned_result(db, user_id, result_id)
    update = {k: v for k, v in changes.items() if k in EDITABLE_RESULT_FIELDS}
    if not update:
        raise ValidationError("No fields to update")

    if update.get("standard_item_id"):
        item_id = str(update["standard_item_id"])
        if item_id not in resolve_standard_items(db, [item_id], user_id):
            raise ValidationError("Invalid standard_item_id", details={"invalid_ids": [item_id]})
        result.standard_item_id = item_id

    if "value" in update:
        parsed = parse_value(update["value"])
        result.value = parsed.numeric
        result.raw_value = parsed.display or None
        result.value_type = parsed.type
    if "ref_min" in update:
        result.ref_min = update["ref_min"]
    if "ref_max" in update:
        result.ref_max = update["ref_max"]
    if "ref_text" in update:
        result.ref_text = update["ref_text"]
    if "unit" in update:
        result.unit = normalize_unit(update["unit"]) or None

    status = update.get("status")
    if status is not None:
        try:
            result.status = TestStatus(status).value
        except ValueError:
            raise ValidationError(
                "Invalid status",
                details={"allowed": [s.value for s in TestStatus]},
            )
    elif any(k in update for k in STATUS_INPUTS):
        result.status = classify(result.value, result.ref_min, result.ref_max).value

    db.commit()
    db.refresh(result)
    logger.info({
        "function": "update_test_result",
        "status": "updated",
        "result_id": result_id,
        "fields": sorted(update.keys()),
    })
    return result


def delete_test_result(db: Session, user_id: str, result_id: str) -> None:
    result = _owned_result(db, user_id, result_id)
    db.delete(result)
    db.commit()
    logger.info({"function": "delete_test_result", "status": "deleted", "result_id": result_id})


def delete_record(db: Session, user_id: str, record_id: str) -> int:
    record = (
        db.query(TestRecord)
        .filter(TestRecord.id == record_id, TestRecord.user_id == user_id)
        .first()
    )
    if record is None:
        raise NotFoundError("Test record not found", details={"record_id": record_id})
    count = len(record.results)
    db.delete(record)
    db.commit()
    logger.info({"function": "delete_record", "status": "deleted", "record_id": record_id, "results": count})
    return count


# ---------------- Preview ----------------

def preview_line(db: Session, user_id: Optional[str], line: IngestLine) -> Dict[str, Any]:
    """Run one raw line through the pipeline without writing anything."""
    match = ItemMatcher(db, user_id).match(line.raw_item_name)
    parsed = parse_value(line.raw_value)
    ref = parse_reference_range(line.raw_ref_text)
    status = classify(parsed.numeric, ref.min, ref.max)
    direction = check_value_in_range(parsed.numeric, ref)
    default_unit = None
    if match.matched:
        item = resolve_standard_items(db, [match.standard_item_id], user_id).get(match.standard_item_id)
        default_unit = item.default_unit if item else None
    return {
        "match": match.to_dict(),
        "value": parsed.to_dict(),
        "reference": ref.to_dict(),
        "reference_display": format_reference_range(ref),
        "status": status.value,
        "display": format_value_with_status(parsed, direction in ("high", "low"), direction),
        "unit": normalize_unit(line.unit) or default_unit or "",
    }


__all__ = [
    "IngestLine",
    "ingest_report",
    "list_records",
    "update_test_result",
    "delete_test_result",
    "delete_record",
    "preview_line",
]
