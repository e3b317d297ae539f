from datetime import date

import pytest

from backend.models.item_alias import ItemAliasMaster, ItemMappingMaster, UserItemAlias, UserItemMapping
from backend.models.standard_item import UNMAPPED_CATEGORY, StandardItemMaster, UserStandardItem
from backend.models.test_record import TestRecord, TestResult
from backend.services import item_curation
from backend.services.item_curation import CleanupAction
from backend.utils.exceptions import ConflictError, NotFoundError, ValidationError

USER_ID = "user-1"


@pytest.fixture
def add_results(db):
    def _add(item, n=1):
        record = TestRecord(user_id=USER_ID, test_date=date(2024, 5, 1))
        for i in range(n):
            record.results.append(TestResult(standard_item_id=item.id, value=float(i), status="Unknown"))
        db.add(record)
        db.commit()
        return record
    return _add


def _counts(db):
    return {
        "items": db.query(StandardItemMaster).count(),
        "aliases": db.query(ItemAliasMaster).count(),
        "results": db.query(TestResult).count(),
        "mappings": db.query(ItemMappingMaster).count(),
    }


def test_remap_moves_everything_and_deletes_unmapped(db, make_item, make_alias, add_results):
    orphan = make_item("ALT(GP", category=UNMAPPED_CATEGORY)
    alt = make_item("ALT")
    make_alias("ALT (GP", orphan)
    make_alias("altgp", orphan, user_id=USER_ID)
    db.add(ItemMappingMaster(raw_name="ALT(GP", standard_item_id=orphan.id))
    db.add(UserItemMapping(user_id=USER_ID, raw_name="ALT(GP", standard_item_id=orphan.id))
    db.add(UserStandardItem(user_id=USER_ID, master_item_id=orphan.id, display_name_ko="x"))
    db.commit()
    add_results(orphan, n=3)
    orphan_id, alt_id = orphan.id, alt.id

    result = item_curation.remap(db, orphan_id, alt_id)

    assert result.success is True
    assert result.test_results_moved == 3
    assert result.aliases_moved == 2
    assert result.mappings_moved == 2
    assert result.old_item_deleted is True
    db.expire_all()
    assert db.query(TestResult).filter(TestResult.standard_item_id == orphan_id).count() == 0
    assert db.query(ItemAliasMaster).filter(ItemAliasMaster.standard_item_id == orphan_id).count() == 0
    assert db.query(UserItemAlias).filter(UserItemAlias.standard_item_id == orphan_id).count() == 0
    assert db.get(StandardItemMaster, orphan_id) is None
    assert db.query(UserStandardItem).filter(UserStandardItem.master_item_id == orphan_id).count() == 0


def test_remap_keeps_curated_source_item(db, make_item, add_results):
    glu = make_item("GLU", exam_type="Chemistry")
    glucose = make_item("Glucose", exam_type="Chemistry")
    add_results(glu)
    glu_id = glu.id

    result = item_curation.remap(db, glu_id, glucose.id)

    assert result.success is True
    assert result.old_item_deleted is False
    db.expire_all()
    assert db.get(StandardItemMaster, glu_id) is not None


def test_remap_without_delete_flag(db, make_item):
    orphan = make_item("odd", category=UNMAPPED_CATEGORY)
    alt = make_item("ALT")
    result = item_curation.remap(db, orphan.id, alt.id, delete_after_remap=False)
    assert result.old_item_deleted is False


def test_remap_can_register_old_name_as_alias(db, make_item):
    orphan = make_item("GPT-x", category=UNMAPPED_CATEGORY)
    alt = make_item("ALT")
    result = item_curation.remap(db, orphan.id, alt.id, register_alias=True)
    assert result.alias_registered is True
    alias = db.query(ItemAliasMaster).filter(ItemAliasMaster.alias == "GPT-x").one()
    assert alias.standard_item_id == alt.id
    assert alias.source_hint == "merged"


def test_remap_validation_and_missing_items(db, make_item):
    alt = make_item("ALT")
    with pytest.raises(ValidationError):
        item_curation.remap(db, alt.id, alt.id)
    with pytest.raises(NotFoundError) as exc:
        item_curation.remap(db, "missing", alt.id)
    assert exc.value.details == {"missing": ["missing"]}


def test_remap_failure_rolls_back_and_reports(db, make_item, add_results, monkeypatch):
    orphan = make_item("junk", category=UNMAPPED_CATEGORY)
    alt = make_item("ALT")
    add_results(orphan, n=2)
    orphan_id, alt_id = orphan.id, alt.id

    def _boom(*_a, **_k):
        raise RuntimeError("mapping update failed")

    real_move = item_curation._move_references

    def _half_move(db_, old, new):
        real_move(db_, old, new)
        _boom()

    monkeypatch.setattr(item_curation, "_move_references", _half_move)
    result = item_curation.remap(db, orphan_id, alt_id)

    assert result.success is False
    assert "mapping update failed" in result.errors[0]
    db.expire_all()
    assert db.query(TestResult).filter(TestResult.standard_item_id == orphan_id).count() == 2
    assert db.get(StandardItemMaster, orphan_id) is not None


def test_cleanup_delete_blocked_by_results(db, make_item, add_results):
    orphan = make_item("junk", category=UNMAPPED_CATEGORY)
    add_results(orphan, n=2)

    result = item_curation.cleanup_unmapped(db, [CleanupAction("delete", orphan.id)])

    assert result.success is False
    assert result.deleted == 0
    assert result.errors == ["Cannot delete junk: has 2 test results. Merge instead."]


def test_cleanup_processes_every_action(db, make_item, add_results):
    free = make_item("free", category=UNMAPPED_CATEGORY)
    used = make_item("used", category=UNMAPPED_CATEGORY)
    target = make_item("ALT")
    add_results(used, n=4)
    used_id = used.id

    actions = [
        CleanupAction("delete", "does-not-exist"),
        CleanupAction("delete", free.id),
        CleanupAction("merge", used.id, target.id),
        CleanupAction("merge", target.id),
    ]
    result = item_curation.cleanup_unmapped(db, actions)

    assert result.deleted == 1
    assert result.merged == 1
    assert result.test_results_migrated == 4
    assert len(result.errors) == 2
    assert result.success is False
    db.expire_all()
    assert db.get(StandardItemMaster, used_id) is None
    merged_alias = db.query(ItemAliasMaster).filter(ItemAliasMaster.alias == "used").one()
    assert merged_alias.standard_item_id == target.id


def test_cleanup_merge_skips_existing_alias(db, make_item, make_alias):
    orphan = make_item("GPT", category=UNMAPPED_CATEGORY)
    alt = make_item("ALT")
    make_alias("GPT", alt)

    result = item_curation.cleanup_unmapped(db, [CleanupAction("merge", orphan.id, alt.id)])

    assert result.success is True
    assert db.query(ItemAliasMaster).filter(ItemAliasMaster.alias == "GPT").count() == 1


def test_cleanup_dry_run_reports_same_counts_without_writing(db, make_item, add_results):
    def _setup():
        free = make_item("free", category=UNMAPPED_CATEGORY)
        used = make_item("used", category=UNMAPPED_CATEGORY)
        target = make_item("ALT")
        add_results(used, n=3)
        return [CleanupAction("delete", free.id), CleanupAction("merge", used.id, target.id)]

    actions = _setup()
    before = _counts(db)
    dry = item_curation.cleanup_unmapped(db, actions, dry_run=True)
    assert _counts(db) == before
    assert dry.dry_run is True
    assert dry.message.startswith("[dry run]")

    live = item_curation.cleanup_unmapped(db, actions)
    assert (dry.deleted, dry.merged, dry.test_results_migrated) == (live.deleted, live.merged, live.test_results_migrated)
    assert (live.deleted, live.merged, live.test_results_migrated) == (1, 1, 3)


@pytest.mark.parametrize("plan", [
    [("merge", "A", "B"), ("delete", "B", None)],
    [("delete", "B", None), ("merge", "A", "B")],
    [("merge", "A", "B"), ("merge", "B", "C")],
    [("merge", "A", "B"), ("merge", "A", "C")],
])
def test_cleanup_dry_run_follows_earlier_actions_in_batch(db, make_item, add_results, plan):
    items = {label: make_item(label, category=UNMAPPED_CATEGORY) for label in "ABC"}
    add_results(items["A"], n=2)
    actions = [
        CleanupAction(action, items[src].id, items[dst].id if dst else None)
        for action, src, dst in plan
    ]

    dry = item_curation.cleanup_unmapped(db, actions, dry_run=True)
    live = item_curation.cleanup_unmapped(db, actions)

    def _summary(result):
        return (result.success, result.deleted, result.merged, result.test_results_migrated, result.errors)

    assert _summary(dry) == _summary(live)


def test_delete_with_results_conflicts_with_exact_count(db, make_item, add_results):
    alt = make_item("ALT")
    add_results(alt, n=5)
    with pytest.raises(ConflictError) as exc:
        item_curation.delete_standard_item(db, alt.id)
    assert exc.value.count == 5
    assert exc.value.details == {"result_count": 5}


def test_delete_unreferenced_item_drops_aliases(db, make_item, make_alias):
    alt = make_item("ALT")
    make_alias("GPT", alt)
    item_curation.delete_standard_item(db, alt.id)
    assert db.query(StandardItemMaster).count() == 0
    assert db.query(ItemAliasMaster).count() == 0
    with pytest.raises(NotFoundError):
        item_curation.delete_standard_item(db, "missing")


def test_master_item_create_update_promote(db):
    item = item_curation.create_master_item(db, {"name": "Lipase", "category": UNMAPPED_CATEGORY})
    with pytest.raises(ValidationError):
        item_curation.create_master_item(db, {"name": "lipase"})

    promoted = item_curation.update_master_item(db, item.id, {"exam_type": "Chemistry", "sort_order": 3})
    assert promoted.category == "Chemistry"
    assert promoted.sort_order == 3
    with pytest.raises(ValidationError):
        item_curation.update_master_item(db, item.id, {})


def test_list_unmapped_with_counts(db, make_item, make_alias, add_results):
    orphan = make_item("weird", category=UNMAPPED_CATEGORY)
    make_item("ALT")
    make_alias("weird2", orphan)
    add_results(orphan, n=2)

    rows = item_curation.list_unmapped(db)
    assert len(rows) == 1
    assert rows[0]["name"] == "weird"
    assert rows[0]["test_result_count"] == 2
    assert rows[0]["alias_count"] == 1
    assert rows[0]["mapping_count"] == 0


def test_mapping_stats(db, make_item):
    alt = make_item("ALT")
    bun = make_item("BUN")
    db.add_all([
        ItemMappingMaster(raw_name="ALT", standard_item_id=alt.id),
        ItemMappingMaster(raw_name="GPT", standard_item_id=alt.id),
        UserItemMapping(user_id=USER_ID, raw_name="BUN", standard_item_id=bun.id),
        UserItemMapping(user_id="other", raw_name="UREA", standard_item_id=bun.id),
    ])
    db.commit()

    stats = item_curation.mapping_stats(db, USER_ID)
    assert stats["total_mappings"] == 3
    assert stats["by_item"][0] == {"standard_item_id": alt.id, "raw_name_count": 2}
