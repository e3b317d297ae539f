from datetime import date

from backend.models.item_alias import ItemAliasMaster
from backend.models.standard_item import UNMAPPED_CATEGORY, StandardItemMaster
from backend.models.test_record import TestRecord, TestResult


def _add_results(db, item, n):
    record = TestRecord(user_id="user-1", test_date=date(2024, 5, 1))
    for i in range(n):
        record.results.append(TestResult(standard_item_id=item.id, value=float(i), status="Unknown"))
    db.add(record)
    db.commit()


def test_non_admin_is_forbidden(client, as_plain_user):
    for method, path in [
        ("get", "/api/admin/unmapped"),
        ("post", "/api/admin/cleanup-unmapped"),
        ("delete", "/api/admin/standard-items/x"),
        ("post", "/api/item-mappings/remap"),
    ]:
        r = getattr(client, method)(path)
        assert r.status_code == 403, path
        assert r.json()["code"] == "FORBIDDEN"


def test_create_and_promote_master_item(client):
    r = client.post("/api/admin/standard-items", json={"name": "Lipase", "category": UNMAPPED_CATEGORY})
    assert r.status_code == 201
    item_id = r.json()["data"]["id"]
    assert client.post("/api/admin/standard-items", json={"name": "LIPASE"}).status_code == 400

    r = client.patch(f"/api/admin/standard-items/{item_id}", json={"exam_type": "Chemistry"})
    assert r.json()["data"]["category"] == "Chemistry"
    assert client.get("/api/admin/unmapped").json()["count"] == 0

    detail = client.get(f"/api/admin/standard-items/{item_id}").json()["data"]
    assert detail["test_result_count"] == 0


def test_delete_with_results_returns_409_with_count(client, db, make_item):
    alt = make_item("ALT")
    _add_results(db, alt, 3)
    r = client.delete(f"/api/admin/standard-items/{alt.id}")
    assert r.status_code == 409
    j = r.json()
    assert j["code"] == "CONFLICT"
    assert j["details"]["result_count"] == 3


def test_master_alias_admin_routes(client, make_item):
    alt = make_item("ALT")
    r = client.post("/api/admin/item-aliases", json={
        "alias": "GPT", "canonical_name": "ALT", "source_hint": "IDEXX",
    })
    assert r.status_code == 201
    alias_id = r.json()["data"]["id"]

    rows = client.get("/api/admin/item-aliases", params={"standard_item_id": alt.id}).json()["data"]
    assert [row["alias"] for row in rows] == ["GPT"]
    assert client.delete(f"/api/admin/item-aliases/{alias_id}").status_code == 200
    assert client.delete(f"/api/admin/item-aliases/{alias_id}").status_code == 404


def test_remap_route_uses_camel_case_fields(client, db, make_item):
    orphan = make_item("ALT(GP", category=UNMAPPED_CATEGORY)
    alt = make_item("ALT")
    _add_results(db, orphan, 2)
    orphan_id = orphan.id

    r = client.post("/api/item-mappings/remap", json={
        "oldItemId": orphan_id, "newItemId": alt.id, "registerAlias": True,
    })
    j = r.json()
    assert j["success"] is True
    assert j["errors"] == []
    assert j["data"]["test_results_moved"] == 2
    assert j["data"]["old_item_deleted"] is True
    db.expire_all()
    assert db.get(StandardItemMaster, orphan_id) is None
    assert db.query(ItemAliasMaster).filter(ItemAliasMaster.alias == "ALT(GP").count() == 1


def test_remap_same_item_is_rejected(client, make_item):
    alt = make_item("ALT")
    r = client.post("/api/item-mappings/remap", json={"oldItemId": alt.id, "newItemId": alt.id})
    assert r.status_code == 400


def test_unmapped_listing_and_cleanup_dry_run(client, db, make_item):
    free = make_item("free", category=UNMAPPED_CATEGORY)
    used = make_item("used", category=UNMAPPED_CATEGORY)
    target = make_item("ALT")
    _add_results(db, used, 2)

    rows = {row["name"]: row for row in client.get("/api/admin/unmapped").json()["data"]}
    assert set(rows) == {"free", "used"}
    assert rows["used"]["test_result_count"] == 2

    actions = [
        {"action": "delete", "itemId": free.id},
        {"action": "merge", "itemId": used.id, "targetItemId": target.id},
    ]
    dry = client.post("/api/admin/cleanup-unmapped", json={"actions": actions, "dryRun": True}).json()
    assert dry["dry_run"] is True
    assert (dry["deleted"], dry["merged"], dry["test_results_migrated"]) == (1, 1, 2)
    assert dry["data"]["message"].startswith("[dry run]")
    assert client.get("/api/admin/unmapped").json()["count"] == 2

    live = client.post("/api/admin/cleanup-unmapped", json={"actions": actions}).json()
    assert (live["deleted"], live["merged"], live["test_results_migrated"]) == (1, 1, 2)
    assert client.get("/api/admin/unmapped").json()["count"] == 0


def test_cleanup_unknown_action_is_reported_per_action(client, make_item):
    odd = make_item("odd", category=UNMAPPED_CATEGORY)
    free = make_item("free", category=UNMAPPED_CATEGORY)
    actions = [
        {"action": "explode", "itemId": odd.id},
        {"action": "delete", "itemId": free.id},
    ]
    r = client.post("/api/admin/cleanup-unmapped", json={"actions": actions})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is False
    assert body["deleted"] == 1
    assert body["errors"] == [f"Unknown action 'explode' for {odd.id}"]


def test_cleanup_rejects_blank_action(client):
    r = client.post("/api/admin/cleanup-unmapped", json={"actions": [{"action": "", "itemId": "x"}]})
    assert r.status_code == 422
