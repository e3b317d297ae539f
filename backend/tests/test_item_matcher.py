import pytest

from backend.models.standard_item import UNMAPPED_CATEGORY, StandardItemMaster
from backend.services.item_matcher import ItemMatcher, ensure_unmapped_item, filter_garbage, match_item

USER_ID = "user-1"


@pytest.mark.parametrize("raw,reason", [
    ("", "empty"),
    ("0.25", "numeric or range"),
    ("< 0.25", "numeric or range"),
    ("0.26 - 0.5", "numeric or range"),
    ("12.5%", "numeric or range"),
    ("-0.5", "numeric or range"),
    ("Result", "header label"),
    ("참고치", "header label"),
    ("unit", "header label"),
    ("*", "single character"),
])
def test_garbage_tokens(raw, reason):
    check = filter_garbage(raw)
    assert check.is_garbage is True
    assert check.reason == reason


@pytest.mark.parametrize("raw", ["ALT", "K", "Na+", "ALT(GPT)", "T4"])
def test_real_names_pass(raw):
    assert filter_garbage(raw).is_garbage is False


def test_truncated_bracket_is_flagged():
    assert filter_garbage("ALT(GP").has_truncated_bracket is True
    assert filter_garbage("ALT(GPT)").has_truncated_bracket is False


def test_exact_name_match_is_case_insensitive(db, make_item):
    alt = make_item("ALT", display_name_ko="알라닌", exam_type="Chemistry")
    result = match_item(db, "alt", USER_ID)
    assert result.method == "exact"
    assert result.standard_item_id == alt.id
    assert result.confidence == 100
    assert result.exam_type == "Chemistry"


def test_alias_match_after_exact(db, make_item, make_alias):
    alt = make_item("ALT")
    make_alias("GPT", alt, source_hint="IDEXX")
    result = match_item(db, "GPT", USER_ID)
    assert result.method == "alias"
    assert result.standard_item_id == alt.id
    assert result.confidence == 95


def test_user_override_name_is_matched(db, make_item, make_override):
    alt = make_item("ALT")
    make_override(alt, name="SGPT")
    assert match_item(db, "sgpt", USER_ID).standard_item_id == alt.id
    assert match_item(db, "sgpt", "someone-else").matched is False


def test_custom_item_wins_name_clash_with_master(db, make_item, make_custom):
    # master sorts after the custom row by category, precedence must still hold
    make_item("ALT", category="Liver")
    custom = make_custom("ALT", category="Chemistry")
    assert match_item(db, "ALT", USER_ID).standard_item_id == custom.id
    assert match_item(db, "ALT", "someone-else").standard_item_id != custom.id


def test_unmatched_and_garbage(db, make_item):
    make_item("ALT")
    matcher = ItemMatcher(db, USER_ID)
    results = matcher.match_many(["Lipase(", "123", "ALT"])
    assert results["Lipase("].method == "none"
    assert results["Lipase("].has_truncated_bracket is True
    assert results["123"].is_garbage is True
    assert results["ALT"].matched is True


def test_ensure_unmapped_item_creates_once(db):
    first = ensure_unmapped_item(db, " Lipase ")
    db.commit()
    again = ensure_unmapped_item(db, "lipase")
    assert again.id == first.id
    assert first.category == UNMAPPED_CATEGORY
    assert first.name == "Lipase"
    assert db.query(StandardItemMaster).count() == 1
