# backend/seed_master_data.py
"""Load a starter master taxonomy and an admin user. Safe to re-run."""
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Allow running from backend/ without tweaking PYTHONPATH
ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

ENV_PATH = ROOT_DIR / "backend" / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=False)

from backend.db.session import session_scope
from backend.models import init_db
from backend.models.item_alias import ItemAliasMaster
from backend.models.standard_item import StandardItemMaster
from backend.models.user import User

# name, display_name_ko, exam_type, default_unit, organ_tags
MASTER_ITEMS = [
    ("ALT", "알라닌 아미노전이효소", "Chemistry", "U/L", ["liver"]),
    ("AST", "아스파르테이트 아미노전이효소", "Chemistry", "U/L", ["liver"]),
    ("ALP", "알칼리성 인산분해효소", "Chemistry", "U/L", ["liver", "bone"]),
    ("BUN", "혈액요소질소", "Chemistry", "mg/dL", ["kidney"]),
    ("Creatinine", "크레아티닌", "Chemistry", "mg/dL", ["kidney"]),
    ("SDMA", "대칭성 디메틸아르기닌", "Chemistry", "ug/dL", ["kidney"]),
    ("Glucose", "혈당", "Chemistry", "mg/dL", ["endocrine"]),
    ("WBC", "백혈구", "CBC", "K/μL", ["immune"]),
    ("RBC", "적혈구", "CBC", "M/μL", ["blood"]),
    ("HCT", "적혈구 용적률", "CBC", "%", ["blood"]),
    ("PLT", "혈소판", "CBC", "K/μL", ["blood"]),
]

# alias, canonical name, source hint
MASTER_ALIASES = [
    ("GPT", "ALT", None),
    ("ALT(GPT)", "ALT", None),
    ("GOT", "AST", None),
    ("AST(GOT)", "AST", None),
    ("CREA", "Creatinine", "IDEXX"),
    ("Cre", "Creatinine", None),
    ("GLU", "Glucose", "IDEXX"),
    ("BUN/UREA", "BUN", None),
    ("PLT-I", "PLT", "ProCyte"),
]


def seed_items(db) -> int:
    added = 0
    for order, (name, ko, exam_type, unit, organs) in enumerate(MASTER_ITEMS):
        if db.query(StandardItemMaster).filter(StandardItemMaster.name == name).first():
            continue
        db.add(StandardItemMaster(
            name=name,
            display_name_ko=ko,
            exam_type=exam_type,
            category=exam_type,
            default_unit=unit,
            organ_tags=organs,
            sort_order=order,
        ))
        added += 1
    db.flush()
    return added


def seed_aliases(db) -> int:
    added = 0
    for alias, canonical, hint in MASTER_ALIASES:
        if db.query(ItemAliasMaster).filter(ItemAliasMaster.alias == alias).first():
            continue
        item = db.query(StandardItemMaster).filter(StandardItemMaster.name == canonical).first()
        if item is None:
            continue
        db.add(ItemAliasMaster(alias=alias, canonical_name=canonical, source_hint=hint, standard_item_id=item.id))
        added += 1
    return added


def seed_admin(db) -> str:
    email = os.getenv("ADMIN_EMAIL", "admin@example.com")
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        user = User(email=email, name="Admin", is_admin=True)
        db.add(user)
        db.flush()
    elif not user.is_admin:
        user.is_admin = True
    return user.id


def main():
    init_db()
    with session_scope() as db:
        items = seed_items(db)
        aliases = seed_aliases(db)
        admin_id = seed_admin(db)
    print(f"Seeded {items} items, {aliases} aliases; admin id={admin_id}")


if __name__ == "__main__":
    main()
