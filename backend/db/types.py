import os

from sqlalchemy import String
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.types import JSON as SA_JSON

from backend.db.session import engine

# ---- Dialect-aware column types ----


def uuid_col_type():
    # ids are stored as String(36) everywhere so master and custom ids compare as text
    return String(36)


def json_col_type():
    # In tests or non-Postgres environments, force generic JSON to avoid JSONB with SQLite
    if os.getenv("FORCE_GENERIC_JSON", "").lower() in ("1", "true", "yes"):
        return SA_JSON
    if engine.dialect.name == "postgresql":
        return PG_JSONB
    return SA_JSON
