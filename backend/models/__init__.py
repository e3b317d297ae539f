# backend/models/__init__.py
from backend.db.session import Base, engine

# Import model modules so SQLAlchemy registers all mappers.
# Important: we import the modules (not the classes) to avoid circular imports.
from . import user  # noqa: F401
from . import standard_item  # noqa: F401
from . import item_alias  # noqa: F401
from . import test_record  # noqa: F401


def init_db() -> None:
    """Create tables if they don't exist."""
    Base.metadata.create_all(bind=engine)
