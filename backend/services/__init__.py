# Mark services as a package and expose key service modules for tests to monkeypatch.

from . import item_resolver as item_resolver  # noqa: F401
from . import alias_registry as alias_registry  # noqa: F401
from . import item_curation as item_curation  # noqa: F401
from . import ingest as ingest  # noqa: F401

__all__ = [
    "item_resolver",
    "alias_registry",
    "item_curation",
    "ingest",
]
