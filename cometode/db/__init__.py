from .database import (
    create_db_engine,
    dispose_engine,
    get_session_factory,
    init_db,
    make_session_factory,
    session_scope,
)
from .seed import load_catalog, seed_catalog

__all__ = [
    "create_db_engine",
    "dispose_engine",
    "get_session_factory",
    "init_db",
    "make_session_factory",
    "session_scope",
    "load_catalog",
    "seed_catalog",
]
