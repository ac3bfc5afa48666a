"""
Catalog seeding.

The problem catalog is an external read-only dataset keyed by a stable
numeric identifier. It is loaded once on first run; seeding a non-empty
catalog is a no-op so problems are never duplicated.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from cometode.db.database import session_scope
from cometode.db.models import DIFFICULTIES, Problem, ProblemSetMember

DEFAULT_CATALOG_PATH = Path(__file__).parent.parent / "data" / "problems.json"


@dataclass
class CatalogEntry:
    """One problem as described by the seed dataset."""

    catalog_id: int
    title: str
    difficulty: str
    categories: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    urls: dict[str, str] = field(default_factory=dict)
    sets: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> CatalogEntry:
        difficulty = data["difficulty"]
        if difficulty not in DIFFICULTIES:
            raise ValueError(f"Unknown difficulty {difficulty!r}")
        return cls(
            catalog_id=int(data["catalog_id"]),
            title=data["title"],
            difficulty=difficulty,
            categories=list(data.get("categories", [])),
            tags=list(data.get("tags", [])),
            urls=dict(data.get("urls", {})),
            sets=list(data.get("sets", [])),
        )


def load_catalog(path: Path | None = None) -> list[CatalogEntry]:
    """
    Read catalog entries from a JSON file.

    Args:
        path: Dataset location (defaults to the bundled catalog)

    Returns:
        Catalog entries in file order
    """
    path = path or DEFAULT_CATALOG_PATH
    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    entries = data if isinstance(data, list) else data.get("problems", [])
    return [CatalogEntry.from_dict(item) for item in entries]


def seed_catalog(factory: sessionmaker[Session], path: Path | None = None) -> int:
    """
    Insert the catalog if the problems table is empty.

    Returns:
        Number of problems inserted (0 when already seeded)
    """
    with session_scope(factory) as session:
        existing = session.scalar(select(func.count()).select_from(Problem))
        if existing:
            logger.debug(f"Catalog already seeded ({existing} problems)")
            return 0

        entries = load_catalog(path)
        for entry in entries:
            problem = Problem(
                catalog_id=entry.catalog_id,
                title=entry.title,
                difficulty=entry.difficulty,
                categories=entry.categories,
                tags=entry.tags,
                reference_urls=entry.urls,
            )
            problem.set_memberships = [
                ProblemSetMember(set_name=name) for name in dict.fromkeys(entry.sets)
            ]
            session.add(problem)

    logger.info(f"Seeded {len(entries)} problems")
    return len(entries)
