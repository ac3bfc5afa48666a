"""
Catalog tables: the seeded, effectively read-only problem list.

Problem-set membership is a separate table rather than one boolean
column per set, so a new named set needs no schema change.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

DIFFICULTIES = ("Easy", "Medium", "Hard")


class Problem(Base):
    """A coding-practice problem from the catalog."""

    __tablename__ = "problems"
    __table_args__ = (
        CheckConstraint("difficulty IN ('Easy', 'Medium', 'Hard')", name="ck_problems_difficulty"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    catalog_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    difficulty: Mapped[str] = mapped_column(Text, nullable=False)
    categories: Mapped[list[str]] = mapped_column(JSON, default=list)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    reference_urls: Mapped[dict[str, str]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(default=func.now())

    # Relationships
    set_memberships: Mapped[list[ProblemSetMember]] = relationship(
        back_populates="problem", cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def problem_sets(self) -> list[str]:
        return sorted(m.set_name for m in self.set_memberships)


class ProblemSetMember(Base):
    """Membership of a problem in a named problem set (e.g. neetcode150)."""

    __tablename__ = "problem_set_members"
    __table_args__ = (UniqueConstraint("problem_id", "set_name", name="uq_problem_set_member"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    problem_id: Mapped[int] = mapped_column(
        ForeignKey("problems.id", ondelete="CASCADE"), nullable=False, index=True
    )
    set_name: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    problem: Mapped[Problem] = relationship(back_populates="set_memberships")
