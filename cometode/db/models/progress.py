"""
Learner-owned tables: per-problem progress, review history, notes and
preferences.

Progress and history are written together in one transaction; history is
append-only and only cleared by a full reset.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import CheckConstraint, Date, Float, ForeignKey, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

STATUSES = ("new", "learning", "reviewing")


class ProblemProgress(Base):
    """SM-2 learning state, one row per started problem."""

    __tablename__ = "problem_progress"
    __table_args__ = (
        CheckConstraint("status IN ('new', 'learning', 'reviewing')", name="ck_progress_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    problem_id: Mapped[int] = mapped_column(
        ForeignKey("problems.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    status: Mapped[str] = mapped_column(Text, default="new", index=True)
    repetitions: Mapped[int] = mapped_column(Integer, default=0)
    interval: Mapped[int] = mapped_column(Integer, default=0)
    ease_factor: Mapped[float] = mapped_column(Float, default=2.5)
    next_review_date: Mapped[date | None] = mapped_column(Date, index=True)
    first_learned_at: Mapped[datetime | None] = mapped_column()
    last_reviewed_at: Mapped[datetime | None] = mapped_column()
    total_reviews: Mapped[int] = mapped_column(Integer, default=0)


class ReviewHistory(Base):
    """One submitted review (append-only)."""

    __tablename__ = "review_history"
    __table_args__ = (
        CheckConstraint("quality >= 0 AND quality <= 3", name="ck_history_quality"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    problem_id: Mapped[int] = mapped_column(
        ForeignKey("problems.id", ondelete="CASCADE"), nullable=False, index=True
    )
    review_date: Mapped[datetime] = mapped_column(nullable=False, index=True)
    quality: Mapped[int] = mapped_column(Integer, nullable=False)
    interval_before: Mapped[int | None] = mapped_column(Integer)
    interval_after: Mapped[int | None] = mapped_column(Integer)
    ease_factor_before: Mapped[float | None] = mapped_column(Float)
    ease_factor_after: Mapped[float | None] = mapped_column(Float)


class Note(Base):
    """Free-form learner note attached to a problem."""

    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    problem_id: Mapped[int] = mapped_column(
        ForeignKey("problems.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    content: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())


class Preference(Base):
    """Small persisted key/value setting (sync flags, session state, UI)."""

    __tablename__ = "preferences"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())
