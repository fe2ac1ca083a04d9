"""ORM models backing the quiz persistence layer."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


class UserProfileModel(TimestampMixin, Base):
    __tablename__ = "user_profiles"

    uid: Mapped[str] = mapped_column(String(128), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(128), default="Anonymous", nullable=False)
    history: Mapped[list[dict]] = mapped_column(JSONType, default=list, nullable=False)
    current_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    badges: Mapped[list[dict]] = mapped_column(JSONType, default=list, nullable=False)
    total_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quizzes_taken: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_questions_answered: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    shares: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    friends: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )


class QuizCounterModel(Base):
    __tablename__ = "quiz_counters"
    __table_args__ = (
        UniqueConstraint("day", "bucket", "item", name="uq_quiz_counters_key"),
        Index("ix_quiz_counters_day", "day"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    day: Mapped[str] = mapped_column(String(10), nullable=False)
    bucket: Mapped[str] = mapped_column(String(16), nullable=False)
    item: Mapped[str] = mapped_column(String(16), nullable=False)
    count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


__all__ = ["QuizCounterModel", "UserProfileModel"]
