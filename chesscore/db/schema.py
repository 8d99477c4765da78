"""Database tables / schema"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from chesscore.core.models import utc_now


class Base(DeclarativeBase):
    pass


class DBGame(Base):
    __tablename__ = "games"
    __table_args__ = (Index("ix_games_owner_completed", "owner_id", "completed"),)

    id: Mapped[UUID] = mapped_column(primary_key=True)
    owner_id: Mapped[str] = mapped_column(index=True)
    position: Mapped[str]
    move_history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    current_player: Mapped[str]
    status: Mapped[str]
    difficulty: Mapped[str]
    player_color: Mapped[str]
    result: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    completed: Mapped[bool] = mapped_column(default=False)
    corrupted: Mapped[bool] = mapped_column(default=False)
    version: Mapped[int] = mapped_column(default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )


class DBUserStats(Base):
    __tablename__ = "user_stats"
    owner_id: Mapped[str] = mapped_column(primary_key=True)
    total_games: Mapped[int] = mapped_column(default=0)
    wins: Mapped[int] = mapped_column(default=0)
    losses: Mapped[int] = mapped_column(default=0)
    draws: Mapped[int] = mapped_column(default=0)
    win_rate: Mapped[float] = mapped_column(default=0.0)
    avg_duration: Mapped[float] = mapped_column(default=0.0)
    avg_move_count: Mapped[float] = mapped_column(default=0.0)
    per_difficulty: Mapped[dict[str, dict[str, float]]] = mapped_column(JSON, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )
