"""
Boundary layer data model(s).

These objects can be used to communicate with the Service.
Hence, both the API layer (higher) and domain/db layers (lower) will use model(s) defined here to send to/receive from the Service
(Decouples the data model specific to the DB layer, API layer, or domain layer from the information needed to send across boundaries)
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

# Type aliases to make GameModel easier to read
MoveRecord = dict[str, Optional[str]]
ResultRecord = dict[str, Any]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class GameModel:
    """Transport-safe representation of a chess game used between API, Service, DB, and Game layers."""

    owner_id: str
    position: str
    move_history: list[MoveRecord]
    current_player: str
    status: str
    difficulty: str
    player_color: str
    result: Optional[ResultRecord]
    completed: bool
    created_at: datetime
    updated_at: datetime
    version: int = 0
    corrupted: bool = False
    id: Optional[UUID] = None


@dataclass
class DifficultyStatsModel:
    games: int = 0
    wins: int = 0
    win_rate: float = 0.0


@dataclass
class StatsModel:
    """Rolling per-user aggregate over completed games."""

    owner_id: str
    total_games: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    win_rate: float = 0.0
    avg_duration: float = 0.0
    avg_move_count: float = 0.0
    per_difficulty: dict[str, DifficultyStatsModel] = field(default_factory=dict)
    updated_at: Optional[datetime] = None
