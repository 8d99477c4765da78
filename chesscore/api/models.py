"""Requests and Response models"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from chesscore.core.exceptions import InvalidRequestError
from chesscore.core.shared_types import (
    PROMOTION_PIECES,
    Color,
    Difficulty,
    RecoveryAction,
    Status,
)


def _is_algebraic_notation(value: str) -> bool:
    if len(value) != 2:
        return False
    file, rank = value[0].lower(), value[1]
    return file in "abcdefgh" and rank in "12345678"


# --- REQUEST MODELS ---
class CreateGameRequest(BaseModel):
    owner_id: str
    difficulty: Difficulty
    player_color: Color


class GameRequest(BaseModel):
    """Any operation addressing one game on behalf of its owner."""

    game_id: UUID
    owner_id: str


class GetGameRequest(GameRequest):
    pass


class DeleteGameRequest(GameRequest):
    pass


class ResetRequest(GameRequest):
    pass


class MoveRequest(GameRequest):
    from_square: str
    to_square: str
    promotion: Optional[str] = None

    @field_validator(*["from_square", "to_square"])
    @classmethod
    def validate_square(cls, value: str) -> str:
        if not _is_algebraic_notation(value):
            raise InvalidRequestError(
                f"Cannot interpret {value!r} as a valid square name."
            )
        return value.lower()

    @field_validator("promotion")
    @classmethod
    def validate_promotion(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if value.lower() not in PROMOTION_PIECES:
            raise InvalidRequestError(
                f"Invalid promotion piece {value!r}. Pick one from {', '.join(PROMOTION_PIECES)}"
            )
        return PROMOTION_PIECES[value.lower()]


class AIMoveRequest(GameRequest):
    difficulty: Optional[Difficulty] = None


class RecoverRequest(GameRequest):
    difficulty: Difficulty
    force_reset: bool = False


class UndoRequest(GameRequest):
    count: int = 1

    @field_validator("count")
    @classmethod
    def validate_count(cls, value: int) -> int:
        if value < 1:
            raise InvalidRequestError(f"Undo count must be at least 1, got {value}.")
        return value


class ValidMovesRequest(GameRequest):
    square: Optional[str] = None

    @field_validator("square")
    @classmethod
    def validate_square(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if not _is_algebraic_notation(value):
            raise InvalidRequestError(
                f"Cannot interpret {value!r} as a valid square name."
            )
        return value.lower()


class OwnerRequest(BaseModel):
    owner_id: str


class GameHistoryRequest(OwnerRequest):
    limit: int = Field(default=20, ge=1, le=200)


# --- RESPONSE MODELS ---
class MoveView(BaseModel):
    from_square: str
    to_square: str
    notation: str
    promotion: Optional[str] = None
    timestamp: datetime


class GameResultView(BaseModel):
    winner: str
    reason: str
    move_count: int
    duration_seconds: int


class GameResponse(BaseModel):
    game_id: UUID
    owner_id: str
    position: str
    move_history: list[MoveView]
    current_player: Color
    status: Status
    difficulty: Difficulty
    player_color: Color
    result: Optional[GameResultView] = None
    completed: bool
    created_at: datetime
    updated_at: datetime


class MoveResponse(BaseModel):
    game: GameResponse
    move: MoveView
    notation: str
    status: Status
    result: Optional[GameResultView] = None
    captured: Optional[str] = None


class AIMoveResponse(BaseModel):
    game: GameResponse
    move: MoveView
    notation: str
    status: Status
    result: Optional[GameResultView] = None
    attempts_used: int
    used_fallback: bool
    fallback_reason: Optional[str] = None
    backend_attempts: dict[str, int] = Field(default_factory=dict)


class UndoResponse(BaseModel):
    game: GameResponse
    undo_count: int
    new_move_count: int


class MoveOption(BaseModel):
    from_square: str
    to_square: str
    san: str
    piece: str
    captured: Optional[str] = None
    promotion: Optional[str] = None


class ValidMovesResponse(BaseModel):
    game_id: UUID
    square: Optional[str] = None
    moves: list[MoveOption] = Field(default_factory=list)
    squares: list[str] = Field(default_factory=list)


class MoveCheckResponse(BaseModel):
    valid: bool
    error: Optional[str] = None
    status: Optional[Status] = None
    notation: Optional[str] = None


class DifficultyStatsView(BaseModel):
    games: int
    wins: int
    win_rate: float


class StatsResponse(BaseModel):
    owner_id: str
    total_games: int
    wins: int
    losses: int
    draws: int
    win_rate: float
    avg_duration: float
    avg_move_count: float
    per_difficulty: dict[str, DifficultyStatsView]


class ServiceStatusResponse(BaseModel):
    status: str
    message: str
    can_retry: bool
    fallback_available: bool
    retry_after_s: Optional[int] = None
    details: dict[str, Any] = Field(default_factory=dict)


class RecoveryResponse(BaseModel):
    success: bool
    action: RecoveryAction
    message: str
    service_status: ServiceStatusResponse
    move_result: Optional[AIMoveResponse] = None
    error: Optional[str] = None
