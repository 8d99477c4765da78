"""
The Game class is the entrypoint into the domain layer for the service layer.
It holds the canonical state of one game against the AI opponent and converts from/to the transport GameModel.

The rules-driven transitions (apply a move, undo, reset) live in state_machine.py and history.py,
which always hand back a new Game and leave the one they were given untouched.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Self
from uuid import UUID

from chesscore.core.exceptions import InvalidStateError
from chesscore.core.models import GameModel, MoveRecord, ResultRecord, utc_now
from chesscore.core.shared_types import (
    Color,
    Difficulty,
    ResultReason,
    Status,
    Winner,
)
from chesscore.game.oracle import STARTING_POSITION, MoveSpec


@dataclass(frozen=True)
class Move:
    """A move as it is recorded in the game history."""

    from_square: str
    to_square: str
    notation: str
    promotion: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def from_record(cls, record: MoveRecord) -> Self:
        try:
            timestamp = record.get("timestamp")
            return cls(
                from_square=str(record["from"]),
                to_square=str(record["to"]),
                notation=str(record["notation"]),
                promotion=record.get("promotion"),
                timestamp=datetime.fromisoformat(timestamp) if timestamp else utc_now(),
            )
        except (KeyError, ValueError) as exc:
            raise InvalidStateError(f"Malformed move record {record!r}") from exc

    def to_record(self) -> MoveRecord:
        return {
            "from": self.from_square,
            "to": self.to_square,
            "notation": self.notation,
            "promotion": self.promotion,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_spec(self) -> MoveSpec:
        return MoveSpec(self.from_square, self.to_square, self.promotion)


@dataclass(frozen=True)
class GameResult:
    winner: Winner
    reason: ResultReason
    move_count: int
    duration_seconds: int

    @classmethod
    def from_record(cls, record: ResultRecord) -> Self:
        try:
            return cls(
                winner=Winner(record["winner"]),
                reason=ResultReason(record["reason"]),
                move_count=int(record["move_count"]),
                duration_seconds=int(record["duration_seconds"]),
            )
        except (KeyError, ValueError) as exc:
            raise InvalidStateError(f"Malformed game result {record!r}") from exc

    def to_record(self) -> ResultRecord:
        return {
            "winner": self.winner.value,
            "reason": self.reason.value,
            "move_count": self.move_count,
            "duration_seconds": self.duration_seconds,
        }


@dataclass(frozen=True)
class Game:
    # --- DOMAIN LAYER API CALLED BY SERVICE---

    owner_id: str
    position: str
    moves: tuple[Move, ...]
    current_player: Color
    status: Status
    difficulty: Difficulty
    player_color: Color
    result: Optional[GameResult]
    completed: bool
    created_at: datetime
    updated_at: datetime
    version: int = 0
    corrupted: bool = False
    id: Optional[UUID] = None

    @classmethod
    def from_model(cls, model: GameModel) -> Self:
        """Define how to construct a Game from the information the Service layer actually has"""

        # Validation
        try:
            status = Status(model.status)
            current_player = Color(model.current_player)
            player_color = Color(model.player_color)
            difficulty = Difficulty(model.difficulty)
        except ValueError as exc:
            raise InvalidStateError(f"Invalid game record: {exc}") from exc

        return cls(
            owner_id=model.owner_id,
            position=model.position,
            moves=tuple(Move.from_record(record) for record in model.move_history),
            current_player=current_player,
            status=status,
            difficulty=difficulty,
            player_color=player_color,
            result=GameResult.from_record(model.result) if model.result else None,
            completed=model.completed,
            created_at=model.created_at,
            updated_at=model.updated_at,
            version=model.version,
            corrupted=model.corrupted,
            id=model.id,
        )

    def to_model(self) -> GameModel:
        """Encode back into a format the Service layer uses"""

        return GameModel(
            owner_id=self.owner_id,
            position=self.position,
            move_history=[move.to_record() for move in self.moves],
            current_player=self.current_player.value,
            status=self.status.value,
            difficulty=self.difficulty.value,
            player_color=self.player_color.value,
            result=self.result.to_record() if self.result else None,
            completed=self.completed,
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
            corrupted=self.corrupted,
            id=self.id,
        )

    @classmethod
    def new_game(
        cls,
        owner_id: str,
        difficulty: str,
        player_color: str,
        now: Optional[datetime] = None,
    ) -> Self:
        """Start a new game at the standard initial position, the player using the pieces with the indicated color."""
        if player_color.lower() not in Color.__members__.values():
            raise InvalidStateError(
                f"Cannot create new game. Color {player_color} not in {','.join(Color)}."
            )
        if difficulty.lower() not in Difficulty.__members__.values():
            raise InvalidStateError(
                f"Cannot create new game. Difficulty {difficulty} not in {','.join(Difficulty)}."
            )
        created = now or utc_now()
        return cls(
            owner_id=owner_id,
            position=STARTING_POSITION,
            moves=(),
            current_player=Color.WHITE,
            status=Status.PLAYING,
            difficulty=Difficulty(difficulty.lower()),
            player_color=Color(player_color.lower()),
            result=None,
            completed=False,
            created_at=created,
            updated_at=created,
        )

    @property
    def ai_color(self) -> Color:
        return self.player_color.opponent

    @property
    def ply_count(self) -> int:
        return len(self.moves)

    def recent_notations(self, window: int) -> list[str]:
        """SAN of the last `window` plies, oldest first."""
        if window <= 0:
            return []
        return [move.notation for move in self.moves[-window:]]

    def assert_writable(self) -> None:
        """Mutations are refused on finished games and on records whose history failed to replay."""
        if self.corrupted:
            raise InvalidStateError(
                "Game record failed integrity checks and no longer accepts changes."
            )
        if self.completed:
            raise InvalidStateError(f"Game is already completed. status: {self.status}")
