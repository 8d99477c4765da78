"""
Type definitions used across layers
"""

from enum import StrEnum


class Color(StrEnum):
    WHITE = "white"
    BLACK = "black"

    @property
    def opponent(self) -> "Color":
        return Color.BLACK if self == Color.WHITE else Color.WHITE


class Status(StrEnum):
    PLAYING = "playing"
    CHECK = "check"
    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    DRAW = "draw"

    @property
    def is_terminal(self) -> bool:
        return self in (Status.CHECKMATE, Status.STALEMATE, Status.DRAW)


class Difficulty(StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Winner(StrEnum):
    WHITE = "white"
    BLACK = "black"
    DRAW = "draw"


class ResultReason(StrEnum):
    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    DRAW = "draw"


class AIErrorKind(StrEnum):
    """Classification of suggestion service failures."""

    QUOTA_EXCEEDED = "quota_exceeded"
    NETWORK_ERROR = "network_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    INVALID_RESPONSE = "invalid_response"
    UNKNOWN = "unknown"



class RecoveryAction(StrEnum):
    """What an attempt to recover from an AI failure ended up doing."""

    GAME_RESET = "game_reset"
    MOVE_GENERATED = "move_generated"
    RECOVERY_FAILED = "recovery_failed"
    SERVICE_UNAVAILABLE = "service_unavailable"


# Piece letters accepted for promotion, keyed by the names a client may send.
PROMOTION_PIECES: dict[str, str] = {
    "q": "q",
    "r": "r",
    "b": "b",
    "n": "n",
    "queen": "q",
    "rook": "r",
    "bishop": "b",
    "knight": "n",
}
