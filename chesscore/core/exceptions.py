"""
Exceptions raised across layers.

Every exception derives from GameError, so the API layer can catch the whole family at once
and map the specific subclasses onto a response.
"""

from chesscore.core.shared_types import AIErrorKind


class GameError(Exception):
    """Root of all errors raised by the chess core."""


# --- REQUESTS ---
class InvalidRequestError(GameError):
    """Request data could not be interpreted. Raised from pydantic validators, and not a ValueError so pydantic lets it through unwrapped."""


# --- DOMAIN ---
class LegalityError(GameError):
    """The position handed to the legality oracle cannot be parsed."""


class InvalidMoveError(GameError):
    """The move is not legal in the current position. User-correctable."""


class InvalidStateError(GameError):
    """Operation not allowed on this game (completed, missing, unauthorized, corrupted)."""


class TurnViolationError(GameError):
    """An AI move was requested while it is the player's turn."""


class ReplayError(GameError):
    """Stored move history does not replay from the initial position. Data-integrity problem."""


class NoLegalMoveError(GameError):
    """Asked for a move in a position where the side to move has none."""


# --- AI ---
class AIServiceError(GameError):
    """Failure of the move suggestion service, tagged with its classification."""

    def __init__(self, kind: AIErrorKind, message: str = "") -> None:
        self.kind = kind
        self.message = message or kind.value.replace("_", " ")
        super().__init__(f"{self.kind}: {self.message}")


class AIMoveGenerationError(GameError):
    """No valid AI move could be produced within the attempt and time budget."""

    def __init__(self, message: str, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"{message} (attempts: {attempts})")


# --- PERSISTENCE ---
class RepositoryError(GameError):
    """Record could not be found or written."""


class ConcurrentUpdateError(RepositoryError):
    """Another writer updated the record since it was read."""
