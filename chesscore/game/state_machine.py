"""
Game State Machine: applies one validated move at a time and derives status and terminal results.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional

from chesscore.core.exceptions import InvalidMoveError
from chesscore.core.models import utc_now
from chesscore.core.shared_types import Color, ResultReason, Status, Winner
from chesscore.game.game import Game, GameResult, Move
from chesscore.game.oracle import STARTING_POSITION, Candidate, LegalityOracle

log = logging.getLogger(__name__)

_TERMINAL_REASONS = {
    Status.CHECKMATE: ResultReason.CHECKMATE,
    Status.STALEMATE: ResultReason.STALEMATE,
    Status.DRAW: ResultReason.DRAW,
}


@dataclass(frozen=True)
class Transition:
    """Outcome of applying a move: the new game plus details the caller may want to report."""

    game: Game
    move: Move
    captured: Optional[str] = None


class GameStateMachine:
    def __init__(
        self, oracle: LegalityOracle, clock: Callable[[], datetime] = utc_now
    ) -> None:
        self.oracle = oracle
        self.clock = clock

    def apply(self, game: Game, candidate: Candidate) -> Transition:
        """
        Attempt a move
        -----
        1. refuse completed (or corrupted) games
        2. validate the candidate through the oracle
        3. append the timestamped move, replace the position, recompute status and side to move
        4. on a terminal status, compute the result and complete the game
        """
        game.assert_writable()

        validation = self.oracle.validate(game.position, candidate)
        if not validation.legal:
            raise InvalidMoveError(validation.reason or f"Move not allowed: {candidate}")

        # for the type checker: a legal validation always carries these
        assert validation.move is not None
        assert validation.resulting_position is not None
        assert validation.notation is not None
        assert validation.status_after is not None

        now = self.clock()
        move = Move(
            from_square=validation.move.from_square,
            to_square=validation.move.to_square,
            notation=validation.notation,
            promotion=validation.move.promotion,
            timestamp=now,
        )
        moves = game.moves + (move,)
        status = validation.status_after
        side_to_move = self.oracle.side_to_move(validation.resulting_position)
        result = self._result(status, side_to_move, len(moves), game.created_at, now)

        updated = replace(
            game,
            position=validation.resulting_position,
            moves=moves,
            current_player=side_to_move,
            status=status,
            result=result,
            completed=result is not None,
            updated_at=now,
        )
        if result is not None:
            log.info(
                "Game %s finished: %s (%s) after %d plies",
                game.id,
                result.winner,
                result.reason,
                result.move_count,
            )
        return Transition(game=updated, move=move, captured=validation.captured)

    def reset(self, game: Game) -> Game:
        """Back to the initial position with an empty history."""
        if game.corrupted:
            # resetting is also the way out of a corrupted record
            log.warning("Resetting corrupted game %s", game.id)
        return replace(
            game,
            position=STARTING_POSITION,
            moves=(),
            current_player=Color.WHITE,
            status=Status.PLAYING,
            result=None,
            completed=False,
            corrupted=False,
            updated_at=self.clock(),
        )

    def _result(
        self,
        status: Status,
        side_to_move: Color,
        move_count: int,
        created_at: datetime,
        now: datetime,
    ) -> Optional[GameResult]:
        """The side to move at a checkmate position is the one who got mated."""
        if not status.is_terminal:
            return None
        if status == Status.CHECKMATE:
            winner = Winner(side_to_move.opponent.value)
        else:
            winner = Winner.DRAW
        return GameResult(
            winner=winner,
            reason=_TERMINAL_REASONS[status],
            move_count=move_count,
            duration_seconds=max(0, int((now - created_at).total_seconds())),
        )
