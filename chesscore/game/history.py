"""
Move history and undo.

Undo never edits a position backwards: the kept prefix of the history is replayed from the initial
position through the oracle, so the stored position always equals the replay of the stored moves.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Sequence

from chesscore.core.exceptions import InvalidStateError, ReplayError
from chesscore.core.models import utc_now
from chesscore.game.game import Game, Move
from chesscore.game.oracle import STARTING_POSITION, LegalityOracle

log = logging.getLogger(__name__)


class UndoReconstructor:
    def __init__(
        self, oracle: LegalityOracle, clock: Callable[[], datetime] = utc_now
    ) -> None:
        self.oracle = oracle
        self.clock = clock

    def replay(self, moves: Sequence[Move]) -> str:
        """Play `moves` from the initial position and return the resulting position."""
        position = STARTING_POSITION
        for ply, move in enumerate(moves, start=1):
            validation = self.oracle.validate(position, move.to_spec())
            if not validation.legal or validation.resulting_position is None:
                raise ReplayError(
                    f"Stored move {ply} ({move.notation}, {move.from_square}{move.to_square}) "
                    f"does not replay: {validation.reason}"
                )
            position = validation.resulting_position
        return position

    def undo(self, game: Game, count: int = 1) -> Game:
        """Take back the last `count` plies."""
        if game.completed:
            raise InvalidStateError("Cannot undo moves: Game is already completed")
        if game.corrupted:
            raise InvalidStateError("Cannot undo moves: Game record failed integrity checks")
        if count < 1:
            raise InvalidStateError(f"Cannot undo {count} moves: count must be at least 1")
        if count > len(game.moves):
            raise InvalidStateError(
                f"Cannot undo {count} moves: Only {len(game.moves)} moves have been made"
            )

        kept = game.moves[: len(game.moves) - count]
        position = self.replay(kept)
        log.debug("Game %s: undid %d plies, %d remain", game.id, count, len(kept))

        return replace(
            game,
            position=position,
            moves=kept,
            current_player=self.oracle.side_to_move(position),
            status=self.oracle.status(position),
            result=None,
            completed=False,
            updated_at=self.clock(),
        )
