"""
HeuristicMover: cheap rule-based move picker used whenever the suggestion service cannot deliver.

- No search. Moves are picked from the oracle's legal move list using the flags it reports
  (capture, check, mate, castling, promotion, development, center) and a few fixed odds per difficulty.
- Randomness comes from an injectable random.Random so tests can seed it.
"""

from __future__ import annotations

import logging
import random
from typing import Optional, Sequence

from chesscore.core.exceptions import NoLegalMoveError
from chesscore.core.shared_types import Difficulty
from chesscore.game.oracle import LegalityOracle, LegalMove

log = logging.getLogger(__name__)

# easy
EASY_CAPTURE_BIAS = 0.3
# medium
MEDIUM_CAPTURE_BIAS = 0.7
MEDIUM_CHECK_BIAS = 0.5
MEDIUM_CASTLING_BIAS = 0.6
MEDIUM_CASTLING_BEFORE_PLY = 15
# hard
HARD_DEVELOPMENT_BEFORE_PLY = 12
HARD_CENTER_BEFORE_PLY = 20


class HeuristicMover:
    def __init__(self, oracle: LegalityOracle, rng: Optional[random.Random] = None) -> None:
        self.oracle = oracle
        self.rng = rng or random.Random()

    def pick_move(self, position: str, difficulty: Difficulty | str) -> str:
        """Return the SAN of a legal move for the side to move."""
        moves = self.oracle.legal_moves(position)
        if not moves:
            raise NoLegalMoveError(f"No legal moves available in {position!r}")

        if self.oracle.is_check(position):
            chosen = self._escape_check(moves)
        else:
            ply = self.oracle.ply(position)
            level = Difficulty(difficulty)
            if level == Difficulty.EASY:
                chosen = self._easy(moves)
            elif level == Difficulty.MEDIUM:
                chosen = self._medium(moves, ply)
            else:
                chosen = self._hard(moves, ply)

        log.debug("Heuristic mover (%s) picked %s", difficulty, chosen.san)
        return chosen.san

    def first_legal_move(self, position: str) -> str:
        """Last resort: the first move the oracle enumerates."""
        moves = self.oracle.legal_moves(position)
        if not moves:
            raise NoLegalMoveError(f"No legal moves available in {position!r}")
        return moves[0].san

    # -- SELECTION RULES ---
    def _escape_check(self, moves: Sequence[LegalMove]) -> LegalMove:
        """Mate > check > capture, otherwise anything (every legal move already answers the check)."""
        for preferred in (
            [m for m in moves if m.is_mate],
            [m for m in moves if m.is_check],
            [m for m in moves if m.is_capture],
        ):
            if preferred:
                return self.rng.choice(preferred)
        return self.rng.choice(moves)

    def _easy(self, moves: Sequence[LegalMove]) -> LegalMove:
        captures = [m for m in moves if m.is_capture]
        if captures and self.rng.random() < EASY_CAPTURE_BIAS:
            return self.rng.choice(captures)
        return self.rng.choice(moves)

    def _medium(self, moves: Sequence[LegalMove], ply: int) -> LegalMove:
        mates = [m for m in moves if m.is_mate]
        if mates:
            return mates[0]

        captures = [m for m in moves if m.is_capture]
        if captures and self.rng.random() < MEDIUM_CAPTURE_BIAS:
            return self.rng.choice(captures)

        checks = [m for m in moves if m.is_check]
        if checks and self.rng.random() < MEDIUM_CHECK_BIAS:
            return self.rng.choice(checks)

        castling = [m for m in moves if m.is_castling]
        if (
            castling
            and ply < MEDIUM_CASTLING_BEFORE_PLY
            and self.rng.random() < MEDIUM_CASTLING_BIAS
        ):
            return self.rng.choice(castling)

        return self.rng.choice(moves)

    def _hard(self, moves: Sequence[LegalMove], ply: int) -> LegalMove:
        mates = [m for m in moves if m.is_mate]
        if mates:
            return mates[0]

        promotions = [m for m in moves if m.promotion]
        if promotions:
            # queen first if there is one
            return next((m for m in promotions if m.promotion == "q"), promotions[0])

        buckets: dict[int, list[LegalMove]] = {}
        for move in moves:
            priority = self._priority(move, ply)
            if priority:
                buckets.setdefault(priority, []).append(move)
        if buckets:
            return self.rng.choice(buckets[max(buckets)])

        return self.rng.choice(moves)

    def _priority(self, move: LegalMove, ply: int) -> int:
        """capture = 3, check or early development = 2, early center control = 1, nothing = 0"""
        if move.is_capture:
            return 3
        if move.is_check or (move.is_development and ply < HARD_DEVELOPMENT_BEFORE_PLY):
            return 2
        if move.is_center and ply < HARD_CENTER_BEFORE_PLY:
            return 1
        return 0
