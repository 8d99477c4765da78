"""
AI Move Orchestrator: turns "the AI should move now" into exactly one committed legal move, or a clear failure.

Pipeline per validation attempt:
1. ask the suggestion client (which handles backends, classification and backoff)
2. no usable suggestion -> heuristic fallback move
3. validate the move string through the oracle
4. invalid while in check, or on the 2nd+ attempt -> one emergency heuristic move
5. valid -> apply through the state machine, commit once, schedule statistics if the game ended

No lock is held while waiting on the suggestion service. The game is read by the caller before the
request and written exactly once, through the `commit` callback, at the end.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Optional

from chesscore.ai.heuristic import HeuristicMover
from chesscore.ai.suggestion import (
    ERROR_INFO,
    ServiceStatus,
    Success,
    SuggestionClient,
    SuggestionRequest,
)
from chesscore.config import SETTINGS
from chesscore.core.exceptions import (
    AIMoveGenerationError,
    InvalidStateError,
    NoLegalMoveError,
    TurnViolationError,
)
from chesscore.core.shared_types import Difficulty, Status
from chesscore.game.game import Game, GameResult, Move
from chesscore.game.oracle import LegalityOracle, Validation
from chesscore.game.state_machine import GameStateMachine
from chesscore.stats.aggregator import StatisticsAggregator

log = logging.getLogger(__name__)

EMERGENCY_REASON = "Emergency fallback used for check position or after multiple failures"

CommitFn = Callable[[Game], Game]


@dataclass(frozen=True)
class AIMoveResult:
    game: Game
    move: Move
    notation: str
    status_after: Status
    result: Optional[GameResult]
    attempts_used: int
    used_fallback: bool
    fallback_reason: Optional[str] = None
    backend_attempts: dict[str, int] = field(default_factory=dict)


@dataclass
class _Candidate:
    move: str
    used_fallback: bool
    reason: Optional[str] = None


class AIMoveOrchestrator:
    def __init__(
        self,
        oracle: LegalityOracle,
        client: SuggestionClient,
        mover: HeuristicMover,
        machine: GameStateMachine,
        stats: Optional[StatisticsAggregator] = None,
        time_budget_s: float = SETTINGS.ai_time_budget_s,
        max_attempts: int = SETTINGS.ai_max_attempts,
        history_window: int = SETTINGS.ai_history_window,
        retry_pause_s: float = SETTINGS.ai_retry_pause_s,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.oracle = oracle
        self.client = client
        self.mover = mover
        self.machine = machine
        self.stats = stats
        self.time_budget_s = time_budget_s
        self.max_attempts = max_attempts
        self.history_window = history_window
        self.retry_pause_s = retry_pause_s
        self.clock = clock
        self.sleep = sleep

    def request_move(
        self,
        game: Game,
        commit: CommitFn,
        difficulty: Optional[Difficulty | str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> AIMoveResult:
        """Generate, validate and commit the AI's move for `game`."""
        self._assert_ai_turn(game)

        level = Difficulty(difficulty) if difficulty else game.difficulty
        deadline = self.clock() + self.time_budget_s
        request = SuggestionRequest(
            position=game.position,
            difficulty=level,
            recent_moves=game.recent_notations(self.history_window),
        )
        in_check = self.oracle.is_check(game.position)
        backend_attempts: Counter = Counter()
        attempts = 0
        last_error: Optional[str] = None

        while attempts < self.max_attempts:
            if cancel_event is not None and cancel_event.is_set():
                raise AIMoveGenerationError("AI move generation cancelled", attempts)
            if self.clock() >= deadline:
                log.error("AI move generation timed out after %.1fs", self.time_budget_s)
                raise AIMoveGenerationError("AI move generation timed out", attempts)

            attempts += 1
            try:
                candidate = self._candidate(request, deadline, cancel_event, backend_attempts)
            except NoLegalMoveError as exc:
                raise AIMoveGenerationError(str(exc), attempts) from exc

            validation = self.oracle.validate(game.position, candidate.move)
            if validation.legal:
                return self._commit(
                    game,
                    validation,
                    commit,
                    attempts,
                    candidate.used_fallback,
                    candidate.reason,
                    backend_attempts,
                )

            last_error = validation.reason
            log.warning(
                "AI move validation failed (attempt %d): %s", attempts, validation.reason
            )

            # in check, or already retried: one emergency heuristic move instead of another round
            if in_check or attempts >= 2:
                log.info("Using emergency fallback due to check position or multiple failures")
                emergency = self._emergency(game.position, level)
                if emergency is not None and emergency.legal:
                    return self._commit(
                        game,
                        emergency,
                        commit,
                        attempts,
                        True,
                        EMERGENCY_REASON,
                        backend_attempts,
                    )

            if attempts < self.max_attempts:
                self.sleep(self.retry_pause_s)

        raise AIMoveGenerationError(
            f"AI generated invalid move after {attempts} attempts: {last_error}", attempts
        )

    def service_status(self) -> ServiceStatus:
        return self.client.probe()

    # -- PRIVATE HELPERS ---
    def _assert_ai_turn(self, game: Game) -> None:
        if game.completed:
            raise InvalidStateError("Cannot request AI move: Game is already completed")
        if game.corrupted:
            raise InvalidStateError("Cannot request AI move: Game record failed integrity checks")
        side_to_move = self.oracle.side_to_move(game.position)
        if side_to_move != game.ai_color:
            raise TurnViolationError(
                f"It's the player's turn ({side_to_move}), not the AI's turn ({game.ai_color})"
            )

    def _candidate(
        self,
        request: SuggestionRequest,
        deadline: float,
        cancel_event: Optional[threading.Event],
        backend_attempts: Counter,
    ) -> _Candidate:
        """A move string from the suggestion service, or from the heuristic mover when it has none."""
        report = self.client.fetch(request, deadline=deadline, cancel_event=cancel_event)
        backend_attempts.update(report.backend_attempts)
        outcome = report.outcome
        if isinstance(outcome, Success):
            log.debug("Backend %s suggested %s", outcome.backend, outcome.move)
            return _Candidate(move=outcome.move, used_fallback=False)

        log.warning(
            "Suggestion service gave no move (%s: %s), using fallback AI",
            outcome.kind,
            outcome.message,
        )
        return _Candidate(
            move=self._fallback_move(request.position, request.difficulty),
            used_fallback=True,
            reason=ERROR_INFO[outcome.kind].message,
        )

    def _fallback_move(self, position: str, difficulty: Difficulty) -> str:
        try:
            return self.mover.pick_move(position, difficulty)
        except NoLegalMoveError:
            raise
        except Exception:
            log.exception("Heuristic mover failed, taking the first legal move")
            return self.mover.first_legal_move(position)

    def _emergency(self, position: str, difficulty: Difficulty) -> Optional[Validation]:
        try:
            move = self._fallback_move(position, difficulty)
        except NoLegalMoveError:
            log.error("Emergency fallback found no legal move in %s", position)
            return None
        return self.oracle.validate(position, move)

    def _commit(
        self,
        game: Game,
        validation: Validation,
        commit: CommitFn,
        attempts: int,
        used_fallback: bool,
        fallback_reason: Optional[str],
        backend_attempts: Counter,
    ) -> AIMoveResult:
        assert validation.move is not None
        transition = self.machine.apply(game, validation.move)
        saved = commit(transition.game)

        if saved.completed and saved.result is not None and self.stats is not None:
            self.stats.schedule(
                owner_id=saved.owner_id,
                result=saved.result,
                difficulty=saved.difficulty,
                player_color=saved.player_color,
            )

        log.info(
            "AI played %s in game %s (attempts=%d, fallback=%s)",
            transition.move.notation,
            game.id,
            attempts,
            used_fallback,
        )
        return AIMoveResult(
            game=saved,
            move=transition.move,
            notation=transition.move.notation,
            status_after=saved.status,
            result=saved.result,
            attempts_used=attempts,
            used_fallback=used_fallback,
            fallback_reason=fallback_reason,
            backend_attempts=dict(backend_attempts),
        )
