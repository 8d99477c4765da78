"""Orchestration of communication from external callers to business logic and persistence layers (and the reverse direction)."""

import logging
import threading
from typing import Optional
from uuid import UUID

from chesscore.ai.orchestrator import AIMoveOrchestrator
from chesscore.api.models import (
    AIMoveRequest,
    AIMoveResponse,
    CreateGameRequest,
    DeleteGameRequest,
    DifficultyStatsView,
    GameHistoryRequest,
    GameResponse,
    GameResultView,
    GetGameRequest,
    MoveCheckResponse,
    MoveOption,
    MoveRequest,
    MoveResponse,
    MoveView,
    OwnerRequest,
    RecoverRequest,
    RecoveryResponse,
    ResetRequest,
    ServiceStatusResponse,
    StatsResponse,
    UndoRequest,
    UndoResponse,
    ValidMovesRequest,
    ValidMovesResponse,
)
from chesscore.core.exceptions import GameError, InvalidStateError, ReplayError
from chesscore.core.models import StatsModel
from chesscore.core.shared_types import Difficulty, RecoveryAction
from chesscore.db.repository import GameRepository, StatsRepository
from chesscore.game.game import Game, GameResult, Move
from chesscore.game.history import UndoReconstructor
from chesscore.game.oracle import MoveSpec
from chesscore.stats.aggregator import StatisticsAggregator

log = logging.getLogger(__name__)


class ChessService:
    """Orchestration of layers for games against the AI opponent."""

    def __init__(
        self,
        repository: GameRepository,
        orchestrator: AIMoveOrchestrator,
        stats_repository: Optional[StatsRepository] = None,
        stats: Optional[StatisticsAggregator] = None,
    ) -> None:
        self.repo = repository
        self.orchestrator = orchestrator
        self.oracle = orchestrator.oracle
        self.machine = orchestrator.machine
        self.undoer = UndoReconstructor(self.oracle, self.machine.clock)
        self.stats_repo = stats_repository
        self.stats = stats if stats is not None else orchestrator.stats

    # --- SERVICE - CREATE NEW GAME ----
    def create_game(self, request: CreateGameRequest) -> GameResponse:
        """Start a game at the initial position. White always moves first, whichever side the player took."""
        new_game = Game.new_game(
            owner_id=request.owner_id,
            difficulty=request.difficulty,
            player_color=request.player_color,
            now=self.machine.clock(),
        )
        stored_model, game_id = self.repo.create_game(new_game.to_model())
        log.info(
            "Created game %s for %s (%s, playing %s)",
            game_id,
            request.owner_id,
            request.difficulty,
            request.player_color,
        )
        return self._game_response(game_id, Game.from_model(stored_model))

    # --- SERVICE - MOVES ----
    def apply_player_move(self, request: MoveRequest) -> MoveResponse:
        """Validate and apply the player's move, then persist it."""
        game = self._fetch_game(request.game_id, request.owner_id)
        spec = MoveSpec(request.from_square, request.to_square, request.promotion)

        transition = self.machine.apply(game, spec)
        saved = self._save(transition.game, game.version)

        if saved.completed and saved.result is not None:
            self._schedule_stats(saved)

        return MoveResponse(
            game=self._game_response(request.game_id, saved),
            move=self._move_view(transition.move),
            notation=transition.move.notation,
            status=saved.status,
            result=self._result_view(saved.result),
            captured=transition.captured,
        )

    def request_ai_move(
        self, request: AIMoveRequest, cancel_event: Optional[threading.Event] = None
    ) -> AIMoveResponse:
        """
        Have the AI opponent play its move.
        ----
        The game is read once here. The orchestrator holds no lock while the suggestion service works;
        it commits through a conditional update against the version read here, so a concurrent write
        in the meantime surfaces as ConcurrentUpdateError and nothing is overwritten.
        """
        game = self._fetch_game(request.game_id, request.owner_id)

        def commit(updated: Game) -> Game:
            return self._save(updated, game.version)

        outcome = self.orchestrator.request_move(
            game,
            commit,
            difficulty=request.difficulty,
            cancel_event=cancel_event,
        )
        return AIMoveResponse(
            game=self._game_response(request.game_id, outcome.game),
            move=self._move_view(outcome.move),
            notation=outcome.notation,
            status=outcome.status_after,
            result=self._result_view(outcome.result),
            attempts_used=outcome.attempts_used,
            used_fallback=outcome.used_fallback,
            fallback_reason=outcome.fallback_reason,
            backend_attempts=outcome.backend_attempts,
        )

    def validate_move(self, request: MoveRequest) -> MoveCheckResponse:
        """Dry run of a player move: nothing is written."""
        game = self._fetch_game(request.game_id, request.owner_id)
        spec = MoveSpec(request.from_square, request.to_square, request.promotion)
        validation = self.oracle.validate(game.position, spec)
        return MoveCheckResponse(
            valid=validation.legal,
            error=validation.reason,
            status=validation.status_after,
            notation=validation.notation,
        )

    def list_valid_moves(self, request: ValidMovesRequest) -> ValidMovesResponse:
        """All legal moves, or only the destination squares of the piece on `square`."""
        game = self._fetch_game(request.game_id, request.owner_id)
        legal_moves = self.oracle.legal_moves(game.position, request.square)

        if request.square is not None:
            squares = list(dict.fromkeys(move.to_square for move in legal_moves))
            return ValidMovesResponse(
                game_id=request.game_id, square=request.square, squares=squares
            )
        return ValidMovesResponse(
            game_id=request.game_id,
            moves=[
                MoveOption(
                    from_square=move.from_square,
                    to_square=move.to_square,
                    san=move.san,
                    piece=move.piece,
                    captured=move.captured,
                    promotion=move.promotion,
                )
                for move in legal_moves
            ],
        )

    # --- SERVICE - HISTORY ----
    def undo(self, request: UndoRequest) -> UndoResponse:
        """Take back the last `count` plies by replaying the rest of the history."""
        game = self._fetch_game(request.game_id, request.owner_id)
        try:
            undone = self.undoer.undo(game, request.count)
        except ReplayError:
            log.error(
                "Game %s history does not replay, marking the record corrupted", request.game_id
            )
            self.repo.mark_corrupted(request.game_id)
            raise

        saved = self._save(undone, game.version)
        return UndoResponse(
            game=self._game_response(request.game_id, saved),
            undo_count=request.count,
            new_move_count=saved.ply_count,
        )

    def reset(self, request: ResetRequest) -> None:
        """Back to the initial position, keeping difficulty and colors."""
        game = self._fetch_game(request.game_id, request.owner_id)
        self._save(self.machine.reset(game), game.version)

    # --- SERVICE - QUERIES ----
    def get_game(self, request: GetGameRequest) -> GameResponse:
        """
        Retrieve current game state.
        ----
        Used in "polling" loop by frontend to check when it is the player's turn for instance.
        """
        game = self._fetch_game(request.game_id, request.owner_id)
        return self._game_response(request.game_id, game)

    def get_active_game(self, request: OwnerRequest) -> Optional[GameResponse]:
        """The owner's most recently created game that is still running, if any."""
        models = self.repo.list_games(request.owner_id, limit=1, completed=False)
        if not models:
            return None
        game = Game.from_model(models[0])
        return self._game_response(self._id_of(game), game)

    def list_games(self, request: GameHistoryRequest) -> list[GameResponse]:
        """The owner's games, newest first."""
        games = [
            Game.from_model(model)
            for model in self.repo.list_games(request.owner_id, limit=request.limit)
        ]
        return [self._game_response(self._id_of(game), game) for game in games]

    def delete_game(self, request: DeleteGameRequest) -> None:
        """Handle a request to delete a Game record."""
        self._fetch_game(request.game_id, request.owner_id)
        self.repo.delete_game(request.game_id)
        log.info("Deleted game %s", request.game_id)

    def get_user_stats(self, request: OwnerRequest) -> StatsResponse:
        """Aggregate over the owner's completed games (all zeros before the first one)."""
        if self.stats_repo is None:
            raise InvalidStateError("Statistics are not available: no statistics store configured")
        stats = self.stats_repo.get_stats(request.owner_id) or StatsModel(
            owner_id=request.owner_id
        )
        return StatsResponse(
            owner_id=stats.owner_id,
            total_games=stats.total_games,
            wins=stats.wins,
            losses=stats.losses,
            draws=stats.draws,
            win_rate=stats.win_rate,
            avg_duration=stats.avg_duration,
            avg_move_count=stats.avg_move_count,
            per_difficulty={
                level.value: DifficultyStatsView(
                    games=stats.per_difficulty[level.value].games,
                    wins=stats.per_difficulty[level.value].wins,
                    win_rate=stats.per_difficulty[level.value].win_rate,
                )
                if level.value in stats.per_difficulty
                else DifficultyStatsView(games=0, wins=0, win_rate=0.0)
                for level in Difficulty
            },
        )

    def ai_service_status(self) -> ServiceStatusResponse:
        """Health of the move suggestion service. The heuristic fallback is always there."""
        status = self.orchestrator.service_status()
        return ServiceStatusResponse(
            status=status.status,
            message=status.message,
            can_retry=status.can_retry,
            fallback_available=status.fallback_available,
            retry_after_s=status.retry_after_s,
        )

    def recover_from_ai_error(self, request: RecoverRequest) -> RecoveryResponse:
        """
        Get a game going again after the AI opponent failed to move.
        ----
        With `force_reset` the game goes back to the initial position. Otherwise the AI move is retried,
        relying on the heuristic fallback when the suggestion service is still down.
        """
        self._fetch_game(request.game_id, request.owner_id)
        status = self.ai_service_status()

        if request.force_reset:
            self.reset(ResetRequest(game_id=request.game_id, owner_id=request.owner_id))
            log.info("Recovery of game %s: reset", request.game_id)
            return RecoveryResponse(
                success=True,
                action=RecoveryAction.GAME_RESET,
                message="Game has been reset. You can start a new game.",
                service_status=status,
            )

        if not status.fallback_available:
            return RecoveryResponse(
                success=False,
                action=RecoveryAction.SERVICE_UNAVAILABLE,
                message="AI service is currently unavailable. Please try again later.",
                service_status=status,
            )

        try:
            move_result = self.request_ai_move(
                AIMoveRequest(
                    game_id=request.game_id,
                    owner_id=request.owner_id,
                    difficulty=request.difficulty,
                )
            )
        except GameError as exc:
            log.warning("Recovery of game %s failed: %s", request.game_id, exc)
            return RecoveryResponse(
                success=False,
                action=RecoveryAction.RECOVERY_FAILED,
                message="Unable to generate AI move. Consider restarting the game.",
                service_status=status,
                error=str(exc),
            )
        return RecoveryResponse(
            success=True,
            action=RecoveryAction.MOVE_GENERATED,
            message="AI move generated using fallback system",
            service_status=status,
            move_result=move_result,
        )

    # -- PRIVATE HELPERS ---
    def _fetch_game(self, game_id: UUID, owner_id: str) -> Game:
        """Attempt to find the game in the repository and raise error if it fails or belongs to someone else."""
        game_model = self.repo.get_game(game_id)
        if game_model is None:
            raise InvalidStateError(f"Game with {game_id=} not found.")
        if game_model.owner_id != owner_id:
            raise InvalidStateError("Unauthorized: This game belongs to another user")
        if game_model.id is None:
            game_model.id = game_id
        return Game.from_model(game_model)

    def _save(self, game: Game, expected_version: int) -> Game:
        """Conditional write: raises ConcurrentUpdateError if the record changed since it was read."""
        assert game.id is not None
        stored = self.repo.update_game(game.id, game.to_model(), expected_version)
        if stored is None:
            raise InvalidStateError(f"Game with game_id={game.id} no longer exists.")
        if stored.id is None:
            stored.id = game.id
        return Game.from_model(stored)

    def _schedule_stats(self, game: Game) -> None:
        if self.stats is None or game.result is None:
            return
        self.stats.schedule(
            owner_id=game.owner_id,
            result=game.result,
            difficulty=game.difficulty,
            player_color=game.player_color,
        )

    @staticmethod
    def _id_of(game: Game) -> UUID:
        if game.id is None:
            raise InvalidStateError("Stored game has no identifier")
        return game.id

    @staticmethod
    def _move_view(move: Move) -> MoveView:
        return MoveView(
            from_square=move.from_square,
            to_square=move.to_square,
            notation=move.notation,
            promotion=move.promotion,
            timestamp=move.timestamp,
        )

    @staticmethod
    def _result_view(result: Optional[GameResult]) -> Optional[GameResultView]:
        if result is None:
            return None
        return GameResultView(
            winner=result.winner.value,
            reason=result.reason.value,
            move_count=result.move_count,
            duration_seconds=result.duration_seconds,
        )

    def _game_response(self, game_id: UUID, game: Game) -> GameResponse:
        """Convert a Game into a GameResponse (for game with given ID.)"""
        return GameResponse(
            game_id=game_id,
            owner_id=game.owner_id,
            position=game.position,
            move_history=[self._move_view(move) for move in game.moves],
            current_player=game.current_player,
            status=game.status,
            difficulty=game.difficulty,
            player_color=game.player_color,
            result=self._result_view(game.result),
            completed=game.completed,
            created_at=game.created_at,
            updated_at=game.updated_at,
        )
