"""
Statistics Aggregator: per-user rolling aggregate over completed games.

Updates are fire-and-forget: schedule() hands the read-modify-write to a background executor and returns
the Future. Two games of the same user finishing at the same moment may lose one update; that is accepted.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import AbstractContextManager
from typing import Callable

from chesscore.config import SETTINGS
from chesscore.core.models import DifficultyStatsModel, StatsModel, utc_now
from chesscore.core.shared_types import Color, Difficulty, Winner
from chesscore.db.repository import StatsRepository
from chesscore.game.game import GameResult

log = logging.getLogger(__name__)

StatsRepositoryScope = Callable[[], AbstractContextManager[StatsRepository]]


def _percent(part: int, whole: int) -> float:
    return (part / whole) * 100 if whole else 0.0


def _running_mean(mean: float, count: int, value: float) -> float:
    """Mean of `count` values updated with one more value."""
    return ((mean * count) + value) / (count + 1)


def updated_stats(
    current: StatsModel,
    result: GameResult,
    difficulty: Difficulty,
    player_color: Color,
) -> StatsModel:
    """Fold one finished game into the aggregate. Win/loss is seen from the player's side."""
    is_draw = result.winner == Winner.DRAW
    is_win = not is_draw and result.winner.value == player_color.value
    is_loss = not is_draw and not is_win

    total = current.total_games + 1
    wins = current.wins + int(is_win)

    per_difficulty = {
        level.value: current.per_difficulty.get(level.value, DifficultyStatsModel())
        for level in Difficulty
    }
    level_stats = per_difficulty[difficulty.value]
    level_games = level_stats.games + 1
    level_wins = level_stats.wins + int(is_win)
    per_difficulty[difficulty.value] = DifficultyStatsModel(
        games=level_games,
        wins=level_wins,
        win_rate=_percent(level_wins, level_games),
    )

    return StatsModel(
        owner_id=current.owner_id,
        total_games=total,
        wins=wins,
        losses=current.losses + int(is_loss),
        draws=current.draws + int(is_draw),
        win_rate=_percent(wins, total),
        avg_duration=_running_mean(
            current.avg_duration, current.total_games, result.duration_seconds
        ),
        avg_move_count=_running_mean(
            current.avg_move_count, current.total_games, result.move_count
        ),
        per_difficulty=per_difficulty,
        updated_at=utc_now(),
    )


class StatisticsAggregator:
    def __init__(
        self,
        repository_scope: StatsRepositoryScope,
        max_workers: int = SETTINGS.stats_workers,
    ) -> None:
        self.repository_scope = repository_scope
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="stats"
        )

    def record(
        self,
        owner_id: str,
        result: GameResult,
        difficulty: Difficulty,
        player_color: Color,
    ) -> StatsModel:
        """Read-modify-write of the owner's aggregate."""
        with self.repository_scope() as repo:
            current = repo.get_stats(owner_id) or StatsModel(owner_id=owner_id)
            stats = updated_stats(current, result, difficulty, player_color)
            repo.save_stats(stats)
        log.debug("Stats for %s: %d games, %.1f%% won", owner_id, stats.total_games, stats.win_rate)
        return stats

    def schedule(
        self,
        owner_id: str,
        result: GameResult,
        difficulty: Difficulty,
        player_color: Color,
    ) -> Future:
        """Run record() in the background. Failures are logged, not raised to the caller."""
        future = self._executor.submit(self.record, owner_id, result, difficulty, player_color)
        future.add_done_callback(self._log_failure)
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _log_failure(self, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            log.error("Statistics update failed: %s", exc, exc_info=exc)
