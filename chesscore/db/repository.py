"""Protocol repositories (SQLAlchemy implementation in sql_repository.py, dictionaries in the tests)."""

from typing import Optional, Protocol
from uuid import UUID

from chesscore.core.models import GameModel, StatsModel


class GameRepository(Protocol):
    """Persistence layer orchestration"""

    def get_game(self, game_id: UUID) -> GameModel | None:
        """Get game by ID, if record exists."""
        ...

    def create_game(self, game: GameModel) -> tuple[GameModel, UUID]:
        """Store new game and return the stored data + newly created game ID."""
        ...

    def update_game(
        self, game_id: UUID, game: GameModel, expected_version: int
    ) -> GameModel | None:
        """
        Replace the record, provided nobody else wrote it since `expected_version` was read.
        Returns None for an unknown ID and raises ConcurrentUpdateError when the version moved on.
        """
        ...

    def delete_game(self, game_id: UUID) -> GameModel | None:
        """Remove a game's record."""
        ...

    def list_games(
        self, owner_id: str, limit: int = 20, completed: Optional[bool] = None
    ) -> list[GameModel]:
        """Games of one owner, most recently created first."""
        ...

    def mark_corrupted(self, game_id: UUID) -> None:
        """Flag a record whose history no longer replays."""
        ...


class StatsRepository(Protocol):
    def get_stats(self, owner_id: str) -> StatsModel | None: ...

    def save_stats(self, stats: StatsModel) -> StatsModel:
        """Insert or replace the owner's aggregate."""
        ...
