"""Implementation of the repositories using SQLAlchemy"""

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from chesscore.core.exceptions import ConcurrentUpdateError
from chesscore.core.models import DifficultyStatsModel, GameModel, StatsModel
from chesscore.db.schema import DBGame, DBUserStats


def _aware(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything in the core is UTC-aware."""
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class SQLGameRepository:
    """Data stored using SQL / methods implemented using SQLAlchemy"""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def get_game(self, game_id: UUID) -> GameModel | None:
        """Get game by ID, if record exists."""
        game_db = self._fetch_game(game_id)
        if game_db:
            return self._to_model(game_db)
        return None

    def create_game(self, game: GameModel) -> tuple[GameModel, UUID]:
        """Store new game and return the stored data + newly created game ID."""

        new_id = uuid4()
        game_db = DBGame(
            id=new_id,
            owner_id=game.owner_id,
            position=game.position,
            move_history=list(game.move_history),
            current_player=game.current_player,
            status=game.status,
            difficulty=game.difficulty,
            player_color=game.player_color,
            result=game.result,
            completed=game.completed,
            corrupted=game.corrupted,
            version=0,
            created_at=game.created_at,
            updated_at=game.updated_at,
        )
        self.db.add(game_db)
        self.db.commit()
        self.db.refresh(game_db)
        return self._to_model(game_db), new_id

    def update_game(
        self, game_id: UUID, game: GameModel, expected_version: int
    ) -> GameModel | None:
        """Conditional update: only succeeds while the stored version still equals `expected_version`."""
        query = (
            update(DBGame)
            .where(DBGame.id == game_id, DBGame.version == expected_version)
            .values(
                position=game.position,
                move_history=list(game.move_history),
                current_player=game.current_player,
                status=game.status,
                difficulty=game.difficulty,
                player_color=game.player_color,
                result=game.result,
                completed=game.completed,
                corrupted=game.corrupted,
                version=expected_version + 1,
                updated_at=game.updated_at,
            )
        )
        outcome = self.db.execute(query)
        if outcome.rowcount == 0:
            self.db.rollback()
            if self._fetch_game(game_id) is None:
                return None
            raise ConcurrentUpdateError(
                f"Game {game_id} was modified concurrently (expected version {expected_version})."
            )
        self.db.commit()
        return self.get_game(game_id)

    def delete_game(self, game_id: UUID) -> GameModel | None:
        """Remove a game's record."""
        game_db = self._fetch_game(game_id)
        if not game_db:
            return None
        game_model = self._to_model(game_db)
        self.db.delete(game_db)
        self.db.commit()
        return game_model

    def list_games(
        self, owner_id: str, limit: int = 20, completed: Optional[bool] = None
    ) -> list[GameModel]:
        """Games of one owner, most recently created first."""
        query = select(DBGame).where(DBGame.owner_id == owner_id)
        if completed is not None:
            query = query.where(DBGame.completed == completed)
        query = query.order_by(DBGame.created_at.desc()).limit(limit)
        return [self._to_model(game_db) for game_db in self.db.scalars(query)]

    def mark_corrupted(self, game_id: UUID) -> None:
        """Flag the record and bump its version so in-flight writers lose."""
        self.db.execute(
            update(DBGame)
            .where(DBGame.id == game_id)
            .values(corrupted=True, version=DBGame.version + 1)
        )
        self.db.commit()

    def _fetch_game(self, game_id: UUID) -> DBGame | None:
        query = select(DBGame).where(DBGame.id == game_id)
        return self.db.scalar(query)

    def _to_model(self, game_db: DBGame) -> GameModel:
        """Convert SQLAlchemy model to data transfer model."""
        return GameModel(
            id=game_db.id,
            owner_id=game_db.owner_id,
            position=game_db.position,
            move_history=list(game_db.move_history),
            current_player=game_db.current_player,
            status=game_db.status,
            difficulty=game_db.difficulty,
            player_color=game_db.player_color,
            result=game_db.result,
            completed=game_db.completed,
            corrupted=game_db.corrupted,
            version=game_db.version,
            created_at=_aware(game_db.created_at),
            updated_at=_aware(game_db.updated_at),
        )


class SQLStatsRepository:
    """Per-user aggregates in the user_stats table."""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def get_stats(self, owner_id: str) -> StatsModel | None:
        stats_db = self.db.get(DBUserStats, owner_id)
        if stats_db is None:
            return None
        return self._to_model(stats_db)

    def save_stats(self, stats: StatsModel) -> StatsModel:
        stats_db = self.db.get(DBUserStats, stats.owner_id)
        if stats_db is None:
            stats_db = DBUserStats(owner_id=stats.owner_id)
            self.db.add(stats_db)
        stats_db.total_games = stats.total_games
        stats_db.wins = stats.wins
        stats_db.losses = stats.losses
        stats_db.draws = stats.draws
        stats_db.win_rate = stats.win_rate
        stats_db.avg_duration = stats.avg_duration
        stats_db.avg_move_count = stats.avg_move_count
        stats_db.per_difficulty = {
            level: asdict(level_stats) for level, level_stats in stats.per_difficulty.items()
        }
        if stats.updated_at is not None:
            stats_db.updated_at = stats.updated_at
        self.db.commit()
        self.db.refresh(stats_db)
        return self._to_model(stats_db)

    def _to_model(self, stats_db: DBUserStats) -> StatsModel:
        return StatsModel(
            owner_id=stats_db.owner_id,
            total_games=stats_db.total_games,
            wins=stats_db.wins,
            losses=stats_db.losses,
            draws=stats_db.draws,
            win_rate=stats_db.win_rate,
            avg_duration=stats_db.avg_duration,
            avg_move_count=stats_db.avg_move_count,
            per_difficulty={
                level: DifficultyStatsModel(
                    games=int(values.get("games", 0)),
                    wins=int(values.get("wins", 0)),
                    win_rate=float(values.get("win_rate", 0.0)),
                )
                for level, values in (stats_db.per_difficulty or {}).items()
            },
            updated_at=_aware(stats_db.updated_at) if stats_db.updated_at else None,
        )
