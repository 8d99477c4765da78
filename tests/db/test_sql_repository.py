"""Unit tests for chesscore/db/sql_repository.py"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from chesscore.core.exceptions import ConcurrentUpdateError
from chesscore.core.models import DifficultyStatsModel, GameModel, StatsModel
from chesscore.db.sql_repository import SQLGameRepository, SQLStatsRepository
from chesscore.game.oracle import STARTING_POSITION

CREATED = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)
AFTER_E4 = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"


def make_model(owner_id: str = "user-1", created_at: datetime = CREATED, **changes) -> GameModel:
    model = GameModel(
        owner_id=owner_id,
        position=STARTING_POSITION,
        move_history=[],
        current_player="white",
        status="playing",
        difficulty="medium",
        player_color="white",
        result=None,
        completed=False,
        created_at=created_at,
        updated_at=created_at,
    )
    return replace(model, **changes)


def after_e4(model: GameModel) -> GameModel:
    return replace(
        model,
        position=AFTER_E4,
        move_history=[
            {
                "from": "e2",
                "to": "e4",
                "notation": "e4",
                "promotion": None,
                "timestamp": CREATED.isoformat(),
            }
        ],
        current_player="black",
        updated_at=CREATED + timedelta(seconds=5),
    )


# --- GAMES ---
def test_create_game(db_session_repo: Session) -> None:
    """Conversion from a GameModel to DBGame for a new entry to the database."""
    model = make_model()

    repo = SQLGameRepository(db_session_repo)
    record_in_db, game_id = repo.create_game(model)

    assert isinstance(record_in_db, GameModel)
    assert record_in_db == replace(model, id=game_id, version=0)
    # timestamps come back timezone-aware
    assert record_in_db.created_at.tzinfo is not None


def test_get_game_by_id(db_session_repo: Session) -> None:
    """Create a game, then fetch it from db."""
    repo = SQLGameRepository(db_session_repo)
    expected_game, game_id = repo.create_game(make_model())

    game_found = repo.get_game(game_id)
    assert isinstance(game_found, GameModel)
    assert game_found == expected_game


def test_get_unknown_game(db_session_repo: Session) -> None:
    """Should return None if ID does not match anything in database."""
    repo = SQLGameRepository(db_session_repo)
    assert repo.get_game(uuid4()) is None

    # Now do it with creating a game, but retrieving from the wrong ID
    repo.create_game(make_model())
    assert repo.get_game(uuid4()) is None


def test_update_game(db_session_repo: Session) -> None:
    """A write against the current version goes through and bumps the version."""
    repo = SQLGameRepository(db_session_repo)
    created, game_id = repo.create_game(make_model())

    updated = repo.update_game(game_id, after_e4(created), expected_version=0)

    assert updated is not None
    assert updated.version == 1
    assert updated.position == AFTER_E4
    assert updated.current_player == "black"
    assert updated.move_history[0]["notation"] == "e4"
    assert repo.get_game(game_id) == updated


def test_consecutive_game_updates(db_session_repo: Session) -> None:
    repo = SQLGameRepository(db_session_repo)
    created, game_id = repo.create_game(make_model())

    first = repo.update_game(game_id, after_e4(created), expected_version=0)
    assert first is not None
    second = repo.update_game(game_id, replace(first, status="check"), expected_version=1)
    assert second is not None
    third = repo.update_game(
        game_id,
        replace(second, result={"winner": "draw"}, completed=True),
        expected_version=2,
    )

    after_all_updates = repo.get_game(game_id)
    assert after_all_updates is not None
    assert after_all_updates == third
    assert after_all_updates.version == 3
    assert after_all_updates.completed
    assert after_all_updates.result == {"winner": "draw"}


def test_stale_update_is_refused(db_session_repo: Session) -> None:
    """Two writers read version 0: the second one to write loses and nothing is overwritten."""
    repo = SQLGameRepository(db_session_repo)
    created, game_id = repo.create_game(make_model())

    repo.update_game(game_id, after_e4(created), expected_version=0)
    with pytest.raises(ConcurrentUpdateError):
        repo.update_game(game_id, replace(created, status="check"), expected_version=0)

    stored = repo.get_game(game_id)
    assert stored is not None
    assert stored.position == AFTER_E4
    assert stored.status == "playing"
    assert stored.version == 1


def test_attempt_updating_unknown_game(db_session_repo: Session) -> None:
    """the update_game() method should break early and return None"""
    repo = SQLGameRepository(db_session_repo)
    assert repo.update_game(uuid4(), make_model(), expected_version=0) is None


def test_mark_corrupted(db_session_repo: Session) -> None:
    repo = SQLGameRepository(db_session_repo)
    created, game_id = repo.create_game(make_model())

    repo.mark_corrupted(game_id)

    stored = repo.get_game(game_id)
    assert stored is not None
    assert stored.corrupted
    assert stored.version == 1
    # writers holding the old version are locked out
    with pytest.raises(ConcurrentUpdateError):
        repo.update_game(game_id, after_e4(created), expected_version=0)


def test_list_games(db_session_repo: Session) -> None:
    repo = SQLGameRepository(db_session_repo)
    ids = []
    for minutes in range(4):
        _, game_id = repo.create_game(
            make_model(created_at=CREATED + timedelta(minutes=minutes), completed=minutes == 3)
        )
        ids.append(game_id)
    repo.create_game(make_model(owner_id="someone-else"))

    newest_first = [game.id for game in repo.list_games("user-1")]
    assert newest_first == list(reversed(ids))

    assert [game.id for game in repo.list_games("user-1", limit=2)] == [ids[3], ids[2]]
    assert [game.id for game in repo.list_games("user-1", completed=False)] == [
        ids[2],
        ids[1],
        ids[0],
    ]
    assert [game.id for game in repo.list_games("user-1", completed=True)] == [ids[3]]
    assert repo.list_games("nobody") == []


def test_delete_game(db_session_repo: Session) -> None:
    """Record of the game should no longer exist after deletion"""
    repo = SQLGameRepository(db_session_repo)
    created_game, game_id = repo.create_game(make_model())
    deleted_game = repo.delete_game(game_id)

    # the correct game should be deleted
    assert deleted_game == created_game

    # The game should no longer be available in db
    assert repo.get_game(game_id) is None


def test_attempt_deleting_unknown_game(db_session_repo: Session) -> None:
    """the delete_game() method should break early and return None"""
    repo = SQLGameRepository(db_session_repo)
    assert repo.delete_game(uuid4()) is None


# --- STATISTICS ---
def test_stats_roundtrip(db_session_repo: Session) -> None:
    repo = SQLStatsRepository(db_session_repo)
    assert repo.get_stats("user-1") is None

    stats = StatsModel(
        owner_id="user-1",
        total_games=2,
        wins=1,
        losses=1,
        win_rate=50.0,
        avg_duration=90.0,
        avg_move_count=20.0,
        per_difficulty={"easy": DifficultyStatsModel(games=2, wins=1, win_rate=50.0)},
        updated_at=CREATED,
    )
    saved = repo.save_stats(stats)

    assert saved == stats
    assert repo.get_stats("user-1") == stats


def test_stats_are_replaced(db_session_repo: Session) -> None:
    repo = SQLStatsRepository(db_session_repo)
    repo.save_stats(StatsModel(owner_id="user-1", total_games=1, updated_at=CREATED))
    repo.save_stats(StatsModel(owner_id="user-1", total_games=2, draws=2, updated_at=CREATED))

    stored = repo.get_stats("user-1")
    assert stored is not None
    assert stored.total_games == 2
    assert stored.draws == 2
