"""Unit tests for chesscore/game/game.py and chesscore/game/state_machine.py"""

from dataclasses import replace
from datetime import datetime, timezone

import pytest
from conftest import AFTER_E4, FOOLS_MATE, StepClock

from chesscore.core.exceptions import InvalidMoveError, InvalidStateError
from chesscore.core.models import GameModel
from chesscore.core.shared_types import (
    Color,
    Difficulty,
    ResultReason,
    Status,
    Winner,
)
from chesscore.game.game import Game, Move
from chesscore.game.oracle import STARTING_POSITION, MoveSpec, PythonChessOracle
from chesscore.game.state_machine import GameStateMachine


@pytest.fixture
def machine(oracle: PythonChessOracle, step_clock: StepClock) -> GameStateMachine:
    return GameStateMachine(oracle, clock=step_clock)


@pytest.fixture
def new_game(step_clock: StepClock) -> Game:
    return Game.new_game("user-1", "medium", "white", now=step_clock())


def play(machine: GameStateMachine, game: Game, *moves: str) -> Game:
    for move in moves:
        game = machine.apply(game, move).game
    return game


# --- GAME ENTITY ---
def test_new_game_defaults(new_game: Game) -> None:
    assert new_game.position == STARTING_POSITION
    assert new_game.moves == ()
    assert new_game.current_player == Color.WHITE
    assert new_game.status == Status.PLAYING
    assert new_game.difficulty == Difficulty.MEDIUM
    assert new_game.player_color == Color.WHITE
    assert new_game.ai_color == Color.BLACK
    assert new_game.result is None
    assert not new_game.completed
    assert new_game.created_at == new_game.updated_at


@pytest.mark.parametrize(
    "difficulty, color", [("impossible", "white"), ("easy", "purple")]
)
def test_new_game_rejects_unknown_values(difficulty: str, color: str) -> None:
    with pytest.raises(InvalidStateError):
        Game.new_game("user-1", difficulty, color)


def test_model_roundtrip_keeps_history(
    machine: GameStateMachine, new_game: Game
) -> None:
    game = play(machine, new_game, "e4", "e5")
    model = game.to_model()
    assert isinstance(model, GameModel)
    assert model.move_history[0]["from"] == "e2"
    assert model.move_history[0]["notation"] == "e4"
    assert model.status == "playing"
    assert Game.from_model(model) == game


def test_from_model_rejects_unknown_status(new_game: Game) -> None:
    model = new_game.to_model()
    model.status = "resigned"
    with pytest.raises(InvalidStateError):
        Game.from_model(model)


def test_malformed_move_record(new_game: Game) -> None:
    model = new_game.to_model()
    model.move_history = [{"from": "e2"}]
    with pytest.raises(InvalidStateError):
        Game.from_model(model)


def test_recent_notations(machine: GameStateMachine, new_game: Game) -> None:
    game = play(machine, new_game, "e4", "e5", "Nf3", "Nc6")
    assert game.recent_notations(2) == ["Nf3", "Nc6"]
    assert game.recent_notations(10) == ["e4", "e5", "Nf3", "Nc6"]
    assert game.recent_notations(0) == []


# --- APPLY ---
def test_first_move(machine: GameStateMachine, new_game: Game) -> None:
    """From the initial position, applying e2e4 leaves black to move."""
    transition = machine.apply(new_game, MoveSpec("e2", "e4"))
    game = transition.game

    assert game.position == AFTER_E4
    assert game.current_player == Color.BLACK
    assert game.status == Status.PLAYING
    assert game.ply_count == 1
    assert transition.move.notation == "e4"
    assert transition.move.from_square == "e2"
    assert transition.move.to_square == "e4"
    assert transition.move.timestamp == game.updated_at
    assert not game.completed

    # the original game is untouched
    assert new_game.moves == ()
    assert new_game.position == STARTING_POSITION


def test_current_player_alternates(machine: GameStateMachine, new_game: Game) -> None:
    game = new_game
    expected = [Color.BLACK, Color.WHITE, Color.BLACK, Color.WHITE]
    for move, side in zip(["d4", "d5", "c4", "e6"], expected):
        game = machine.apply(game, move).game
        assert game.current_player == side
    assert game.ply_count == 4


def test_fools_mate(machine: GameStateMachine, new_game: Game) -> None:
    """f3 e5 g4 Qh4# ends the game: black wins by checkmate after 4 plies."""
    game = play(machine, new_game, "f3", "e5", "g4", "Qh4#")

    assert game.position == FOOLS_MATE
    assert game.status == Status.CHECKMATE
    assert game.completed
    assert game.result is not None
    assert game.result.winner == Winner.BLACK
    assert game.result.reason == ResultReason.CHECKMATE
    assert game.result.move_count == 4
    # the step clock ticks one second per call: created at t0, last move at t0 + 4s
    assert game.result.duration_seconds == 4


def test_stalemate_is_a_draw(machine: GameStateMachine, new_game: Game) -> None:
    game = replace(new_game, position="7k/8/6K1/8/8/8/8/5Q2 w - - 0 1")
    game = machine.apply(game, "Qf7").game
    assert game.status == Status.STALEMATE
    assert game.completed
    assert game.result is not None
    assert game.result.winner == Winner.DRAW
    assert game.result.reason == ResultReason.STALEMATE


def test_check_is_not_terminal(machine: GameStateMachine, new_game: Game) -> None:
    game = play(machine, new_game, "e4", "d5", "Bb5+")
    assert game.status == Status.CHECK
    assert not game.completed
    assert game.result is None


def test_illegal_move_leaves_game_unchanged(
    machine: GameStateMachine, new_game: Game
) -> None:
    with pytest.raises(InvalidMoveError):
        machine.apply(new_game, MoveSpec("e2", "e5"))
    assert new_game.position == STARTING_POSITION
    assert new_game.moves == ()


def test_no_moves_after_completion(machine: GameStateMachine, new_game: Game) -> None:
    game = play(machine, new_game, "f3", "e5", "g4", "Qh4#")
    with pytest.raises(InvalidStateError):
        machine.apply(game, "a3")


def test_corrupted_game_refuses_moves(
    machine: GameStateMachine, new_game: Game
) -> None:
    with pytest.raises(InvalidStateError):
        machine.apply(replace(new_game, corrupted=True), "e4")


def test_capture_is_reported(machine: GameStateMachine, new_game: Game) -> None:
    game = play(machine, new_game, "e4", "d5")
    transition = machine.apply(game, "exd5")
    assert transition.captured == "p"


def test_promotion_is_recorded(machine: GameStateMachine, new_game: Game) -> None:
    game = replace(new_game, position="8/4P3/8/8/8/8/k7/4K3 w - - 0 1")
    transition = machine.apply(game, MoveSpec("e7", "e8", "q"))
    assert transition.move.promotion == "q"
    assert transition.move.notation == "e8=Q"


# --- RESET ---
def test_reset(machine: GameStateMachine, new_game: Game) -> None:
    game = play(machine, new_game, "f3", "e5", "g4", "Qh4#")
    game = replace(game, corrupted=True)

    fresh = machine.reset(game)
    assert fresh.position == STARTING_POSITION
    assert fresh.moves == ()
    assert fresh.current_player == Color.WHITE
    assert fresh.status == Status.PLAYING
    assert fresh.result is None
    assert not fresh.completed
    assert not fresh.corrupted
    # owner and settings survive
    assert fresh.owner_id == game.owner_id
    assert fresh.difficulty == game.difficulty
    assert fresh.player_color == game.player_color


def test_move_record_timestamp_roundtrip() -> None:
    moment = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    move = Move("g1", "f3", "Nf3", None, moment)
    assert Move.from_record(move.to_record()) == move
