"""Unit tests for chesscore/game/history.py"""

from dataclasses import replace

import pytest
from conftest import StepClock, position_after

from chesscore.core.exceptions import InvalidStateError, ReplayError
from chesscore.core.shared_types import Color, Status
from chesscore.game.game import Game, Move
from chesscore.game.history import UndoReconstructor
from chesscore.game.oracle import STARTING_POSITION, PythonChessOracle
from chesscore.game.state_machine import GameStateMachine

OPENING = ["e4", "e5", "Nf3", "Nc6", "Bb5"]


@pytest.fixture
def machine(oracle: PythonChessOracle, step_clock: StepClock) -> GameStateMachine:
    return GameStateMachine(oracle, clock=step_clock)


@pytest.fixture
def undoer(oracle: PythonChessOracle, step_clock: StepClock) -> UndoReconstructor:
    return UndoReconstructor(oracle, clock=step_clock)


@pytest.fixture
def opening(machine: GameStateMachine, step_clock: StepClock) -> Game:
    game = Game.new_game("user-1", "easy", "white", now=step_clock())
    for move in OPENING:
        game = machine.apply(game, move).game
    return game


# --- REPLAY ---
def test_replay_of_nothing_is_the_initial_position(undoer: UndoReconstructor) -> None:
    assert undoer.replay([]) == STARTING_POSITION


def test_replay_matches_stored_position(undoer: UndoReconstructor, opening: Game) -> None:
    assert undoer.replay(opening.moves) == opening.position


def test_replay_divergence_raises(undoer: UndoReconstructor, opening: Game) -> None:
    broken = list(opening.moves)
    broken[2] = Move("g1", "g5", "Ng5")
    with pytest.raises(ReplayError) as exc_info:
        undoer.replay(broken)
    assert "Stored move 3" in str(exc_info.value)


# --- UNDO ---
def test_undo_two_of_five(undoer: UndoReconstructor, opening: Game) -> None:
    """Undoing 2 of 5 plies gives exactly the replay of the first 3."""
    game = undoer.undo(opening, 2)

    assert game.ply_count == 3
    assert [m.notation for m in game.moves] == OPENING[:3]
    assert game.position == position_after(*OPENING[:3])
    assert game.current_player == Color.BLACK
    assert game.status == Status.PLAYING
    assert game.result is None
    assert not game.completed


def test_undo_everything(undoer: UndoReconstructor, opening: Game) -> None:
    game = undoer.undo(opening, len(OPENING))
    assert game.moves == ()
    assert game.position == STARTING_POSITION
    assert game.current_player == Color.WHITE


@pytest.mark.parametrize("moves", [["e4"], ["d4", "d5"], ["e4", "d5", "Bb5+"]])
def test_apply_then_undo_restores_position(
    machine: GameStateMachine, undoer: UndoReconstructor, step_clock: StepClock, moves
) -> None:
    game = Game.new_game("user-1", "hard", "black", now=step_clock())
    for move in moves[:-1]:
        game = machine.apply(game, move).game
    before = game

    after = machine.apply(before, moves[-1]).game
    restored = undoer.undo(after, 1)

    assert restored.position == before.position
    assert restored.moves == before.moves
    assert restored.status == before.status
    assert restored.current_player == before.current_player


def test_undo_recomputes_check_status(
    machine: GameStateMachine, undoer: UndoReconstructor, step_clock: StepClock
) -> None:
    game = Game.new_game("user-1", "hard", "white", now=step_clock())
    for move in ["e4", "d5", "Bb5+", "c6"]:
        game = machine.apply(game, move).game
    assert game.status == Status.PLAYING

    game = undoer.undo(game, 1)
    assert game.status == Status.CHECK
    assert game.current_player == Color.BLACK


@pytest.mark.parametrize("count", [0, -1, 6])
def test_bad_undo_counts(undoer: UndoReconstructor, opening: Game, count: int) -> None:
    with pytest.raises(InvalidStateError):
        undoer.undo(opening, count)


def test_too_many_undos_message(undoer: UndoReconstructor, opening: Game) -> None:
    with pytest.raises(InvalidStateError, match="Only 5 moves have been made"):
        undoer.undo(opening, 6)


def test_cannot_undo_completed_game(
    machine: GameStateMachine, undoer: UndoReconstructor, step_clock: StepClock
) -> None:
    game = Game.new_game("user-1", "hard", "white", now=step_clock())
    for move in ["f3", "e5", "g4", "Qh4#"]:
        game = machine.apply(game, move).game
    with pytest.raises(InvalidStateError, match="already completed"):
        undoer.undo(game, 1)


def test_cannot_undo_corrupted_game(undoer: UndoReconstructor, opening: Game) -> None:
    with pytest.raises(InvalidStateError):
        undoer.undo(replace(opening, corrupted=True), 1)


def test_undo_with_broken_history_raises(
    undoer: UndoReconstructor, opening: Game
) -> None:
    moves = list(opening.moves)
    moves[0] = Move("e2", "e5", "e5")
    with pytest.raises(ReplayError):
        undoer.undo(replace(opening, moves=tuple(moves)), 1)
