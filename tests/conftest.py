"""
Pytest will auto-discover / import this file called 'conftest.py'.
This file defines fixtures/variables required for testing multiple layers.
"""

import random
from datetime import datetime, timedelta, timezone
from typing import Generator, Sequence, Union

import chess
import pytest
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from chesscore.ai.suggestion import SuggestionRequest
from chesscore.db.schema import Base
from chesscore.game.oracle import PythonChessOracle

# Setup an in-memory SQLite database for testing
DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autoflush=False, bind=engine)

# Positions shared by several test modules
AFTER_E4 = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"
FOOLS_MATE = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"


def position_after(*moves: str) -> str:
    """FEN reached by playing the SAN `moves` from the initial position."""
    board = chess.Board()
    for san in moves:
        board.push_san(san)
    return board.fen()


# --- DATABASE ---
@pytest.fixture
def db_session_repo() -> Generator[Session, None, None]:
    """Connection to a test database. Tables are removed at teardown to make unit tests of repository independent of each other."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        Base.metadata.drop_all(bind=engine)
        db.close()


@pytest.fixture
def session_factory() -> Generator[sessionmaker[Session], None, None]:
    """Mock real setup with multiple sessions connecting to the same engine / database tables."""
    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)


# --- DOMAIN ---
@pytest.fixture
def oracle() -> PythonChessOracle:
    return PythonChessOracle()


@pytest.fixture
def seeded_rng() -> random.Random:
    return random.Random(1234)


class StepClock:
    """Wall clock for the domain layer: every call moves time forward by `step`."""

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


@pytest.fixture
def step_clock() -> StepClock:
    return StepClock(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))


# --- AI ---
ScriptItem = Union[str, BaseException]


class ScriptedBackend:
    """Suggestion backend replaying a script: strings are returned, exceptions raised. The last entry repeats."""

    def __init__(self, name: str, script: Sequence[ScriptItem]) -> None:
        self.name = name
        self.script = list(script)
        self.requests: list[SuggestionRequest] = []

    def suggest(self, request: SuggestionRequest) -> str:
        self.requests.append(request)
        item = self.script[min(len(self.requests), len(self.script)) - 1]
        if isinstance(item, BaseException):
            raise item
        return item

    @property
    def calls(self) -> int:
        return len(self.requests)


class RecordingSleep:
    """Stand-in for time.sleep that only remembers the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class HTTPStatusError(Exception):
    """Error shaped like an HTTP client error carrying a status code."""

    def __init__(self, message: str, status: int = 429) -> None:
        super().__init__(message)
        self.status = status


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()
