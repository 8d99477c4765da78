"""
Legality Oracle: the only place that knows the rules of chess.

Wraps python-chess behind a small interface. Callers hand over a FEN position and a candidate move
(SAN, UCI, or an explicit from/to/promotion spec) and get back a Validation describing the outcome.
Anything that needs legal moves, statuses or the side to move asks the oracle instead of touching a board.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Protocol, Union

import chess

from chesscore.core.exceptions import InvalidMoveError, LegalityError
from chesscore.core.shared_types import PROMOTION_PIECES, Color, Status

STARTING_POSITION = chess.STARTING_FEN

UCI_RE = re.compile(r"^[a-h][1-8][a-h][1-8][qrbn]?$", re.I)
CASTLE_ZERO = {"0-0": "O-O", "0-0-0": "O-O-O", "o-o": "O-O", "o-o-o": "O-O-O"}
CENTER_SQUARES = frozenset({"d4", "d5", "e4", "e5"})


@dataclass(frozen=True)
class MoveSpec:
    """Move as a client sends it: squares in algebraic notation and an optional promotion piece."""

    from_square: str
    to_square: str
    promotion: Optional[str] = None


Candidate = Union[str, MoveSpec]


@dataclass(frozen=True)
class LegalMove:
    """One entry of the legal move list of a position, with the flags the heuristic mover ranks on."""

    from_square: str
    to_square: str
    san: str
    uci: str
    piece: str
    captured: Optional[str] = None
    promotion: Optional[str] = None
    is_capture: bool = False
    is_check: bool = False
    is_mate: bool = False
    is_castling: bool = False

    @property
    def is_development(self) -> bool:
        return self.piece in ("n", "b") or self.is_castling

    @property
    def is_center(self) -> bool:
        return self.to_square in CENTER_SQUARES


@dataclass(frozen=True)
class Validation:
    legal: bool
    resulting_position: Optional[str] = None
    notation: Optional[str] = None
    status_after: Optional[Status] = None
    move: Optional[MoveSpec] = None
    captured: Optional[str] = None
    reason: Optional[str] = None


class LegalityOracle(Protocol):
    """Capability interface for a chess rules engine."""

    def validate(self, position: str, candidate: Candidate) -> Validation: ...

    def legal_moves(self, position: str, square: Optional[str] = None) -> list[LegalMove]: ...

    def status(self, position: str) -> Status: ...

    def side_to_move(self, position: str) -> Color: ...

    def is_check(self, position: str) -> bool: ...

    def ply(self, position: str) -> int: ...


class PythonChessOracle:
    """Legality oracle backed by python-chess."""

    # --- VALIDATION ---
    def validate(self, position: str, candidate: Candidate) -> Validation:
        """
        Check a candidate move against the position.
        ----
        Illegal or unparseable candidates give a Validation with legal=False and a reason.
        Only a broken position raises (LegalityError).
        """
        board = self._board(position)
        try:
            move = self._resolve(board, candidate)
        except InvalidMoveError as exc:
            return Validation(legal=False, reason=str(exc))

        notation = board.san(move)
        captured = self._captured_piece(board, move)
        board.push(move)
        return Validation(
            legal=True,
            resulting_position=board.fen(),
            notation=notation,
            status_after=self._status(board),
            move=MoveSpec(
                from_square=chess.square_name(move.from_square),
                to_square=chess.square_name(move.to_square),
                promotion=chess.piece_symbol(move.promotion) if move.promotion else None,
            ),
            captured=captured,
        )

    # --- QUERIES ---
    def legal_moves(self, position: str, square: Optional[str] = None) -> list[LegalMove]:
        """Enumerate legal moves, optionally only those starting from `square`."""
        board = self._board(position)
        from_mask = chess.BB_ALL
        if square is not None:
            try:
                from_mask = chess.BB_SQUARES[chess.parse_square(square.lower())]
            except ValueError:
                raise InvalidMoveError(f"Cannot interpret {square!r} as a square name.")
        return [
            self._describe(board, move)
            for move in board.generate_legal_moves(from_mask=from_mask)
        ]

    def status(self, position: str) -> Status:
        return self._status(self._board(position))

    def side_to_move(self, position: str) -> Color:
        return Color.WHITE if self._board(position).turn == chess.WHITE else Color.BLACK

    def is_check(self, position: str) -> bool:
        return self._board(position).is_check()

    def ply(self, position: str) -> int:
        """Number of half-moves played, as recorded by the position's move counters."""
        board = self._board(position)
        return (board.fullmove_number - 1) * 2 + (0 if board.turn == chess.WHITE else 1)

    # -- PRIVATE HELPERS ---
    def _board(self, position: str) -> chess.Board:
        try:
            return chess.Board(position)
        except ValueError as exc:
            raise LegalityError(f"Invalid position {position!r}: {exc}") from exc

    def _status(self, board: chess.Board) -> Status:
        """Derive the status from the position alone (no move stack is consulted)."""
        if board.is_checkmate():
            return Status.CHECKMATE
        if board.is_stalemate():
            return Status.STALEMATE
        if board.is_insufficient_material() or board.halfmove_clock >= 100:
            return Status.DRAW
        if board.is_check():
            return Status.CHECK
        return Status.PLAYING

    def _resolve(self, board: chess.Board, candidate: Candidate) -> chess.Move:
        if isinstance(candidate, MoveSpec):
            return self._resolve_spec(board, candidate)
        return self._resolve_text(board, candidate)

    def _resolve_spec(self, board: chess.Board, spec: MoveSpec) -> chess.Move:
        try:
            from_square = chess.parse_square(spec.from_square.lower())
            to_square = chess.parse_square(spec.to_square.lower())
        except ValueError:
            raise InvalidMoveError(
                f"Cannot interpret {spec.from_square!r}->{spec.to_square!r} as squares."
            )

        promotion = None
        if spec.promotion:
            letter = PROMOTION_PIECES.get(spec.promotion.lower())
            if letter is None:
                raise InvalidMoveError(f"Invalid promotion piece: {spec.promotion!r}")
            promotion = chess.Piece.from_symbol(letter).piece_type

        move = chess.Move(from_square, to_square, promotion=promotion)
        if move in board.legal_moves:
            return move

        # a pawn reaching the last rank must say what it becomes
        if promotion is None and chess.Move(from_square, to_square, chess.QUEEN) in board.legal_moves:
            raise InvalidMoveError(
                f"Move not allowed: {spec.from_square}{spec.to_square} (promotion piece required)"
            )
        raise InvalidMoveError(f"Move not allowed: {spec.from_square}{spec.to_square}")

    def _resolve_text(self, board: chess.Board, text: str) -> chess.Move:
        token = (text or "").strip()
        if not token:
            raise InvalidMoveError("Empty move")
        token = CASTLE_ZERO.get(token.lower(), token)

        if UCI_RE.fullmatch(token):
            try:
                move = chess.Move.from_uci(token.lower())
            except ValueError:
                raise InvalidMoveError(f"Cannot interpret {token!r} as a move.")
            if move in board.legal_moves:
                return move
            raise InvalidMoveError(f"Move not allowed: {token}")

        try:
            return board.parse_san(token)
        except ValueError:
            sample = [board.san(m) for m in list(board.legal_moves)[:5]]
            raise InvalidMoveError(
                f"Move not allowed: {token!r}. Available moves: {', '.join(sample)}"
            )

    def _captured_piece(self, board: chess.Board, move: chess.Move) -> Optional[str]:
        if board.is_en_passant(move):
            return "p"
        piece = board.piece_at(move.to_square)
        if piece is None or not board.is_capture(move):
            return None
        return piece.symbol().lower()

    def _describe(self, board: chess.Board, move: chess.Move) -> LegalMove:
        piece = board.piece_at(move.from_square)
        assert piece is not None
        san = board.san(move)
        return LegalMove(
            from_square=chess.square_name(move.from_square),
            to_square=chess.square_name(move.to_square),
            san=san,
            uci=move.uci(),
            piece=piece.symbol().lower(),
            captured=self._captured_piece(board, move),
            promotion=chess.piece_symbol(move.promotion) if move.promotion else None,
            is_capture=board.is_capture(move),
            is_check=board.gives_check(move),
            is_mate=san.endswith("#"),
            is_castling=board.is_castling(move),
        )
