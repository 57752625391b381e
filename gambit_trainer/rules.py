"""Board/position contract over the python-chess rules engine.

Positions travel through the trainer as FEN strings; every function here
builds a throwaway chess.Board, so callers never share mutable board state.
"""

from __future__ import annotations

import chess

from gambit_trainer.errors import IllegalMoveError, InvalidInputError
from gambit_trainer.models import AttemptedMove, ResolvedMove

STARTING_FEN = chess.STARTING_FEN

_PROMOTION_PIECES = {
    "q": chess.QUEEN,
    "r": chess.ROOK,
    "b": chess.BISHOP,
    "n": chess.KNIGHT,
}


def color_name(color: chess.Color) -> str:
    return "white" if color == chess.WHITE else "black"


def board_from_fen(fen: str) -> chess.Board:
    """Build a board from FEN, rejecting unparseable or impossible positions.

    Raises:
        InvalidInputError: If the FEN is malformed or the position invalid.
    """
    try:
        board = chess.Board(fen)
    except ValueError as exc:
        raise InvalidInputError(f"Invalid FEN: {exc}") from exc
    if not board.is_valid():
        raise InvalidInputError(f"Invalid FEN position: {fen}")
    return board


def parse_square(name: str) -> chess.Square:
    try:
        return chess.parse_square(name)
    except ValueError as exc:
        raise InvalidInputError(f"Invalid square: {name}") from exc


def _parse_promotion(symbol: str | None) -> chess.PieceType | None:
    if symbol is None or symbol == "":
        return None
    piece = _PROMOTION_PIECES.get(symbol.lower())
    if piece is None:
        raise InvalidInputError(f"Invalid promotion piece: {symbol}")
    return piece


def _resolve(board: chess.Board, move: chess.Move, ply: int) -> ResolvedMove:
    san = board.san(move)
    after = board.copy(stack=False)
    after.push(move)
    return ResolvedMove(san=san, uci=move.uci(), fen_after=after.fen(), ply=ply)


def side_to_move(fen: str) -> str:
    return color_name(board_from_fen(fen).turn)


def legal_moves(fen: str, from_square: str | None = None) -> list[ResolvedMove]:
    """Enumerate legal moves, optionally only those leaving ``from_square``."""
    board = board_from_fen(fen)
    origin = parse_square(from_square) if from_square is not None else None
    return [
        _resolve(board, m, 0)
        for m in board.legal_moves
        if origin is None or m.from_square == origin
    ]


def apply_move(fen: str, move: AttemptedMove, ply: int = 0) -> ResolvedMove:
    """Resolve a from/to(/promotion) move against ``fen``.

    A pawn reaching the back rank without a promotion piece promotes to a
    queen. A promotion piece sent with any other move is ignored. A king
    dropped onto its own rook is read as castling.

    Raises:
        IllegalMoveError: If no legal move matches.
        InvalidInputError: If a square or the promotion symbol is malformed.
    """
    board = board_from_fen(fen)
    from_sq = parse_square(move.from_square)
    to_sq = parse_square(move.to_square)
    promotion = _parse_promotion(move.promotion)
    piece = board.piece_at(from_sq)
    if piece is None or piece.piece_type != chess.PAWN or chess.square_rank(to_sq) not in (0, 7):
        promotion = None
    try:
        chess_move = board.find_move(from_sq, to_sq, promotion)
    except chess.IllegalMoveError as exc:
        raise IllegalMoveError(f"Illegal move: {move}") from exc
    return _resolve(board, chess_move, ply)


def apply_san(fen: str, san: str, ply: int = 0) -> ResolvedMove:
    """Resolve a SAN token against ``fen``; the result carries canonical SAN.

    Raises:
        IllegalMoveError: If the token is not a legal move here.
    """
    board = board_from_fen(fen)
    try:
        chess_move = board.parse_san(san)
    except (chess.InvalidMoveError, chess.IllegalMoveError, chess.AmbiguousMoveError) as exc:
        raise IllegalMoveError(f"Illegal move: {san}") from exc
    # parse_san reads "--" as a null move
    if not chess_move:
        raise IllegalMoveError(f"Illegal move: {san}")
    return _resolve(board, chess_move, ply)


def terminal_state(fen: str) -> str:
    """Return "checkmate", "stalemate", "draw" or "ongoing"."""
    outcome = board_from_fen(fen).outcome()
    if outcome is None:
        return "ongoing"
    if outcome.termination == chess.Termination.CHECKMATE:
        return "checkmate"
    if outcome.termination == chess.Termination.STALEMATE:
        return "stalemate"
    return "draw"
