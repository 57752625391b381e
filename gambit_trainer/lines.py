"""Line definitions: engine-verified move sequences for one opening line.

A line is authored as PGN-like move text ("1. e4 e5 2. Nf3 Nc6") or as a
list of SAN tokens. Every token is replayed through the rules engine when
the line is built, so a LineDefinition that exists is always playable and
its moves are stored in canonical SAN.

Usage:
    from gambit_trainer.lines import LineDefinition
    line = LineDefinition.from_text("1. e4 e5 2. Nf3 Nc6")
    line.moves        # ("e4", "e5", "Nf3", "Nc6")
    line.trace()      # per-ply san/uci/fen_after for storage
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

import chess

from gambit_trainer import rules
from gambit_trainer.errors import IllegalMoveError, InvalidInputError, MalformedLineError
from gambit_trainer.models import ResolvedMove

logger = logging.getLogger(__name__)

# {brace comments} and ;rest-of-line comments
_COMMENT_RE = re.compile(r"\{[^}]*\}|;[^\n]*")
# "12." / "12..." / bare "12", and the number prefix glued to "1.e4"
_MOVE_NUMBER_RE = re.compile(r"^\d+(?:\.+|$)")
_RESULT_TOKENS = {"1-0", "0-1", "1/2-1/2", "*"}


def parse_move_text(text: str) -> list[str]:
    """Split authored move text into SAN tokens.

    Move numbers, results, comments and trailing annotation glyphs
    ("!", "?") are decoration and are dropped. No legality check happens
    here; see LineDefinition for that.

    Args:
        text: e.g. "1. e4 e5 2. Nf3 Nc6" or "e4 e5 Nf3 Nc6".

    Returns:
        List of SAN tokens in ply order.
    """
    tokens = []
    for raw in _COMMENT_RE.sub(" ", text).split():
        if raw in _RESULT_TOKENS:
            continue
        token = _MOVE_NUMBER_RE.sub("", raw).rstrip("!?")
        if token:
            tokens.append(token)
    return tokens


def moves_to_pgn(moves: Iterable[str], starting_fen: str = rules.STARTING_FEN) -> str:
    """Render SAN moves as PGN move text.

    E.g., ['e4', 'e5', 'Nf3'] -> '1. e4 e5 2. Nf3'. A sequence starting
    with Black to move opens with '1... e5'.
    """
    board = rules.board_from_fen(starting_fen)
    number = board.fullmove_number
    white_to_move = board.turn == chess.WHITE

    parts = []
    for i, san in enumerate(moves):
        if white_to_move:
            parts.append(f"{number}. {san}")
        elif i == 0:
            parts.append(f"{number}... {san}")
        else:
            parts.append(san)
        if not white_to_move:
            number += 1
        white_to_move = not white_to_move

    return " ".join(parts)


@dataclass(frozen=True)
class LineDefinition:
    """An immutable, engine-verified opening line.

    Raises MalformedLineError on construction when the starting position is
    invalid, the line is empty, or a move is illegal at its ply.
    """

    moves: tuple[str, ...]
    starting_fen: str = rules.STARTING_FEN
    _trace: tuple[ResolvedMove, ...] = field(
        default=(), init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        try:
            fen = rules.board_from_fen(self.starting_fen).fen()
        except InvalidInputError as exc:
            raise MalformedLineError(0, "", str(exc)) from exc
        start = fen

        tokens = tuple(self.moves)
        if not tokens:
            raise MalformedLineError(0, "", "Line contains no moves")

        trace = []
        for ply, token in enumerate(tokens, 1):
            try:
                resolved = rules.apply_san(fen, token, ply=ply)
            except IllegalMoveError as exc:
                raise MalformedLineError(
                    ply, token, f"not a legal move in {fen}"
                ) from exc
            trace.append(resolved)
            fen = resolved.fen_after

        object.__setattr__(self, "starting_fen", start)
        object.__setattr__(self, "moves", tuple(m.san for m in trace))
        object.__setattr__(self, "_trace", tuple(trace))

    # ── Constructors ────────────────────────────────────────────────

    @classmethod
    def from_text(cls, text: str, starting_fen: str = rules.STARTING_FEN) -> LineDefinition:
        line = cls(tuple(parse_move_text(text)), starting_fen)
        logger.debug("Built line of %d plies from text", len(line))
        return line

    @classmethod
    def from_moves(cls, moves: Iterable[str], starting_fen: str = rules.STARTING_FEN) -> LineDefinition:
        return cls(tuple(moves), starting_fen)

    @classmethod
    def from_records(
        cls,
        starting_fen: str,
        records: Iterable[Mapping],
    ) -> LineDefinition:
        """Rebuild a line from stored per-ply records.

        Records need ``ply``, ``san`` and ``fen_after`` keys. Plies must run
        1..N without gaps, and every stored SAN and position must equal the
        replay.
        """
        ordered = sorted(records, key=lambda r: r["ply"])
        for expected_ply, record in enumerate(ordered, 1):
            if record["ply"] != expected_ply:
                raise MalformedLineError(
                    expected_ply, record["san"], f"stored ply {record['ply']} out of sequence"
                )

        line = cls(tuple(r["san"] for r in ordered), starting_fen)
        for record, resolved in zip(ordered, line._trace):
            if record["san"] != resolved.san:
                raise MalformedLineError(
                    resolved.ply, record["san"], f"stored SAN differs from {resolved.san}"
                )
            if record["fen_after"] != resolved.fen_after:
                raise MalformedLineError(
                    resolved.ply,
                    record["san"],
                    "stored position does not match the replayed position",
                )
        return line

    # ── Queries ─────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self.moves)

    def expected(self, cursor: int) -> str | None:
        """The SAN expected at ``cursor`` (0-based), or None past the end."""
        if 0 <= cursor < len(self.moves):
            return self.moves[cursor]
        return None

    def trace(self) -> list[ResolvedMove]:
        """Per-ply forward trace: ply, SAN, UCI and resulting FEN."""
        return list(self._trace)

    def position_at(self, cursor: int) -> str:
        """FEN after the first ``cursor`` moves."""
        if not 0 <= cursor <= len(self.moves):
            raise IndexError(f"cursor {cursor} outside line of {len(self.moves)} moves")
        if cursor == 0:
            return self.starting_fen
        return self._trace[cursor - 1].fen_after

    @property
    def first_mover(self) -> str:
        return rules.side_to_move(self.starting_fen)

    def to_pgn(self) -> str:
        return moves_to_pgn(self.moves, self.starting_fen)
