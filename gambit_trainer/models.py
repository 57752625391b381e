"""Shared data models for the gambit trainer.

ResolvedMove and SessionSnapshot are the contract between the replay
controller and whatever host drives it (the MCP server, tests).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from gambit_trainer.errors import ReplayError


@dataclass(frozen=True)
class AttemptedMove:
    """Unchecked move input from a board event."""

    from_square: str
    to_square: str
    promotion: str | None = None

    def __str__(self) -> str:
        return f"{self.from_square}{self.to_square}{self.promotion or ''}"


@dataclass(frozen=True)
class ResolvedMove:
    """A move the rules engine accepted, with its notation and result.

    ``ply`` is 1-based within a line or session; 0 when the move is only
    a candidate (e.g. from legal_moves).
    """

    san: str
    uci: str
    fen_after: str
    ply: int = 0

    @property
    def from_square(self) -> str:
        return self.uci[:2]

    @property
    def to_square(self) -> str:
        return self.uci[2:4]

    @property
    def is_capture(self) -> bool:
        return "x" in self.san


@dataclass(frozen=True)
class MoveRecorded:
    """Emitted after every applied move (learner or opponent)."""

    ply: int
    san: str
    uci: str
    fen_after: str
    by: str  # "learner" or "opponent"


@dataclass(frozen=True)
class MoveUndone:
    ply: int
    san: str


@dataclass(frozen=True)
class LineCompleted:
    """Emitted once the cursor reaches the end of a scripted line."""

    session_id: str
    length: int


@dataclass(frozen=True)
class PendingReply:
    """A scheduled opponent reply.

    Captures the session identity and version at schedule time; the reply
    only applies while both still match.
    """

    session_id: str
    version: int
    due_in_ms: int


@dataclass
class MoveOutcome:
    """Result of a session operation.

    Exactly one of ``move`` / ``error`` is set for a move attempt; both are
    None for a no-op (e.g. an opponent reply requested on the learner's
    turn). ``stale`` marks a discarded pending reply.
    """

    move: ResolvedMove | None = None
    error: ReplayError | None = None
    events: list = field(default_factory=list)
    pending: PendingReply | None = None
    stale: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def accepted(self) -> bool:
        """True when a move was applied (the dropped piece stays)."""
        return self.move is not None and self.error is None


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of a ReplaySession at one version."""

    session_id: str
    version: int
    mode: str
    state: str
    fen: str
    starting_fen: str
    cursor: int
    line_length: int | None
    expected_move: str | None
    learner_color: str
    side_to_move: str
    move_list: tuple[str, ...] = ()
    last_move: str | None = None
    last_move_san: str | None = None
    move_from: str | None = None
    highlights: dict = field(default_factory=dict)
    terminal: str = "ongoing"
    reply_pending: bool = False
