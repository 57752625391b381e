"""Replay controller: the training state machine.

A ReplaySession owns one live position and a cursor into an optional
LineDefinition. Each learner move goes through legality (rules engine),
then line matching (scripted mode), then is applied; afterwards an
opponent reply may be scheduled.

States:
    idle            cursor == 0, nothing pending
    in_progress     0 < cursor, line not finished
    awaiting_reply  an opponent reply is scheduled but not yet fired
    completed       scripted line exhausted / free-play game over

Modes:
    scripted    moves must equal the line's SAN exactly; the opponent
                plays the line's next move (ScriptedNext)
    free_play   any legal move; the opponent picks uniformly at random
                (UniformRandom), or nobody replies (opponent=None, used
                for recording new lines)

Every position change bumps ``version``. A PendingReply remembers the
version it was scheduled at and is discarded by fire_reply() once the
session has moved on (reset, undo, another move).
"""

from __future__ import annotations

import logging
import random
import uuid
from collections.abc import Callable

from gambit_trainer import rules
from gambit_trainer.errors import (
    EngineDivergenceError,
    IllegalMoveError,
    InvalidInputError,
    LineDeviationError,
    ReplayError,
    ScriptExhaustedError,
)
from gambit_trainer.highlight import option_squares
from gambit_trainer.lines import LineDefinition, moves_to_pgn
from gambit_trainer.models import (
    AttemptedMove,
    LineCompleted,
    MoveOutcome,
    MoveRecorded,
    MoveUndone,
    PendingReply,
    ResolvedMove,
    SessionSnapshot,
)

logger = logging.getLogger(__name__)

MODES = ("scripted", "free_play")
COLORS = ("white", "black")

_DEFAULT = object()


# ---------------------------------------------------------------------------
# Opponent strategies
# ---------------------------------------------------------------------------


class ScriptedNext:
    """Reply with the line's next move."""

    name = "scripted_next"

    def choose(self, session: ReplaySession) -> ResolvedMove:
        line = session.line
        cursor = session.cursor
        if line is None or cursor >= len(line):
            raise ScriptExhaustedError(len(line) if line is not None else 0)

        san = line.moves[cursor]
        try:
            resolved = rules.apply_san(session.fen, san, ply=cursor + 1)
        except IllegalMoveError as exc:
            raise EngineDivergenceError(cursor + 1, san, session.fen) from exc
        if resolved.san != san:
            raise EngineDivergenceError(cursor + 1, san, session.fen)
        return resolved


class UniformRandom:
    """Reply with a uniformly random legal move."""

    name = "uniform_random"

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def choose(self, session: ReplaySession) -> ResolvedMove | None:
        candidates = rules.legal_moves(session.fen)
        if not candidates:
            return None
        pick = self._rng.choice(candidates)
        return ResolvedMove(
            san=pick.san, uci=pick.uci, fen_after=pick.fen_after, ply=session.cursor + 1
        )


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class ReplaySession:
    """One learner's board, privately owned by a single host session."""

    def __init__(
        self,
        line: LineDefinition | None = None,
        mode: str | None = None,
        opponent=_DEFAULT,
        learner_color: str | None = None,
        starting_fen: str | None = None,
        reply_delay_ms: int = 0,
        rng: random.Random | None = None,
        session_id: str | None = None,
    ) -> None:
        """Create a session in the idle state.

        Args:
            line: Line to train. Required for scripted mode.
            mode: 'scripted' or 'free_play'. Defaults to scripted when a
                line is given, free play otherwise.
            opponent: Reply strategy. Defaults to ScriptedNext (scripted) or
                UniformRandom (free play). None disables replies.
            learner_color: Side the learner plays. Defaults to the side to
                move in the starting position.
            starting_fen: Start position for free play without a line.
            reply_delay_ms: Delay carried by scheduled replies.
            rng: Random source for the default UniformRandom opponent.
            session_id: Explicit id; a UUID is generated otherwise.

        Raises:
            InvalidInputError: On an unknown mode/color, a scripted session
                without a line, or an opponent that does not fit the mode.
        """
        if mode is None:
            mode = "scripted" if line is not None else "free_play"
        if mode not in MODES:
            raise InvalidInputError(f"Unknown mode: {mode}. Use one of {MODES}")
        if mode == "scripted" and line is None:
            raise InvalidInputError("Scripted mode needs a line")

        if line is not None:
            if starting_fen is not None and rules.board_from_fen(starting_fen).fen() != line.starting_fen:
                raise InvalidInputError("starting_fen does not match the line's starting position")
            start = line.starting_fen
        else:
            start = rules.board_from_fen(starting_fen or rules.STARTING_FEN).fen()

        if opponent is _DEFAULT:
            opponent = ScriptedNext() if mode == "scripted" else UniformRandom(rng)
        if mode == "scripted" and opponent is not None and not isinstance(opponent, ScriptedNext):
            raise InvalidInputError("Scripted mode only supports the scripted opponent")
        if mode == "free_play" and isinstance(opponent, ScriptedNext):
            raise InvalidInputError("Free play cannot use the scripted opponent")

        if learner_color is None:
            learner_color = rules.side_to_move(start)
        if learner_color not in COLORS:
            raise InvalidInputError(f"Invalid color: {learner_color}")

        self.session_id = session_id or str(uuid.uuid4())
        self._line = line
        self._mode = mode
        self._opponent = opponent
        self._learner_color = learner_color
        self._starting_fen = start
        self._reply_delay_ms = reply_delay_ms

        self._fen = start
        self._log: list[ResolvedMove] = []
        self._version = 0
        self._move_from: str | None = None
        self._highlights: dict[str, str] = {}
        self._pending: PendingReply | None = None
        self._listeners: list[Callable] = []

    @classmethod
    def recording(cls, starting_fen: str | None = None, **kwargs) -> ReplaySession:
        """A free-play session nobody replies to, for authoring new lines."""
        return cls(mode="free_play", opponent=None, starting_fen=starting_fen, **kwargs)

    # ── Properties ──────────────────────────────────────────────────

    @property
    def line(self) -> LineDefinition | None:
        return self._line

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def opponent(self):
        return self._opponent

    @property
    def learner_color(self) -> str:
        return self._learner_color

    @property
    def starting_fen(self) -> str:
        return self._starting_fen

    @property
    def fen(self) -> str:
        return self._fen

    @property
    def cursor(self) -> int:
        return len(self._log)

    @property
    def version(self) -> int:
        return self._version

    @property
    def move_from(self) -> str | None:
        return self._move_from

    @property
    def highlights(self) -> dict[str, str]:
        return dict(self._highlights)

    @property
    def pending(self) -> PendingReply | None:
        return self._pending

    @property
    def expected_move(self) -> str | None:
        if self._mode != "scripted":
            return None
        return self._line.expected(self.cursor)

    @property
    def is_complete(self) -> bool:
        if self._mode == "scripted":
            return self.cursor >= len(self._line)
        return rules.terminal_state(self._fen) != "ongoing"

    @property
    def state(self) -> str:
        if self._pending is not None:
            return "awaiting_reply"
        if self.is_complete:
            return "completed"
        if self.cursor == 0:
            return "idle"
        return "in_progress"

    def subscribe(self, listener: Callable) -> None:
        """Register a callback receiving MoveRecorded/MoveUndone/LineCompleted."""
        self._listeners.append(listener)

    # ── Board events ────────────────────────────────────────────────

    def select_square(self, square: str) -> bool:
        """Select ``square`` as move source when it offers destinations.

        Returns:
            True if the square is now the pending source; False otherwise
            (any stale selection is cleared).
        """
        options = self._options_for(square)
        if not options:
            self._clear_selection()
            return False
        self._move_from = square
        self._highlights = options
        return True

    def click_square(self, square: str) -> MoveOutcome:
        """Square-click handler: select a source, then a destination.

        With no source selected the click selects. With a source selected,
        a click on a legal destination attempts the move; any other click
        re-selects (or clears when the square has nothing to offer).
        """
        source = self._move_from
        if source is None:
            self.select_square(square)
            return MoveOutcome()

        targets = {m.to_square for m in rules.legal_moves(self._fen, source)}
        if square not in targets:
            self.select_square(square)
            return MoveOutcome()

        outcome = self.attempt_move(source, square, self._expected_promotion(source, square))
        if not outcome.accepted:
            self.select_square(square)
        return outcome

    def drop_piece(
        self,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> MoveOutcome:
        """Drag-and-drop handler; ``outcome.accepted`` says whether the piece stays."""
        if promotion is None:
            promotion = self._expected_promotion(from_square, to_square)
        return self.attempt_move(from_square, to_square, promotion)

    # ── Moves ───────────────────────────────────────────────────────

    def attempt_move(
        self,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> MoveOutcome:
        """Validate and apply a learner move.

        On failure the position, cursor and version are untouched and only
        the pending selection is cleared.

        Raises:
            InvalidInputError: For malformed square names or promotion.
        """
        outcome = MoveOutcome()
        attempted = AttemptedMove(from_square, to_square, promotion)
        try:
            resolved = self._check_learner_move(attempted)
        except ReplayError as exc:
            self._clear_selection()
            if isinstance(exc, LineDeviationError):
                logger.warning(
                    "Session %s ply %d: expected %s, got %s",
                    self.session_id, self.cursor + 1, exc.expected, exc.actual,
                )
            else:
                logger.debug("Session %s rejected %s: %s", self.session_id, attempted, exc)
            outcome.error = exc
            return outcome

        self._apply(resolved, "learner", outcome)
        if self._mode == "scripted" and self.is_complete:
            self._complete(outcome)
        else:
            outcome.pending = self.schedule_reply()
        return outcome

    def _check_learner_move(self, attempted: AttemptedMove) -> ResolvedMove:
        resolved = rules.apply_move(self._fen, attempted, ply=self.cursor + 1)
        if self._mode == "scripted":
            expected = self._line.expected(self.cursor)
            if expected is None:
                raise ScriptExhaustedError(len(self._line))
            if resolved.san != expected:
                raise LineDeviationError(expected, resolved.san)
        return resolved

    def auto_reply(self) -> MoveOutcome:
        """Play the opponent's move now.

        Scripted: the line's next move; ScriptExhaustedError past the end,
        EngineDivergenceError if the stored move is illegal here. Free
        play: a random legal move, no-op in a finished game. Otherwise a
        no-op on the learner's turn or without an opponent.
        """
        outcome = MoveOutcome()
        if self._mode == "scripted" and self.cursor >= len(self._line):
            outcome.error = ScriptExhaustedError(len(self._line))
            return outcome
        if self._opponent is None:
            return outcome
        if rules.side_to_move(self._fen) == self._learner_color:
            return outcome

        try:
            resolved = self._opponent.choose(self)
        except EngineDivergenceError as exc:
            logger.error("Session %s: %s", self.session_id, exc)
            outcome.error = exc
            return outcome
        except ReplayError as exc:
            outcome.error = exc
            return outcome

        if resolved is None:
            return outcome

        self._apply(resolved, "opponent", outcome)
        if self._mode == "scripted" and self.is_complete:
            self._complete(outcome)
        return outcome

    def schedule_reply(self) -> PendingReply | None:
        """Schedule an opponent reply if it is the opponent's turn.

        Returns:
            The PendingReply token to hand to fire_reply(), or None when no
            reply is due.
        """
        if self._opponent is None or self.is_complete:
            return None
        if rules.side_to_move(self._fen) == self._learner_color:
            return None
        self._pending = PendingReply(
            session_id=self.session_id,
            version=self._version,
            due_in_ms=self._reply_delay_ms,
        )
        return self._pending

    def fire_reply(self, pending: PendingReply) -> MoveOutcome:
        """Apply a scheduled reply unless the session has moved on."""
        if (
            pending.session_id != self.session_id
            or pending.version != self._version
            or self._pending != pending
        ):
            logger.warning(
                "Session %s: discarding stale reply scheduled at version %d (now %d)",
                self.session_id, pending.version, self._version,
            )
            return MoveOutcome(stale=True)
        self._pending = None
        return self.auto_reply()

    def undo_last_move(self) -> MoveOutcome:
        """Take back one ply by replaying the remaining moves. No-op at the start."""
        outcome = MoveOutcome()
        if not self._log:
            return outcome

        removed = self._log[-1]
        kept = [m.san for m in self._log[:-1]]
        fen = self._starting_fen
        for san in kept:
            fen = rules.apply_san(fen, san).fen_after

        self._log.pop()
        self._fen = fen
        self._clear_selection()
        self._bump()
        self._emit(MoveUndone(ply=removed.ply, san=removed.san), outcome)
        return outcome

    def reset(self) -> None:
        """Back to the starting position; drops any scheduled reply."""
        self._fen = self._starting_fen
        self._log.clear()
        self._clear_selection()
        self._bump()
        logger.info("Session %s reset", self.session_id)

    # ── Read models ─────────────────────────────────────────────────

    def history(self) -> list[ResolvedMove]:
        return list(self._log)

    def to_pgn(self) -> str:
        return moves_to_pgn([m.san for m in self._log], self._starting_fen)

    def to_line(self) -> LineDefinition:
        """The moves played so far as a new line (raises MalformedLineError if empty)."""
        return LineDefinition.from_moves([m.san for m in self._log], self._starting_fen)

    def snapshot(self) -> SessionSnapshot:
        last = self._log[-1] if self._log else None
        return SessionSnapshot(
            session_id=self.session_id,
            version=self._version,
            mode=self._mode,
            state=self.state,
            fen=self._fen,
            starting_fen=self._starting_fen,
            cursor=self.cursor,
            line_length=len(self._line) if self._line is not None else None,
            expected_move=self.expected_move,
            learner_color=self._learner_color,
            side_to_move=rules.side_to_move(self._fen),
            move_list=tuple(m.san for m in self._log),
            last_move=last.uci if last else None,
            last_move_san=last.san if last else None,
            move_from=self._move_from,
            highlights=dict(self._highlights),
            terminal=rules.terminal_state(self._fen),
            reply_pending=self._pending is not None,
        )

    # ── Internals ───────────────────────────────────────────────────

    def _options_for(self, square: str) -> dict[str, str]:
        line = self._line if self._mode == "scripted" else None
        return option_squares(self._fen, square, line, self.cursor)

    def _expected_promotion(self, from_square: str, to_square: str) -> str | None:
        """Promotion piece of the expected move when it goes from/to these squares."""
        if self._mode != "scripted" or self.cursor >= len(self._line):
            return None
        uci = self._line.trace()[self.cursor].uci
        if uci[:2] == from_square and uci[2:4] == to_square and len(uci) == 5:
            return uci[4]
        return None

    def _clear_selection(self) -> None:
        self._move_from = None
        self._highlights = {}

    def _bump(self) -> None:
        self._version += 1
        self._pending = None

    def _apply(self, resolved: ResolvedMove, by: str, outcome: MoveOutcome) -> None:
        self._log.append(resolved)
        self._fen = resolved.fen_after
        self._clear_selection()
        self._bump()
        outcome.move = resolved
        logger.debug(
            "Session %s ply %d (%s): %s", self.session_id, resolved.ply, by, resolved.san
        )
        self._emit(
            MoveRecorded(
                ply=resolved.ply,
                san=resolved.san,
                uci=resolved.uci,
                fen_after=resolved.fen_after,
                by=by,
            ),
            outcome,
        )

    def _complete(self, outcome: MoveOutcome) -> None:
        logger.info("Session %s completed its line (%d moves)", self.session_id, len(self._line))
        self._emit(LineCompleted(session_id=self.session_id, length=len(self._line)), outcome)

    def _emit(self, event, outcome: MoveOutcome) -> None:
        outcome.events.append(event)
        for listener in self._listeners:
            listener(event)
