"""MCP server for the gambit trainer.

Exposes opening-line training sessions and the gambit catalogue via FastMCP.
Sessions are stored in memory keyed by UUID; gambits live in the sqlite
store configured through GAMBIT_TRAINER_* env vars (see gambit_trainer.config).
"""

from __future__ import annotations

import logging
import random
import sys
from pathlib import Path

# Add mcp-server dir to path for the sibling tool modules
_MCP_SERVER_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_MCP_SERVER_DIR))

import chess
import chess.pgn
from mcp.server.fastmcp import FastMCP

from gambit_trainer import rules
from gambit_trainer.config import Settings, load_settings
from gambit_trainer.errors import GambitTrainerError, InvalidInputError
from gambit_trainer.lines import LineDefinition
from gambit_trainer.models import MoveOutcome
from gambit_trainer.session import ReplaySession
from gambit_trainer.store import GambitStore, open_store

from gambits_tools import register_gambits_tools  # noqa: E402
from response_schemas import (  # noqa: E402
    error_response,
    minify_outcome,
    minify_session_state,
)

logger = logging.getLogger(__name__)

mcp = FastMCP("gambit-trainer")

# In-memory session store: session_id -> ReplaySession
_sessions: dict[str, ReplaySession] = {}

# Opened lazily on first use; tests assign their own.
_settings: Settings | None = None
_store: GambitStore | None = None


def _get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def _get_store() -> GambitStore:
    """Return the shared GambitStore, opening the configured database once."""
    global _store
    if _store is None:
        db_path = _get_settings().db_path
        logger.info("Opening gambit store at %s", db_path)
        _store = open_store(db_path)
    return _store


register_gambits_tools(mcp, _sessions, _get_store)


def _get_session(session_id: str) -> ReplaySession | None:
    """Look up a session by ID.

    Args:
        session_id: UUID string.

    Returns:
        ReplaySession or None if not found.
    """
    return _sessions.get(session_id)


def _not_found(session_id: str) -> dict:
    return {"error": f"Session not found: {session_id}"}


def _respond(session: ReplaySession, outcome: MoveOutcome | None = None) -> dict:
    """Build the tool response, firing a scheduled reply inline if configured.

    Returns:
        Dict with "state" and, when a move was handled, "outcome" and
        (if the opponent answered) "reply".
    """
    response = {}
    if outcome is not None:
        response["outcome"] = minify_outcome(outcome)
        if outcome.pending is not None and _get_settings().inline_replies:
            response["reply"] = minify_outcome(session.fire_reply(outcome.pending))
    response["state"] = minify_session_state(session.snapshot())
    return response


def _open_first_reply(session: ReplaySession) -> MoveOutcome | None:
    """When the opponent moves first, schedule its opening reply."""
    pending = session.schedule_reply()
    if pending is None:
        return None
    return MoveOutcome(pending=pending)


def _resolve_line(
    gambit_slug: str | None,
    gambit_id: str | None,
    line_id: str | None,
    line_text: str | None,
    starting_fen: str | None,
) -> tuple[LineDefinition | None, dict | None]:
    """Find the line to train and the gambit it belongs to (if any).

    Raises:
        GambitTrainerError: On unknown gambits/lines or unparseable text.
    """
    if line_text is not None:
        return LineDefinition.from_text(line_text, starting_fen or rules.STARTING_FEN), None

    store = _get_store()
    if line_id is not None:
        line = store.load_line(line_id)
        if line is None:
            raise InvalidInputError(f"Line not found: {line_id}")
        return line, None

    if gambit_slug is None and gambit_id is None:
        return None, None

    if gambit_id is not None:
        gambit = store.get_gambit_by_id(gambit_id)
    else:
        gambit = store.get_gambit_by_slug(gambit_slug)
    if gambit is None:
        raise InvalidInputError(f"Gambit not found: {gambit_id or gambit_slug}")
    if not gambit["lines"]:
        raise InvalidInputError(f"Gambit {gambit['slug']} has no lines")
    return store.load_line(gambit["lines"][0]["id"]), gambit


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


@mcp.tool()
def start_training(
    gambit_slug: str | None = None,
    gambit_id: str | None = None,
    line_id: str | None = None,
    line_text: str | None = None,
    mode: str = "scripted",
    learner_color: str | None = None,
    starting_fen: str | None = None,
    seed: int | None = None,
) -> dict:
    """Start a training session on a stored gambit, a stored line or PGN text.

    Scripted mode follows the line move for move. Free play accepts any
    legal move and answers with a random legal move; it needs no line.

    Args:
        gambit_slug: Train the main line of this gambit.
        gambit_id: Same, by id.
        line_id: Train a specific stored line.
        line_text: Train ad-hoc PGN move text (e.g. "1. e4 e5 2. Nf3").
        mode: 'scripted' or 'free_play'. Default 'scripted'.
        learner_color: Side the learner plays. Defaults to the gambit's
            side, otherwise the side to move at the start.
        starting_fen: Start position for line_text or free play.
        seed: Seed for the free-play opponent.

    Returns:
        Dict with the session state (and the opponent's opening move when
        the opponent moves first).
    """
    try:
        line, gambit = _resolve_line(gambit_slug, gambit_id, line_id, line_text, starting_fen)
        if learner_color is None and gambit is not None:
            learner_color = gambit["side"]
        session = ReplaySession(
            line=line,
            mode=mode,
            learner_color=learner_color,
            starting_fen=starting_fen if line is None else None,
            reply_delay_ms=_get_settings().reply_delay_ms,
            rng=random.Random(seed) if seed is not None else None,
        )
    except GambitTrainerError as exc:
        return error_response(exc)

    _sessions[session.session_id] = session
    logger.info(
        "Started %s session %s (%s)",
        session.mode, session.session_id,
        f"{len(line)} plies" if line is not None else "no line",
    )
    return _respond(session, _open_first_reply(session))


@mcp.tool()
def start_recording(starting_fen: str | None = None, learner_color: str | None = None) -> dict:
    """Start a recording session: any legal move, nobody replies.

    Play both sides, then save the moves with save_recorded_line.

    Args:
        starting_fen: Optional start position.
        learner_color: Side the recorded gambit is for. Defaults to the
            side to move.

    Returns:
        Dict with the session state.
    """
    try:
        session = ReplaySession.recording(starting_fen=starting_fen, learner_color=learner_color)
    except GambitTrainerError as exc:
        return error_response(exc)

    _sessions[session.session_id] = session
    logger.info("Started recording session %s", session.session_id)
    return _respond(session)


@mcp.tool()
def get_session(session_id: str) -> dict:
    """Get the current state of a session.

    Args:
        session_id: UUID of the session.

    Returns:
        Dict with the session state.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)
    return _respond(session)


@mcp.tool()
def reset_session(session_id: str) -> dict:
    """Return a session to its starting position.

    Any scheduled opponent reply is dropped.

    Args:
        session_id: UUID of the session.

    Returns:
        Dict with the session state.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)
    session.reset()
    return _respond(session, _open_first_reply(session))


# ---------------------------------------------------------------------------
# Board events
# ---------------------------------------------------------------------------


@mcp.tool()
def get_move_options(session_id: str, square: str) -> dict:
    """Select a square and list where its piece may go.

    In scripted mode only the destination of the line's next move is
    offered.

    Args:
        session_id: UUID of the session.
        square: Square name (e.g. 'e2').

    Returns:
        Dict with square, selected flag and highlights (square -> marker).
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)
    try:
        selected = session.select_square(square)
    except GambitTrainerError as exc:
        return error_response(exc)
    return {
        "session_id": session_id,
        "square": square,
        "selected": selected,
        "highlights": session.highlights,
    }


@mcp.tool()
def click_square(session_id: str, square: str) -> dict:
    """Click a square: select a source first, then a destination to move.

    Args:
        session_id: UUID of the session.
        square: Square name (e.g. 'e4').

    Returns:
        Dict with the click outcome, the session state and, when a
        scheduled reply was played inline, the reply outcome.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)
    try:
        outcome = session.click_square(square)
    except GambitTrainerError as exc:
        return error_response(exc)
    return _respond(session, outcome)


@mcp.tool()
def drop_piece(
    session_id: str,
    from_square: str,
    to_square: str,
    promotion: str | None = None,
) -> dict:
    """Drag a piece from one square to another.

    Args:
        session_id: UUID of the session.
        from_square: Source square (e.g. 'g1').
        to_square: Destination square (e.g. 'f3').
        promotion: Promotion piece ('q', 'r', 'b', 'n'); defaults to the
            line's choice, otherwise a queen.

    Returns:
        Dict with the move outcome (accepted=False means the piece snaps
        back), the session state and any inline reply.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)
    try:
        outcome = session.drop_piece(from_square, to_square, promotion)
    except GambitTrainerError as exc:
        return error_response(exc)
    return _respond(session, outcome)


@mcp.tool()
def opponent_move(session_id: str) -> dict:
    """Play the opponent's move now (the scheduled reply, if any).

    Used when inline replies are disabled and the client waits
    ``due_in_ms`` itself.

    Args:
        session_id: UUID of the session.

    Returns:
        Dict with the reply outcome and the session state.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)
    if session.pending is not None:
        outcome = session.fire_reply(session.pending)
    else:
        outcome = session.auto_reply()
    return _respond(session, outcome)


@mcp.tool()
def undo_move(session_id: str) -> dict:
    """Undo the last move. If last two were learner+opponent, undoes both.

    Undoing the opponent's opening move schedules it again, as on reset.

    Args:
        session_id: UUID of the session.

    Returns:
        Dict with the session state after undo.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    if session.cursor == 0:
        return {"error": "No moves to undo"}

    session.undo_last_move()

    # Undid the opponent's half of a pair: take back the learner's move too
    # so the learner is on turn again.
    if (
        session.opponent is not None
        and session.cursor > 0
        and rules.side_to_move(session.fen) != session.learner_color
    ):
        session.undo_last_move()

    # Undid the opponent's opening move: it is due again.
    return _respond(session, _open_first_reply(session))


@mcp.tool()
def get_session_pgn(session_id: str) -> dict:
    """Export the moves played in a session as PGN.

    Args:
        session_id: UUID of the session.

    Returns:
        Dict with pgn (full game with headers) and moves (move text only).
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    board = chess.Board(session.starting_fen)
    pgn_game = chess.pgn.Game()
    if session.starting_fen != rules.STARTING_FEN:
        pgn_game.setup(board)

    opponent = "Line" if session.mode == "scripted" else "Opponent"
    pgn_game.headers["Event"] = "Gambit Trainer"
    pgn_game.headers["White"] = "Learner" if session.learner_color == "white" else opponent
    pgn_game.headers["Black"] = "Learner" if session.learner_color == "black" else opponent

    node = pgn_game
    for move in session.history():
        chess_move = chess.Move.from_uci(move.uci)
        node = node.add_variation(chess_move)
        board.push(chess_move)

    if board.is_game_over():
        pgn_game.headers["Result"] = board.result()

    return {"session_id": session_id, "pgn": str(pgn_game), "moves": session.to_pgn()}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    # stdout carries the MCP stdio protocol
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    mcp.run()
