"""Response schemas and minification for MCP tool responses.

Trims session snapshots and gambit records down to what a client needs to
redraw the board and report progress. Move lists are returned as PGN move
text (1. e4 e5 2. Nf3 ...).
"""

from __future__ import annotations

from dataclasses import asdict

from gambit_trainer.config import load_settings
from gambit_trainer.errors import GambitTrainerError
from gambit_trainer.lines import moves_to_pgn
from gambit_trainer.models import LineCompleted, MoveOutcome, SessionSnapshot


# ---------------------------------------------------------------------------
# Minification functions
# ---------------------------------------------------------------------------


def minify_session_state(snapshot: SessionSnapshot) -> dict:
    """Minify a SessionSnapshot for MCP response.

    Compacts move_list to a PGN string and reports progress as
    "<cursor>/<line length>" for scripted sessions.

    Args:
        snapshot: Snapshot produced by ReplaySession.snapshot().

    Returns:
        Dict with the fields a board client renders.
    """
    state = asdict(snapshot)
    result = {}

    for key in (
        "session_id", "version", "mode", "state", "fen", "cursor",
        "expected_move", "learner_color", "side_to_move", "last_move",
        "last_move_san", "move_from", "highlights", "terminal", "reply_pending",
    ):
        result[key] = state[key]

    result["move_list"] = moves_to_pgn(snapshot.move_list, snapshot.starting_fen)

    if snapshot.line_length is not None:
        result["progress"] = f"{snapshot.cursor}/{snapshot.line_length}"
    else:
        result["progress"] = None

    return result


def minify_outcome(outcome: MoveOutcome) -> dict:
    """Summarise a MoveOutcome: applied move, error and completion flag."""
    result = {
        "accepted": outcome.accepted,
        "move_san": outcome.move.san if outcome.move else None,
        "completed": any(isinstance(e, LineCompleted) for e in outcome.events),
    }
    if outcome.error is not None:
        result["error"] = error_response(outcome.error)
    if outcome.stale:
        result["stale"] = True
    return result


def minify_gambit(gambit: dict) -> dict:
    """Minify a stored gambit: each line keeps its PGN text and ply count."""
    result = {
        key: gambit.get(key)
        for key in ("id", "name", "slug", "description", "tenant_id", "side", "published")
    }
    lines = []
    for line in gambit.get("lines", []):
        sans = [m["san"] for m in line.get("moves", [])]
        lines.append({
            "id": line["id"],
            "title": line["title"],
            "pgn": moves_to_pgn(sans, line["starting_fen"]),
            "plies": len(sans),
        })
    result["lines"] = lines
    return result


def error_response(exc: GambitTrainerError) -> dict:
    """The {"error", "kind"} dict every tool returns on failure."""
    response = {"error": str(exc), "kind": exc.kind}
    expected = getattr(exc, "expected", None)
    if expected is not None:
        response["expected"] = expected
        response["actual"] = exc.actual
    ply = getattr(exc, "ply", None)
    if ply is not None:
        response["ply"] = ply
    return response


# ---------------------------------------------------------------------------
# Validation schemas (dict-based)
# ---------------------------------------------------------------------------

SESSION_STATE_SCHEMA = {
    "session_id": str,
    "version": int,
    "mode": str,
    "state": str,
    "fen": str,
    "cursor": int,
    "expected_move": (str, type(None)),
    "learner_color": str,
    "side_to_move": str,
    "last_move": (str, type(None)),
    "last_move_san": (str, type(None)),
    "move_from": (str, type(None)),
    "highlights": dict,
    "terminal": str,
    "reply_pending": bool,
    "move_list": str,
    "progress": (str, type(None)),
}

OUTCOME_SCHEMA = {
    "accepted": bool,
    "move_san": (str, type(None)),
    "completed": bool,
}

GAMBIT_SCHEMA = {
    "id": str,
    "name": str,
    "slug": str,
    "description": (str, type(None)),
    "tenant_id": str,
    "side": str,
    "published": bool,
    "lines": list,
}

ERROR_SCHEMA = {
    "error": str,
    "kind": str,
}


def validate_response(response: dict, schema: dict) -> list[str]:
    """Validate a response dict against a schema.

    Only runs when the GAMBIT_TRAINER_VALIDATE env var is set.

    Args:
        response: Response dict to validate.
        schema: Dict mapping key names to expected types (or tuple of types).

    Returns:
        List of validation error strings (empty = valid).
    """
    if not load_settings().validate_responses:
        return []

    errors = []

    if not isinstance(response, dict):
        errors.append(f"Response is not a dict: {type(response).__name__}")
        return errors

    for key, expected_types in schema.items():
        if key not in response:
            errors.append(f"Missing key: {key}")
            continue

        value = response[key]
        if isinstance(expected_types, tuple):
            if not isinstance(value, expected_types):
                type_names = ", ".join(t.__name__ for t in expected_types)
                errors.append(
                    f"Key '{key}': expected ({type_names}), "
                    f"got {type(value).__name__}"
                )
        else:
            if not isinstance(value, expected_types):
                errors.append(
                    f"Key '{key}': expected {expected_types.__name__}, "
                    f"got {type(value).__name__}"
                )

    return errors
