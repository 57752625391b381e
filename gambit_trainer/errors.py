"""Error taxonomy for the gambit trainer.

Replay errors are recoverable: the session is left exactly as it was and
the error travels back to the host inside a MoveOutcome. Authoring and
store errors are raised to the caller and block the operation.
"""

from __future__ import annotations


class GambitTrainerError(Exception):
    """Base class for every domain error."""

    kind = "error"


class InvalidInputError(GambitTrainerError, ValueError):
    """Malformed square name, FEN, mode or setting."""

    kind = "invalid_input"


# ---------------------------------------------------------------------------
# Replay errors
# ---------------------------------------------------------------------------


class ReplayError(GambitTrainerError):
    """A move operation on a ReplaySession failed."""

    kind = "replay_error"


class IllegalMoveError(ReplayError):
    """The rules engine cannot produce the move from the current position.

    Moving the side that is not on move lands here as well.
    """

    kind = "illegal_move"


class LineDeviationError(ReplayError):
    """A legal move that is not the next move of the scripted line."""

    kind = "line_deviation"

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"This doesn't follow the predefined line. "
            f"Expected: {expected}, but got: {actual}"
        )


class ScriptExhaustedError(ReplayError):
    """The scripted line has no moves left."""

    kind = "script_exhausted"

    def __init__(self, length: int) -> None:
        self.length = length
        super().__init__(
            f"The line is complete ({length} moves); there is no next move."
        )


class EngineDivergenceError(ReplayError):
    """A stored scripted move is illegal in the live position.

    Indicates a corrupted line, never a learner mistake.
    """

    kind = "engine_divergence"

    def __init__(self, ply: int, san: str, fen: str) -> None:
        self.ply = ply
        self.san = san
        self.fen = fen
        super().__init__(
            f"Scripted move {san} at ply {ply} is illegal in position {fen}"
        )


# ---------------------------------------------------------------------------
# Authoring errors
# ---------------------------------------------------------------------------


class MalformedLineError(GambitTrainerError):
    """A line failed engine verification while being built."""

    kind = "malformed_line"

    def __init__(self, ply: int, token: str, reason: str = "") -> None:
        self.ply = ply
        self.token = token
        self.reason = reason
        if ply == 0:
            message = reason or "Line contains no moves"
        else:
            message = f"Invalid move {token!r} at ply {ply}"
            if reason:
                message = f"{message}: {reason}"
        super().__init__(message)


# ---------------------------------------------------------------------------
# Store errors
# ---------------------------------------------------------------------------


class StoreError(GambitTrainerError):
    kind = "store_error"


class TenantNotFoundError(StoreError):
    kind = "tenant_not_found"

    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id
        super().__init__(f"Tenant not found: {tenant_id}")


class GambitNotFoundError(StoreError):
    kind = "gambit_not_found"

    def __init__(self, gambit_id: str) -> None:
        self.gambit_id = gambit_id
        super().__init__(f"Gambit not found: {gambit_id}")


class DuplicateSlugError(StoreError):
    kind = "duplicate_slug"

    def __init__(self, slug: str) -> None:
        self.slug = slug
        super().__init__(f"A gambit with this slug already exists: {slug}")
