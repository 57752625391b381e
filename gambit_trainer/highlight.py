"""Move-option highlighting for a selected square.

Pure projection of (position, source square, line, cursor) to a map of
square name -> marker. Markers:
  - "source":  the selected square itself
  - "move":    a quiet destination
  - "capture": a destination that captures
"""

from __future__ import annotations

from gambit_trainer import rules
from gambit_trainer.lines import LineDefinition


def option_squares(
    fen: str,
    source: str | None,
    line: LineDefinition | None = None,
    cursor: int = 0,
) -> dict[str, str]:
    """Compute the highlight map for ``source``.

    Without a line every legal destination is shown. With a line only the
    destination of the expected move at ``cursor`` is shown, and nothing
    once the line is exhausted.

    Returns:
        Empty dict when the square offers no destinations; otherwise the
        destinations plus the source square.
    """
    if source is None:
        return {}

    candidates = rules.legal_moves(fen, source)
    if line is not None:
        expected = line.expected(cursor)
        candidates = [m for m in candidates if m.san == expected]

    if not candidates:
        return {}

    squares = {}
    for move in candidates:
        squares[move.to_square] = "capture" if move.is_capture else "move"
    squares[source] = "source"
    return squares
