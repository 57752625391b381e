"""Pytest tests for move-option highlighting."""

from __future__ import annotations

from gambit_trainer import rules
from gambit_trainer.highlight import option_squares
from gambit_trainer.lines import LineDefinition


class TestOptionSquares:

    def test_no_source(self):
        assert option_squares(rules.STARTING_FEN, None) == {}

    def test_pawn_pushes(self):
        assert option_squares(rules.STARTING_FEN, "e2") == {
            "e2": "source",
            "e3": "move",
            "e4": "move",
        }

    def test_capture_marker(self):
        line = LineDefinition.from_moves(["e4", "d5", "exd5"])
        fen = line.position_at(2)
        assert option_squares(fen, "e4") == {
            "e4": "source",
            "e5": "move",
            "d5": "capture",
        }

    def test_line_restricts_to_expected_move(self):
        line = LineDefinition.from_moves(["e4", "d5", "exd5"])
        fen = line.position_at(2)
        assert option_squares(fen, "e4", line, 2) == {"e4": "source", "d5": "capture"}

    def test_other_piece_has_nothing_on_the_line(self):
        line = LineDefinition.from_moves(["e4", "d5", "exd5"])
        assert option_squares(line.position_at(2), "g1", line, 2) == {}

    def test_exhausted_line_offers_nothing(self):
        line = LineDefinition.from_moves(["e4", "d5", "exd5"])
        assert option_squares(line.position_at(3), "d1", line, 3) == {}

    def test_opponent_piece_has_no_options(self):
        assert option_squares(rules.STARTING_FEN, "e7") == {}

