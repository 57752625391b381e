"""Gambit trainer: opening-line replay and validation on top of python-chess."""
