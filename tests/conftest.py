"""Shared test fixtures.

Usage:
    pytest tests/

Fixtures:
    clean_env      - Removes GAMBIT_TRAINER_* variables for the test.
    short_line     - The four-ply line e4 e5 Nf3 Nc6.
    italian_pgn    - Move text of the Italian Game main line.
    italian_line   - The Italian Game main line (18 plies).
    store          - GambitStore on a throwaway in-memory database.
    tenant         - A tenant row in ``store``.
    server         - The MCP server module, loaded by path, wired to ``store``.
"""

from __future__ import annotations

import importlib.util
import sys
from pathlib import Path

import pytest

from gambit_trainer.config import Settings
from gambit_trainer.lines import LineDefinition
from gambit_trainer.store import open_store

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DATA_DIR = _PROJECT_ROOT / "data"

ITALIAN_PGN = (
    "1. e4 e5 2. Nf3 Nc6 3. Bc4 Bc5 4. c3 Nf6 5. d4 exd4 "
    "6. cxd4 Bb4+ 7. Nc3 d5 8. exd5 Nxd5 9. O-O O-O"
)

_server_module = None


def load_server():
    """Import mcp-server/server.py (hyphenated directory) once via importlib."""
    global _server_module
    if _server_module is None:
        server_path = _PROJECT_ROOT / "mcp-server" / "server.py"
        spec = importlib.util.spec_from_file_location("gambit_trainer_mcp_server", server_path)
        module = importlib.util.module_from_spec(spec)
        sys.modules[spec.name] = module
        spec.loader.exec_module(module)
        _server_module = module
    return _server_module


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch):
    """Strip every GAMBIT_TRAINER_* variable so defaults apply."""
    for name in (
        "GAMBIT_TRAINER_DATA_DIR",
        "GAMBIT_TRAINER_DB",
        "GAMBIT_TRAINER_REPLY_DELAY_MS",
        "GAMBIT_TRAINER_INLINE_REPLIES",
        "GAMBIT_TRAINER_VALIDATE",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture()
def enable_validation(clean_env):
    """Set GAMBIT_TRAINER_VALIDATE=1 so validate_response checks shapes."""
    clean_env.setenv("GAMBIT_TRAINER_VALIDATE", "1")


# ---------------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------------


@pytest.fixture()
def short_line():
    return LineDefinition.from_moves(["e4", "e5", "Nf3", "Nc6"])


@pytest.fixture()
def italian_pgn():
    return ITALIAN_PGN


@pytest.fixture()
def italian_line():
    return LineDefinition.from_text(ITALIAN_PGN)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


@pytest.fixture()
def store():
    """In-memory GambitStore, closed after the test."""
    gambit_store = open_store(":memory:")
    yield gambit_store
    gambit_store.close()


@pytest.fixture()
def tenant(store):
    return store.add_tenant("Test Club")


# ---------------------------------------------------------------------------
# MCP server
# ---------------------------------------------------------------------------


@pytest.fixture()
def server(store, clean_env):
    """The server module with a fresh session table and the test store.

    Replies fire inline with no delay, as a client that never waits would see.
    """
    module = load_server()
    module._sessions.clear()
    module._store = store
    module._settings = Settings(
        data_dir=_DATA_DIR,
        db_path=Path(":memory:"),
        reply_delay_ms=0,
        inline_replies=True,
    )
    yield module
    module._sessions.clear()
    module._store = None
    module._settings = None
