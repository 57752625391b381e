"""Pytest tests for the sqlite GambitStore.

Tests cover tenants, gambit registration (including its all-or-nothing
transaction), lookups, extra lines and reloading lines from storage.
All tests use an in-memory database or tmp_path for isolation.
"""

from __future__ import annotations

import pytest

from gambit_trainer.errors import (
    DuplicateSlugError,
    GambitNotFoundError,
    InvalidInputError,
    MalformedLineError,
    TenantNotFoundError,
)
from gambit_trainer.lines import LineDefinition
from gambit_trainer.store import open_store, slugify


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _count(store, table: str) -> int:
    return store.connection.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


# ---------------------------------------------------------------------------
# Slugs and tenants
# ---------------------------------------------------------------------------


class TestSlugify:

    @pytest.mark.parametrize(
        "name, slug",
        [
            ("Italian Game", "italian-game"),
            ("Queen's Gambit", "queens-gambit"),
            ("  Evans   Gambit!! ", "evans-gambit"),
            ("Stafford -- Gambit", "stafford-gambit"),
        ],
    )
    def test_slugify(self, name, slug):
        assert slugify(name) == slug


class TestTenants:

    def test_add_and_get(self, store):
        tenant = store.add_tenant("Chess Club")
        assert store.get_tenant(tenant["id"])["name"] == "Chess Club"

    def test_unknown_tenant(self, store):
        assert store.get_tenant("missing") is None

    def test_file_database_persists(self, tmp_path):
        db_path = tmp_path / "nested" / "gambits.db"
        store = open_store(db_path)
        tenant = store.add_tenant("Club")
        store.close()

        reopened = open_store(db_path)
        try:
            assert reopened.get_tenant(tenant["id"])["name"] == "Club"
        finally:
            reopened.close()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegisterGambit:

    def test_register_italian(self, store, tenant, italian_pgn):
        gambit = store.register_gambit(
            "Italian Game", tenant["id"], italian_pgn, description="Classical center"
        )

        assert gambit["slug"] == "italian-game"
        assert gambit["tenant_id"] == tenant["id"]
        assert gambit["side"] == "white"
        assert gambit["published"] is False
        assert gambit["description"] == "Classical center"

        [line] = gambit["lines"]
        assert line["title"] == "Italian Game - Main Line"
        assert [m["ply"] for m in line["moves"]] == list(range(1, 19))
        assert line["moves"][11]["san"] == "Bb4+"
        assert line["moves"][-1]["uci"] == "e8g8"

    def test_explicit_slug_and_flags(self, store, tenant):
        gambit = store.register_gambit(
            "Stafford Gambit",
            tenant["id"],
            "1. e4 e5 2. Nf3 Nf6 3. Nxe5 Nc6",
            slug="stafford",
            published=True,
            side="black",
            line_title="Main",
        )
        assert gambit["slug"] == "stafford"
        assert gambit["published"] is True
        assert gambit["side"] == "black"
        assert gambit["lines"][0]["title"] == "Main"

    def test_unknown_tenant(self, store):
        with pytest.raises(TenantNotFoundError, match="nobody"):
            store.register_gambit("Italian Game", "nobody", "1. e4 e5")
        assert _count(store, "gambits") == 0

    def test_duplicate_slug(self, store, tenant):
        store.register_gambit("Italian Game", tenant["id"], "1. e4 e5")
        with pytest.raises(DuplicateSlugError, match="italian-game"):
            store.register_gambit("Italian  Game!", tenant["id"], "1. e4 e5 2. Nf3")
        assert _count(store, "gambits") == 1

    def test_malformed_pgn_writes_nothing(self, store, tenant):
        with pytest.raises(MalformedLineError) as exc_info:
            store.register_gambit("French Mistake", tenant["id"], "1. e4 e6 2. d5")
        assert exc_info.value.ply == 3
        assert _count(store, "gambits") == 0
        assert _count(store, "lines") == 0
        assert _count(store, "moves") == 0

    def test_invalid_side(self, store, tenant):
        with pytest.raises(InvalidInputError, match="side"):
            store.register_gambit("Italian Game", tenant["id"], "1. e4", side="green")

    def test_name_without_slug_characters(self, store, tenant):
        with pytest.raises(InvalidInputError, match="slug"):
            store.register_gambit("!!!", tenant["id"], "1. e4")


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


class TestLookups:

    def test_get_gambits_newest_first(self, store, tenant):
        store.register_gambit("First", tenant["id"], "1. e4")
        store.register_gambit("Second", tenant["id"], "1. d4")
        other = store.add_tenant("Other Club")
        store.register_gambit("Elsewhere", other["id"], "1. c4")

        names = [g["name"] for g in store.get_gambits(tenant["id"])]
        assert names == ["Second", "First"]

    def test_get_by_id_and_slug(self, store, tenant):
        gambit = store.register_gambit("Evans Gambit", tenant["id"], "1. e4 e5 2. Nf3 Nc6 3. Bc4 Bc5 4. b4")
        assert store.get_gambit_by_id(gambit["id"])["slug"] == "evans-gambit"
        assert store.get_gambit_by_slug("evans-gambit")["id"] == gambit["id"]

    def test_missing_gambit(self, store):
        assert store.get_gambit_by_id("missing") is None
        assert store.get_gambit_by_slug("missing") is None


# ---------------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------------


class TestLines:

    def test_load_line_round_trip(self, store, tenant, italian_pgn, italian_line):
        gambit = store.register_gambit("Italian Game", tenant["id"], italian_pgn)
        loaded = store.load_line(gambit["lines"][0]["id"])
        assert loaded == italian_line
        assert loaded.trace() == italian_line.trace()

    def test_load_unknown_line(self, store):
        assert store.load_line("missing") is None

    def test_add_line(self, store, tenant):
        gambit = store.register_gambit("Italian Game", tenant["id"], "1. e4 e5 2. Nf3 Nc6 3. Bc4")
        line = LineDefinition.from_text("1. e4 e5 2. Nf3 Nc6 3. Bc4 Nf6")

        stored = store.add_line(gambit["id"], "Two Knights", line)

        assert stored["title"] == "Two Knights"
        assert len(stored["moves"]) == 6
        titles = [entry["title"] for entry in store.get_gambit_by_id(gambit["id"])["lines"]]
        assert titles == ["Italian Game - Main Line", "Two Knights"]

    def test_add_line_unknown_gambit(self, store, short_line):
        with pytest.raises(GambitNotFoundError):
            store.add_line("missing", "Line", short_line)

    def test_tampered_moves_fail_verification(self, store, tenant, short_line):
        gambit = store.register_gambit("Open Game", tenant["id"], short_line.to_pgn())
        line_id = gambit["lines"][0]["id"]
        with store.connection:
            store.connection.execute(
                "UPDATE moves SET fen_after = ? WHERE line_id = ? AND ply = 2",
                (short_line.starting_fen, line_id),
            )

        with pytest.raises(MalformedLineError) as exc_info:
            store.load_line(line_id)
        assert exc_info.value.ply == 2
