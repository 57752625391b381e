"""SQLite storage for tenants, gambits, lines and their moves.

The store never opens connections on its own: the host creates one (see
open_store) and hands it in, and closes it when it shuts down.

Usage:
    from gambit_trainer.store import open_store
    store = open_store("data/gambits.db")
    tenant = store.add_tenant("Club")
    gambit = store.register_gambit("Italian Game", tenant["id"], "1. e4 e5 2. Nf3 Nc6 3. Bc4")
    line = store.load_line(gambit["lines"][0]["id"])
"""

from __future__ import annotations

import logging
import re
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path

from gambit_trainer import rules
from gambit_trainer.errors import (
    DuplicateSlugError,
    GambitNotFoundError,
    InvalidInputError,
    TenantNotFoundError,
)
from gambit_trainer.lines import LineDefinition

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS tenants (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS gambits (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    slug TEXT NOT NULL UNIQUE,
    description TEXT,
    tenant_id TEXT NOT NULL REFERENCES tenants(id),
    side TEXT NOT NULL DEFAULT 'white',
    published INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS lines (
    id TEXT PRIMARY KEY,
    gambit_id TEXT NOT NULL REFERENCES gambits(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    starting_fen TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS moves (
    id TEXT PRIMARY KEY,
    line_id TEXT NOT NULL REFERENCES lines(id) ON DELETE CASCADE,
    ply INTEGER NOT NULL,
    san TEXT NOT NULL,
    uci TEXT NOT NULL,
    fen_after TEXT NOT NULL,
    UNIQUE (line_id, ply)
);

CREATE INDEX IF NOT EXISTS idx_gambits_tenant ON gambits(tenant_id);
CREATE INDEX IF NOT EXISTS idx_lines_gambit ON lines(gambit_id);
"""

_SIDES = ("white", "black")


def slugify(name: str) -> str:
    """URL slug from a gambit name: "Queen's Gambit" -> "queens-gambit"."""
    slug = re.sub(r"[^a-z0-9\s-]", "", name.lower())
    slug = re.sub(r"\s+", "-", slug.strip())
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def open_store(db_path: str | Path) -> GambitStore:
    """Open (creating if needed) a sqlite database and return a store on it.

    Args:
        db_path: File path, or ":memory:" for a throwaway database.
    """
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    store = GambitStore(conn)
    store.init_schema()
    return store


class GambitStore:
    """Gambit/line/move persistence on an externally owned connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def init_schema(self) -> None:
        self._conn.executescript(_SCHEMA)

    def close(self) -> None:
        self._conn.close()

    # ── Tenants ─────────────────────────────────────────────────────

    def add_tenant(self, name: str) -> dict:
        tenant = {"id": str(uuid.uuid4()), "name": name, "created_at": _now()}
        with self._conn:
            self._conn.execute(
                "INSERT INTO tenants (id, name, created_at) VALUES (:id, :name, :created_at)",
                tenant,
            )
        return tenant

    def get_tenant(self, tenant_id: str) -> dict | None:
        row = self._conn.execute(
            "SELECT * FROM tenants WHERE id = ?", (tenant_id,)
        ).fetchone()
        return dict(row) if row else None

    # ── Gambits ─────────────────────────────────────────────────────

    def register_gambit(
        self,
        name: str,
        tenant_id: str,
        pgn: str,
        slug: str | None = None,
        description: str | None = None,
        published: bool = False,
        side: str = "white",
        line_title: str | None = None,
        starting_fen: str = rules.STARTING_FEN,
    ) -> dict:
        """Create a gambit with its main line from PGN move text.

        The gambit row, its line and every move are written in a single
        transaction; nothing is written if any check fails.

        Args:
            name: Display name, e.g. "Italian Game".
            tenant_id: Owning tenant; must exist.
            pgn: Move text such as "1. e4 e5 2. Nf3 Nc6".
            slug: Unique slug. Derived from ``name`` when omitted.
            description: Optional free text.
            published: Visible to learners.
            side: Side the learner plays, 'white' or 'black'.
            line_title: Defaults to "<name> - Main Line".
            starting_fen: Position the line starts from.

        Returns:
            The stored gambit dict including its lines and moves.

        Raises:
            TenantNotFoundError: Unknown tenant.
            DuplicateSlugError: Slug already used.
            MalformedLineError: The PGN does not replay legally.
            InvalidInputError: Bad side or empty slug.
        """
        if side not in _SIDES:
            raise InvalidInputError(f"Invalid side: {side}. Use 'white' or 'black'")
        slug = slug or slugify(name)
        if not slug:
            raise InvalidInputError(f"Cannot derive a slug from name {name!r}")

        if self.get_tenant(tenant_id) is None:
            raise TenantNotFoundError(tenant_id)
        if self._slug_exists(slug):
            raise DuplicateSlugError(slug)

        line = LineDefinition.from_text(pgn, starting_fen)

        gambit_id = str(uuid.uuid4())
        now = _now()
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT INTO gambits (id, name, slug, description, tenant_id, side, "
                    "published, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (gambit_id, name, slug, description, tenant_id, side,
                     int(published), now, now),
                )
                self._insert_line(gambit_id, line_title or f"{name} - Main Line", line, now)
        except sqlite3.IntegrityError as exc:
            if "slug" in str(exc):
                raise DuplicateSlugError(slug) from exc
            raise

        logger.info("Registered gambit %s (%s) with %d plies", slug, gambit_id, len(line))
        return self.get_gambit_by_id(gambit_id)

    def add_line(self, gambit_id: str, title: str, line: LineDefinition) -> dict:
        """Attach another line to an existing gambit.

        Raises:
            GambitNotFoundError: Unknown gambit.
        """
        if not self._gambit_exists(gambit_id):
            raise GambitNotFoundError(gambit_id)
        now = _now()
        with self._conn:
            line_id = self._insert_line(gambit_id, title, line, now)
            self._conn.execute(
                "UPDATE gambits SET updated_at = ? WHERE id = ?", (now, gambit_id)
            )
        logger.info("Added line %s to gambit %s", line_id, gambit_id)
        return self._line_to_dict(
            self._conn.execute("SELECT * FROM lines WHERE id = ?", (line_id,)).fetchone()
        )

    def get_gambits(self, tenant_id: str) -> list[dict]:
        """All gambits of a tenant, newest first, with lines and moves."""
        rows = self._conn.execute(
            "SELECT * FROM gambits WHERE tenant_id = ? ORDER BY created_at DESC, rowid DESC",
            (tenant_id,),
        ).fetchall()
        return [self._gambit_to_dict(r) for r in rows]

    def get_gambit_by_id(self, gambit_id: str) -> dict | None:
        row = self._conn.execute(
            "SELECT * FROM gambits WHERE id = ?", (gambit_id,)
        ).fetchone()
        return self._gambit_to_dict(row) if row else None

    def get_gambit_by_slug(self, slug: str) -> dict | None:
        row = self._conn.execute(
            "SELECT * FROM gambits WHERE slug = ?", (slug,)
        ).fetchone()
        return self._gambit_to_dict(row) if row else None

    # ── Lines ───────────────────────────────────────────────────────

    def load_line(self, line_id: str) -> LineDefinition | None:
        """Rebuild a stored line, re-verifying every ply.

        Raises:
            MalformedLineError: If the stored moves no longer replay.
        """
        row = self._conn.execute(
            "SELECT starting_fen FROM lines WHERE id = ?", (line_id,)
        ).fetchone()
        if row is None:
            return None
        return LineDefinition.from_records(row["starting_fen"], self._moves_for(line_id))

    # ── Internals ───────────────────────────────────────────────────

    def _slug_exists(self, slug: str) -> bool:
        return self._conn.execute(
            "SELECT 1 FROM gambits WHERE slug = ?", (slug,)
        ).fetchone() is not None

    def _gambit_exists(self, gambit_id: str) -> bool:
        return self._conn.execute(
            "SELECT 1 FROM gambits WHERE id = ?", (gambit_id,)
        ).fetchone() is not None

    def _insert_line(self, gambit_id: str, title: str, line: LineDefinition, now: str) -> str:
        line_id = str(uuid.uuid4())
        self._conn.execute(
            "INSERT INTO lines (id, gambit_id, title, starting_fen, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (line_id, gambit_id, title, line.starting_fen, now),
        )
        self._conn.executemany(
            "INSERT INTO moves (id, line_id, ply, san, uci, fen_after) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            [
                (str(uuid.uuid4()), line_id, m.ply, m.san, m.uci, m.fen_after)
                for m in line.trace()
            ],
        )
        return line_id

    def _moves_for(self, line_id: str) -> list[dict]:
        rows = self._conn.execute(
            "SELECT id, ply, san, uci, fen_after FROM moves WHERE line_id = ? ORDER BY ply",
            (line_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    def _line_to_dict(self, row: sqlite3.Row) -> dict:
        line = dict(row)
        line["moves"] = self._moves_for(line["id"])
        return line

    def _gambit_to_dict(self, row: sqlite3.Row) -> dict:
        gambit = dict(row)
        gambit["published"] = bool(gambit["published"])
        lines = self._conn.execute(
            "SELECT * FROM lines WHERE gambit_id = ? ORDER BY created_at, rowid",
            (gambit["id"],),
        ).fetchall()
        gambit["lines"] = [self._line_to_dict(r) for r in lines]
        return gambit
