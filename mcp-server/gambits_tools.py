"""Gambit authoring and catalogue MCP tools for the gambit trainer.

Registers 5 tools on the provided FastMCP instance:
  - add_tenant
  - register_gambit
  - list_gambits
  - get_gambit
  - save_recorded_line

Called from server.py via register_gambits_tools().
"""

from __future__ import annotations

import logging

from gambit_trainer.errors import GambitTrainerError, InvalidInputError

from response_schemas import error_response, minify_gambit

logger = logging.getLogger(__name__)


def register_gambits_tools(mcp, sessions: dict, get_store):
    """Register all gambit-related MCP tools on the FastMCP instance.

    Args:
        mcp: FastMCP server instance.
        sessions: Shared in-memory sessions dict from server.py.
        get_store: Zero-argument callable returning the GambitStore. Looked
            up on every call so tests can swap the store.
    """

    @mcp.tool()
    def add_tenant(name: str) -> dict:
        """Create a tenant (a club or coach) that owns gambits.

        Args:
            name: Display name.

        Returns:
            Dict with id, name and created_at.
        """
        if not name.strip():
            return error_response(InvalidInputError("Tenant name must not be empty"))
        return get_store().add_tenant(name.strip())

    @mcp.tool()
    def register_gambit(
        name: str,
        tenant_id: str,
        pgn: str,
        slug: str | None = None,
        description: str | None = None,
        published: bool = False,
        side: str = "white",
    ) -> dict:
        """Register a gambit with its main line given as PGN move text.

        Args:
            name: Gambit name, e.g. "Italian Game".
            tenant_id: Owning tenant.
            pgn: Move text, e.g. "1. e4 e5 2. Nf3 Nc6 3. Bc4".
            slug: URL slug; derived from the name when omitted.
            description: Optional free text.
            published: Whether learners can see it.
            side: Side the learner plays ('white' or 'black').

        Returns:
            Minified gambit dict, or an error dict (tenant_not_found,
            duplicate_slug, malformed_line, invalid_input).
        """
        try:
            gambit = get_store().register_gambit(
                name,
                tenant_id,
                pgn,
                slug=slug,
                description=description,
                published=published,
                side=side,
            )
        except GambitTrainerError as exc:
            return error_response(exc)
        return minify_gambit(gambit)

    @mcp.tool()
    def list_gambits(tenant_id: str, published_only: bool = False) -> dict:
        """List a tenant's gambits, newest first.

        Args:
            tenant_id: Tenant whose gambits to list.
            published_only: Hide unpublished gambits.

        Returns:
            Dict with tenant_id, count and gambits (minified).
        """
        store = get_store()
        if store.get_tenant(tenant_id) is None:
            return {"error": f"Tenant not found: {tenant_id}", "kind": "tenant_not_found"}

        gambits = store.get_gambits(tenant_id)
        if published_only:
            gambits = [g for g in gambits if g["published"]]
        return {
            "tenant_id": tenant_id,
            "count": len(gambits),
            "gambits": [minify_gambit(g) for g in gambits],
        }

    @mcp.tool()
    def get_gambit(gambit_id: str | None = None, slug: str | None = None) -> dict:
        """Fetch one gambit by id or slug, with its lines as PGN.

        Args:
            gambit_id: Gambit id.
            slug: Gambit slug (used when gambit_id is omitted).

        Returns:
            Minified gambit dict or an error dict.
        """
        if gambit_id is None and slug is None:
            return error_response(InvalidInputError("Provide gambit_id or slug"))

        store = get_store()
        if gambit_id is not None:
            gambit = store.get_gambit_by_id(gambit_id)
        else:
            gambit = store.get_gambit_by_slug(slug)
        if gambit is None:
            return {
                "error": f"Gambit not found: {gambit_id or slug}",
                "kind": "gambit_not_found",
            }
        return minify_gambit(gambit)

    @mcp.tool()
    def save_recorded_line(
        session_id: str,
        gambit_id: str | None = None,
        name: str | None = None,
        tenant_id: str | None = None,
        title: str | None = None,
        slug: str | None = None,
        description: str | None = None,
        published: bool = False,
    ) -> dict:
        """Store the moves played in a session as a line.

        With gambit_id the moves are added as another line of that gambit.
        Otherwise a new gambit is registered from name and tenant_id, with
        the session's learner colour as its side.

        Args:
            session_id: Session whose moves to save (usually a recording).
            gambit_id: Existing gambit to extend.
            name: Name for a new gambit.
            tenant_id: Owner of a new gambit.
            title: Line title.
            slug: Slug for a new gambit.
            description: Description for a new gambit.
            published: Publish a new gambit right away.

        Returns:
            The extended or newly registered gambit, minified.
        """
        session = sessions.get(session_id)
        if session is None:
            return {"error": f"Session not found: {session_id}"}

        store = get_store()
        try:
            line = session.to_line()
            if gambit_id is not None:
                stored = store.add_line(gambit_id, title or "Recorded line", line)
                logger.info("Session %s saved as line %s", session_id, stored["id"])
                return minify_gambit(store.get_gambit_by_id(gambit_id))

            if not name or not tenant_id:
                raise InvalidInputError("Provide gambit_id, or name and tenant_id")
            gambit = store.register_gambit(
                name,
                tenant_id,
                line.to_pgn(),
                slug=slug,
                description=description,
                published=published,
                side=session.learner_color,
                line_title=title,
                starting_fen=line.starting_fen,
            )
        except GambitTrainerError as exc:
            return error_response(exc)

        logger.info("Session %s saved as gambit %s", session_id, gambit["slug"])
        return minify_gambit(gambit)
