"""MCP server: notes and tasks over SQLite, plus the pre-compaction hook.

Entry point: :func:`run_server` builds the server and serves it on the
configured transport. :func:`get_status` returns store state for CLI display.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from fastmcp import FastMCP

from srp_mcp.compaction import PreCompactionNotifier, get_policy
from srp_mcp.config import resolve_db_path
from srp_mcp.ids import KINDS, IDGenerator
from srp_mcp.server.tools import SrpTools, register_tools
from srp_mcp.storage import Database, NoteRepository, TaskRepository

log = logging.getLogger(__name__)


def build_tools(config: dict[str, Any], project_root: Path) -> SrpTools:
    """Wire repositories and the compaction hook from *config*."""
    db_path = resolve_db_path(config, project_root)
    db = Database(db_path)
    ids = IDGenerator(db_path)

    compaction = config["compaction"]
    notifier = PreCompactionNotifier(
        policy=get_policy(compaction["policy"]),
        enabled=bool(compaction["enabled"]),
    )
    log.info(
        "Store at %s, compaction policy %s (enabled=%s)",
        db_path, compaction["policy"], notifier.enabled,
    )
    return SrpTools(NoteRepository(db, ids), TaskRepository(db, ids), notifier)


def create_server(config: dict[str, Any], project_root: Path) -> FastMCP:
    """Return a FastMCP server with every SRP tool registered."""
    server_cfg = config["server"]
    mcp = FastMCP(server_cfg["name"], version=server_cfg["version"])
    register_tools(mcp, build_tools(config, project_root))
    return mcp


def run_server(config: dict[str, Any], project_root: Path) -> None:
    """Serve in the foreground until the transport closes."""
    server_cfg = config["server"]
    mcp = create_server(config, project_root)
    transport = server_cfg["transport"]

    log.info(
        "%s %s starting (transport=%s, project=%s)",
        server_cfg["name"], server_cfg["version"], transport, project_root,
    )
    if transport == "stdio":
        mcp.run(transport="stdio")
    else:
        mcp.run(transport=transport, host=server_cfg["host"], port=server_cfg["port"])
    log.info("%s stopped", server_cfg["name"])


def get_status(config: dict[str, Any], project_root: Path) -> dict[str, Any]:
    """Get store status for CLI display."""
    db_path = resolve_db_path(config, project_root)

    if not db_path.exists():
        return {
            "error": "No database found. Run 'srp-mcp init' first.",
        }

    db = Database(db_path)
    ids = IDGenerator(db_path)
    return {
        "db_path": str(db_path),
        "counts": db.counts(),
        "next_sequence": {kind: ids.peek(kind) for kind in KINDS},
        "compaction": dict(config["compaction"]),
    }
