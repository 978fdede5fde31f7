"""Command-line entry point."""

from __future__ import annotations

import sqlite3
import sys
from contextlib import closing
from typing import Optional, Sequence

from . import config
from .commands import Command, CommandError, CommandRegistry
from .database import Queries, connect
from .handlers import (
    State,
    handle_add_feed,
    handle_agg,
    handle_browse,
    handle_feeds,
    handle_follow,
    handle_following,
    handle_login,
    handle_register,
    handle_reset,
    handle_unfollow,
    handle_users,
    logged_in,
)


def build_registry() -> CommandRegistry:
    """Return a registry holding every command the program knows."""
    registry = CommandRegistry()
    registry.register("login", handle_login)
    registry.register("register", handle_register)
    registry.register("reset", handle_reset)
    registry.register("users", handle_users)
    registry.register("agg", handle_agg)
    registry.register("addfeed", logged_in(handle_add_feed))
    registry.register("feeds", handle_feeds)
    registry.register("follow", logged_in(handle_follow))
    registry.register("following", logged_in(handle_following))
    registry.register("unfollow", logged_in(handle_unfollow))
    registry.register("browse", logged_in(handle_browse))
    return registry


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the command named in ``argv``; return the exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        cfg = config.read()
    except (OSError, ValueError) as exc:
        print(f"Error reading config: {exc}", file=sys.stderr)
        return 1
    try:
        conn = connect(cfg.db_url)
    except (ValueError, sqlite3.Error) as exc:
        print(f"Error opening database: {exc}", file=sys.stderr)
        return 1
    with closing(conn):
        db = Queries(conn)
        db.create_schema()
        state = State(cfg=cfg, db=db)
        if not args:
            print("Usage: cli <command> [args...]", file=sys.stderr)
            return 1
        registry = build_registry()
        try:
            registry.run(state, Command(name=args[0], args=tuple(args[1:])))
        except CommandError as exc:
            print(exc, file=sys.stderr)
            return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())