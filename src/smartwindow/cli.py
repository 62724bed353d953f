"""smartwindow operator CLI.

Provides the ``smartwindow`` console script and ``python -m smartwindow`` entry point.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from datetime import datetime
from typing import Any

from alembic import command as alembic_command
from alembic.config import Config
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from smartwindow.auth.ledger import hash_token
from smartwindow.db.migrations.runtime import (
    PackagedMigrationsError,
    create_sync_engine,
    get_schema_status,
    normalize_db_url_for_sync,
    packaged_migrations_dir,
    run_upgrade_to_head,
    stamp,
)

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------
EXIT_OK = 0
EXIT_BAD_ARGS = 2
EXIT_DB_UNAVAILABLE = 3
EXIT_MIGRATIONS_MISSING = 4
EXIT_STAMP_REQUIRED = 5

DEFAULT_DB_URL = "sqlite:///./smartwindow.db"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.isoformat()


def _output(data: Any, *, fmt: str = "json", pretty: bool = False) -> None:
    if fmt == "jsonl" and isinstance(data, list):
        for item in data:
            print(json.dumps(item, default=str))
        return
    print(json.dumps(data, default=str, indent=2 if pretty else None))


def _err(msg: str) -> None:
    print(msg, file=sys.stderr)


def _require_yes(args: argparse.Namespace) -> bool:
    if not getattr(args, "yes", False):
        _err("--yes is required for mutating commands")
        return False
    return True


def _token_dict(row: Any) -> dict[str, Any]:
    """Serialize a ledger row. Only the token hash is ever shown."""
    return {
        "id": row.id,
        "user_id": row.user_id,
        "token_type": row.token_type.value,
        "token_hash": row.token_hash,
        "issued_at": _iso(row.issued_at),
        "expires_at": _iso(row.expires_at),
        "last_used_at": _iso(row.last_used_at),
        "revoked": row.revoked,
    }


def _get_db_url(args: argparse.Namespace) -> str:
    """Resolve the database URL from --db or the environment, normalized for sync use."""
    url = getattr(args, "db", None) or os.environ.get("SMARTWINDOW_DATABASE_URL", DEFAULT_DB_URL)
    return normalize_db_url_for_sync(str(url))


def _migrations_config(url: str, migrations_path: Any) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(migrations_path))
    cfg.set_main_option("sqlalchemy.url", url)
    return cfg


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from smartwindow.config import Settings
    from smartwindow.obs import configure_logging

    settings = Settings()
    configure_logging(args.log_level or settings.log_level)
    uvicorn.run(
        "smartwindow.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=None,
    )
    return EXIT_OK


# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------


def _cmd_db_ping(args: argparse.Namespace) -> int:
    url = _get_db_url(args)
    engine = create_sync_engine(url)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        _output({"ok": False, "error": type(exc).__name__}, fmt=args.format, pretty=args.pretty)
        return EXIT_DB_UNAVAILABLE
    finally:
        engine.dispose()

    try:
        status = get_schema_status(url)
    except PackagedMigrationsError:
        _err("packaged migrations not found; installation may be broken")
        return EXIT_MIGRATIONS_MISSING
    _output(
        {
            "ok": True,
            "schema_state": status.state,
            "current_revisions": list(status.current_revisions),
            "head_revisions": list(status.head_revisions),
            "warning": status.warning,
        },
        fmt=args.format,
        pretty=args.pretty,
    )
    return EXIT_OK


def _cmd_db_migrate_upgrade(args: argparse.Namespace) -> int:
    if not _require_yes(args):
        return EXIT_BAD_ARGS

    url = _get_db_url(args)
    try:
        if args.to == "head":
            status = run_upgrade_to_head(url)
            if status.state == "stamp_required":
                _err(status.warning or "stamp required")
                return EXIT_STAMP_REQUIRED
        else:
            with packaged_migrations_dir() as migrations_path:
                alembic_command.upgrade(_migrations_config(url, migrations_path), args.to)
    except PackagedMigrationsError:
        _err("packaged migrations not found; installation may be broken")
        return EXIT_MIGRATIONS_MISSING
    _output({"ok": True, "revision": args.to}, fmt=args.format, pretty=args.pretty)
    return EXIT_OK


def _cmd_db_migrate_stamp(args: argparse.Namespace) -> int:
    if not _require_yes(args):
        return EXIT_BAD_ARGS
    try:
        status = stamp(_get_db_url(args), args.to)
    except PackagedMigrationsError:
        _err("packaged migrations not found; installation may be broken")
        return EXIT_MIGRATIONS_MISSING
    _output(
        {"ok": True, "revision": args.to, "schema_state": status.state},
        fmt=args.format,
        pretty=args.pretty,
    )
    return EXIT_OK


def _cmd_db_migrate_current(args: argparse.Namespace) -> int:
    try:
        status = get_schema_status(_get_db_url(args))
    except PackagedMigrationsError:
        _err("packaged migrations not found; installation may be broken")
        return EXIT_MIGRATIONS_MISSING
    _output(
        {
            "schema_state": status.state,
            "current_revisions": list(status.current_revisions),
            "head_revisions": list(status.head_revisions),
        },
        fmt=args.format,
        pretty=args.pretty,
    )
    return EXIT_OK


# ---------------------------------------------------------------------------
# Token ledger commands
# ---------------------------------------------------------------------------


def _cmd_tokens_list(args: argparse.Namespace) -> int:
    from smartwindow.auth.models import IssuedToken

    engine = create_sync_engine(_get_db_url(args))
    try:
        with Session(engine) as session:
            stmt = select(IssuedToken).order_by(IssuedToken.issued_at.desc())
            if args.user_id:
                stmt = stmt.where(IssuedToken.user_id == args.user_id)
            if not args.include_revoked:
                stmt = stmt.where(IssuedToken.revoked.is_(False))
            rows = session.execute(stmt.limit(args.limit)).scalars().all()
            _output([_token_dict(r) for r in rows], fmt=args.format, pretty=args.pretty)
        return EXIT_OK
    finally:
        engine.dispose()


async def _revoke_in_ledger(url: str, token_hash: str) -> tuple[bool, Any]:
    from sqlalchemy.ext.asyncio import async_sessionmaker

    from smartwindow.auth.ledger import TokenLedger
    from smartwindow.config import Settings
    from smartwindow.db.engine import create_async_engine_from_settings

    engine = create_async_engine_from_settings(Settings(database_url=url))
    try:
        ledger = TokenLedger(async_sessionmaker(engine, expire_on_commit=False))
        changed = await ledger.revoke(token_hash)
        return changed, await ledger.lookup(token_hash)
    finally:
        await engine.dispose()


def _cmd_tokens_revoke(args: argparse.Namespace) -> int:
    """Revoke one ledger row. Unknown or already-revoked hashes succeed with ``changed: false``."""
    if not _require_yes(args):
        return EXIT_BAD_ARGS
    if bool(args.token_hash) == bool(args.token):
        _err("specify exactly one of --token-hash or --token")
        return EXIT_BAD_ARGS

    token_hash = args.token_hash or hash_token(args.token)
    try:
        changed, row = asyncio.run(_revoke_in_ledger(_get_db_url(args), token_hash))
    except SQLAlchemyError as exc:
        _err(f"database unavailable: {type(exc).__name__}")
        return EXIT_DB_UNAVAILABLE

    if row is None:
        result: dict[str, Any] = {"token_hash": token_hash, "revoked": False}
    else:
        result = _token_dict(row)
    result["changed"] = changed
    _output(result, fmt=args.format, pretty=args.pretty)
    return EXIT_OK


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    # Common flags shared by all leaf subcommands
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--db", default=None, help="Database URL override")
    common.add_argument(
        "--format", choices=["json", "jsonl"], default="json", help="Output format"
    )
    common.add_argument("--pretty", action="store_true", default=False, help="Pretty-print output")

    parser = argparse.ArgumentParser(
        prog="smartwindow",
        description="smartwindow relay server and operator CLI",
    )
    subparsers = parser.add_subparsers(dest="command")

    # ---- serve ----
    serve = subparsers.add_parser("serve", help="Run the relay server")
    serve.add_argument("--host", default="0.0.0.0", help="Bind address")
    serve.add_argument(
        "--port", type=int, default=int(os.environ.get("PORT", "8080")), help="Bind port"
    )
    serve.add_argument("--reload", action="store_true", help="Reload on code changes")
    serve.add_argument("--log-level", default=None, help="Override SMARTWINDOW_LOG_LEVEL")

    # ---- db ----
    db_parser = subparsers.add_parser("db", help="Database operations")
    db_sub = db_parser.add_subparsers(dest="db_command")

    db_sub.add_parser("ping", parents=[common], help="Check database connectivity")

    db_migrate = db_sub.add_parser("migrate", help="Run Alembic migrations")
    migrate_sub = db_migrate.add_subparsers(dest="migrate_command")

    mig_upgrade = migrate_sub.add_parser("upgrade", parents=[common], help="Upgrade database")
    mig_upgrade.add_argument("--to", default="head", help="Target revision (default: head)")
    mig_upgrade.add_argument("--yes", action="store_true", help="Confirm mutation")

    mig_stamp = migrate_sub.add_parser(
        "stamp", parents=[common], help="Record a revision without running it"
    )
    mig_stamp.add_argument("--to", default="head", help="Revision to stamp (default: head)")
    mig_stamp.add_argument("--yes", action="store_true", help="Confirm mutation")

    migrate_sub.add_parser("current", parents=[common], help="Show current revision")

    # ---- tokens ----
    tokens_parser = subparsers.add_parser("tokens", help="Token ledger")
    tokens_sub = tokens_parser.add_subparsers(dest="tokens_command")

    tokens_list = tokens_sub.add_parser("list", parents=[common], help="List issued tokens")
    tokens_list.add_argument("--user-id", default=None, help="Only tokens owned by this user")
    tokens_list.add_argument(
        "--include-revoked", action="store_true", help="Include revoked tokens"
    )
    tokens_list.add_argument("--limit", type=int, default=50, help="Limit results")

    tokens_revoke = tokens_sub.add_parser("revoke", parents=[common], help="Revoke a token")
    tokens_revoke.add_argument("--token-hash", default=None, help="SHA-256 hex of the token")
    tokens_revoke.add_argument("--token", default=None, help="Raw token (hashed locally)")
    tokens_revoke.add_argument("--yes", action="store_true", help="Confirm mutation")

    return parser


# ---------------------------------------------------------------------------
# Command dispatch
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns an integer exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_BAD_ARGS

    if args.command == "serve":
        return _cmd_serve(args)

    # -- db --
    if args.command == "db":
        db_cmd = getattr(args, "db_command", None)
        if db_cmd == "ping":
            return _cmd_db_ping(args)
        if db_cmd == "migrate":
            migrate_cmd = getattr(args, "migrate_command", None)
            if migrate_cmd == "upgrade":
                return _cmd_db_migrate_upgrade(args)
            if migrate_cmd == "stamp":
                return _cmd_db_migrate_stamp(args)
            if migrate_cmd == "current":
                return _cmd_db_migrate_current(args)
            _err("usage: smartwindow db migrate {upgrade,stamp,current}")
            return EXIT_BAD_ARGS
        _err("usage: smartwindow db {ping,migrate}")
        return EXIT_BAD_ARGS

    # -- tokens --
    if args.command == "tokens":
        tokens_cmd = getattr(args, "tokens_command", None)
        if tokens_cmd == "list":
            return _cmd_tokens_list(args)
        if tokens_cmd == "revoke":
            return _cmd_tokens_revoke(args)
        _err("usage: smartwindow tokens {list,revoke}")
        return EXIT_BAD_ARGS

    parser.print_help()
    return EXIT_BAD_ARGS
