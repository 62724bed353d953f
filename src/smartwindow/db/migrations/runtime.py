"""Runtime helpers for the packaged Alembic migrations."""

from __future__ import annotations

import asyncio
import importlib.resources
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from alembic import command as alembic_command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.engine import Engine, create_engine, make_url

VERSION_TABLE = "smartwindow_alembic_version"

UPGRADE_HINT = "smartwindow db migrate upgrade --to head --yes"


class PackagedMigrationsError(RuntimeError):
    """Raised when packaged migrations cannot be found."""


@dataclass(frozen=True)
class SchemaStatus:
    state: str
    current_revisions: tuple[str, ...]
    head_revisions: tuple[str, ...]
    warning: str | None


_ASYNCPG_ONLY_QUERY_KEYS = frozenset(
    {
        "prepared_statement_cache_size",
        "prepared_statement_name_func",
    }
)


def normalize_db_url_for_sync(url: str) -> str:
    """Map async driver URLs to their sync counterparts; Alembic runs sync."""
    parsed = make_url(url)
    drivername = parsed.drivername

    if drivername == "sqlite+aiosqlite":
        drivername = "sqlite"
    elif drivername in {"postgresql+asyncpg", "postgresql", "postgres"}:
        drivername = "postgresql+psycopg"

    query = dict(parsed.query)
    if drivername == "postgresql+psycopg":
        for key in _ASYNCPG_ONLY_QUERY_KEYS:
            query.pop(key, None)

    return parsed.set(drivername=drivername, query=query).render_as_string(hide_password=False)


def create_sync_engine(url: str, **kwargs: Any) -> Engine:
    connect_args: dict[str, object] = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True, **kwargs)


@contextmanager
def packaged_migrations_dir() -> Iterator[Path]:
    resources = importlib.resources.files("smartwindow.db.migrations")
    with importlib.resources.as_file(resources) as root:
        if not (root / "env.py").is_file() or not (root / "versions").is_dir():
            raise PackagedMigrationsError(
                "packaged migrations not found; installation may be broken"
            )
        yield root


def _alembic_config(db_url: str, migrations_dir: Path) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(migrations_dir))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def get_schema_status(db_url: str) -> SchemaStatus:
    sync_url = normalize_db_url_for_sync(db_url)
    with packaged_migrations_dir() as migrations_dir:
        script = ScriptDirectory.from_config(_alembic_config(sync_url, migrations_dir))
        head_revisions = tuple(sorted(script.get_heads()))

    import smartwindow.auth.models  # noqa: F401
    from smartwindow.db.base import Base

    engine = create_sync_engine(sync_url)
    try:
        with engine.connect() as conn:
            table_names = set(inspect(conn).get_table_names())
            if VERSION_TABLE in table_names:
                migration_ctx = MigrationContext.configure(
                    conn, opts={"version_table": VERSION_TABLE}
                )
                current_revisions = tuple(sorted(migration_ctx.get_current_heads()))
            else:
                current_revisions = ()
        has_app_tables = bool(set(Base.metadata.tables) & table_names)
    finally:
        engine.dispose()

    if current_revisions and set(current_revisions) == set(head_revisions):
        state, warning = "at_head", None
    elif not current_revisions and has_app_tables:
        state = "stamp_required"
        warning = (
            "database has smartwindow tables but no migration history; "
            "run: smartwindow db migrate stamp --to head --yes"
        )
    elif not current_revisions:
        state, warning = "fresh", None
    else:
        state = "behind"
        warning = (
            "database schema revision is behind code migrations; "
            f"current={list(current_revisions)} head={list(head_revisions)}. "
            f"run: {UPGRADE_HINT}"
        )
    return SchemaStatus(
        state=state,
        current_revisions=current_revisions,
        head_revisions=head_revisions,
        warning=warning,
    )


def stamp(db_url: str, revision: str = "head") -> SchemaStatus:
    sync_url = normalize_db_url_for_sync(db_url)
    with packaged_migrations_dir() as migrations_dir:
        alembic_command.stamp(_alembic_config(sync_url, migrations_dir), revision)
    return get_schema_status(sync_url)


def run_upgrade_to_head(db_url: str) -> SchemaStatus:
    """Upgrade the schema to head.

    A fresh database is built with ``create_all`` and stamped at head; an
    unversioned database with existing tables is left alone for the operator.
    """
    sync_url = normalize_db_url_for_sync(db_url)
    status = get_schema_status(sync_url)
    if status.state == "stamp_required":
        return status

    with packaged_migrations_dir() as migrations_dir:
        cfg = _alembic_config(sync_url, migrations_dir)
        if status.state == "fresh":
            import smartwindow.auth.models  # noqa: F401
            from smartwindow.db.base import Base

            engine = create_sync_engine(sync_url)
            try:
                Base.metadata.create_all(engine)
            finally:
                engine.dispose()
            alembic_command.stamp(cfg, "head")
        else:
            alembic_command.upgrade(cfg, "head")

    return get_schema_status(sync_url)


async def run_upgrade_to_head_async(db_url: str) -> SchemaStatus:
    return await asyncio.to_thread(run_upgrade_to_head, db_url)
