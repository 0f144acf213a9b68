"""Engine and session factory.

Every engine operation runs in one `sessionmaker.begin()` transaction. On
SQLite, transactions open with `BEGIN IMMEDIATE` so concurrent writers are
serialised up front instead of failing half way through.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from deliverable_approval.config import ApprovalSettings
from deliverable_approval.db.base import Base

logger = logging.getLogger(__name__)


def build_engine(settings: ApprovalSettings) -> Engine:
    engine_args: dict[str, Any] = {"echo": settings.database_echo, "pool_pre_ping": True}
    if settings.is_sqlite:
        engine_args["connect_args"] = {
            "check_same_thread": False,
            "timeout": settings.sqlite_busy_timeout_seconds,
        }

    engine = create_engine(settings.database_url, **engine_args)
    if settings.is_sqlite:
        _install_sqlite_transaction_hooks(engine)

    logger.info("Database engine created", extra={"dialect": engine.dialect.name})
    return engine


def _install_sqlite_transaction_hooks(engine: Engine) -> None:
    # pysqlite defers BEGIN until the first DML statement; take control of it.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, _record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=True, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""

    # Models must be imported so they register on Base.metadata.
    from deliverable_approval.db import models  # noqa: F401

    Base.metadata.create_all(bind=engine, checkfirst=True)
    logger.info("Database schema ready", extra={"tables": sorted(Base.metadata.tables)})
