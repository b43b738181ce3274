from __future__ import annotations

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()
migrate = Migrate()


def use_immediate_transactions(engine: Engine) -> None:
    """Make every SQLite transaction take the database write lock on BEGIN.

    pysqlite only opens a transaction before the first write and SQLite has no
    ``SELECT ... FOR UPDATE``, so a check-in would otherwise count the visits
    in progress without holding any lock. Other backends are left untouched.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")
