"""Engine and session factory."""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from specstate.core.config import get_settings
from specstate.db.base import Base


def make_engine(database_url: str, **kwargs) -> Engine:
    """Create an engine.

    SQLite connections may be shared across threads, enforce foreign keys
    and let SQLAlchemy emit BEGIN itself so savepoints behave.
    """
    if not database_url.startswith("sqlite"):
        kwargs.setdefault("pool_pre_ping", True)
        return create_engine(database_url, **kwargs)

    connect_args = kwargs.pop("connect_args", {})
    connect_args.setdefault("check_same_thread", False)
    engine = create_engine(database_url, connect_args=connect_args, **kwargs)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


engine = make_engine(get_settings().database_url)
SessionLocal = make_session_factory(engine)


def init_db(bind: Engine = None) -> None:
    """Create all tables directly, without migrations."""
    # Register models on the metadata
    import specstate.db.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
