import os
from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from workspace_booking.config import settings

# execution option asking SQLite to take the write lock when the transaction begins
WRITE_LOCK_OPTION = "sqlite_begin_immediate"


def build_engine(database_url):
    """Create an engine; on SQLite, writer transactions are serialized at BEGIN."""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(database_url, pool_pre_ping=True)

    engine = create_engine(
        database_url, connect_args={"check_same_thread": False, "timeout": 30}
    )

    @event.listens_for(engine, "connect")
    def _configure_sqlite(dbapi_connection, connection_record):
        # let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if url.database and url.database != ":memory:":
            # readers never block the writer holding the lock
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin(conn):
        if conn.get_execution_options().get(WRITE_LOCK_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

    return engine


def begin_write(db):
    """
    Open the session's transaction as a writer.

    SQLite gets BEGIN IMMEDIATE so a read-check-write sequence cannot
    interleave with another writer; other backends rely on row locks taken
    with ``with_for_update()``.
    """
    if not db.in_transaction():
        db.connection(execution_options={WRITE_LOCK_OPTION: True})


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def init_database():
    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite" and url.database:
        data_dir = os.path.dirname(url.database)
        if data_dir and not os.path.exists(data_dir):
            os.makedirs(data_dir)

    # registers every table on Base.metadata
    from workspace_booking.models import booking, space, user  # noqa: F401

    Base.metadata.create_all(bind=engine)


def get_db():
    """Provide a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
