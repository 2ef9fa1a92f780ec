from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace.config import get_settings

settings = get_settings()


def build_engine(database_url: str, lock_timeout: int = None) -> Engine:
    """
    Create a SQLAlchemy engine for the ledger store.

    SQLite connections get a busy timeout so a writer waiting on another
    writer gives up instead of hanging, and foreign keys are switched on so
    deleting a product cascades to its images and transactions. File-backed
    SQLite databases open every transaction with BEGIN IMMEDIATE, which
    serialises read-validate-write units the way a row lock does elsewhere.
    In-memory SQLite databases share one connection through StaticPool.
    """
    lock_timeout = lock_timeout or settings.DB_LOCK_TIMEOUT_SECONDS
    url = make_url(database_url)

    if url.get_backend_name() != "sqlite":
        # Connection pooling for server databases
        return create_engine(
            database_url,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
            pool_timeout=lock_timeout,
        )

    is_memory = url.database in (None, "", ":memory:")
    engine_kwargs = {}
    if is_memory:
        engine_kwargs["poolclass"] = StaticPool

    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False, "timeout": lock_timeout},
        **engine_kwargs,
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={lock_timeout * 1000}")
        finally:
            cursor.close()
        if not is_memory:
            # Transactions are started by the "begin" listener below
            dbapi_connection.isolation_level = None

    if not is_memory:
        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            # Take the write lock up front: two deferred transactions that both
            # read and then write get SQLITE_BUSY instead of waiting.
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


# Create SQLAlchemy engine
engine = build_engine(settings.DATABASE_URL)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


def get_db():
    """
    Dependency to get database session.
    Yields a database session and closes it after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
