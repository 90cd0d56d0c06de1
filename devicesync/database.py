"""Database connection and initialization."""

from sqlmodel import SQLModel, Session, create_engine

from devicesync.config import settings

# Import all models so SQLModel registers them
import devicesync.models  # noqa: F401

engine = create_engine(
    f"sqlite:///{settings.db_path}",
    echo=settings.debug,
    connect_args={"check_same_thread": False},
)


def init_db() -> None:
    """Create the devices, sync_records and offline_operations tables (WAL mode)."""
    SQLModel.metadata.create_all(engine)

    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA journal_mode=WAL")
        conn.exec_driver_sql("PRAGMA synchronous=NORMAL")
        conn.commit()


def new_session() -> Session:
    """Session whose loaded rows stay readable after commit.

    Store work runs in worker threads (``asyncio.to_thread``) while the rows it
    returns are read on the event loop, so commits must not expire them.
    """
    return Session(engine, expire_on_commit=False)


def get_session():
    """FastAPI dependency: yields a database session."""
    with new_session() as session:
        yield session
