import os

from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.orm import Session
from sqlalchemy.engine import make_url
from typing import Any, Dict, Iterable, Optional

from sihha.config import settings

if not settings.DATABASE_URL:
    raise ValueError("DATABASE_URL is required")


def _ensure_sqlite_directory(database_url: str) -> None:
    url = make_url(database_url)
    if url.database and url.database != ":memory:":
        directory = os.path.dirname(os.path.abspath(url.database))
        os.makedirs(directory, exist_ok=True)


# Create engine with appropriate settings based on database type
# SQLite doesn't support pool_size/max_overflow, PostgreSQL does
if settings.DATABASE_URL.startswith("sqlite"):
    _ensure_sqlite_directory(settings.DATABASE_URL)
    engine = create_engine(
        settings.DATABASE_URL,
        connect_args={"check_same_thread": False}
    )
else:
    engine = create_engine(
        settings.DATABASE_URL,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _insert_for(db: Session, model):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"upsert is not supported for dialect '{dialect}'")


def upsert(
    db: Session,
    model,
    values: Dict[str, Any],
    index_elements: Iterable[str],
    update_fields: Optional[Iterable[str]] = None,
):
    """
    Insert a row or overwrite it in place when its natural key already exists.

    Runs as a single INSERT ... ON CONFLICT statement so concurrent writers
    never interleave a read between their write. When update_fields is empty
    the conflicting insert is dropped (ON CONFLICT DO NOTHING).
    """
    index_elements = list(index_elements)
    stmt = _insert_for(db, model).values(**values)
    if update_fields is None:
        update_fields = [k for k in values if k not in index_elements]
    update_fields = list(update_fields)

    if update_fields:
        stmt = stmt.on_conflict_do_update(
            index_elements=index_elements,
            set_={field: stmt.excluded[field] for field in update_fields},
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=index_elements)
    return db.execute(stmt)
