import logging
from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

# base class
Base = declarative_base()

# (table, column, DDL) added to databases created by older versions
ADDED_COLUMNS = [
    ("categories", "type", "VARCHAR(20) NOT NULL DEFAULT 'expense'"),
    ("income", "category_id", "INTEGER"),
]


def make_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # requests are served from a threadpool
        connect_args = {"check_same_thread": False}
    return create_engine(database_url, connect_args=connect_args)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine
    )


def init_db(engine: Engine) -> None:
    """
    Bring the schema up to date. Safe to run on every startup.

    - drops an `expenses` table from before expenses were owned by users
    - creates any missing tables
    - adds columns that older schemas lack
    """
    import models  # noqa: F401  (registers the tables on Base)

    inspector = inspect(engine)
    if inspector.has_table("expenses"):
        columns = {c["name"] for c in inspector.get_columns("expenses")}
        if "user_id" not in columns:
            logger.warning("Dropping legacy expenses table without user_id")
            with engine.begin() as conn:
                conn.execute(text("DROP TABLE expenses"))

    Base.metadata.create_all(bind=engine)

    inspector = inspect(engine)
    for table, column, ddl in ADDED_COLUMNS:
        columns = {c["name"] for c in inspector.get_columns(table)}
        if column in columns:
            continue
        logger.info("Adding column %s.%s", table, column)
        with engine.begin() as conn:
            conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}"))


# dependency (VERY IMPORTANT for FastAPI)
def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.SessionLocal()
    try:
        yield db
    finally:
        db.close()
