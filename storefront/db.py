import os
from sqlalchemy import create_engine, text, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import NullPool

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set")
DB_SCHEMA = os.getenv("DB_SCHEMA", "storefront")

engine = create_engine(
    DATABASE_URL,
    poolclass=NullPool,
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


class Base(DeclarativeBase):
    pass


def _quote_ident(ident: str) -> str:
    return '"' + ident.replace('"', '""') + '"'


def _uses_schemas() -> bool:
    return engine.dialect.name == "postgresql"


if _uses_schemas():

    @event.listens_for(engine, "connect")
    def _set_search_path(dbapi_conn, _):
        schema = _quote_ident(DB_SCHEMA)
        cur = dbapi_conn.cursor()
        cur.execute(f"SET search_path TO {schema}")
        cur.close()


def init_schema():
    """
    Create the schema and tables. Prefer deploy-time migrations; keep for local/dev.
    """
    from . import models  # noqa: F401  registers tables on Base.metadata

    if _uses_schemas():
        schema = _quote_ident(DB_SCHEMA)
        with engine.begin() as conn:
            conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {schema}"))
    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
