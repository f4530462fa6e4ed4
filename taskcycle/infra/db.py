from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from taskcycle.config import SETTINGS


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite") and (":memory:" in url or url.rstrip("/").endswith("sqlite:")):
        # one shared connection, otherwise every session sees an empty database
        return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    return {"pool_pre_ping": True}


engine = create_engine(SETTINGS.database_url, **_engine_options(SETTINGS.database_url))
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()


def init_db(create_schema: bool = False) -> None:
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))
    if create_schema:
        from . import models  # noqa: F401

        Base.metadata.create_all(engine)
