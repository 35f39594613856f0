"""Database engine construction and schema migration."""
import logging
from pathlib import Path
from typing import Union
from urllib.parse import quote

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger("pdl-core.database")

# Base class for models
Base = declarative_base()

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def read_only_url(path: Path) -> URL:
    """
    SQLite URI that opens ``path`` with ``mode=ro`` so the file is never written.

    The path is percent-encoded; ``?`` or ``#`` in a directory name would
    otherwise end the filename early.
    """
    return URL.create(
        "sqlite",
        database=f"file:{quote(str(path))}",
        query={"mode": "ro", "uri": "true"},
    )


def build_engine(database_url: Union[str, URL]) -> Engine:
    """
    Create an engine for a PDL store.

    Args:
        database_url: SQLAlchemy URL (``sqlite:///path`` for file stores, or
            ``read_only_url(path)``)

    Returns:
        Engine with foreign keys enforced on SQLite
    """
    connect_args = {}
    if make_url(database_url).get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False

    engine = create_engine(database_url, connect_args=connect_args)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    """Create the session factory used for all store transactions."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def upgrade_schema(engine: Engine, revision: str = "head") -> None:
    """
    Apply the numbered migrations in ``pdl_core/migrations/versions`` up to ``revision``.

    The applied revision is tracked in the ``alembic_version`` table, so running
    this on an up-to-date store is a no-op.
    """
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    with engine.begin() as connection:
        config.attributes["connection"] = connection
        command.upgrade(config, revision)
    logger.debug(f"Schema upgraded to {revision} for {engine.url}")
