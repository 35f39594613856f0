"""Canonical PDL store: engine, schema upgrade and transactional sessions."""
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .config import Settings
from .database import build_engine, build_session_factory, upgrade_schema
from .errors import ConflictError, PDLError, StorageError

logger = logging.getLogger("pdl-core.store")


class Store:
    """
    Handle on one PDL database.

    Constructed explicitly and passed to every component. All writes go
    through ``transaction()``, which serializes writers on a re-entrant lock
    and commits or rolls back as a unit.
    """

    def __init__(self, database_url: str, upgrade: bool = True):
        self.database_url = database_url
        self._ensure_parent_dir(database_url)
        self.engine = build_engine(database_url)
        self._session_factory = build_session_factory(self.engine)
        self._write_lock = threading.RLock()
        self._local = threading.local()
        if upgrade:
            upgrade_schema(self.engine)
        logger.debug(f"Store opened at {database_url}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "Store":
        return cls(settings.database_url)

    @staticmethod
    def _ensure_parent_dir(database_url: str) -> None:
        if database_url.startswith("sqlite:///") and ":memory:" not in database_url:
            Path(database_url.split("///", 1)[1]).parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """
        Run a unit of work in one database transaction.

        Nested calls on the same thread join the outer transaction.

        Raises:
            ConflictError: On unique/foreign-key constraint violations
            StorageError: On any other database failure
        """
        active: Optional[Session] = getattr(self._local, "session", None)
        if active is not None:
            yield active
            return

        with self._write_lock:
            db = self._session_factory()
            self._local.session = db
            try:
                yield db
                db.commit()
            except PDLError:
                db.rollback()
                raise
            except IntegrityError as e:
                db.rollback()
                logger.warning(f"Integrity violation, transaction rolled back: {e.orig}")
                raise ConflictError(f"Constraint violation: {e.orig}") from e
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Database error, transaction rolled back: {e}", exc_info=True)
                raise StorageError(f"Database error: {e}") from e
            except Exception:
                db.rollback()
                raise
            finally:
                self._local.session = None
                db.close()

    @contextmanager
    def read(self) -> Generator[Session, None, None]:
        """Session for read-only queries. Nothing is committed."""
        active: Optional[Session] = getattr(self._local, "session", None)
        if active is not None:
            yield active
            return

        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            logger.error(f"Database error during read: {e}", exc_info=True)
            raise StorageError(f"Database error: {e}") from e
        finally:
            db.close()

    def dispose(self) -> None:
        """Close all pooled connections."""
        self.engine.dispose()
