"""
Keyed upsert store backed by SQLAlchemy.

Implements the small store contract the pipeline relies on: batched upsert on
a conflict key, get by primary key, filtered/ordered listing and delete.
Database failures surface as :class:`~bot_detector.exceptions.PersistenceError`.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Generator, Iterable, List, Mapping, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from bot_detector.exceptions import PersistenceError
from bot_detector.models import Base

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)

UPSERT_BATCH_SIZE = 100


class Store:
    """Persistent store for sessions, accounts, activity and verdicts."""

    def __init__(self, engine: Engine):
        """
        Args:
            engine: Engine the store reads from and writes to.
        """
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional session: committed on success, rolled back on error.

        Raises:
            PersistenceError: If the database raises during the unit of work.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error, transaction rolled back: {str(e)}")
            raise PersistenceError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _insert_for_dialect(self, model: Type[Base]):
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model)
        if dialect == "sqlite":
            return sqlite.insert(model)
        raise PersistenceError(f"Upsert is not supported on the '{dialect}' dialect")

    def upsert(
        self,
        model: Type[Base],
        records: Sequence[Mapping[str, Any]],
        conflict_key: str,
        update_columns: Optional[Iterable[str]] = None,
    ) -> int:
        """
        Insert records, updating existing rows that collide on ``conflict_key``.

        Args:
            model: ORM class of the target table
            records: Column/value mappings; all records should share the same keys
            conflict_key: Unique column used to detect existing rows
            update_columns: Columns overwritten on conflict (defaults to every
                supplied column except the key)

        Returns:
            Number of records written
        """
        if not records:
            return 0

        # Later duplicates in the same call win, matching last-write-wins across calls
        deduped: Dict[Any, Dict[str, Any]] = {}
        for record in records:
            deduped[record[conflict_key]] = dict(record)
        rows = list(deduped.values())

        if update_columns is None:
            update_columns = [c for c in rows[0].keys() if c != conflict_key]
        update_columns = list(update_columns)
        has_updated_at = "updated_at" in model.__table__.columns

        count = 0
        batches = [rows[i:i + UPSERT_BATCH_SIZE] for i in range(0, len(rows), UPSERT_BATCH_SIZE)]
        with self.session_scope() as session:
            for batch in batches:
                stmt = self._insert_for_dialect(model).values(batch)
                set_ = {column: stmt.excluded[column] for column in update_columns}
                if has_updated_at:
                    set_["updated_at"] = datetime.now(timezone.utc)
                if set_:
                    stmt = stmt.on_conflict_do_update(index_elements=[conflict_key], set_=set_)
                else:
                    stmt = stmt.on_conflict_do_nothing(index_elements=[conflict_key])
                session.execute(stmt)
                count += len(batch)

        logger.debug(f"Upserted {count} rows into {model.__tablename__}")
        return count

    def get(self, model: Type[ModelT], key: Any) -> Optional[ModelT]:
        """Return the row with primary key ``key``, or None."""
        with self.session_scope() as session:
            return session.get(model, key)

    def list(
        self,
        model: Type[ModelT],
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[ModelT]:
        """
        List rows matching equality filters.

        A list, tuple or set filter value matches any of its members.

        Args:
            model: ORM class of the table to read
            filters: Column name to required value
            order_by: Column name to sort by
            descending: Sort descending instead of ascending
            limit: Maximum number of rows

        Returns:
            Matching ORM instances, detached from the session
        """
        stmt = select(model)
        for column_name, value in (filters or {}).items():
            column = getattr(model, column_name)
            if isinstance(value, (list, tuple, set, frozenset)):
                stmt = stmt.where(column.in_(list(value)))
            else:
                stmt = stmt.where(column == value)
        if order_by:
            column = getattr(model, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        with self.session_scope() as session:
            return list(session.scalars(stmt).all())

    def update(self, model: Type[ModelT], key: Any, values: Mapping[str, Any]) -> Optional[ModelT]:
        """Set ``values`` on the row with primary key ``key``. Returns None if it does not exist."""
        with self.session_scope() as session:
            instance = session.get(model, key)
            if instance is None:
                return None
            for column_name, value in values.items():
                setattr(instance, column_name, value)
            session.flush()
            return instance

    def delete(self, model: Type[Base], key: Any) -> bool:
        """Delete the row with primary key ``key``. Returns False if nothing was deleted."""
        with self.session_scope() as session:
            instance = session.get(model, key)
            if instance is None:
                return False
            session.delete(instance)
            return True

    def count(self, model: Type[Base]) -> int:
        """Return the number of rows in the model's table."""
        with self.session_scope() as session:
            return session.scalar(select(func.count()).select_from(model)) or 0
