"""Row-level access to the hosted store.

The store exposes the same five primitives the hosted service does: filtered
select, insert, update-by-id, delete-by-id and upsert with an explicit
conflict target. Each write is a single statement followed by one commit.
"""
import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import delete, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import StoreError

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class RosterStore:
    def __init__(self, db: Session):
        self.db = db

    def _fail(self, action: str, table: str, exc: SQLAlchemyError) -> StoreError:
        self.db.rollback()
        logger.error(f"Store {action} on {table} failed: {exc}")
        return StoreError(f"Failed to {action} {table}: {exc.__class__.__name__}")

    def select(self, model, order_by=None, **filters) -> list:
        stmt = select(model).filter_by(**filters)
        stmt = stmt.order_by(order_by if order_by is not None else model.id)
        try:
            return list(self.db.scalars(stmt))
        except SQLAlchemyError as exc:
            raise self._fail("read", model.__tablename__, exc) from exc

    def get(self, model, record_id) -> Any | None:
        rows = self.select(model, id=record_id)
        return rows[0] if rows else None

    def insert(self, model, rows: Sequence[dict[str, Any]]) -> list:
        if not rows:
            return []
        try:
            created = list(self.db.scalars(insert(model).returning(model), list(rows)))
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("insert into", model.__tablename__, exc) from exc
        return created

    def update(self, model, record_id, values: dict[str, Any]) -> int:
        stmt = update(model).where(model.id == record_id).values(**values)
        try:
            result = self.db.execute(stmt, execution_options={"synchronize_session": False})
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("update", model.__tablename__, exc) from exc
        return result.rowcount

    def delete(self, model, record_id) -> int:
        stmt = delete(model).where(model.id == record_id)
        try:
            result = self.db.execute(stmt, execution_options={"synchronize_session": False})
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("delete from", model.__tablename__, exc) from exc
        return result.rowcount

    def upsert(self, model, rows: Sequence[dict[str, Any]], *, on_conflict: str) -> int:
        """Insert rows, overwriting every non-key column where the conflict target matches.

        ``on_conflict`` is a comma separated column list, e.g. ``"student_id,course_id,date"``.
        Overlapping writes are last-write-wins.
        """
        if not rows:
            return 0
        keys = [part.strip() for part in on_conflict.split(",") if part.strip()]
        table = model.__table__
        unknown = [key for key in keys if key not in table.c]
        if not keys or unknown:
            raise StoreError(f"Invalid conflict target {on_conflict!r} for {table.name}")

        dialect = self.db.get_bind().dialect.name
        dialect_insert = _UPSERT_DIALECTS.get(dialect)
        if dialect_insert is None:
            raise StoreError(f"Upsert is not supported on {dialect}")

        stmt = dialect_insert(table).values(list(rows))
        overwrite = {
            column.name: stmt.excluded[column.name]
            for column in table.columns
            if column.name not in keys and not column.primary_key
        }
        stmt = stmt.on_conflict_do_update(index_elements=keys, set_=overwrite)
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("upsert into", table.name, exc) from exc
        logger.debug(f"Upserted {len(rows)} row(s) into {table.name} on ({on_conflict})")
        return result.rowcount
