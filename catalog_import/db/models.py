"""
Storage for records accepted by an import.

The import pipeline only needs two primitives from the data store: save one
record and read records back. ``SqlRecordStore`` provides them on top of a
single ``imported_records`` table keyed by target table name.

Records that carry a natural key (item code, store code, NIK...) are
upserted: importing the same sheet twice updates the existing rows instead of
duplicating them.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol

from sqlalchemy import JSON, Column, DateTime, Integer, String, UniqueConstraint, select
from sqlalchemy.exc import SQLAlchemyError

from catalog_import.db.session import Base, get_session_factory
from catalog_import.domain.imports.errors import RecordPersistenceError
from catalog_import.utils.locks import TableLockManager
from catalog_import.utils.serialization import make_json_safe

logger = logging.getLogger(__name__)


def _utcnow():
    return datetime.now(timezone.utc)


class ImportedRecord(Base):
    __tablename__ = "imported_records"
    __table_args__ = (UniqueConstraint("table_name", "record_key", name="uq_imported_records_key"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    table_name = Column(String(100), nullable=False, index=True)
    # NULL for tables without a natural key; those rows are always inserted
    record_key = Column(String(255), nullable=True)
    payload = Column(JSON, nullable=False)
    import_job_id = Column(String(36), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True)


class RecordStore(Protocol):
    def upsert(
        self,
        table_name: str,
        record: Mapping[str, Any],
        key: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> bool:
        """Save ``record``; return True if it was inserted, False if it replaced an existing one."""
        ...

    def query(self, table_name: str) -> List[Dict[str, Any]]:
        ...


class SqlRecordStore:
    """SQLAlchemy-backed record store. Writes into the same table are serialised."""

    def __init__(self, engine, lock_manager: Optional[TableLockManager] = None):
        self.engine = engine
        self._session_factory = get_session_factory(engine)
        self._locks = lock_manager or TableLockManager()

    def create_tables(self) -> None:
        Base.metadata.create_all(bind=self.engine, tables=[ImportedRecord.__table__])

    def upsert(
        self,
        table_name: str,
        record: Mapping[str, Any],
        key: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> bool:
        """
        Insert ``record``, or overwrite the stored record with the same ``key``.

        Returns:
            True when a new row was inserted, False when an existing one was updated

        Raises:
            RecordPersistenceError: the database rejected the write
        """
        payload = make_json_safe(dict(record))
        with self._locks.acquire(table_name):
            session = self._session_factory()
            try:
                existing = None
                if key is not None:
                    existing = session.execute(
                        select(ImportedRecord).where(
                            ImportedRecord.table_name == table_name,
                            ImportedRecord.record_key == key,
                        )
                    ).scalar_one_or_none()

                if existing is None:
                    session.add(
                        ImportedRecord(
                            table_name=table_name,
                            record_key=key,
                            payload=payload,
                            import_job_id=job_id,
                        )
                    )
                else:
                    existing.payload = payload
                    existing.import_job_id = job_id
                    existing.updated_at = _utcnow()
                session.commit()
                return existing is None
            except SQLAlchemyError as exc:
                session.rollback()
                logger.debug("Write into '%s' failed: %s", table_name, exc)
                raise RecordPersistenceError(f"Could not save record: {exc.__class__.__name__}") from exc
            finally:
                session.close()

    def query(self, table_name: str) -> List[Dict[str, Any]]:
        """Return stored payloads for ``table_name`` in first-insertion order."""
        session = self._session_factory()
        try:
            rows = session.execute(
                select(ImportedRecord.payload)
                .where(ImportedRecord.table_name == table_name)
                .order_by(ImportedRecord.id)
            ).scalars().all()
            return [dict(payload) for payload in rows]
        finally:
            session.close()
