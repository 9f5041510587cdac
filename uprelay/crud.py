from sqlmodel import SQLModel, Session, create_engine, select, col
from sqlalchemy import delete, func, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from .exceptions import NotFoundError, ValidationFailure
from .models import FileRecord, FileStatus, utcnow
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple


def create_store(database_url: str) -> "FileStore":
    connect_args = {}
    if database_url.startswith("sqlite"):
        # requests are served from a threadpool
        connect_args["check_same_thread"] = False
    return FileStore(create_engine(database_url, connect_args=connect_args))


def _identifier_clause(key: Optional[str] = None, custom_id: Optional[str] = None):
    if key is not None:
        return col(FileRecord.key) == key
    if custom_id is not None:
        return col(FileRecord.custom_id) == custom_id
    raise ValidationFailure("Either fileKey or customId is required")


def _filter(statement, *, keys=None, custom_ids=None, status=None):
    if keys is not None:
        statement = statement.where(col(FileRecord.key).in_(keys))
    if custom_ids is not None:
        statement = statement.where(col(FileRecord.custom_id).in_(custom_ids))
    if status is not None:
        statement = statement.where(col(FileRecord.status) == status)
    return statement


class FileStore:
    """Record store for file metadata. Every write is a single atomic statement."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def init_db(self):
        SQLModel.metadata.create_all(self.engine)

    def insert_if_absent(self, record: FileRecord) -> FileRecord:
        """Insert ``record`` unless its key exists; the first registration wins.

        Relies on the unique constraint on ``key`` rather than a prior lookup, so
        two racing registrations cannot both insert.
        """
        with Session(self.engine) as session:
            session.add(record)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                existing = session.exec(select(FileRecord).where(col(FileRecord.key) == record.key)).first()
                if existing is None:
                    raise ValidationFailure(f"customId already in use: {record.custom_id}") from e
                return existing
            session.refresh(record)
        return record

    def get(self, key: str) -> Optional[FileRecord]:
        with Session(self.engine) as session:
            return session.exec(select(FileRecord).where(col(FileRecord.key) == key)).first()

    def find_one(self, *, key: Optional[str] = None, custom_id: Optional[str] = None) -> FileRecord:
        with Session(self.engine) as session:
            record = session.exec(select(FileRecord).where(_identifier_clause(key, custom_id))).first()
        if record is None:
            raise NotFoundError()
        return record

    def transition(self, key: str, allowed_from: Sequence[FileStatus], **values: Any) -> Tuple[FileRecord, bool]:
        """Conditionally update a record whose status is in ``allowed_from``.

        Returns the record as stored after the statement and whether the update
        applied. Raises NotFoundError when no record has ``key``.
        """
        values.setdefault("updated_at", utcnow())
        with Session(self.engine) as session:
            statement = (
                update(FileRecord)
                .where(col(FileRecord.key) == key)
                .where(col(FileRecord.status).in_(list(allowed_from)))
                .values(**values)
            )
            result = session.exec(statement)
            session.commit()
            record = session.exec(select(FileRecord).where(col(FileRecord.key) == key)).first()
        if record is None:
            raise NotFoundError()
        return record, result.rowcount > 0

    def update_batch(self, items: Iterable[Tuple[Optional[str], Optional[str], Dict[str, Any]]]) -> int:
        """Apply ``(key, custom_id, values)`` updates in one transaction; returns rows touched."""
        touched = 0
        with Session(self.engine) as session:
            for key, custom_id, values in items:
                statement = (
                    update(FileRecord)
                    .where(_identifier_clause(key, custom_id))
                    .values(updated_at=utcnow(), **values)
                )
                touched += session.exec(statement).rowcount
            session.commit()
        return touched

    def find_many(
        self,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
        status: Optional[FileStatus] = None,
        keys: Optional[List[str]] = None,
        custom_ids: Optional[List[str]] = None,
    ) -> List[FileRecord]:
        statement = _filter(select(FileRecord), keys=keys, custom_ids=custom_ids, status=status)
        statement = statement.order_by(col(FileRecord.created_at).desc()).offset(offset)
        if limit is not None:
            statement = statement.limit(limit)
        with Session(self.engine) as session:
            return list(session.exec(statement).all())

    def count(self, status: Optional[FileStatus] = None) -> int:
        statement = _filter(select(func.count()).select_from(FileRecord), status=status)
        with Session(self.engine) as session:
            return session.exec(statement).one()

    def delete_many(self, *, keys: Optional[List[str]] = None, custom_ids: Optional[List[str]] = None) -> int:
        if keys is None and custom_ids is None:
            raise ValidationFailure("Either fileKeys or customIds is required")
        statement = _filter(delete(FileRecord), keys=keys, custom_ids=custom_ids)
        with Session(self.engine) as session:
            result = session.exec(statement)
            session.commit()
        return result.rowcount

    def sum_size(self) -> int:
        with Session(self.engine) as session:
            return session.exec(select(func.coalesce(func.sum(FileRecord.size), 0))).one()
