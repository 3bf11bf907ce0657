import asyncio
import logging
from datetime import date
from typing import Callable, List, Optional, Protocol

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from sitelog.core.exceptions import LogLoadError, LogSaveError
from sitelog.db.models.log import DailyLog, LogTask, CrewEntry, Photo
from sitelog.schemas.log import (
    LogRecord, LogHeader, TaskEntry, BlockedTaskEntry, CrewMember, ImageAttachment
)
from sitelog.utils.activity import log_activity

logger = logging.getLogger(__name__)

HEADER_FIELDS = tuple(LogHeader.model_fields)


class LogStore(Protocol):
    """Queryable persistence for daily logs, keyed by (project_id, date)."""

    async def fetch_log(self, project_id: int, log_date: date) -> Optional[LogRecord]: ...

    async def find_prior_log(self, project_id: int, before_date: date) -> Optional[LogRecord]: ...

    async def save_log(
        self, project_id: int, log_date: date, record: LogRecord, user_id: Optional[int] = None
    ) -> None: ...

    async def fetch_recent_task_texts(self, project_id: int, max_records: int = 20) -> List[str]: ...

    async def fetch_recent_tasks(self, project_id: int, max_records: int = 20) -> List[TaskEntry]: ...

    async def fetch_logged_dates(self, project_id: int, start: date, end: date) -> List[date]: ...


def normalize_task_text(text: str) -> str:
    return text.strip().lower()


def dedupe_tasks(tasks: List[TaskEntry]) -> List[TaskEntry]:
    """Keep the first task for each normalized text, preserving order."""
    seen = set()
    unique = []
    for task in tasks:
        if not task.text:
            continue
        key = normalize_task_text(task.text)
        if key and key not in seen:
            seen.add(key)
            unique.append(task)
    return unique


def record_from_row(row: DailyLog) -> LogRecord:
    header = LogHeader(**{
        field: getattr(row, field) for field in HEADER_FIELDS
        if getattr(row, field) is not None
    })
    tasks = []
    blocked = []
    for t in row.tasks:
        if t.kind == "blocked":
            blocked.append(BlockedTaskEntry(id=t.entry_id, text=t.text, reason=t.reason))
        else:
            tasks.append(TaskEntry(id=t.entry_id, text=t.text, location=t.location))
    return LogRecord(
        project_id=row.project_id,
        date=row.date,
        header=header,
        tasks=tasks,
        blocked_tasks=blocked,
        crew=[CrewMember(id=c.entry_id, role=c.role, count=c.count) for c in row.crew],
        images=[ImageAttachment(id=p.entry_id, file_path=p.file_path) for p in row.photos],
        elapsed_days=row.elapsed_days,
        snapshot=row.snapshot or {},
    )


class SqlLogStore:
    """LogStore over SQLAlchemy.

    The ORM is synchronous, so every call opens its own session and runs in a
    worker thread; sessions are never shared between calls.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def _query_logs(self, db: Session):
        return db.query(DailyLog).options(
            selectinload(DailyLog.tasks),
            selectinload(DailyLog.crew),
            selectinload(DailyLog.photos),
        )

    # Reads

    def _fetch_log(self, project_id: int, log_date: date) -> Optional[LogRecord]:
        db = self.session_factory()
        try:
            row = self._query_logs(db)\
                .filter(DailyLog.project_id == project_id, DailyLog.date == log_date)\
                .first()
            return record_from_row(row) if row else None
        except SQLAlchemyError as e:
            raise LogLoadError(f"fetch of log {project_id}/{log_date} failed: {e}") from e
        finally:
            db.close()

    def _find_prior_log(self, project_id: int, before_date: date) -> Optional[LogRecord]:
        db = self.session_factory()
        try:
            row = self._query_logs(db)\
                .filter(DailyLog.project_id == project_id, DailyLog.date < before_date)\
                .order_by(desc(DailyLog.date))\
                .first()
            return record_from_row(row) if row else None
        except SQLAlchemyError as e:
            raise LogLoadError(f"prior log lookup for {project_id}/{before_date} failed: {e}") from e
        finally:
            db.close()

    def _fetch_recent_tasks(self, project_id: int, max_records: int) -> List[TaskEntry]:
        db = self.session_factory()
        try:
            rows = db.query(DailyLog)\
                .options(selectinload(DailyLog.tasks))\
                .filter(DailyLog.project_id == project_id)\
                .order_by(desc(DailyLog.date))\
                .limit(max_records)\
                .all()
            tasks = [
                TaskEntry(id=t.entry_id, text=t.text, location=t.location)
                for row in rows
                for t in row.tasks
                if t.kind == "completed"
            ]
            return dedupe_tasks(tasks)
        except SQLAlchemyError as e:
            raise LogLoadError(f"task history for project {project_id} failed: {e}") from e
        finally:
            db.close()

    def _fetch_logged_dates(self, project_id: int, start: date, end: date) -> List[date]:
        db = self.session_factory()
        try:
            rows = db.query(DailyLog.date)\
                .filter(
                    DailyLog.project_id == project_id,
                    DailyLog.date >= start,
                    DailyLog.date <= end,
                )\
                .order_by(DailyLog.date)\
                .all()
            return [r.date for r in rows]
        except SQLAlchemyError as e:
            raise LogLoadError(f"calendar lookup for project {project_id} failed: {e}") from e
        finally:
            db.close()

    # Writes

    def _save_log(self, project_id: int, log_date: date, record: LogRecord, user_id: Optional[int]) -> None:
        db = self.session_factory()
        try:
            row = db.query(DailyLog)\
                .filter(DailyLog.project_id == project_id, DailyLog.date == log_date)\
                .first()
            created = row is None
            if created:
                row = DailyLog(project_id=project_id, date=log_date)
                db.add(row)

            for field in HEADER_FIELDS:
                setattr(row, field, getattr(record.header, field))
            row.elapsed_days = record.elapsed_days
            row.snapshot = record.snapshot or None

            # Children are rewritten in full; delete-orphan drops the old ones
            row.tasks = [
                LogTask(entry_id=t.id, kind="completed", position=i, text=t.text, location=t.location)
                for i, t in enumerate(record.tasks)
            ] + [
                LogTask(entry_id=t.id, kind="blocked", position=i, text=t.text, reason=t.reason)
                for i, t in enumerate(record.blocked_tasks)
            ]
            row.crew = [
                CrewEntry(entry_id=c.id, position=i, role=c.role, count=c.count)
                for i, c in enumerate(record.crew)
            ]
            row.photos = [
                Photo(entry_id=img.id, position=i, file_path=img.file_path)
                for i, img in enumerate(record.images)
            ]
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            db.close()
            raise LogSaveError(f"save of log {project_id}/{log_date} failed: {e}") from e

        try:
            log_activity(
                db,
                user_id=user_id,
                action="CREATE" if created else "UPDATE",
                entity_type="LOG",
                entity_id=row.id,
                details=f"{project_id}/{log_date.isoformat()}",
            )
        finally:
            db.close()

    # Async contract

    async def fetch_log(self, project_id: int, log_date: date) -> Optional[LogRecord]:
        return await asyncio.to_thread(self._fetch_log, project_id, log_date)

    async def find_prior_log(self, project_id: int, before_date: date) -> Optional[LogRecord]:
        return await asyncio.to_thread(self._find_prior_log, project_id, before_date)

    async def save_log(
        self, project_id: int, log_date: date, record: LogRecord, user_id: Optional[int] = None
    ) -> None:
        await asyncio.to_thread(self._save_log, project_id, log_date, record, user_id)

    async def fetch_recent_tasks(self, project_id: int, max_records: int = 20) -> List[TaskEntry]:
        return await asyncio.to_thread(self._fetch_recent_tasks, project_id, max_records)

    async def fetch_recent_task_texts(self, project_id: int, max_records: int = 20) -> List[str]:
        tasks = await self.fetch_recent_tasks(project_id, max_records)
        return [t.text for t in tasks]

    async def fetch_logged_dates(self, project_id: int, start: date, end: date) -> List[date]:
        return await asyncio.to_thread(self._fetch_logged_dates, project_id, start, end)
