"""Persistence operations for every entity, one repository per aggregate."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, TypeVar

from sqlalchemy import func, inspect, select, update
from sqlalchemy.orm import Session, selectinload

from modelmaker.database import Database
from modelmaker.models import (
    AppFile,
    ChatMessage,
    Collection,
    CollectionCount,
    Report,
    Task,
    TaskLog,
    User,
    UserAnalytics,
    WeekOfTask,
    collection_tasks,
)

T = TypeVar("T")


class RecordNotFoundError(LookupError):
    """Raised when a lookup that expects a row finds none."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _save(session: Session, obj: Any) -> None:
    """Insert a new row or update an existing one, like an upsert by primary key."""
    state = inspect(obj)
    if state.transient and obj.id:
        merged = session.merge(obj)
        session.flush()
        for attr in inspect(type(obj)).column_attrs:
            setattr(obj, attr.key, getattr(merged, attr.key))
    else:
        session.add(obj)


def _require(found: T | None, what: str) -> T:
    if found is None:
        raise RecordNotFoundError(f"{what} not found")
    return found


class AppFileRepository:
    def __init__(self, database: Database) -> None:
        self._db = database

    def save_app_file(self, app_file: AppFile) -> AppFile:
        with self._db.session() as s:
            _save(s, app_file)
        return app_file

    def get_app_files_by_task(self, task_id: int, file_type: str) -> list[AppFile]:
        with self._db.session() as s:
            query = (
                select(AppFile)
                .where(
                    AppFile.task_id == task_id,
                    AppFile.file_type == file_type,
                    AppFile.deleted_at.is_(None),
                )
                .order_by(AppFile.id)
            )
            return list(s.scalars(query))

    def get_app_file_by_task(self, task_id: int, file_type: str) -> AppFile:
        with self._db.session() as s:
            query = (
                select(AppFile)
                .where(
                    AppFile.task_id == task_id,
                    AppFile.file_type == file_type,
                    AppFile.deleted_at.is_(None),
                )
                .order_by(AppFile.id)
            )
            return _require(s.scalars(query).first(), "app file")


class ChatRepository:
    def __init__(self, database: Database) -> None:
        self._db = database

    def create_chat(self, chat: ChatMessage) -> ChatMessage:
        with self._db.session() as s:
            s.add(chat)
        return chat


class CollectionsRepository:
    def __init__(self, database: Database) -> None:
        self._db = database

    def get_collections_by_user(self, user_id: int) -> list[Collection]:
        with self._db.session() as s:
            query = (
                select(Collection)
                .options(selectinload(Collection.tasks))
                .where(Collection.user_id == user_id, Collection.deleted_at.is_(None))
                .order_by(Collection.id)
            )
            return list(s.scalars(query))

    def get_collection_by_id(self, collection_id: int) -> Collection:
        with self._db.session() as s:
            query = (
                select(Collection)
                .options(selectinload(Collection.tasks))
                .where(Collection.id == collection_id, Collection.deleted_at.is_(None))
            )
            return _require(s.scalars(query).first(), "collection")

    def create_collection(self, collection: Collection) -> Collection:
        with self._db.session() as s:
            s.add(collection)
        return collection

    def save_collection(self, collection: Collection) -> Collection:
        with self._db.session() as s:
            _save(s, collection)
        return collection

    def archive_collection(self, collection_id: int) -> None:
        with self._db.session() as s:
            s.execute(
                update(Collection)
                .where(Collection.id == collection_id, Collection.deleted_at.is_(None))
                .values(deleted_at=_now())
            )

    def get_collection_tasks(self, collection_id: int) -> list[Task]:
        with self._db.session() as s:
            query = (
                select(Task)
                .join(collection_tasks, collection_tasks.c.task_id == Task.id)
                .where(
                    collection_tasks.c.collection_id == collection_id,
                    Task.deleted_at.is_(None),
                )
                .order_by(Task.id)
            )
            return list(s.scalars(query))


class ReportsRepository:
    def __init__(self, database: Database) -> None:
        self._db = database

    def get_reports_by_user(self, user_id: int) -> list[Report]:
        with self._db.session() as s:
            query = (
                select(Report)
                .where(Report.user_id == user_id, Report.deleted_at.is_(None))
                .order_by(Report.id)
            )
            return list(s.scalars(query))

    def get_report_by_id(self, report_id: int) -> Report:
        with self._db.session() as s:
            query = select(Report).where(Report.id == report_id, Report.deleted_at.is_(None))
            return _require(s.scalars(query).first(), "report")

    def create_report(self, report: Report) -> Report:
        with self._db.session() as s:
            s.add(report)
        return report

    def save_report(self, report: Report) -> Report:
        with self._db.session() as s:
            _save(s, report)
        return report

    def archive_report(self, report_id: int) -> None:
        with self._db.session() as s:
            s.execute(
                update(Report)
                .where(Report.id == report_id, Report.deleted_at.is_(None))
                .values(deleted_at=_now())
            )


class TaskRepository:
    def __init__(self, database: Database) -> None:
        self._db = database

    def _tasks_for(self, user_id: int, archived: bool) -> list[Task]:
        with self._db.session() as s:
            query = (
                select(Task)
                .where(
                    Task.user_id == user_id,
                    Task.archived.is_(archived),
                    Task.deleted_at.is_(None),
                )
                .order_by(Task.id)
            )
            return list(s.scalars(query))

    def get_unarchived_tasks(self, user_id: int) -> list[Task]:
        return self._tasks_for(user_id, False)

    def get_archived_tasks(self, user_id: int) -> list[Task]:
        return self._tasks_for(user_id, True)

    @staticmethod
    def _load(session: Session, task_id: int) -> Task:
        query = (
            select(Task)
            .options(
                selectinload(Task.chat_messages),
                selectinload(Task.images),
                selectinload(Task.mesh),
                selectinload(Task.logs),
            )
            .where(Task.id == task_id, Task.deleted_at.is_(None))
        )
        return _require(session.scalars(query).first(), "task")

    def get_task_by_id(self, task_id: int) -> Task:
        with self._db.session() as s:
            return self._load(s, task_id)

    def create_task(self, task: Task) -> Task:
        with self._db.session() as s:
            s.add(task)
        return task

    def save_task(self, task: Task) -> Task:
        with self._db.session() as s:
            _save(s, task)
        return task

    def _set_archived(self, task_id: int, archived: bool) -> Task:
        with self._db.session() as s:
            task = self._load(s, task_id)
            task.archived = archived
        return task

    def archive_task(self, task_id: int) -> Task:
        return self._set_archived(task_id, True)

    def unarchive_task(self, task_id: int) -> Task:
        return self._set_archived(task_id, False)

    def add_log(self, task_id: int, message: str) -> None:
        with self._db.session() as s:
            task = self._load(s, task_id)
            task.logs.append(TaskLog(task_id=task.id, message=message))


class UserAnalyticsRepository:
    def __init__(self, database: Database) -> None:
        self._db = database

    def get_analytics(self, user_id: int) -> UserAnalytics:
        with self._db.session() as s:
            _require(
                s.scalars(
                    select(User).where(User.id == user_id, User.deleted_at.is_(None))
                ).first(),
                "user",
            )

            def count(query: Any) -> int:
                return int(s.execute(query).scalar_one())

            analytics = UserAnalytics(
                collection_total=count(
                    select(func.count()).select_from(User).where(User.id == user_id)
                ),
                tasks_success=count(
                    select(func.count())
                    .select_from(Task)
                    .where(Task.user_id == user_id, Task.completed.is_(True))
                ),
                tasks_failed=count(
                    select(func.count())
                    .select_from(Task)
                    .where(Task.user_id == user_id, Task.completed.is_(False))
                ),
                tasks_total=count(
                    select(func.count()).select_from(Task).where(Task.user_id == user_id)
                ),
            )

            per_day: dict[str, int] = {}
            created = s.execute(
                select(Task.created_at).where(Task.user_id == user_id).order_by(Task.id)
            ).scalars()
            for stamp in created:
                if stamp is None:
                    continue
                day = stamp.strftime("%d.%m.%Y")
                per_day[day] = per_day.get(day, 0) + 1
            analytics.week_of_tasks = [WeekOfTask(date=d, count=c) for d, c in per_day.items()]

            rows = s.execute(
                select(Collection.name, func.count(collection_tasks.c.task_id))
                .select_from(Collection)
                .outerjoin(collection_tasks, collection_tasks.c.collection_id == Collection.id)
                .where(Collection.user_id == user_id)
                .group_by(Collection.name)
                .order_by(Collection.name)
            )
            analytics.collections = [CollectionCount(count=int(c), name=n) for n, c in rows]
        return analytics


class UserRepository:
    def __init__(self, database: Database) -> None:
        self._db = database

    def get_user_from_firebase_uid(self, uid: str) -> User | None:
        """The user with this uid, or None when there is none."""
        with self._db.session() as s:
            query = select(User).where(User.firebase_uid == uid, User.deleted_at.is_(None))
            return s.scalars(query).first()

    def create(self, user: User) -> User:
        with self._db.session() as s:
            s.add(user)
        return user

    def update_user(self, user: User) -> User:
        with self._db.session() as s:
            _save(s, user)
        return user

    def get_users(self) -> list[User]:
        with self._db.session() as s:
            query = select(User).where(User.deleted_at.is_(None)).order_by(User.id)
            return list(s.scalars(query))

    def delete_user(self, user: User) -> None:
        user.deleted_at = _now()
        with self._db.session() as s:
            _save(s, user)