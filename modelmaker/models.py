"""Domain models: ORM entities and plain value objects."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    inspect,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

ZERO_TIME = "0001-01-01T00:00:00Z"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_time(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _lookup(data: dict, *names: str) -> Any:
    """Case-insensitive key lookup, as JSON binding does."""
    lowered = {str(key).lower(): value for key, value in data.items()}
    for name in names:
        if name.lower() in lowered:
            return lowered[name.lower()]
    return None


def _as_str(value: Any, name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    return value


def _as_int(value: Any, name: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer")
    return value


def _as_uint(value: Any, name: str) -> int:
    number = _as_int(value, name)
    if number < 0:
        raise ValueError(f"{name} must not be negative")
    return number


def _as_bool(value: Any, name: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"{name} must be a boolean")
    return value


def _require_dict(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return data


def _enum_column(enum_cls: type[enum.Enum], nullable: bool) -> Any:
    return mapped_column(
        SAEnum(
            enum_cls,
            native_enum=False,
            length=16,
            values_callable=lambda members: [m.value for m in members],
            validate_strings=True,
        ),
        nullable=nullable,
    )


class Base(DeclarativeBase):
    """Declarative base for every table."""


class _Timestamped:
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    def _base_dict(self) -> dict[str, Any]:
        return {
            "ID": self.id or 0,
            "CreatedAt": _format_time(self.created_at) or ZERO_TIME,
            "UpdatedAt": _format_time(self.updated_at) or ZERO_TIME,
            "DeletedAt": _format_time(self.deleted_at),
        }

    def _loaded(self, name: str, default: Callable[[], Any]) -> Any:
        state = inspect(self)
        if name in state.unloaded and (state.detached or state.transient or state.pending):
            return default()
        return getattr(self, name)


class TaskStatus(str, enum.Enum):
    QUEUED = "QUEUED"
    SUCCESS = "SUCCESS"
    INPROGRESS = "INPROGRESS"
    FAILED = "FAILED"
    INITIAL = "INITIAL"


class ReportType(str, enum.Enum):
    BUG = "BUG"
    FEEDBACK = "FEEDBACK"


class User(_Timestamped, Base):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String, default="")
    firebase_uid: Mapped[str | None] = mapped_column(String, unique=True, index=True)
    subscription_tier: Mapped[str] = mapped_column(String, default="free")

    def to_dict(self) -> dict[str, Any]:
        return {
            **self._base_dict(),
            "Email": self.email or "",
            "FirebaseUid": self.firebase_uid or "",
            "SubscriptionTier": self.subscription_tier or "free",
        }


class AppFile(_Timestamped, Base):
    __tablename__ = "app_files"

    filename: Mapped[str] = mapped_column(String, nullable=False, default="")
    url: Mapped[str] = mapped_column(String, nullable=False, default="")
    task_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    file_type: Mapped[str] = mapped_column(String, nullable=False, default="")

    def to_dict(self) -> dict[str, Any]:
        return {
            **self._base_dict(),
            "Filename": self.filename or "",
            "Url": self.url or "",
            "TaskId": self.task_id or 0,
            "FileType": self.file_type or "",
        }


class ChatMessage(_Timestamped, Base):
    __tablename__ = "chat_messages"
    __table_args__ = (CheckConstraint("sender IN ('USER','AI')", name="chat_sender_check"),)

    task_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    sender: Mapped[str] = mapped_column(Text, nullable=False, default="")
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")

    def to_dict(self) -> dict[str, Any]:
        return {
            **self._base_dict(),
            "TaskId": self.task_id or 0,
            "Sender": self.sender or "",
            "Message": self.message or "",
        }


class TaskLog(_Timestamped, Base):
    __tablename__ = "task_logs"

    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    task_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            **self._base_dict(),
            "Message": self.message or "",
            "TaskId": self.task_id or 0,
        }


collection_tasks = Table(
    "collection_tasks",
    Base.metadata,
    Column("collection_id", Integer, ForeignKey("collections.id", ondelete="CASCADE"), primary_key=True),
    Column("task_id", Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
)


class Task(_Timestamped, Base):
    __tablename__ = "tasks"

    title: Mapped[str] = mapped_column(String, default="")
    description: Mapped[str] = mapped_column(String, default="")
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[TaskStatus | None] = _enum_column(TaskStatus, nullable=True)
    user_id: Mapped[int] = mapped_column(Integer, default=0, index=True)
    meta: Mapped[dict | None] = mapped_column("metadata", JSON, default=dict)
    archived: Mapped[bool] = mapped_column(Boolean, default=False)

    images: Mapped[list[AppFile]] = relationship(
        "AppFile",
        primaryjoin="and_(Task.id == foreign(AppFile.task_id), AppFile.file_type == 'upload')",
        viewonly=True,
        order_by="AppFile.id",
    )
    mesh: Mapped[AppFile | None] = relationship(
        "AppFile",
        primaryjoin="and_(Task.id == foreign(AppFile.task_id), AppFile.file_type == 'mesh')",
        viewonly=True,
        uselist=False,
    )
    chat_messages: Mapped[list[ChatMessage]] = relationship(
        "ChatMessage",
        primaryjoin="Task.id == foreign(ChatMessage.task_id)",
        order_by="ChatMessage.id",
        cascade="all, delete-orphan",
    )
    logs: Mapped[list[TaskLog]] = relationship(
        "TaskLog",
        primaryjoin="Task.id == foreign(TaskLog.task_id)",
        order_by="TaskLog.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict[str, Any]:
        mesh = self._loaded("mesh", lambda: None)
        status = self.status
        return {
            **self._base_dict(),
            "Title": self.title or "",
            "Description": self.description or "",
            "Completed": bool(self.completed),
            "Status": status.value if isinstance(status, TaskStatus) else (status or ""),
            "UserId": self.user_id or 0,
            "Images": [f.to_dict() for f in self._loaded("images", list)],
            "Mesh": mesh.to_dict() if mesh is not None else None,
            "Metadata": self.meta,
            "ChatMessages": [m.to_dict() for m in self._loaded("chat_messages", list)],
            "Logs": [entry.to_dict() for entry in self._loaded("logs", list)],
            "Archived": bool(self.archived),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Task":
        data = _require_dict(data)
        status_raw = _lookup(data, "Status")
        status = None
        if status_raw not in (None, ""):
            try:
                status = TaskStatus(_as_str(status_raw, "Status"))
            except ValueError as exc:
                raise ValueError(f"invalid task status: {status_raw!r}") from exc
        meta = _lookup(data, "Metadata")
        if meta is not None and not isinstance(meta, dict):
            raise ValueError("Metadata must be an object")
        task = cls(
            title=_as_str(_lookup(data, "Title"), "Title"),
            description=_as_str(_lookup(data, "Description"), "Description"),
            completed=_as_bool(_lookup(data, "Completed"), "Completed"),
            status=status,
            user_id=_as_uint(_lookup(data, "UserId", "UserID"), "UserId"),
            meta=meta,
            archived=_as_bool(_lookup(data, "Archived"), "Archived"),
        )
        task_id = _as_uint(_lookup(data, "ID", "Id"), "ID")
        if task_id:
            task.id = task_id
        return task


class Collection(_Timestamped, Base):
    __tablename__ = "collections"

    name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    tasks: Mapped[list[Task]] = relationship("Task", secondary=collection_tasks, order_by="Task.id")

    def to_dict(self) -> dict[str, Any]:
        return {
            **self._base_dict(),
            "Id": self.id or 0,
            "Name": self.name or "",
            "UserID": self.user_id or 0,
            "Tasks": [t.to_dict() for t in self._loaded("tasks", list)],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Collection":
        data = _require_dict(data)
        collection = cls(
            name=_as_str(_lookup(data, "Name"), "Name"),
            user_id=_as_uint(_lookup(data, "UserID"), "UserID"),
        )
        collection_id = _as_uint(_lookup(data, "ID", "Id"), "ID")
        if collection_id:
            collection.id = collection_id
        return collection


class Report(_Timestamped, Base):
    __tablename__ = "reports"

    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    report_type: Mapped[ReportType] = _enum_column(ReportType, nullable=False)
    rating: Mapped[int] = mapped_column(Integer, default=0)
    user_id: Mapped[int] = mapped_column(Integer, default=0, index=True)

    def to_dict(self) -> dict[str, Any]:
        rtype = self.report_type
        return {
            **self._base_dict(),
            "Id": self.id or 0,
            "Title": self.title or "",
            "Body": self.body or "",
            "ReportType": rtype.value if isinstance(rtype, ReportType) else (rtype or ""),
            "Rating": self.rating or 0,
            "UserID": self.user_id or 0,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Report":
        data = _require_dict(data)
        rtype_raw = _as_str(_lookup(data, "ReportType"), "ReportType")
        try:
            rtype = ReportType(rtype_raw)
        except ValueError as exc:
            raise ValueError(f"invalid report type: {rtype_raw!r}") from exc
        report = cls(
            title=_as_str(_lookup(data, "Title"), "Title"),
            body=_as_str(_lookup(data, "Body"), "Body"),
            report_type=rtype,
            rating=_as_int(_lookup(data, "Rating"), "Rating"),
            user_id=_as_uint(_lookup(data, "UserID"), "UserID"),
        )
        report_id = _as_uint(_lookup(data, "ID", "Id"), "ID")
        if report_id:
            report.id = report_id
        return report


@dataclass
class Notification:
    user_id: int = 0
    title: str = ""
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"UserID": self.user_id, "Title": self.title, "Message": self.message}

    @classmethod
    def from_dict(cls, data: Any) -> "Notification":
        data = _require_dict(data)
        return cls(
            user_id=_as_uint(_lookup(data, "UserID"), "UserID"),
            title=_as_str(_lookup(data, "Title"), "Title"),
            message=_as_str(_lookup(data, "Message"), "Message"),
        )


@dataclass
class WeekOfTask:
    date: str
    count: int


@dataclass
class CollectionCount:
    count: int
    name: str


@dataclass
class UserAnalytics:
    collection_total: int = 0
    tasks_total: int = 0
    tasks_success: int = 0
    tasks_failed: int = 0
    week_of_tasks: list[WeekOfTask] = field(default_factory=list)
    collections: list[CollectionCount] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "CollectionTotal": self.collection_total,
            "TasksTotal": self.tasks_total,
            "TasksSuccess": self.tasks_success,
            "TasksFailed": self.tasks_failed,
            "WeekOfTasks": [{"Date": w.date, "Count": w.count} for w in self.week_of_tasks],
            "Collections": [{"Count": c.count, "Name": c.name} for c in self.collections],
        }


@dataclass(frozen=True)
class GeminiPrompt:
    id: str
    prompt: str
    response_type: str


@dataclass
class GeminiConfig:
    gemini_prompts: list[GeminiPrompt] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "GeminiConfig":
        data = _require_dict(data)
        if "config" in data:
            data = _require_dict(data["config"])
        prompts = [
            GeminiPrompt(
                id=_as_str(item.get("id"), "id"),
                prompt=_as_str(item.get("prompt"), "prompt"),
                response_type=_as_str(item.get("response_type"), "response_type"),
            )
            for item in (_require_dict(p) for p in data.get("gemini_prompts") or [])
        ]
        return cls(gemini_prompts=prompts)


@dataclass
class WebhookPayload:
    desired_status: str = ""
    stopped_reason: str = ""
    container_environments: list[list[tuple[str, str]]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "WebhookPayload":
        data = _require_dict(data)
        detail = _require_dict(data.get("detail") or {})
        overrides = _require_dict(detail.get("overrides") or {})
        containers = []
        for container in overrides.get("containerOverrides") or []:
            container = _require_dict(container)
            containers.append(
                [
                    (_as_str(env.get("name"), "name"), _as_str(env.get("value"), "value"))
                    for env in (_require_dict(e) for e in container.get("environment") or [])
                ]
            )
        return cls(
            desired_status=_as_str(detail.get("desiredStatus"), "desiredStatus"),
            stopped_reason=_as_str(detail.get("stoppedReason"), "stoppedReason"),
            container_environments=containers,
        )

    def env_value(self, name: str) -> str:
        """Value of an environment variable; later containers override earlier ones."""
        found = ""
        for environment in self.container_environments:
            match = next((value for key, value in environment if key == name), None)
            if match is not None:
                found = match
        return found