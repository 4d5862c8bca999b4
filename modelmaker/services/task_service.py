"""Task lifecycle: persistence, chat, logs and the photogrammetry job queue."""

from __future__ import annotations

import json
import logging
import os
import queue
import threading
from dataclasses import dataclass
from typing import Any, Mapping

import requests
from sqlalchemy.exc import SQLAlchemyError

from modelmaker.models import AppFile, ChatMessage, Notification, Task, TaskStatus
from modelmaker.repositories import ChatRepository, RecordNotFoundError, TaskRepository
from modelmaker.services.basic import AppFileService
from modelmaker.services.notification import NotificationError, NotificationService
from modelmaker.services.storage import KatapultStorageService, sign_aws_request

log = logging.getLogger(__name__)

JOB_QUEUE_SIZE = 100
RUN_TASK_TARGET = "AmazonEC2ContainerServiceV20141113.RunTask"


@dataclass(frozen=True)
class TaskJob:
    task_id: int
    user_id: int = 0


def build_run_task_request(job: TaskJob, environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """The container run request that processes one task."""
    environ = os.environ if environ is None else environ
    bucket_input = f"uploads/{job.task_id}/"
    if environ.get("APP_ENV") == "dev":
        bucket_input = "development/" + bucket_input
    passed = [
        "KATAPULT_ACCESS_KEY",
        "KATAPULT_BUCKET_NAME",
        "KATAPULT_ENDPOINT",
        "KATAPULT_REGION",
        "KATAPULT_SECRET_KEY",
    ]
    environment = [{"name": name, "value": environ.get(name, "")} for name in passed]
    environment += [
        {"name": "BUCKET_INPUT", "value": bucket_input},
        {"name": "BUCKET_TASK_ID", "value": str(job.task_id)},
    ]
    return {
        "cluster": environ.get("AWS_ECS_CLUSTER", ""),
        "launchType": "FARGATE",
        "taskDefinition": environ.get("AWS_TASK_DEFINITION", ""),
        "networkConfiguration": {
            "awsvpcConfiguration": {
                "subnets": [environ.get("AWS_SUBNET_ID", "")],
                "securityGroups": [environ.get("AWS_SECURITY_GROUP_ID", "")],
                "assignPublicIp": "ENABLED",
            }
        },
        "tags": [
            {"key": "task-id", "value": str(job.task_id)},
            {"key": "user-id", "value": str(job.user_id)},
        ],
        "overrides": {
            "containerOverrides": [
                {"name": environ.get("AWS_CONTAINER_NAME", ""), "environment": environment}
            ]
        },
    }


class EcsClient:
    """Minimal client for starting container tasks."""

    def __init__(self, region: str, access_key: str, secret_key: str, session: Any = None) -> None:
        self.region = region
        self._access_key = access_key
        self._secret_key = secret_key
        self._session = session if session is not None else requests.Session()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EcsClient":
        environ = os.environ if environ is None else environ
        return cls(
            region=environ.get("AWS_REGION") or environ.get("AWS_DEFAULT_REGION", ""),
            access_key=environ.get("AWS_ACCESS_KEY_ID", ""),
            secret_key=environ.get("AWS_SECRET_ACCESS_KEY", ""),
        )

    def run_task(self, request: dict[str, Any]) -> dict[str, Any]:
        if not self.region:
            raise RuntimeError("failed to run task: no region configured")
        url = f"https://ecs.{self.region}.amazonaws.com/"
        body = json.dumps(request).encode()
        headers = sign_aws_request(
            "POST",
            url,
            {"Content-Type": "application/x-amz-json-1.1", "X-Amz-Target": RUN_TASK_TARGET},
            body,
            self._access_key,
            self._secret_key,
            self.region,
            "ecs",
        )
        try:
            response = self._session.post(url, data=body, headers=headers, timeout=30)
        except requests.RequestException as exc:
            raise RuntimeError(f"failed to run task: {exc}") from exc
        if not 200 <= response.status_code < 300:
            raise RuntimeError(f"failed to run task: HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise RuntimeError("failed to run task: response is not JSON") from exc


class TaskService:
    """Business operations on tasks and the queue that starts their processing."""

    def __init__(
        self,
        task_repo: TaskRepository,
        app_file_service: AppFileService,
        chat_repository: ChatRepository,
        notification_service: NotificationService,
        storage_service: KatapultStorageService | None = None,
        ecs_client: EcsClient | None = None,
    ) -> None:
        self._tasks = task_repo
        self._files = app_file_service
        self._chats = chat_repository
        self._notifications = notification_service
        self._storage = storage_service
        self._ecs = ecs_client
        self.job_queue: queue.Queue[TaskJob] = queue.Queue(maxsize=JOB_QUEUE_SIZE)
        self._worker: threading.Thread | None = None
        self._lock = threading.Lock()

    def create_task(self, task: Task) -> Task:
        return self._tasks.create_task(task)

    def get_task(self, task_id: int) -> Task:
        return self._tasks.get_task_by_id(task_id)

    def get_unarchived_tasks(self, user_id: int) -> list[Task]:
        return self._tasks.get_unarchived_tasks(user_id)

    def get_archived_tasks(self, user_id: int) -> list[Task]:
        return self._tasks.get_archived_tasks(user_id)

    def update_task(self, task: Task) -> Task:
        return self._tasks.save_task(task)

    def update_meta(self, task: Task, key: str, value: Any) -> Task:
        task.meta = {**(task.meta or {}), key: value}
        return self.update_task(task)

    def archive_task(self, task_id: int) -> Task:
        return self._tasks.archive_task(task_id)

    def unarchive_task(self, task_id: int) -> Task:
        return self._tasks.unarchive_task(task_id)

    def save_task(self, task: Task) -> Task:
        return self._tasks.save_task(task)

    def fail_task(self, task: Task, message: str) -> None:
        """Mark the task failed, log why and tell its owner."""
        task.status = TaskStatus.FAILED
        self.update_task(task)
        try:
            self.add_log(task.id, message)
        except (RecordNotFoundError, SQLAlchemyError) as exc:
            log.warning("Failed to add log: %s", exc)
        log.info("Task %s failed: %s", task.id, message)
        try:
            self._notifications.send_message(
                Notification(user_id=task.user_id or 0, message="Task failed", title=task.title or "")
            )
        except NotificationError as exc:
            log.warning("Failed to notify user: %s", exc)

    def get_task_files(self, task_id: int, file_type: str) -> list[AppFile]:
        return self._files.get_task_files(task_id, file_type)

    def get_task_file(self, task_id: int, file_type: str) -> AppFile:
        return self._files.get_task_file(task_id, file_type)

    def fully_load_task(self, task: Task) -> Task:
        """Attach the task's uploaded images and its mesh, if it has one."""
        task.images = self.get_task_files(task.id, "upload")
        try:
            task.mesh = self.get_task_file(task.id, "mesh")
        except RecordNotFoundError:
            task.mesh = None
        return task

    def send_message(self, task_id: int, message: str, sender: str) -> ChatMessage:
        chat = ChatMessage(message=message, task_id=task_id, sender=sender)
        return self._chats.create_chat(chat)

    def add_log(self, task_id: int, message: str) -> None:
        self._tasks.add_log(task_id, message)

    def enqueue_job(self, job: TaskJob) -> bool:
        """Queue a job; False when the queue is full."""
        try:
            self.job_queue.put_nowait(job)
        except queue.Full:
            return False
        return True

    def process_task(self, job: TaskJob) -> dict[str, Any]:
        """Start the container that processes the job's task."""
        if self._ecs is None:
            self._ecs = EcsClient.from_env()
        output = self._ecs.run_task(build_run_task_request(job))
        print("Successfully ran task:")
        for started in output.get("tasks") or []:
            print(f"Task ARN: {started.get('taskArn', '')}")
        return output

    def _run_job(self, job: TaskJob) -> None:
        try:
            self.process_task(job)
        except Exception:
            log.exception("Processing task %s failed", job.task_id)

    def _drain(self) -> None:
        while True:
            job = self.job_queue.get()
            threading.Thread(target=self._run_job, args=(job,), daemon=True).start()

    def start_worker(self) -> None:
        """Start the background thread that hands queued jobs to processing."""
        with self._lock:
            if self._worker is not None:
                return
            self._worker = threading.Thread(target=self._drain, name="task-worker", daemon=True)
            self._worker.start()