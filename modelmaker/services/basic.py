"""Thin services over the repositories, plus temporary file storage."""

from __future__ import annotations

import shutil
import tempfile
from typing import BinaryIO

from modelmaker.models import AppFile, Collection, Report, User, UserAnalytics
from modelmaker.repositories import (
    AppFileRepository,
    CollectionsRepository,
    RecordNotFoundError,
    ReportsRepository,
    UserAnalyticsRepository,
    UserRepository,
)


class AppFileService:
    """Stores and looks up files attached to tasks."""

    def __init__(self, app_file_repo: AppFileRepository) -> None:
        self._repo = app_file_repo

    def save(self, app_file: AppFile) -> AppFile:
        return self._repo.save_app_file(app_file)

    def get_task_files(self, task_id: int, file_type: str) -> list[AppFile]:
        return self._repo.get_app_files_by_task(task_id, file_type)

    def get_task_file(self, task_id: int, file_type: str) -> AppFile:
        """The first file of this type; RecordNotFoundError when there is none."""
        return self._repo.get_app_file_by_task(task_id, file_type)


class CollectionsService:
    """Creates, reads, saves and archives collections."""

    def __init__(self, collections_repo: CollectionsRepository) -> None:
        self._repo = collections_repo

    def create_collection(self, collection: Collection) -> Collection:
        return self._repo.create_collection(collection)

    def get_collection(self, collection_id: int) -> Collection:
        return self._repo.get_collection_by_id(collection_id)

    def get_collections(self, user_id: int) -> list[Collection]:
        return self._repo.get_collections_by_user(user_id)

    def archive_collection(self, collection_id: int) -> None:
        self._repo.archive_collection(collection_id)

    def save_collection(self, collection: Collection) -> Collection:
        return self._repo.save_collection(collection)


class ReportsService:
    """Creates, reads, saves and archives user reports."""

    def __init__(self, reports_repo: ReportsRepository) -> None:
        self._repo = reports_repo

    def create_report(self, report: Report) -> Report:
        return self._repo.create_report(report)

    def get_report(self, report_id: int) -> Report:
        return self._repo.get_report_by_id(report_id)

    def get_reports(self, user_id: int) -> list[Report]:
        return self._repo.get_reports_by_user(user_id)

    def archive_report(self, report_id: int) -> None:
        self._repo.archive_report(report_id)

    def save_report(self, report: Report) -> Report:
        return self._repo.save_report(report)


class UserService:
    """User lookups and updates."""

    def __init__(self, user_repo: UserRepository) -> None:
        self._repo = user_repo

    def get_user_from_firebase_uid(self, uid: str) -> User:
        if not uid:
            raise ValueError("api key is required")
        user = self._repo.get_user_from_firebase_uid(uid)
        if user is None:
            raise RecordNotFoundError("user not found")
        return user

    def update_user(self, user: User) -> User:
        return self._repo.update_user(user)


class UserAnalyticsService:
    """Per-user usage statistics."""

    def __init__(self, user_analytics_repo: UserAnalyticsRepository) -> None:
        self._repo = user_analytics_repo

    def get_analytics(self, user_id: int) -> UserAnalytics:
        return self._repo.get_analytics(user_id)


def save_temp_file(stream: BinaryIO) -> str:
    """Copy a stream into a new temporary file and return its path."""
    with tempfile.NamedTemporaryFile(prefix="sample", delete=False) as target:
        shutil.copyfileobj(stream, target)
        return target.name