import io
import os

import pytest

from modelmaker.database import Database
from modelmaker.models import AppFile, Collection, Report, ReportType, Task, User
from modelmaker.repositories import (
    AppFileRepository,
    CollectionsRepository,
    RecordNotFoundError,
    ReportsRepository,
    TaskRepository,
    UserAnalyticsRepository,
    UserRepository,
)
from modelmaker.services.basic import (
    AppFileService,
    CollectionsService,
    ReportsService,
    UserAnalyticsService,
    UserService,
    save_temp_file,
)


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'test.db'}")
    db.create_schema()
    return db


def make_user(database, uid="uid-1", email="someone@example.com"):
    return UserRepository(database).create(User(firebase_uid=uid, email=email))


def test_app_file_service_save_and_lookup(database):
    service = AppFileService(AppFileRepository(database))
    saved = service.save(AppFile(filename="a.png", url="uploads/7/a.png", task_id=7, file_type="upload"))
    service.save(AppFile(filename="final.glb", url="", task_id=7, file_type="mesh"))
    assert saved.id > 0
    uploads = service.get_task_files(7, "upload")
    assert [f.filename for f in uploads] == ["a.png"]
    assert service.get_task_file(7, "mesh").filename == "final.glb"


def test_app_file_service_missing_file_raises(database):
    service = AppFileService(AppFileRepository(database))
    assert service.get_task_files(3, "upload") == []
    with pytest.raises(RecordNotFoundError):
        service.get_task_file(3, "mesh")


def test_collections_service_lifecycle(database):
    user = make_user(database)
    service = CollectionsService(CollectionsRepository(database))
    collection = service.create_collection(Collection(name="Scans", user_id=user.id))
    assert service.get_collection(collection.id).name == "Scans"

    collection.name = "Renamed"
    service.save_collection(collection)
    assert service.get_collection(collection.id).name == "Renamed"
    assert [c.name for c in service.get_collections(user.id)] == ["Renamed"]

    service.archive_collection(collection.id)
    with pytest.raises(RecordNotFoundError):
        service.get_collection(collection.id)
    assert service.get_collections(user.id) == []


def test_reports_service_lifecycle(database):
    service = ReportsService(ReportsRepository(database))
    report = service.create_report(
        Report(title="crash", body="it broke", report_type=ReportType.BUG, rating=5, user_id=1)
    )
    fetched = service.get_report(report.id)
    assert fetched.title == "crash"
    assert fetched.report_type is ReportType.BUG

    report.title = "crash on start"
    service.save_report(report)
    assert service.get_report(report.id).title == "crash on start"
    assert len(service.get_reports(1)) == 1

    service.archive_report(report.id)
    with pytest.raises(RecordNotFoundError):
        service.get_report(report.id)


def test_user_service_requires_uid(database):
    service = UserService(UserRepository(database))
    with pytest.raises(ValueError, match="api key is required"):
        service.get_user_from_firebase_uid("")


def test_user_service_unknown_user(database):
    service = UserService(UserRepository(database))
    with pytest.raises(RecordNotFoundError, match="user not found"):
        service.get_user_from_firebase_uid("nope")


def test_user_service_lookup_and_update(database):
    make_user(database, uid="uid-9", email="first@example.com")
    service = UserService(UserRepository(database))
    user = service.get_user_from_firebase_uid("uid-9")
    assert user.email == "first@example.com"
    user.email = "second@example.com"
    service.update_user(user)
    assert service.get_user_from_firebase_uid("uid-9").email == "second@example.com"


def test_user_analytics_service_counts(database):
    user = make_user(database)
    tasks = TaskRepository(database)
    tasks.create_task(Task(title="a", user_id=user.id, completed=True))
    tasks.create_task(Task(title="b", user_id=user.id, completed=False))
    tasks.create_task(Task(title="c", user_id=user.id, completed=False))
    CollectionsRepository(database).create_collection(Collection(name="Scans", user_id=user.id))

    analytics = UserAnalyticsService(UserAnalyticsRepository(database)).get_analytics(user.id)
    assert analytics.tasks_total == 3
    assert analytics.tasks_success == 1
    assert analytics.tasks_failed == 2
    assert analytics.collection_total == 1
    assert sum(w.count for w in analytics.week_of_tasks) == 3
    assert [(c.name, c.count) for c in analytics.collections] == [("Scans", 0)]


def test_user_analytics_service_unknown_user(database):
    with pytest.raises(RecordNotFoundError):
        UserAnalyticsService(UserAnalyticsRepository(database)).get_analytics(42)


def test_save_temp_file_round_trip():
    path = save_temp_file(io.BytesIO(b"image bytes"))
    try:
        with open(path, "rb") as handle:
            assert handle.read() == b"image bytes"
        assert os.path.basename(path).startswith("sample")
    finally:
        os.remove(path)