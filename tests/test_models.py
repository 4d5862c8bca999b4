import pytest

from modelmaker.database import Database
from modelmaker.models import (
    AppFile,
    Collection,
    GeminiConfig,
    Notification,
    Report,
    ReportType,
    Task,
    TaskStatus,
    User,
    UserAnalytics,
    WebhookPayload,
    WeekOfTask,
)


@pytest.fixture
def db():
    database = Database("sqlite://")
    database.create_schema()
    return database


def test_transient_user_json_shape():
    data = User(id=1, firebase_uid="123", email="").to_dict()
    assert data["ID"] == 1
    assert data["CreatedAt"] == "0001-01-01T00:00:00Z"
    assert data["DeletedAt"] is None
    assert data["FirebaseUid"] == "123"


def test_task_status_values():
    assert [s.value for s in TaskStatus] == ["QUEUED", "SUCCESS", "INPROGRESS", "FAILED", "INITIAL"]
    assert ReportType("BUG") is ReportType.BUG


def test_task_from_dict_round_trip():
    task = Task.from_dict({"title": "t", "Status": "QUEUED", "UserId": 3, "Metadata": {"a": 1}})
    out = task.to_dict()
    assert out["Title"] == "t"
    assert out["Status"] == "QUEUED"
    assert out["UserId"] == 3
    assert out["Metadata"] == {"a": 1}
    assert out["Images"] == []


def test_task_from_dict_rejects_bad_input():
    with pytest.raises(ValueError):
        Task.from_dict({"Status": "NOPE"})
    with pytest.raises(ValueError):
        Task.from_dict({"Title": 5})
    with pytest.raises(ValueError):
        Task.from_dict([1])


def test_report_requires_type():
    with pytest.raises(ValueError):
        Report.from_dict({"Title": "x"})
    report = Report.from_dict({"Title": "x", "ReportType": "FEEDBACK", "Rating": 4})
    assert report.to_dict()["ReportType"] == "FEEDBACK"
    assert report.rating == 4


def test_collection_and_notification_from_dict():
    collection = Collection.from_dict({"Name": "c", "ID": 7})
    assert collection.id == 7
    assert collection.to_dict()["Name"] == "c"
    note = Notification.from_dict({"UserID": 2, "Title": "a", "Message": "b"})
    assert note.to_dict() == {"UserID": 2, "Title": "a", "Message": "b"}
    with pytest.raises(ValueError):
        Notification.from_dict({"UserID": -1})


def test_persisted_task_with_files(db):
    with db.session() as s:
        task = Task(title="Seed", status=TaskStatus.SUCCESS, meta={"k": "v"})
        s.add(task)
        s.flush()
        s.add_all(
            [
                AppFile(filename="a.png", url="u", task_id=task.id, file_type="upload"),
                AppFile(filename="final.glb", url="", task_id=task.id, file_type="mesh"),
            ]
        )
    with db.session() as s:
        loaded = s.get(Task, task.id)
        out = loaded.to_dict()
        assert [f["Filename"] for f in out["Images"]] == ["a.png"]
        assert out["Mesh"]["Filename"] == "final.glb"
        assert out["Metadata"] == {"k": "v"}
        assert out["CreatedAt"].endswith("Z")


def test_webhook_env_value():
    payload = WebhookPayload.from_dict(
        {
            "detail": {
                "desiredStatus": "STOPPED",
                "stoppedReason": "Essential container in task exited",
                "overrides": {
                    "containerOverrides": [
                        {"environment": [{"name": "BUCKET_TASK_ID", "value": "4"}]},
                        {"environment": [{"name": "OTHER", "value": "x"}]},
                    ]
                },
            }
        }
    )
    assert payload.env_value("BUCKET_TASK_ID") == "4"
    assert payload.env_value("MISSING") == ""
    assert payload.desired_status == "STOPPED"


def test_gemini_config_and_analytics():
    cfg = GeminiConfig.from_dict(
        {"config": {"gemini_prompts": [{"id": "a", "prompt": "p", "response_type": "text"}]}}
    )
    assert cfg.gemini_prompts[0].prompt == "p"
    analytics = UserAnalytics(tasks_total=2, week_of_tasks=[WeekOfTask("d", 2)])
    assert analytics.to_dict()["WeekOfTasks"] == [{"Date": "d", "Count": 2}]