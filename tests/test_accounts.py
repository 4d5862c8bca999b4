from flask import Flask, g
from sqlalchemy.exc import SQLAlchemyError

from modelmaker.controllers.accounts import (
    AuthController,
    NotificationController,
    UserAnalyticsController,
)
from modelmaker.models import Notification, User, UserAnalytics, WeekOfTask
from modelmaker.repositories import RecordNotFoundError
from modelmaker.services.auth import AuthError
from modelmaker.services.notification import NotificationError


class FakeAuthService:
    def __init__(self, fail=False):
        self.fail = fail
        self.unverified = []

    def verify(self, uid):
        if self.fail:
            raise AuthError("unable to verify user")
        return User(id=1, firebase_uid=uid)

    def unverify(self, user):
        if self.fail:
            raise SQLAlchemyError("boom")
        self.unverified.append(user)


class FakeUserService:
    def __init__(self, fail=False):
        self.fail = fail
        self.updated = []

    def update_user(self, user):
        if self.fail:
            raise SQLAlchemyError("boom")
        self.updated.append(user)
        return user


class FakeNotificationService:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send_message(self, notification):
        if self.fail:
            raise NotificationError("down")
        self.sent.append(notification)
        return notification


class FakeAnalyticsService:
    def __init__(self, analytics=None):
        self.analytics = analytics
        self.asked = []

    def get_analytics(self, user_id):
        self.asked.append(user_id)
        if self.analytics is None:
            raise RecordNotFoundError("user not found")
        return self.analytics


def make_client(user=None, token=None, auth=None, users=None, notifications=None, analytics=None):
    app = Flask(__name__)

    @app.before_request
    def _identity():
        if user is not None:
            g.user = user
        if token is not None:
            g.token = token

    auth_controller = AuthController(auth or FakeAuthService(), users or FakeUserService())
    app.add_url_rule("/verify", view_func=auth_controller.verify, methods=["POST", "PATCH", "PUT"])
    app.add_url_rule("/unverify", view_func=auth_controller.unverify, methods=["POST"])
    app.add_url_rule(
        "/notify",
        view_func=NotificationController(notifications or FakeNotificationService()).send_message,
        methods=["POST"],
    )
    app.add_url_rule(
        "/analytics",
        view_func=UserAnalyticsController(analytics or FakeAnalyticsService()).get_analytics,
    )
    return app.test_client()


def test_verify_post_returns_user_for_token():
    response = make_client(token="token").post("/verify")
    assert response.status_code == 200
    assert response.get_json()["user"]["FirebaseUid"] == "token"


def test_verify_post_without_token():
    response = make_client().post("/verify")
    assert response.status_code == 400
    assert response.get_json() == {"error": "Token not found"}


def test_verify_post_failure_reports_error():
    response = make_client(token="token", auth=FakeAuthService(fail=True)).post("/verify")
    assert response.status_code == 400
    assert response.get_json() == {"error": "unable to verify user"}


def test_verify_patch_updates_email_only():
    user = User(id=1, firebase_uid="uid-1", email="old@example.com", subscription_tier="free")
    users = FakeUserService()
    response = make_client(user=user, users=users).patch(
        "/verify", json={"Email": "new@example.com", "FirebaseUid": "other"}
    )
    assert response.status_code == 200
    assert users.updated == [user]
    assert user.email == "new@example.com"
    assert user.firebase_uid == "uid-1"
    assert response.get_json()["user"]["Email"] == "new@example.com"


def test_verify_patch_invalid_body():
    user = User(id=1)
    response = make_client(user=user).patch("/verify", data="not json")
    assert response.status_code == 400
    assert response.get_json() == {"error": "Invalid request body"}


def test_verify_patch_update_failure():
    user = User(id=1)
    response = make_client(user=user, users=FakeUserService(fail=True)).patch(
        "/verify", json={"Email": "a@example.com"}
    )
    assert response.status_code == 400
    assert response.get_json() == {"error": "boom"}


def test_verify_other_method_not_allowed():
    response = make_client(user=User(id=1)).put("/verify")
    assert response.status_code == 405
    assert response.get_json() == {"error": "Method not allowed"}


def test_unverify():
    user = User(id=1)
    auth = FakeAuthService()
    response = make_client(user=user, auth=auth).post("/unverify")
    assert response.status_code == 200
    assert response.get_json() == {"info": "User unverified successfully"}
    assert auth.unverified == [user]


def test_unverify_failure():
    response = make_client(user=User(id=1), auth=FakeAuthService(fail=True)).post("/unverify")
    assert response.status_code == 400
    assert response.get_json() == {"error": "boom"}


def test_send_notification_round_trip():
    notifications = FakeNotificationService()
    body = {"UserID": 2, "Title": "Hello", "Message": "World"}
    response = make_client(notifications=notifications).post("/notify", json=body)
    assert response.status_code == 200
    assert response.get_json() == {"notification": body}
    assert notifications.sent == [Notification(user_id=2, title="Hello", message="World")]


def test_send_notification_invalid_body():
    response = make_client().post("/notify", json=["not", "an", "object"])
    assert response.status_code == 400
    assert response.get_json() == {"error": "Invalid request body"}


def test_send_notification_failure():
    response = make_client(notifications=FakeNotificationService(fail=True)).post(
        "/notify", json={"UserID": 1}
    )
    assert response.status_code == 500
    assert response.get_json() == {"error": "Failed to send notification"}


def test_get_analytics():
    analytics = UserAnalytics(tasks_total=2, week_of_tasks=[WeekOfTask(date="01.02.2024", count=2)])
    service = FakeAnalyticsService(analytics)
    response = make_client(user=User(id=5), analytics=service).get("/analytics")
    assert response.status_code == 200
    assert response.get_json() == {"analytics": analytics.to_dict()}
    assert service.asked == [5]


def test_get_analytics_failure():
    response = make_client(user=User(id=5)).get("/analytics")
    assert response.status_code == 500
    assert response.get_json() == {"error": "user not found"}