import json

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from modelmaker.models import Notification
from modelmaker.services.notification import (
    FCM_SCOPE,
    JWT_BEARER_GRANT,
    NotificationError,
    NotificationService,
)


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self.responses.pop(0)


@pytest.fixture(scope="module")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def credentials(tmp_path, rsa_key):
    pem = rsa_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    data = {
        "client_email": "svc@example.com",
        "private_key": pem,
        "project_id": "demo-project",
        "token_uri": "https://oauth.example.com/token",
    }
    path = tmp_path / "creds.json"
    path.write_text(json.dumps(data))
    return path, data


def token_response():
    return FakeResponse(200, {"access_token": "token", "expires_in": 3600})


def test_build_message_targets_user_topic():
    service = NotificationService(credentials_file="unused.json", session=FakeSession([]))
    message = service.build_message(Notification(user_id=7, title="Title", message="Body"))
    assert message == {
        "message": {"notification": {"title": "Title", "body": "Body"}, "topic": "7"}
    }


def test_send_message_posts_signed_request(credentials, rsa_key):
    path, data = credentials
    session = FakeSession([token_response(), FakeResponse(200, {"name": "projects/x/messages/1"})])
    service = NotificationService(credentials_file=path, session=session)
    notification = Notification(user_id=3, title="Task failed", message="Body")

    result = service.send_message(notification)

    assert result is notification
    token_url, token_kwargs = session.calls[0]
    assert token_url == data["token_uri"]
    assert token_kwargs["data"]["grant_type"] == JWT_BEARER_GRANT
    claims = jwt.decode(
        token_kwargs["data"]["assertion"],
        rsa_key.public_key(),
        algorithms=["RS256"],
        audience=data["token_uri"],
    )
    assert claims["iss"] == data["client_email"]
    assert claims["scope"] == FCM_SCOPE

    send_url, send_kwargs = session.calls[1]
    assert data["project_id"] in send_url
    assert send_kwargs["json"] == service.build_message(notification)
    assert send_kwargs["headers"]["Authorization"] == "Bearer token"


def test_access_token_is_reused(credentials):
    path, _ = credentials
    session = FakeSession(
        [token_response(), FakeResponse(200, {}), FakeResponse(200, {})]
    )
    service = NotificationService(credentials_file=path, session=session)
    service.send_message(Notification(user_id=1))
    service.send_message(Notification(user_id=2))
    assert len(session.calls) == 3


def test_missing_credentials_file(tmp_path):
    service = NotificationService(credentials_file=tmp_path / "missing.json", session=FakeSession([]))
    with pytest.raises(NotificationError):
        service.send_message(Notification(user_id=1))


def test_incomplete_credentials(tmp_path):
    path = tmp_path / "creds.json"
    path.write_text(json.dumps({"client_email": "svc@example.com"}))
    service = NotificationService(credentials_file=path, session=FakeSession([]))
    with pytest.raises(NotificationError, match="private_key"):
        service.send_message(Notification(user_id=1))


def test_http_failure_raises(credentials):
    path, _ = credentials
    session = FakeSession([token_response(), FakeResponse(500, {})])
    service = NotificationService(credentials_file=path, session=session)
    with pytest.raises(NotificationError):
        service.send_message(Notification(user_id=1))