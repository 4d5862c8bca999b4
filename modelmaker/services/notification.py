"""Push notifications sent through the cloud messaging HTTP API."""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any

import jwt
import requests

from modelmaker.models import Notification

log = logging.getLogger(__name__)

FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
_TOKEN_LIFETIME = 3600
_REFRESH_MARGIN = 60


class NotificationError(Exception):
    """Raised when a notification cannot be sent."""


class NotificationService:
    """Sends notifications to the topic named after the receiving user's id."""

    def __init__(self, credentials_file: str | os.PathLike | None = None, session: Any = None) -> None:
        self.credentials_file = credentials_file
        self._session = session if session is not None else requests.Session()
        self._credentials: dict[str, Any] | None = None
        self._access_token: str | None = None
        self._token_expiry = 0.0

    def _load_credentials(self) -> dict[str, Any]:
        if self._credentials is not None:
            return self._credentials
        path = self.credentials_file or os.environ.get("GOOGLE_CREDENTIALS_FILE")
        if not path:
            raise NotificationError("no credentials file configured")
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise NotificationError(f"unable to read credentials: {exc}") from exc
        if not isinstance(data, dict):
            raise NotificationError("credentials file must hold a JSON object")
        missing = [name for name in ("client_email", "private_key", "project_id") if not data.get(name)]
        if missing:
            raise NotificationError(f"credentials are missing: {', '.join(missing)}")
        self._credentials = data
        return data

    def _post(self, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._session.post(url, timeout=30, **kwargs)
        except requests.RequestException as exc:
            raise NotificationError(f"request failed: {exc}") from exc
        if not 200 <= response.status_code < 300:
            raise NotificationError(f"request failed: HTTP {response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            raise NotificationError("response is not JSON") from exc
        if not isinstance(body, dict):
            raise NotificationError("unexpected response document")
        return body

    def _token(self, credentials: dict[str, Any]) -> str:
        now = time.time()
        if self._access_token and now < self._token_expiry - _REFRESH_MARGIN:
            return self._access_token
        issued = int(now)
        token_uri = credentials.get("token_uri") or DEFAULT_TOKEN_URI
        claims = {
            "iss": credentials["client_email"],
            "scope": FCM_SCOPE,
            "aud": token_uri,
            "iat": issued,
            "exp": issued + _TOKEN_LIFETIME,
        }
        key_id = credentials.get("private_key_id")
        try:
            assertion = jwt.encode(
                claims,
                credentials["private_key"],
                algorithm="RS256",
                headers={"kid": key_id} if key_id else None,
            )
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise NotificationError(f"unable to sign token request: {exc}") from exc
        body = self._post(token_uri, data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion})
        access = body.get("access_token")
        if not isinstance(access, str) or not access:
            raise NotificationError("token response has no access token")
        expires_in = body.get("expires_in")
        lifetime = expires_in if isinstance(expires_in, (int, float)) else _TOKEN_LIFETIME
        self._access_token = access
        self._token_expiry = now + lifetime
        return access

    def build_message(self, notification: Notification) -> dict[str, Any]:
        """The request body for one notification."""
        return {
            "message": {
                "notification": {"title": notification.title, "body": notification.message},
                "topic": str(notification.user_id),
            }
        }

    def send_message(self, notification: Notification) -> Notification:
        credentials = self._load_credentials()
        access = self._token(credentials)
        url = FCM_SEND_URL.format(project_id=credentials["project_id"])
        body = self._post(
            url,
            json=self.build_message(notification),
            headers={"Authorization": f"Bearer {access}"},
        )
        log.info("Notification sent: %s", body.get("name", ""))
        return notification