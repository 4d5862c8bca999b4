"""Account endpoints: sign-in, profile updates, notifications and analytics."""

from __future__ import annotations

from typing import Any

from flask import g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from modelmaker.models import Notification
from modelmaker.services.auth import AuthError, AuthService
from modelmaker.services.basic import UserAnalyticsService, UserService
from modelmaker.services.notification import NotificationError, NotificationService


def _error(message: str, status: int) -> Any:
    return jsonify({"error": message}), status


class AuthController:
    """Verifies, updates and removes the signed-in user."""

    def __init__(self, auth_service: AuthService, user_service: UserService) -> None:
        self._auth = auth_service
        self._users = user_service

    def verify(self) -> Any:
        if request.method == "POST":
            token = g.get("token")
            if token is None:
                return _error("Token not found", 400)
            try:
                user = self._auth.verify(token)
            except AuthError as exc:
                return _error(str(exc), 400)
            return jsonify({"user": user.to_dict()}), 200

        if request.method == "PATCH":
            user = g.user
            body = request.get_json(silent=True)
            if not isinstance(body, dict):
                return _error("Invalid request body", 400)
            email = next((value for key, value in body.items() if key.lower() == "email"), None)
            if email is not None and not isinstance(email, str):
                return _error("Invalid request body", 400)
            user.email = email or ""
            try:
                self._users.update_user(user)
            except (SQLAlchemyError, LookupError, ValueError) as exc:
                return _error(str(exc), 400)
            return jsonify({"user": user.to_dict()}), 200

        return _error("Method not allowed", 405)

    def unverify(self) -> Any:
        try:
            self._auth.unverify(g.user)
        except (SQLAlchemyError, LookupError, AuthError) as exc:
            return _error(str(exc), 400)
        return jsonify({"info": "User unverified successfully"}), 200


class NotificationController:
    """Sends a notification described by the request body."""

    def __init__(self, notification_service: NotificationService) -> None:
        self._notifications = notification_service

    def send_message(self) -> Any:
        try:
            notification = Notification.from_dict(request.get_json(silent=True))
        except ValueError:
            return _error("Invalid request body", 400)
        try:
            sent = self._notifications.send_message(notification)
        except NotificationError:
            return _error("Failed to send notification", 500)
        return jsonify({"notification": sent.to_dict()}), 200


class UserAnalyticsController:
    """Usage statistics of the signed-in user."""

    def __init__(self, user_analytics_service: UserAnalyticsService) -> None:
        self._analytics = user_analytics_service

    def get_analytics(self) -> Any:
        try:
            analytics = self._analytics.get_analytics(g.user.id)
        except (LookupError, SQLAlchemyError) as exc:
            return _error(str(exc), 500)
        return jsonify({"analytics": analytics.to_dict()}), 200