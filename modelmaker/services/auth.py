"""Identity token verification and user sign-in."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import jwt
import requests
from cryptography import x509
from sqlalchemy.exc import SQLAlchemyError

from modelmaker.models import User
from modelmaker.repositories import UserRepository

CERTS_URL = (
    "https://www.googleapis.com/robot/v1/metadata/x509/"
    "securetoken%40system.gserviceaccount.com"
)
ISSUER_PREFIX = "https://securetoken.google.com/"
CLOCK_SKEW_SECONDS = 300
_DEFAULT_CACHE_SECONDS = 3600


class AuthError(Exception):
    """Raised when a token or a user cannot be verified."""


@dataclass(frozen=True)
class AuthToken:
    uid: str
    claims: dict[str, Any] = field(default_factory=dict)


class TokenVerifier(Protocol):
    def verify_id_token(self, token: str) -> AuthToken: ...


def _max_age(cache_control: str) -> int:
    match = re.search(r"max-age=(\d+)", cache_control or "")
    return int(match.group(1)) if match else _DEFAULT_CACHE_SECONDS


class FirebaseTokenVerifier:
    """Verifies identity-platform ID tokens against the published signing certificates."""

    certs_url = CERTS_URL

    def __init__(self, project_id: str, session: requests.Session | None = None) -> None:
        if not project_id:
            raise ValueError("project id is required")
        self.project_id = project_id
        self._session = session if session is not None else requests.Session()
        self._keys: dict[str, Any] = {}
        self._expires_at = 0.0

    def _public_keys(self) -> dict[str, Any]:
        if self._keys and time.time() < self._expires_at:
            return self._keys
        try:
            response = self._session.get(self.certs_url, timeout=10)
            response.raise_for_status()
            certs = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise AuthError(f"unable to fetch signing certificates: {exc}") from exc
        if not isinstance(certs, dict):
            raise AuthError("unexpected signing certificate document")
        try:
            self._keys = {
                kid: x509.load_pem_x509_certificate(pem.encode()).public_key()
                for kid, pem in certs.items()
            }
        except (ValueError, AttributeError) as exc:
            raise AuthError(f"invalid signing certificate: {exc}") from exc
        self._expires_at = time.time() + _max_age(response.headers.get("Cache-Control", ""))
        return self._keys

    def verify_id_token(self, token: str) -> AuthToken:
        if not token:
            raise AuthError("token is empty")
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as exc:
            raise AuthError(f"invalid token: {exc}") from exc
        if header.get("alg") != "RS256":
            raise AuthError("token has an unexpected signing algorithm")
        key = self._public_keys().get(header.get("kid"))
        if key is None:
            raise AuthError("token was not signed by a known key")
        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=["RS256"],
                audience=self.project_id,
                issuer=ISSUER_PREFIX + self.project_id,
                leeway=CLOCK_SKEW_SECONDS,
                options={"require": ["exp", "iat", "sub", "aud", "iss"]},
            )
        except jwt.PyJWTError as exc:
            raise AuthError(f"token verification failed: {exc}") from exc
        uid = claims.get("sub")
        if not isinstance(uid, str) or not uid or len(uid) > 128:
            raise AuthError("token has an invalid subject")
        auth_time = claims.get("auth_time")
        if isinstance(auth_time, (int, float)) and auth_time > time.time() + CLOCK_SKEW_SECONDS:
            raise AuthError("token has an auth time in the future")
        return AuthToken(uid=uid, claims=claims)


class AuthService:
    """Validates tokens and maps their subjects onto local users."""

    def __init__(self, verifier: TokenVerifier, user_repo: UserRepository) -> None:
        self._verifier = verifier
        self._users = user_repo

    def validate_token(self, token: str) -> AuthToken:
        if not token:
            raise AuthError("token is empty")
        return self._verifier.verify_id_token(token)

    def verify(self, uid: str) -> User:
        """The user for this uid, created blank when it does not exist yet."""
        try:
            user = self._users.get_user_from_firebase_uid(uid)
        except (SQLAlchemyError, LookupError) as exc:
            raise AuthError("unable to verify user") from exc
        if user is not None:
            return user
        user = User(firebase_uid=uid)
        try:
            return self._users.create(user)
        except SQLAlchemyError as exc:
            raise AuthError("unable to verify user") from exc

    def unverify(self, user: User) -> None:
        self._users.delete_user(user)