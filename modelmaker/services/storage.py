"""Object storage on an S3-compatible endpoint."""

from __future__ import annotations

import hashlib
import hmac
import io
import os
from datetime import datetime, timezone
from typing import Any, BinaryIO, Mapping
from urllib.parse import parse_qsl, quote, urlsplit, urlunsplit

import requests


class StorageError(Exception):
    """Raised when an object storage operation fails."""


def _hmac(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode(), hashlib.sha256).digest()


def sign_aws_request(
    method: str,
    url: str,
    headers: Mapping[str, str] | None,
    body: bytes,
    access_key: str,
    secret_key: str,
    region: str,
    service: str,
    now: datetime | None = None,
) -> dict[str, str]:
    """Headers for the request, signed with AWS Signature Version 4.

    The URL path must already be percent-encoded.
    """
    now = now or datetime.now(timezone.utc)
    amz_date = now.strftime("%Y%m%dT%H%M%SZ")
    day = now.strftime("%Y%m%d")
    parts = urlsplit(url)
    payload_hash = hashlib.sha256(body or b"").hexdigest()

    result = dict(headers or {})
    result["x-amz-date"] = amz_date
    result["x-amz-content-sha256"] = payload_hash

    canonical = {key.lower(): " ".join(str(value).split()) for key, value in result.items()}
    canonical["host"] = parts.netloc
    names = sorted(canonical)
    canonical_headers = "".join(f"{name}:{canonical[name]}\n" for name in names)
    signed_headers = ";".join(names)

    query = "&".join(
        f"{quote(k, safe='-_.~')}={quote(v, safe='-_.~')}"
        for k, v in sorted(parse_qsl(parts.query, keep_blank_values=True))
    )
    canonical_request = "\n".join(
        [method.upper(), parts.path or "/", query, canonical_headers, signed_headers, payload_hash]
    )
    scope = f"{day}/{region}/{service}/aws4_request"
    string_to_sign = "\n".join(
        [
            "AWS4-HMAC-SHA256",
            amz_date,
            scope,
            hashlib.sha256(canonical_request.encode()).hexdigest(),
        ]
    )
    signing_key = _hmac(
        _hmac(_hmac(_hmac(("AWS4" + secret_key).encode(), day), region), service), "aws4_request"
    )
    signature = hmac.new(signing_key, string_to_sign.encode(), hashlib.sha256).hexdigest()
    result["Authorization"] = (
        f"AWS4-HMAC-SHA256 Credential={access_key}/{scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )
    return result


class KatapultStorageService:
    """Stores task uploads and generated meshes in an S3-compatible bucket."""

    def __init__(
        self,
        bucket_name: str,
        region: str,
        endpoint: str,
        access_key: str,
        secret_key: str,
        is_dev: bool = False,
        session: Any = None,
    ) -> None:
        self.bucket_name = bucket_name
        self.region = region
        self.endpoint = endpoint
        self.is_dev = is_dev
        self._access_key = access_key
        self._secret_key = secret_key
        self._session = session if session is not None else requests.Session()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "KatapultStorageService":
        environ = os.environ if environ is None else environ
        return cls(
            bucket_name=environ.get("KATAPULT_BUCKET_NAME", ""),
            region=environ.get("KATAPULT_REGION", ""),
            endpoint=environ.get("KATAPULT_ENDPOINT", ""),
            access_key=environ.get("KATAPULT_ACCESS_KEY", ""),
            secret_key=environ.get("KATAPULT_SECRET_KEY", ""),
            is_dev=environ.get("APP_ENV") == "dev",
        )

    def object_key(self, task_id: int, filename: str, file_type: str) -> str:
        folder = "objects" if file_type == "mesh" else "uploads"
        path = f"{folder}/{task_id}/{filename}"
        return "development/" + path if self.is_dev else path

    def file_path(self, path: str) -> str:
        if self.is_dev and not path.startswith("development/"):
            return "development/" + path
        return path

    def _url(self, key: str) -> str:
        parts = urlsplit(self.endpoint)
        if not parts.scheme or not parts.netloc:
            raise StorageError(f"invalid storage endpoint: {self.endpoint!r}")
        host = f"{self.bucket_name}.{parts.netloc}" if self.bucket_name else parts.netloc
        path = f"{parts.path.rstrip('/')}/{quote(key, safe='/-_.~')}"
        return urlunsplit((parts.scheme, host, path, "", ""))

    def _send(self, method: str, key: str, action: str, body: bytes = b"") -> Any:
        url = self._url(key)
        headers = sign_aws_request(
            method, url, {}, body, self._access_key, self._secret_key, self.region, "s3"
        )
        try:
            response = self._session.request(
                method, url, data=body if method == "PUT" else None, headers=headers, timeout=60
            )
        except requests.RequestException as exc:
            raise StorageError(f"failed to {action} file: {exc}") from exc
        if not 200 <= response.status_code < 300:
            raise StorageError(f"failed to {action} file: HTTP {response.status_code}")
        return response

    def upload_file(self, file: Any, task_id: int, file_type: str) -> str:
        """Upload an uploaded form file (anything with a filename and a stream)."""
        filename = getattr(file, "filename", None)
        if not filename:
            raise StorageError("failed to open file: no filename")
        stream = getattr(file, "stream", file)
        return self.upload_from_reader(stream, task_id, filename, file_type)

    def upload_from_reader(
        self, reader: BinaryIO, task_id: int, filename: str, file_type: str
    ) -> str:
        """Upload everything the reader yields; returns the object key."""
        try:
            data = reader.read()
        except OSError as exc:
            raise StorageError(f"failed to read file: {exc}") from exc
        if isinstance(data, str):
            data = data.encode()
        key = self.object_key(task_id, filename, file_type)
        self._send("PUT", key, "upload", bytes(data))
        return key

    def get_file(self, path: str) -> BinaryIO:
        if self.is_dev:
            path = "development/" + path
        response = self._send("GET", self.file_path(path), "get")
        return io.BytesIO(response.content)

    def delete_file(self, task_id: int, filename: str) -> None:
        self._send("DELETE", self.object_key(task_id, filename, ""), "delete")