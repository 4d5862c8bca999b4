"""Collection, report, upload and object endpoints."""

from __future__ import annotations

import logging
import re
from typing import Any, BinaryIO, Iterator

from flask import Response, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from modelmaker.database import Database
from modelmaker.models import AppFile, Collection, Report
from modelmaker.services.basic import CollectionsService, ReportsService
from modelmaker.services.storage import KatapultStorageService, StorageError

log = logging.getLogger(__name__)

_INTEGER = re.compile(r"[+-]?[0-9]+")
_UNSIGNED = re.compile(r"\+?[0-9]+")
_UINT32_MAX = 2**32 - 1
_CHUNK_SIZE = 64 * 1024
_SERVICE_ERRORS = (LookupError, SQLAlchemyError, ValueError)
_BODY_ERRORS = (ValueError, TypeError, KeyError)

GLB_CONTENT_TYPE = "model/gltf-binary"


def _error(message: str, status: int) -> Any:
    return jsonify({"error": message}), status


def _parse_int(value: Any) -> int | None:
    text = str(value)
    return int(text) if _INTEGER.fullmatch(text) else None


def _parse_uint32(value: Any) -> int | None:
    text = str(value)
    if not _UNSIGNED.fullmatch(text):
        return None
    number = int(text)
    return number if number <= _UINT32_MAX else None


def _json_model(model: Any) -> Any:
    """The request body decoded into a model, or None when it is not valid."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return None
    try:
        return model.from_dict(body)
    except _BODY_ERRORS:
        return None


def _stream(file: BinaryIO) -> Iterator[bytes]:
    try:
        yield from iter(lambda: file.read(_CHUNK_SIZE), b"")
    finally:
        file.close()


class CollectionsController:
    """Collections of the signed-in user."""

    def __init__(self, collections_service: CollectionsService) -> None:
        self._collections = collections_service

    def create_collection(self) -> Any:
        collection = _json_model(Collection)
        if collection is None:
            return _error("Invalid request body", 400)
        collection.user_id = g.user.id
        try:
            created = self._collections.create_collection(collection)
        except _SERVICE_ERRORS as exc:
            return _error(str(exc), 400)
        return jsonify({"collection": created.to_dict()}), 201

    def get_collection(self, collection_id: Any) -> Any:
        parsed = _parse_int(collection_id)
        if parsed is None:
            return _error("Invalid collection ID", 400)
        try:
            collection = self._collections.get_collection(parsed)
        except _SERVICE_ERRORS as exc:
            return _error(str(exc), 400)
        return jsonify({"collection": collection.to_dict()}), 200

    def get_collections(self) -> Any:
        try:
            collections = self._collections.get_collections(g.user.id)
        except _SERVICE_ERRORS as exc:
            return _error(str(exc), 400)
        return jsonify({"collections": [c.to_dict() for c in collections]}), 200

    def archive_collection(self, collection_id: Any) -> Any:
        parsed = _parse_int(collection_id)
        if parsed is None:
            return _error("Invalid collection ID", 400)
        try:
            self._collections.archive_collection(parsed)
        except _SERVICE_ERRORS as exc:
            return _error(str(exc), 400)
        return "", 204

    def save_collection(self) -> Any:
        collection = _json_model(Collection)
        if collection is None:
            return _error("Invalid request body", 400)
        collection.user_id = g.user.id
        try:
            saved = self._collections.save_collection(collection)
        except _SERVICE_ERRORS as exc:
            return _error(str(exc), 400)
        return jsonify({"collection": saved.to_dict()}), 200


class ReportsController:
    """Bug reports and feedback of the signed-in user."""

    def __init__(self, reports_service: ReportsService) -> None:
        self._reports = reports_service

    def get_reports(self) -> Any:
        try:
            reports = self._reports.get_reports(g.user.id)
        except _SERVICE_ERRORS as exc:
            return _error(str(exc), 400)
        return jsonify({"reports": [r.to_dict() for r in reports]}), 200

    def get_report_by_id(self, report_id: Any) -> Any:
        parsed = _parse_int(report_id)
        if parsed is None:
            return _error("Invalid report ID", 400)
        try:
            report = self._reports.get_report(parsed)
        except _SERVICE_ERRORS as exc:
            return _error(str(exc), 400)
        return jsonify({"report": report.to_dict()}), 200

    def create_report(self) -> Any:
        report = _json_model(Report)
        if report is None:
            return _error("Invalid request body", 400)
        report.user_id = g.user.id
        try:
            created = self._reports.create_report(report)
        except _SERVICE_ERRORS as exc:
            return _error(str(exc), 400)
        return jsonify({"report": created.to_dict()}), 201

    def archive_report(self, report_id: Any) -> Any:
        parsed = _parse_int(report_id)
        if parsed is None:
            return _error("Invalid report ID", 400)
        try:
            self._reports.archive_report(parsed)
        except _SERVICE_ERRORS as exc:
            return _error(str(exc), 400)
        return jsonify({"message": "Report archived successfully"}), 200

    def save_report(self) -> Any:
        report = _json_model(Report)
        if report is None:
            return _error("Invalid request body", 400)
        try:
            saved = self._reports.save_report(report)
        except _SERVICE_ERRORS as exc:
            return _error(str(exc), 400)
        return jsonify({"report": saved.to_dict()}), 200


class UploadController:
    """Loose uploads and downloads of task files."""

    def __init__(self, storage_service: KatapultStorageService, database: Database) -> None:
        self._storage = storage_service
        self._db = database

    def upload_file(self) -> Any:
        upload = request.files.get("file")
        if upload is None:
            return _error("File upload failed", 400)
        try:
            url = self._storage.upload_file(upload, 0, "upload")
        except StorageError:
            return _error("Unable to save the file", 500)

        image = AppFile(filename=upload.filename, url=url, task_id=0, file_type="")
        record = None
        try:
            with self._db.session() as session:
                session.add(image)
                session.flush()
                record = image.to_dict()
        except SQLAlchemyError as exc:
            log.error("Unable to record uploaded file: %s", exc)
        if record is None:
            record = image.to_dict()
        return jsonify({"message": "File uploaded successfully", "image": record}), 200

    def get_file(self, task_id: Any, filename: str) -> Any:
        parsed = _parse_uint32(task_id)
        if parsed is None:
            return _error("Invalid task ID", 400)
        try:
            file = self._storage.get_file(f"uploads/{parsed}/{filename}")
        except StorageError:
            return _error("Image not found", 404)
        return Response(_stream(file))

    def get_object(self, task_id: Any, filename: str) -> Any:
        parsed = _parse_uint32(task_id)
        if parsed is None:
            return _error("Invalid task ID", 400)
        try:
            file = self._storage.get_file(f"objects/{parsed}/{filename}")
        except StorageError:
            return _error("Object not found", 404)
        return Response(_stream(file))


class ObjectController:
    """Downloads of the finished model of a task."""

    def __init__(self, storage_service: KatapultStorageService) -> None:
        self._storage = storage_service

    def get_object(self, task_id: Any) -> Any:
        parsed = _parse_uint32(task_id)
        if parsed is None:
            return _error("Invalid task ID", 400)
        try:
            file = self._storage.get_file(f"objects/{parsed}/final.glb")
        except StorageError:
            return _error("Object not found", 404)
        return Response(
            _stream(file),
            headers={
                "Content-Type": GLB_CONTENT_TYPE,
                "Content-Disposition": "attachment; filename=final.glb",
            },
        )