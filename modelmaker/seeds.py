"""Development seed data and file fixtures."""

from __future__ import annotations

import logging
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from modelmaker.database import Database, connect_database
from modelmaker.models import AppFile, Task, TaskStatus, User

log = logging.getLogger(__name__)

FILENAMES = [f"3-{i}.png" for i in range(83)]


@dataclass
class Seed:
    name: str
    run: Callable[[Database], object]


def create_user(database: Database, email: str, firebase_uid: str) -> User | None:
    """Create a user; failures are ignored and give None."""
    user = User(email=email, firebase_uid=firebase_uid)
    try:
        with database.session() as s:
            s.add(user)
    except SQLAlchemyError:
        return None
    return user


def create_file(database: Database, app_file: AppFile) -> AppFile:
    with database.session() as s:
        s.add(app_file)
    return app_file


def create_dummy_files(database: Database, task_id: int) -> list[AppFile]:
    files = [
        AppFile(task_id=task_id, url=f"uploads/{task_id}/{name}", filename=name, file_type="upload")
        for name in FILENAMES
    ]
    for app_file in files:
        create_file(database, app_file)
    return files


def create_dummy_mesh(database: Database) -> AppFile:
    mesh = AppFile(
        task_id=1, url="/objects/1/mvs/final_model.glb", filename="final_model.glb", file_type="mesh"
    )
    return create_file(database, mesh)


def make_backup(root: str | Path = ".") -> None:
    """Move the uploads and objects directories under backup/."""
    root = Path(root)
    dest = root / "backup"
    dest.mkdir(parents=True, exist_ok=True)
    for name in ("uploads", "objects"):
        try:
            (root / name).rename(dest / name)
        except OSError:
            pass


def _copy_tree(src: Path, dest: Path) -> None:
    dest.mkdir(parents=True, exist_ok=True)
    if not src.exists():
        raise FileNotFoundError(src)
    for path in src.rglob("*"):
        if path.is_file():
            target = dest / path.relative_to(src)
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(path, target)


def copy_raw_model(task_id: int, root: str | Path = ".") -> None:
    root = Path(root)
    _copy_tree(root / "seeds" / "backup" / "models", root / "objects" / str(task_id))


def copy_raw_images(task_id: int, root: str | Path = ".") -> None:
    root = Path(root)
    _copy_tree(root / "seeds" / "backup" / "images", root / "uploads" / str(task_id))


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO)
    try:
        database = connect_database()
        log.info("CreateTestUser")
        create_user(database, "Seed User", "seed-user-uid")

        log.info("CreateTask")
        task = Task(
            title="Seed Task",
            description="This is a seed task",
            completed=True,
            user_id=1,
            status=TaskStatus.SUCCESS,
            meta={},
        )
        with database.session() as s:
            s.add(task)

        log.info("CreateDummyFiles")
        create_dummy_files(database, task.id)
        create_dummy_mesh(database)

        copy_raw_images(task.id)
        copy_raw_model(task.id)
    except (SQLAlchemyError, OSError) as exc:
        log.error("Seeding failed: %s", exc)
        return 1
    log.info("Seeding completed successfully")
    return 0


if __name__ == "__main__":
    sys.exit(main())