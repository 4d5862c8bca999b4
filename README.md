# modelmaker

`modelmaker` holds the building blocks of a backend for a photogrammetry app:
users create tasks, attach photos of an object, and start a job that turns the
photos into a 3D model (`final.glb`). The package provides the database
models, repositories, services for object storage, identity tokens, push
notifications and job launching, and Flask request handlers for accounts,
collections, reports, uploads and model downloads.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Modules

| Module | Contents |
| --- | --- |
| `modelmaker.models` | SQLAlchemy entities `User`, `Task`, `AppFile`, `ChatMessage`, `TaskLog`, `Collection`, `Report`; enums `TaskStatus`, `ReportType`; value objects `Notification`, `UserAnalytics`, `GeminiConfig`, `WebhookPayload`. Entities serialise with `to_dict()`; `Task`, `Collection`, `Report` and `Notification` parse request bodies with `from_dict()`. |
| `modelmaker.database` | `Database` (engine plus a committing `session()` context manager, `create_schema()`, `reset()`), `build_database_url()` from `DB_*` variables, `connect_database()` |
| `modelmaker.repositories` | One repository per entity; lookups that find nothing raise `RecordNotFoundError`. Archiving collections and reports, and deleting users, is a soft delete. |
| `modelmaker.services.basic` | `AppFileService`, `CollectionsService`, `ReportsService`, `UserService`, `UserAnalyticsService`, `save_temp_file()` |
| `modelmaker.services.auth` | `FirebaseTokenVerifier` (checks RS256 ID tokens against the published certificates), `AuthService` (creates a blank user on first sight of a uid), `AuthToken`, `AuthError` |
| `modelmaker.services.storage` | `KatapultStorageService` for an S3-compatible bucket, `sign_aws_request()` (Signature Version 4), `StorageError` |
| `modelmaker.services.notification` | `NotificationService`, which sends to the topic named after the user id using a service-account file |
| `modelmaker.services.task_service` | `TaskService`, `TaskJob`, `EcsClient`, `build_run_task_request()`; a bounded queue of 100 jobs and a background worker that starts one container run per job |
| `modelmaker.controllers.accounts` | `AuthController`, `NotificationController`, `UserAnalyticsController` |
| `modelmaker.controllers.resources` | `CollectionsController`, `ReportsController`, `UploadController`, `ObjectController` |
| `modelmaker.fileutil` | `copy_file()`, `extract_tar_gz()` |
| `modelmaker.prettyprint` | `format_pretty()`, `pretty_print()` for coloured console output |
| `modelmaker.seeds` | seed helpers and the `modelmaker-seed` command |

## Using it as a library

```python
from modelmaker.database import connect_database
from modelmaker.models import Task, TaskStatus
from modelmaker.repositories import TaskRepository

database = connect_database("sqlite:///modelmaker.db")
tasks = TaskRepository(database)
task = tasks.create_task(Task(title="Vase", status=TaskStatus.INITIAL, user_id=1))
print(tasks.get_task_by_id(task.id).to_dict())
```

Without an argument, `connect_database()` builds a PostgreSQL URL from
`DB_HOST`, `DB_PORT`, `DB_USER`, `DB_PASSWORD`, `DB_NAME` and `DB_TIMEZONE`.

`KatapultStorageService.from_env()` reads `KATAPULT_BUCKET_NAME`,
`KATAPULT_REGION`, `KATAPULT_ENDPOINT`, `KATAPULT_ACCESS_KEY` and
`KATAPULT_SECRET_KEY`; with `APP_ENV=dev` object keys are placed under
`development/`. `EcsClient.from_env()` reads `AWS_REGION` (or
`AWS_DEFAULT_REGION`), `AWS_ACCESS_KEY_ID` and `AWS_SECRET_ACCESS_KEY`, and
`build_run_task_request()` takes the cluster, task definition, subnet,
security group and container name from `AWS_ECS_CLUSTER`,
`AWS_TASK_DEFINITION`, `AWS_SUBNET_ID`, `AWS_SECURITY_GROUP_ID` and
`AWS_CONTAINER_NAME`. `NotificationService` falls back to
`GOOGLE_CREDENTIALS_FILE` when no credentials file is given.

The controller methods are Flask view functions. They read the request from
`flask.request` and expect the signed-in `User` in `flask.g.user` (and, for
`AuthController.verify` with POST, the token subject in `flask.g.token`); the
caller registers them on a Flask application and sets those values.

## Seeding a database

```
modelmaker-seed
```

connects with the `DB_*` variables, creates the schema, a seed user, a
finished task with 83 dummy image records and a mesh record, and copies the
files under `seeds/backup/images` and `seeds/backup/models` (relative to the
working directory) into `uploads/<task id>/` and `objects/<task id>/`. It
exits with status 1 when a database or file operation fails.

## What the package does not do

- There is no server command and no assembled application: the package does
  not register routes, add CORS headers or check `Authorization` headers.
- There are no request handlers for tasks (listing, creating, uploading
  photos, starting jobs, chat, archiving, the job webhook) or for image
  analysis, and no image captioning or chat replies.
- The seeder does not read a `.env` file; the variables must be set in the
  environment.