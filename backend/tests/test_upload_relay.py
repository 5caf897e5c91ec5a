import uuid
from types import SimpleNamespace

import httpx
import openai
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import get_db
from app.core.errors import DatabaseWriteError, NotFoundError
from app.main import app
from app.models import File
from app.services import upload_relay
from app.services.file_mirror import FileMirror, get_file_mirror
from app.services.openai_settings import OpenAISettings
from app.services.upload_relay import UploadRelay
from tests.conftest import auth_headers

UPLOAD_URL = "/functions/v1/upload-file"


class FailingCommitSession(AsyncSession):
    async def commit(self):
        raise SQLAlchemyError("database unavailable")


def _stored_objects(storage):
    return [p for p in storage.bucket_dir.rglob("*") if p.is_file()]


def _form(user, project):
    return {"projectId": str(project.id), "userId": str(user.id)}


class TestUploadValidation:
    async def test_preflight(self, client):
        response = await client.options(UPLOAD_URL)
        assert response.status_code == 200

    @pytest.mark.parametrize("missing", ["file", "projectId", "userId"])
    async def test_missing_parameters(self, client, user, project, missing):
        data = _form(user, project)
        files = {"file": ("notes.txt", b"hello", "text/plain")}
        if missing == "file":
            files = None
        else:
            data.pop(missing)

        response = await client.post(UPLOAD_URL, headers=auth_headers(user), data=data, files=files)
        assert response.status_code == 400
        assert response.json() == {"error": "Missing required parameters: file, projectId, and userId"}

    async def test_invalid_project_id(self, client, user):
        response = await client.post(
            UPLOAD_URL,
            headers=auth_headers(user),
            data={"projectId": "not-a-uuid", "userId": str(user.id)},
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 400
        assert "projectId" in response.json()["error"]

    async def test_unauthenticated(self, client, user, project):
        response = await client.post(
            UPLOAD_URL,
            data=_form(user, project),
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated"}

    async def test_user_id_must_match_caller(self, client, storage, user, other_user, project):
        response = await client.post(
            UPLOAD_URL,
            headers=auth_headers(other_user),
            data=_form(user, project),
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 403
        assert _stored_objects(storage) == []

    async def test_project_of_other_user(self, client, db, storage, other_user, project):
        response = await client.post(
            UPLOAD_URL,
            headers=auth_headers(other_user),
            data=_form(other_user, project),
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 404
        assert response.json() == {"error": "Project not found"}
        assert _stored_objects(storage) == []
        assert await db.scalar(select(func.count()).select_from(File)) == 0


class TestUpload:
    async def test_upload_stores_object_and_metadata(self, client, db, storage, user, project):
        content = b"a" * 5120
        response = await client.post(
            UPLOAD_URL,
            headers=auth_headers(user),
            data=_form(user, project),
            files={"file": ("notes.txt", content, "text/plain")},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "File uploaded successfully"
        assert body["openaiFileId"] is None
        assert body["file"]["name"] == "notes.txt"
        assert body["file"]["size"] == 5120
        assert body["file"]["type"] == "text/plain"
        assert body["file"]["project_id"] == str(project.id)

        key = body["file"]["storage_path"]
        assert key.startswith(f"{user.id}/")
        assert key.endswith(".txt")
        assert await storage.download(key) == content

        record = (await db.execute(select(File))).scalar_one()
        assert str(record.id) == body["file"]["id"]

    async def test_upload_without_content_type(self, db, storage, user, project):
        relay = UploadRelay(db, storage)
        result = await relay.run(
            user_id=user.id,
            project_id=project.id,
            filename="blob",
            content=b"\x00\x01",
            content_type=None,
        )
        assert result.file.type == "application/octet-stream"
        assert "." not in result.file.storage_path.split("/", 1)[1]

    async def test_mirror_called_once_when_configured(self, client, mirror, user, project):
        app.dependency_overrides[get_file_mirror] = lambda: mirror

        response = await client.post(
            UPLOAD_URL,
            headers=auth_headers(user),
            data=_form(user, project),
            files={"file": ("notes.txt", b"a" * 5120, "text/plain")},
        )
        assert response.status_code == 200
        assert response.json()["openaiFileId"] == "file-abc123"
        assert len(mirror.calls) == 1
        assert mirror.calls[0][0] == "notes.txt"

    async def test_mirror_skipped_above_threshold(self, client, mirror, monkeypatch, user, project):
        app.dependency_overrides[get_file_mirror] = lambda: mirror
        monkeypatch.setattr(upload_relay.settings, "mirror_max_bytes", 1024)

        response = await client.post(
            UPLOAD_URL,
            headers=auth_headers(user),
            data=_form(user, project),
            files={"file": ("big.bin", b"b" * 2048, "application/octet-stream")},
        )
        assert response.status_code == 200
        assert response.json()["openaiFileId"] is None
        assert mirror.calls == []

    async def test_mirror_failure_does_not_fail_upload(self, client, user, project):
        app.dependency_overrides[get_file_mirror] = lambda: mirror_failing()

        response = await client.post(
            UPLOAD_URL,
            headers=auth_headers(user),
            data=_form(user, project),
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 200
        assert response.json()["openaiFileId"] is None

    async def test_mirror_timeout_does_not_fail_upload(self, client, db, user, project):
        app.dependency_overrides[get_file_mirror] = lambda: mirror_failing(TimeoutError("socket stalled"))

        response = await client.post(
            UPLOAD_URL,
            headers=auth_headers(user),
            data=_form(user, project),
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 200
        assert response.json()["openaiFileId"] is None
        assert await db.scalar(select(func.count()).select_from(File)) == 1

    async def test_unexpected_error_is_not_leaked(self, client, user, project):
        class BrokenMirror:
            async def mirror(self, filename, content, content_type):
                raise RuntimeError("SELECT secret FROM internals")

        app.dependency_overrides[get_file_mirror] = lambda: BrokenMirror()

        response = await client.post(
            UPLOAD_URL,
            headers=auth_headers(user),
            data=_form(user, project),
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 500
        assert response.json() == {"error": "Unknown error occurred"}

    async def test_oversized_upload_rejected(self, client, monkeypatch, storage, user, project):
        from app.api.functions import upload_file

        monkeypatch.setattr(upload_file.settings, "upload_max_bytes", 100)
        response = await client.post(
            UPLOAD_URL,
            headers=auth_headers(user),
            data=_form(user, project),
            files={"file": ("big.txt", b"c" * 101, "text/plain")},
        )
        assert response.status_code == 413
        assert "error" in response.json()
        assert _stored_objects(storage) == []

    async def test_metadata_failure_removes_object(self, client, engine, storage, user, project):
        async def _failing_db():
            async with FailingCommitSession(engine, expire_on_commit=False) as session:
                yield session

        app.dependency_overrides[get_db] = _failing_db

        response = await client.post(
            UPLOAD_URL,
            headers=auth_headers(user),
            data=_form(user, project),
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to save file metadata"}
        assert _stored_objects(storage) == []

    async def test_relay_raises_on_metadata_failure(self, engine, storage, user, project):
        async with FailingCommitSession(engine, expire_on_commit=False) as session:
            relay = UploadRelay(session, storage)
            with pytest.raises(DatabaseWriteError):
                await relay.run(
                    user_id=user.id,
                    project_id=project.id,
                    filename="notes.txt",
                    content=b"hello",
                    content_type="text/plain",
                )
        assert _stored_objects(storage) == []

    async def test_unknown_project(self, db, storage, user):
        relay = UploadRelay(db, storage)
        with pytest.raises(NotFoundError, match="Project not found"):
            await relay.run(
                user_id=user.id,
                project_id=uuid.uuid4(),
                filename="notes.txt",
                content=b"hello",
                content_type="text/plain",
            )


def mirror_failing(error: Exception | None = None) -> FileMirror:
    async def _create(**kwargs):
        raise error or openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/files"))

    client = SimpleNamespace(files=SimpleNamespace(create=_create))
    settings = OpenAISettings(base_url="https://api.openai.com/v1", api_key="sk-test", model="gpt-4o-mini", timeout=5)
    return FileMirror(settings, client=client)


class TestFileMirror:
    async def test_returns_file_id(self):
        calls = []

        async def _create(**kwargs):
            calls.append(kwargs)
            return SimpleNamespace(id="file-xyz")

        client = SimpleNamespace(files=SimpleNamespace(create=_create))
        settings = OpenAISettings(base_url="https://api.openai.com/v1", api_key="sk-test", model="gpt-4o-mini", timeout=5)
        mirror = FileMirror(settings, client=client)

        assert await mirror.mirror("notes.txt", b"hello", "text/plain") == "file-xyz"
        assert calls == [{"file": ("notes.txt", b"hello", "text/plain"), "purpose": "assistants"}]

    async def test_failure_returns_none(self):
        assert await mirror_failing().mirror("notes.txt", b"hello", "text/plain") is None

    async def test_non_openai_failure_returns_none(self):
        mirror = mirror_failing(TimeoutError("socket stalled"))
        assert await mirror.mirror("notes.txt", b"hello", "text/plain") is None

    def test_disabled_without_api_key(self):
        assert get_file_mirror() is None
