import os

import anyio
import httpx
import pytest

from conftest import MULTIPART_CONTENT_TYPE, file_part_head, form_tail, upload
from core.errors import ValidationError
from main import create_app
from schemas.user import Identity
from services.registry import InMemoryVideoRepository
from services.storage import StoragePathResolver
from services.video_service import VideoService


def stored_files(settings):
    return sorted(p.name for p in settings.UPLOAD_DIR.iterdir())


def test_upload_ten_megabytes_and_list(client, auth_headers, settings):
    data = os.urandom(10 * 1024 * 1024)
    resp = upload(client, auth_headers, data=data, filename="movie.mp4", title="Test")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    video = body["video"]
    assert video["title"] == "Test"
    assert video["size"] == len(data)
    assert video["duration"] == 0
    assert video["owner_name"] == "alice"
    assert video["stored_filename"] == f"{video['id']}.mp4"
    assert video["url"] == f"/api/videos/{video['stored_filename']}"
    assert (settings.UPLOAD_DIR / video["stored_filename"]).read_bytes() == data

    listing = client.get("/api/videos").json()
    assert [v["id"] for v in listing] == [video["id"]]
    assert listing[0]["title"] == "Test"
    assert listing[0]["duration"] == 0

    part = client.get(video["url"], headers={"Range": "bytes=0-1023"})
    assert part.status_code == 206
    assert len(part.content) == 1024
    assert part.content == data[:1024]


def test_title_and_metadata_fields(client, auth_headers):
    resp = upload(
        client,
        auth_headers,
        filename="holiday.webm",
        duration="93.5",
        thumbnail="/images/holiday.jpg",
    )
    assert resp.status_code == 200
    video = resp.json()["video"]
    assert video["title"] == "holiday.webm"
    assert video["duration"] == 93.5
    assert video["thumbnail"] == "/images/holiday.jpg"
    assert video["stored_filename"].endswith(".webm")


def test_default_thumbnail_and_extension(client, auth_headers):
    video = upload(client, auth_headers, filename="noext").json()["video"]
    assert video["stored_filename"].endswith(".mp4")
    assert video["thumbnail"] == "/images/default-thumbnail.jpg"


def test_owner_comes_from_token_not_form(client, auth_headers):
    resp = upload(client, auth_headers, owner_id="someone-else", owner_name="mallory")
    video = resp.json()["video"]
    me = client.get("/api/user", headers=auth_headers).json()["user"]
    assert video["owner_id"] == me["id"]
    assert video["owner_name"] == "alice"


def test_upload_requires_token(client, settings):
    resp = upload(client, {})
    assert resp.status_code == 401
    assert resp.json() == {"error": "No token provided"}
    assert stored_files(settings) == []


def test_upload_rejects_bad_token(client):
    resp = upload(client, {"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 403
    assert resp.json() == {"error": "Invalid token"}


def test_missing_file_is_validation_error(client, auth_headers):
    resp = client.post("/api/upload", headers=auth_headers, data={"title": "x"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "No file uploaded"}


def test_invalid_duration(client, auth_headers, settings):
    resp = upload(client, auth_headers, duration="long")
    assert resp.status_code == 400
    assert stored_files(settings) == []
    assert client.get("/api/videos").json() == []


def test_size_limit_enforced_while_streaming(settings, signed_in_client):
    small = settings.model_copy(update={"MAX_UPLOAD_SIZE": 1024})
    c, headers = signed_in_client(create_app(small))

    resp = upload(c, headers, data=b"x" * 4096)
    assert resp.status_code == 413
    assert "error" in resp.json()
    assert stored_files(settings) == []
    assert c.get("/api/videos").json() == []


def test_declared_length_over_limit_rejected_early(settings, signed_in_client):
    small = settings.model_copy(update={"MAX_UPLOAD_SIZE": 1024})
    c, headers = signed_in_client(create_app(small))

    resp = upload(c, headers, data=b"x" * (200 * 1024))
    assert resp.status_code == 413
    assert stored_files(settings) == []


class FailingRepository(InMemoryVideoRepository):
    def insert(self, record):
        raise RuntimeError("registry unavailable")


def test_registry_failure_removes_written_file(settings, signed_in_client):
    c, headers = signed_in_client(create_app(settings, video_repository=FailingRepository()))

    resp = upload(c, headers)
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to register video"}
    assert stored_files(settings) == []


@pytest.mark.anyio
async def test_concurrent_uploads_do_not_collide(app, settings):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        resp = await ac.post(
            "/api/signup",
            json={
                "username": "bob",
                "email": "bob@example.com",
                "password": "secret123",
                "confirmPassword": "secret123",
            },
        )
        headers = {"Authorization": f"Bearer {resp.json()['token']}"}
        before = len((await ac.get("/api/videos")).json())

        results = {}

        async def send(name, payload):
            r = await ac.post(
                "/api/upload",
                headers=headers,
                files={"video": (f"{name}.mp4", payload, "video/mp4")},
                data={"title": name},
            )
            results[name] = r

        async with anyio.create_task_group() as tg:
            tg.start_soon(send, "one", os.urandom(300 * 1024))
            tg.start_soon(send, "two", os.urandom(300 * 1024))

        assert all(r.status_code == 200 for r in results.values())
        ids = {r.json()["video"]["id"] for r in results.values()}
        assert len(ids) == 2

        listing = (await ac.get("/api/videos")).json()
        assert len(listing) == before + 2
        assert len(stored_files(settings)) == 2


async def _signup_token(ac):
    resp = await ac.post(
        "/api/signup",
        json={
            "username": "carol",
            "email": "carol@example.com",
            "password": "secret123",
            "confirmPassword": "secret123",
        },
    )
    return resp.json()["token"]


@pytest.mark.anyio
async def test_chunked_upload_without_length_is_stored(app, settings):
    data = os.urandom(64 * 1024)

    async def body():
        yield file_part_head("chunked.mp4")
        for i in range(0, len(data), 4096):
            yield data[i:i + 4096]
        yield form_tail()

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        token = await _signup_token(ac)
        resp = await ac.post(
            "/api/upload",
            headers={"Authorization": f"Bearer {token}", "Content-Type": MULTIPART_CONTENT_TYPE},
            content=body(),
        )

    assert "content-length" not in resp.request.headers
    assert resp.status_code == 200
    video = resp.json()["video"]
    assert video["size"] == len(data)
    assert video["title"] == "chunked.mp4"
    assert (settings.UPLOAD_DIR / video["stored_filename"]).read_bytes() == data


@pytest.mark.anyio
async def test_chunked_upload_over_limit_stops_reading(settings):
    small = settings.model_copy(update={"MAX_UPLOAD_SIZE": 1024})
    app = create_app(small)
    chunks_sent = []
    total_chunks = 256

    async def body():
        yield file_part_head()
        for i in range(total_chunks):
            chunks_sent.append(i)
            yield b"x" * 512
        yield form_tail()

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        token = await _signup_token(ac)
        resp = await ac.post(
            "/api/upload",
            headers={"Authorization": f"Bearer {token}", "Content-Type": MULTIPART_CONTENT_TYPE},
            content=body(),
        )
        listing = (await ac.get("/api/videos")).json()

    assert "content-length" not in resp.request.headers
    assert resp.status_code == 413
    assert resp.json() == {"error": "File exceeds the 1024 byte limit"}
    # the body was abandoned at the limit, not read to the end
    assert len(chunks_sent) < total_chunks
    assert stored_files(settings) == []
    assert listing == []


@pytest.fixture
def video_service(tmp_path):
    storage = StoragePathResolver(tmp_path / "videos")
    storage.ensure_root()
    repository = InMemoryVideoRepository()
    service = VideoService(repository=repository, storage=storage, max_upload_size=1024 * 1024)
    return service, storage, repository


OWNER = Identity(id="u1", username="alice", email="alice@example.com")


@pytest.mark.anyio
async def test_cancelled_upload_leaves_nothing_behind(video_service):
    service, storage, repository = video_service

    async def body():
        yield file_part_head() + b"y" * 4096
        raise anyio.get_cancelled_exc_class()()

    with pytest.raises(anyio.get_cancelled_exc_class()):
        await service.receive(owner=OWNER, body=body(), content_type=MULTIPART_CONTENT_TYPE)

    assert list(storage.root.iterdir()) == []
    assert len(repository) == 0
    assert repository.list_all() == []


@pytest.mark.anyio
async def test_second_video_part_rejected(video_service):
    service, storage, repository = video_service

    async def body():
        yield file_part_head("a.mp4") + b"a" * 100 + b"\r\n"
        yield file_part_head("b.mp4") + b"b" * 100
        yield form_tail()

    with pytest.raises(ValidationError):
        await service.receive(owner=OWNER, body=body(), content_type=MULTIPART_CONTENT_TYPE)

    assert list(storage.root.iterdir()) == []
    assert len(repository) == 0


@pytest.mark.anyio
async def test_truncated_video_part_rejected(video_service):
    service, storage, repository = video_service

    async def body():
        yield file_part_head() + b"c" * 2048

    with pytest.raises(ValidationError):
        await service.receive(owner=OWNER, body=body(), content_type=MULTIPART_CONTENT_TYPE)

    assert list(storage.root.iterdir()) == []
    assert len(repository) == 0
