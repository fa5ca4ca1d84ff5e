import pytest
from fastapi.testclient import TestClient

from core.config import Settings
from main import create_app

TEST_SECRET = "test-secret-key"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        UPLOAD_DIR=tmp_path / "videos",
        JWT_SECRET_KEY=TEST_SECRET,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def signup(client, username="alice", email="alice@example.com", password="secret123"):
    return client.post(
        "/api/signup",
        json={
            "username": username,
            "email": email,
            "password": password,
            "confirmPassword": password,
        },
    )


@pytest.fixture
def auth_headers(client):
    resp = signup(client)
    assert resp.status_code == 200
    # signup also sets a cookie; drop it so tests control credentials explicitly
    client.cookies.clear()
    return {"Authorization": f"Bearer {resp.json()['token']}"}


def upload(client, headers, data=b"\x00" * 2048, filename="clip.mp4", **fields):
    return client.post(
        "/api/upload",
        headers=headers,
        files={"video": (filename, data, "video/mp4")},
        data=fields,
    )


@pytest.fixture
def uploaded(client, auth_headers):
    """Upload a small file with distinct byte values and return (video, data)."""
    data = bytes(range(256)) * 40
    resp = upload(client, auth_headers, data=data, title="Sample")
    assert resp.status_code == 200
    return resp.json()["video"], data


@pytest.fixture
def signed_in_client():
    """Build a client around a custom app and sign a user up on it."""
    clients = []

    def build(app):
        c = TestClient(app)
        clients.append(c)
        token = signup(c).json()["token"]
        c.cookies.clear()
        return c, {"Authorization": f"Bearer {token}"}

    yield build
    for c in clients:
        c.close()


@pytest.fixture
def anyio_backend():
    return "asyncio"


BOUNDARY = "videoformboundary"
MULTIPART_CONTENT_TYPE = f"multipart/form-data; boundary={BOUNDARY}"


def file_part_head(filename="clip.mp4", name="video"):
    """Opening bytes of a multipart file part, up to where its data starts."""
    return (
        f"--{BOUNDARY}\r\n"
        f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
        "Content-Type: video/mp4\r\n\r\n"
    ).encode()


def form_tail():
    return f"\r\n--{BOUNDARY}--\r\n".encode()
