import pytest
from fastapi.testclient import TestClient

from uplite.config import Settings
from uplite.main import create_app

USERNAME = "admin"
PASSWORD = "s3cret"
AUTH = (USERNAME, PASSWORD)


@pytest.fixture
def upload_dir(tmp_path):
    directory = tmp_path / "shared"
    directory.mkdir()
    return directory


@pytest.fixture
def settings(upload_dir):
    return Settings(
        upload_dir=upload_dir,
        username=USERNAME,
        password=PASSWORD,
        max_files_per_request=3,
        max_file_size_bytes=1024,
    )


@pytest.fixture
def client(settings):
    """Fresh app per test, with the lifespan run so the storage manager is initialized."""
    with TestClient(create_app(settings)) as test_client:
        yield test_client


BOUNDARY = "uplite-test-boundary"


def multipart_body(*parts, boundary=BOUNDARY):
    """Encode ``(field, filename, content)`` tuples as a multipart/form-data body."""
    body = b""
    for field, filename, content in parts:
        body += f"--{boundary}\r\n".encode()
        body += f'Content-Disposition: form-data; name="{field}"; filename="{filename}"\r\n'.encode()
        body += b"Content-Type: application/octet-stream\r\n\r\n"
        body += content + b"\r\n"
    body += f"--{boundary}--\r\n".encode()
    return body
