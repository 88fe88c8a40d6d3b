import json

import httpx
import pytest

from conftest import make_image
from image_api.client import ApiClientError, ImageApiClient, content_type_for_path


class FakeApi:
    """Records requests and answers like the REST API would."""

    def __init__(self):
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/auth/login":
            body = json.loads(request.content)
            if body["password"] != "pw":
                return httpx.Response(401, json={"error": "Invalid credentials", "code": "UNAUTHORIZED"})
            return httpx.Response(200, json={"success": True, "data": {"token": "tok-123"}})
        if request.url.path == "/auth/register":
            return httpx.Response(200, json={"success": True, "data": {"user_id": "u1", "email": "ana@example.com"}})
        if request.url.path.startswith("/images/"):
            if request.headers.get("authorization") != "Bearer tok-123":
                return httpx.Response(401, json={"error": "missing token", "code": "UNAUTHORIZED"})
            return httpx.Response(200, content=b"processed", headers={"content-type": "image/png"})
        return httpx.Response(404, text="not found")


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / "photo.png"
    path.write_bytes(make_image())
    return path


def make_client(api, token=None):
    return ImageApiClient("http://testserver/", token=token, transport=httpx.MockTransport(api))


def test_login_stores_token_for_image_calls(api, image_file):
    with make_client(api) as client:
        assert client.login("ana@example.com", "pw") == "tok-123"
        data, media_type = client.transform("rotate", image_file, {"angle": 90, "unused": None})

    assert data == b"processed"
    assert media_type == "image/png"
    upload = api.requests[-1]
    assert upload.url.path == "/images/rotate"
    assert b'name="angle"' in upload.content
    assert b'name="unused"' not in upload.content
    assert b'filename="photo.png"' in upload.content


def test_register_returns_data(api):
    with make_client(api) as client:
        assert client.register("ana@example.com", "pw") == {"user_id": "u1", "email": "ana@example.com"}


def test_pipeline_sends_operations_json(api, image_file):
    operations = [{"type": "resize", "params": {"width": 10}}]
    with make_client(api, token="tok-123") as client:
        client.pipeline(image_file, operations)

    assert api.requests[-1].url.path == "/images/pipeline"
    assert json.dumps(operations).encode() in api.requests[-1].content


def test_error_response_raises_client_error(api, image_file):
    with make_client(api) as client:
        with pytest.raises(ApiClientError) as exc_info:
            client.login("ana@example.com", "wrong")
        assert exc_info.value.status == 401
        assert exc_info.value.message == "Invalid credentials"

        with pytest.raises(ApiClientError) as exc_info:
            client.transform("rotate", image_file, {"angle": 90})
        assert exc_info.value.code == "UNAUTHORIZED"


def test_unreachable_server_raises_client_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    with ImageApiClient("http://testserver", transport=httpx.MockTransport(refuse)) as client:
        with pytest.raises(ApiClientError) as exc_info:
            client.login("ana@example.com", "pw")
    assert exc_info.value.status == 0


def test_content_type_for_path(tmp_path):
    assert content_type_for_path(tmp_path / "a.JPG") == "image/jpeg"
    assert content_type_for_path(tmp_path / "a.tif") == "image/tiff"
    assert content_type_for_path(tmp_path / "a.bin") == "application/octet-stream"
