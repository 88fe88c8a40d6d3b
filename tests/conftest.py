"""Shared fixtures for the image API tests.

Images are generated in memory with Pillow so the suite needs no fixture
files; config points logs and users at pytest's tmp_path.
"""

import io

import pytest
from PIL import Image

from image_api.config import ImageApiConfig
from image_api.models import AuthIdentity
from image_api.errors import InvalidTokenError
from image_api.sinks import MemoryLogSink

TEST_SECRET = "test-secret-for-image-api-0123456789abcdef"


def make_image(size=(64, 48), color=(200, 30, 30), fmt="PNG", mode="RGB") -> bytes:
    """Encode a solid-color image and return its bytes."""
    if mode == "RGBA" and len(color) == 3:
        color = color + (128,)
    img = Image.new(mode, size, color=color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def open_image(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


@pytest.fixture
def config(tmp_path):
    return ImageApiConfig(
        _env_file=None,
        jwt_secret=TEST_SECRET,
        log_path=str(tmp_path / "logs" / "app.log"),
        password_iterations=1000,
        max_workers=2,
        mirror_log_entries=False,
    )


@pytest.fixture
def png_bytes():
    return make_image()


@pytest.fixture
def large_jpeg():
    return make_image(size=(1600, 1200), fmt="JPEG")


class FakeVerifier:
    """Accepts the token "good" only."""

    def __init__(self):
        self.identity = AuthIdentity(user_id="user-1", email="ana@example.com")
        self.calls = []

    async def verify_token(self, token):
        self.calls.append(token)
        if token != "good":
            raise InvalidTokenError("bad signature")
        return self.identity


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def memory_sink():
    return MemoryLogSink()
