"""HTTP client for a running Image API.

Base URL and session token live on the client instance; nothing is kept in
module state.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

EXTENSION_CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".avif": "image/avif",
}


def content_type_for_path(path: Path) -> str:
    return EXTENSION_CONTENT_TYPES.get(path.suffix.lower(), "application/octet-stream")


class ApiClientError(Exception):
    """Raised when the API returns an error status."""

    def __init__(self, status: int, message: str, code: Optional[str] = None):
        super().__init__(f"API error {status}: {message}")
        self.status = status
        self.message = message
        self.code = code


class ImageApiClient:
    """Minimal sync client for the Image API."""

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def register(self, email: str, password: str) -> Dict[str, Any]:
        payload = self._post_json("/auth/register", {"email": email, "password": password})
        return payload.get("data") or {}

    def login(self, email: str, password: str) -> str:
        payload = self._post_json("/auth/login", {"email": email, "password": password})
        self.token = payload["data"]["token"]
        return self.token

    def transform(self, operation: str, image_path: Path, params: Dict[str, Any]) -> Tuple[bytes, str]:
        """Call a single-operation endpoint; returns (bytes, content type)."""
        data = {key: str(value) for key, value in params.items() if value is not None}
        return self._post_image(f"/images/{operation}", image_path, data)

    def pipeline(self, image_path: Path, operations: List[Dict[str, Any]]) -> Tuple[bytes, str]:
        return self._post_image("/images/pipeline", image_path, {"operations": json.dumps(operations)})

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ImageApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def _post_json(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        response = self._send("POST", path, json=body)
        payload = self._decode(response)
        if response.is_error:
            raise ApiClientError(response.status_code, payload.get("error") or response.text, payload.get("code"))
        return payload

    def _post_image(self, path: str, image_path: Path, data: Dict[str, str]) -> Tuple[bytes, str]:
        image_path = Path(image_path)
        with open(image_path, "rb") as f:
            files = {"image": (image_path.name, f.read(), content_type_for_path(image_path))}
        response = self._send("POST", path, data=data, files=files, headers=self._headers())
        if response.is_error:
            payload = self._decode(response)
            raise ApiClientError(response.status_code, payload.get("error") or response.text, payload.get("code"))
        logger.debug("%s -> %d bytes", path, len(response.content))
        return response.content, response.headers.get("content-type", "application/octet-stream")

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise ApiClientError(0, f"Cannot reach {self.base_url}: {e}") from e

    @staticmethod
    def _decode(response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}
