from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from urllib.parse import quote

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bunnysync.core.content_type import detect_content_type
from bunnysync.sync.errors import DeleteError, FetchError, UploadError

BASE = "https://storage.bunnycdn.com"
USER_AGENT = "bunny-storage-sync"


class StorageObject(BaseModel):
    """One entry of a BunnyCDN storage directory listing."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    guid: str = Field(default="", alias="Guid")
    storage_zone_name: str = Field(default="", alias="StorageZoneName")
    path: str = Field(default="", alias="Path")
    object_name: str = Field(default="", alias="ObjectName")
    length: int = Field(default=0, alias="Length")
    last_changed: Optional[datetime] = Field(default=None, alias="LastChanged")
    is_directory: bool = Field(default=False, alias="IsDirectory")
    checksum: Optional[str] = Field(default="", alias="Checksum")
    date_created: Optional[datetime] = Field(default=None, alias="DateCreated")


def _quote_path(path: str) -> str:
    return quote((path or "").strip("/"), safe="/")


class BunnyStorageClient:
    def __init__(self, zone_name: str, api_key: str, endpoint: str = BASE, timeout: int = 60):
        self.zone_name = zone_name or ""
        self.api_key = api_key or ""
        self.endpoint = (endpoint or BASE).rstrip("/")
        self.timeout = timeout
        # requests.Session is shared by the worker threads; it is only used for independent requests.
        self.session = requests.Session()
        self.session.headers.update({"AccessKey": self.api_key, "User-Agent": USER_AGENT})

    def _url(self, path: str, directory: bool = False) -> str:
        rel = _quote_path(path)
        base = f"{self.endpoint}/{quote(self.zone_name, safe='')}"
        url = f"{base}/{rel}" if rel else base
        if directory or not rel:
            url += "/"
        return url

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        return self.session.request(method, url, timeout=self.timeout, **kwargs)

    def list(self, prefix: str) -> List[StorageObject]:
        url = self._url(prefix, directory=True)
        try:
            res = self._request("GET", url, headers={"Accept": "application/json"})
        except requests.RequestException as e:
            raise FetchError(f"list_request_failed: {prefix or '/'}: {e}") from e
        if res.status_code < 200 or res.status_code >= 300:
            raise FetchError(f"list_failed_status_{res.status_code}: {(res.text or '').strip()[:200]}")
        try:
            payload = res.json()
        except ValueError as e:
            raise FetchError(f"list_failed_non_json_response: {(res.text or '').strip()[:200]}") from e
        if not isinstance(payload, list):
            raise FetchError(f"list_failed_unexpected_payload: {type(payload).__name__}")
        try:
            return [StorageObject.model_validate(item) for item in payload]
        except ValidationError as e:
            raise FetchError(f"list_failed_invalid_entry: {e}") from e

    def get(self, path: str) -> bytes:
        try:
            res = self._request("GET", self._url(path))
        except requests.RequestException as e:
            raise FetchError(f"get_request_failed: {path}: {e}") from e
        if res.status_code < 200 or res.status_code >= 300:
            raise FetchError(f"get_failed_status_{res.status_code}: {(res.text or '').strip()[:200]}")
        return res.content

    def upload(self, path: str, content: bytes, checksum: str = "", content_type: Optional[str] = None) -> None:
        headers = {
            "Accept": "*/*",
            "Content-Type": content_type or detect_content_type(path),
        }
        if checksum:
            # BunnyCDN verifies an uppercase hex SHA-256 when one is sent.
            headers["Checksum"] = checksum.upper()
        try:
            res = self._request("PUT", self._url(path), data=content, headers=headers)
        except requests.RequestException as e:
            raise UploadError(f"upload_request_failed: {path}: {e}") from e
        if res.status_code < 200 or res.status_code >= 300:
            raise UploadError(f"upload_failed_status_{res.status_code}: {(res.text or '').strip()[:200]}")

    def delete(self, path: str) -> None:
        try:
            res = self._request("DELETE", self._url(path))
        except requests.RequestException as e:
            raise DeleteError(f"delete_request_failed: {path}: {e}") from e
        if res.status_code < 200 or res.status_code >= 300:
            raise DeleteError(f"delete_failed_status_{res.status_code}: {(res.text or '').strip()[:200]}")
