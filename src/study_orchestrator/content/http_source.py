"""Object-storage content source over HTTP."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from urllib.parse import quote

import chardet
import httpx
from loguru import logger

from ..config import ContentSourceConfig
from ..exceptions import StorageError
from .remote_content import RemoteContent


def normalize_object_path(path: str) -> str:
    """Object key for ``path``. Rejects traversal and empty keys."""
    key = (path or "").strip().lstrip("/")
    if not key or "\\" in key:
        raise ValueError(f"Invalid object path: {path!r}")
    if any(part in ("", ".", "..") for part in key.split("/")):
        raise ValueError(f"Invalid object path: {path!r}")
    return key


def decode_text(data: bytes) -> str:
    """UTF-8 first, then chardet's guess."""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        pass
    encoding = chardet.detect(data).get("encoding") or "utf-8"
    logger.debug(f"Decoding object as {encoding}")
    return data.decode(encoding, errors="replace")


def _last_modified(response: httpx.Response) -> datetime:
    header = response.headers.get("last-modified")
    if header:
        try:
            return parsedate_to_datetime(header)
        except (TypeError, ValueError):
            logger.debug(f"Unparseable Last-Modified header: {header!r}")
    return datetime.now(timezone.utc)


class HttpContentSource:
    """
    HTTP 오브젝트 스토리지에서 파일 내용을 가져오는 소스

    ``GET {base_url}/{path}`` 로 객체를 읽습니다. 404는 ``FileNotFoundError``,
    그 밖의 HTTP/전송 오류는 ``StorageError`` 로 변환됩니다.
    """

    def __init__(
        self,
        config: ContentSourceConfig,
        client: httpx.AsyncClient | None = None,
    ):
        if not config.base_url:
            raise ValueError("content_source.base_url is required")
        self._config = config
        self._owns_client = client is None
        if client is None:
            headers = {}
            token = config.resolved_token()
            if token:
                headers["Authorization"] = f"Bearer {token}"
            client = httpx.AsyncClient(
                base_url=config.base_url.rstrip("/") + "/",
                headers=headers,
                timeout=config.timeout_seconds,
            )
        self._client = client

    async def fetch(self, path: str) -> RemoteContent:
        key = normalize_object_path(path)
        try:
            response = await self._client.get(quote(key, safe="/"))
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to fetch {key}: {e}", path=key) from e

        if response.status_code == 404:
            raise FileNotFoundError(key)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StorageError(
                f"Failed to fetch {key}: HTTP {response.status_code}", path=key
            ) from e

        data = response.content
        if len(data) > self._config.max_file_bytes:
            raise StorageError(
                f"{key} is {len(data)} bytes, over the "
                f"{self._config.max_file_bytes} byte limit",
                path=key,
            )

        logger.debug(f"Fetched {key} ({len(data)} bytes)")
        return RemoteContent(
            path=key,
            content=decode_text(data),
            size=len(data),
            last_modified=_last_modified(response),
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
