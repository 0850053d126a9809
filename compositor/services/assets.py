"""Loading of source files and image values (data URIs, URLs, storage keys)."""

import base64
import binascii
import logging

import httpx
from botocore.exceptions import BotoCoreError, ClientError

from compositor.config import get_settings
from compositor.core.errors import AssetFetchError
from compositor.services.storage import StorageService, storage_service

settings = get_settings()
logger = logging.getLogger(__name__)


def decode_data_uri(uri: str) -> bytes:
    """Decode a base64 ``data:`` URI."""
    header, sep, payload = uri.partition(",")
    if not sep or ";base64" not in header:
        raise AssetFetchError("Only base64 data URIs are supported")
    try:
        return base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise AssetFetchError(f"Invalid base64 data URI: {e}") from e


class AssetLoader:
    """Resolves an asset reference to bytes."""

    def __init__(
        self,
        storage: StorageService = storage_service,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.storage = storage
        self.timeout = timeout or settings.asset_fetch_timeout_seconds
        self.transport = transport

    async def load(self, ref: str) -> bytes:
        """Resolve a template source reference, which may be a bucket key."""
        if ref.startswith("data:"):
            return decode_data_uri(ref)
        if ref.startswith(("http://", "https://")):
            return await self._fetch_url(ref)
        return await self._fetch_storage(ref.lstrip("/"))

    async def load_value(self, value: str) -> bytes:
        """Resolve an image field value. Only data URIs and http(s) URLs are accepted."""
        if value.startswith("data:"):
            return decode_data_uri(value)
        if value.startswith(("http://", "https://")):
            return await self._fetch_url(value)
        raise AssetFetchError("Image values must be an http(s) URL or a base64 data URI")

    async def _fetch_url(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning("Asset fetch HTTP error %s for %s", e.response.status_code, url)
            raise AssetFetchError(f"Fetching {url} returned {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.warning("Asset fetch request error for %s: %s", url, e)
            raise AssetFetchError(f"Fetching {url} failed: {e}") from e
        return response.content

    async def _fetch_storage(self, key: str) -> bytes:
        try:
            return await self.storage.download(key)
        except (ClientError, BotoCoreError) as e:
            raise AssetFetchError(f"Could not read {key} from storage") from e


# Singleton instance
asset_loader = AssetLoader()
