"""
Key Store — fetches proving/verifying key blobs from artifact storage.

Locations are opaque strings: a filesystem path, a `file://` URI or an
`http(s)://` URL. Fetching is the only network/disk-bound step of the proof
subsystem; the backends call it once per initialize() and keep the bytes
for their own lifetime.
"""

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlparse

import httpx

from veritas.core.config import settings
from veritas.core.errors import KeyLoadError

logger = logging.getLogger(__name__)


class KeyStore:
    """
    Byte-blob loader for circuit artifacts.

    Usage:
        store = KeyStore()
        srs, pk = await store.fetch_many(["zk/srs.bin", "https://cdn/pk.bin"])
    """

    def __init__(
        self,
        base_dir: Optional[Path] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_dir = Path(base_dir) if base_dir else None
        self.timeout = timeout or settings.KEY_FETCH_TIMEOUT_SECONDS
        self._client = client

    async def fetch(self, uri: str, expected_sha256: Optional[str] = None) -> bytes:
        """
        Fetch one blob.

        Raises:
            KeyLoadError: unreachable location, empty blob or digest mismatch.
        """
        scheme = urlparse(uri).scheme
        try:
            if scheme in ("http", "https"):
                blob = await self._fetch_http(uri)
            else:
                blob = await self._fetch_file(uri)
        except KeyLoadError:
            raise
        except (OSError, httpx.HTTPError) as exc:
            raise KeyLoadError(f"Failed to load key: {uri} ({exc})") from exc

        if not blob:
            raise KeyLoadError(f"Key blob is empty: {uri}")

        if expected_sha256:
            digest = hashlib.sha256(blob).hexdigest()
            if digest != expected_sha256.lower():
                raise KeyLoadError(
                    f"Key blob digest mismatch for {uri}",
                    details={"expected": expected_sha256, "actual": digest},
                )

        logger.info(f"[KEY-STORE] Loaded {uri} ({len(blob)} bytes)")
        return blob

    async def fetch_many(
        self,
        uris: Sequence[str],
        digests: Optional[Dict[str, str]] = None,
    ) -> List[bytes]:
        """Fetch several blobs concurrently, preserving order."""
        digests = digests or {}
        return list(await asyncio.gather(
            *[self.fetch(uri, digests.get(uri)) for uri in uris]
        ))

    def _resolve_path(self, uri: str) -> Path:
        parsed = urlparse(uri)
        path = Path(parsed.path) if parsed.scheme == "file" else Path(uri)
        if not path.is_absolute() and self.base_dir is not None:
            path = self.base_dir / path
        return path

    async def _fetch_file(self, uri: str) -> bytes:
        path = self._resolve_path(uri)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, path.read_bytes)

    async def _fetch_http(self, uri: str) -> bytes:
        if self._client is not None:
            response = await self._client.get(uri)
            response.raise_for_status()
            return response.content

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(uri)
            response.raise_for_status()
            return response.content
