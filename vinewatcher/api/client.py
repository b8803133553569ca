"""HTTP upload client: POST <server>/upload with raw or encrypted body."""

import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import AsyncIterator, Optional, Union

import filetype
import httpx

from vinewatcher.errors import TransientFileError, TransportError
from vinewatcher.fingerprint import CHUNK_SIZE

log = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"


def detect_mime_type(path: Path) -> str:
    """
    Best-effort MIME type: sniff the leading magic bytes, then guess from the
    file name, else application/octet-stream.
    """
    try:
        mime = filetype.guess_mime(str(path))
    except OSError as e:
        log.debug("Cannot sniff %s: %s", path, e)
        mime = None
    if not mime:
        mime, _ = mimetypes.guess_type(str(path))
    return mime or OCTET_STREAM


async def _iter_file(path: Path, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Stream file bytes without blocking the event loop."""
    f = await asyncio.to_thread(open, path, "rb")
    try:
        while True:
            chunk = await asyncio.to_thread(f.read, chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        await asyncio.to_thread(f.close)


class UploadClient:
    """
    Uploads payloads to storage servers. One request per call, no retries: a
    failed upload is recorded by the caller and retried on a later observation.
    """

    def __init__(
        self,
        timeout: float = 600.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    def _timeout_for(self, size: int) -> float:
        # Generous timeout for large files: base + 60 sec per MB, cap 20 min extra
        return self._timeout + min(1200.0, size / (1024 * 1024) * 60)

    async def _post(
        self,
        server_url: str,
        content: Union[bytes, AsyncIterator[bytes]],
        content_type: str,
        size: int,
    ) -> None:
        url = f"{server_url.rstrip('/')}/upload"
        headers = {"Content-Type": content_type}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_for(size), transport=self._transport
            ) as client:
                r = await client.post(url, content=content, headers=headers)
        except OSError as e:
            # Raised while streaming a public file that vanished mid-upload
            raise TransientFileError(f"Reading body for {url}: {e}") from e
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError, ValueError, TypeError) as e:
            # InvalidURL and StreamError are not HTTPError subclasses
            raise TransportError(f"POST {url}: {type(e).__name__}: {e}") from e
        if not r.is_success:
            raise TransportError(
                f"POST {url}: {r.status_code} {r.reason_phrase}", status_code=r.status_code
            )
        log.debug("POST %s -> %s (%d bytes)", url, r.status_code, size)

    async def upload_public(self, server_url: str, path: Path, size: int) -> None:
        """Stream the file as-is with its detected MIME type."""
        await self._post(server_url, _iter_file(path), detect_mime_type(path), size)

    async def upload_blob(self, server_url: str, blob: bytes) -> None:
        """Upload an encrypted blob (nonce || ciphertext+tag) as application/octet-stream."""
        await self._post(server_url, blob, OCTET_STREAM, len(blob))
