"""
HTTP Resource Prober
====================
Resolves natural image dimensions out-of-band: the resource is fetched with
``requests`` (in a worker thread, size-capped) and decoded with Pillow.
``data:`` URIs are decoded locally.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from io import BytesIO
from typing import Optional, Tuple
from urllib.parse import unquote_to_bytes

import requests
from PIL import Image, UnidentifiedImageError

from .errors import ResourceProbeFailed
from .host import ResourceProber

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)
MAX_PROBE_BYTES = 20 * 1024 * 1024


def decode_data_uri(uri: str) -> bytes:
    """Payload bytes of a ``data:`` URI."""
    try:
        header, payload = uri[5:].split(',', 1)
    except ValueError:
        raise ResourceProbeFailed(uri[:64], "malformed data URI") from None
    if header.lower().endswith(';base64'):
        try:
            return base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as exc:
            raise ResourceProbeFailed(uri[:64], f"bad base64 payload: {exc}") from exc
    return unquote_to_bytes(payload)


def image_size(data: bytes, url: str = "") -> Tuple[int, int]:
    """``(width, height)`` of encoded image bytes."""
    try:
        with Image.open(BytesIO(data)) as img:
            width, height = img.size
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ResourceProbeFailed(url, f"undecodable image: {exc}") from exc
    return int(width), int(height)


class HttpImageProber(ResourceProber):
    """
    Probes images over HTTP.

    Args:
        timeout:    Per-request timeout in seconds.
        max_bytes:  Largest body read before giving up.
        referer:    Page URL sent as ``Referer`` (some CDNs require it).
        session:    Optional pre-configured ``requests.Session``.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        max_bytes: int = MAX_PROBE_BYTES,
        referer: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.session = session or self._create_session(referer)

    @staticmethod
    def _create_session(referer: Optional[str]) -> requests.Session:
        session = requests.Session()
        session.headers.update({
            'User-Agent': DEFAULT_USER_AGENT,
            'Accept': 'image/avif,image/webp,image/apng,image/*,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.9',
        })
        if referer:
            session.headers['Referer'] = referer
        return session

    async def probe(self, url: str) -> Tuple[int, int]:
        if url[:5].lower() == 'data:':
            return image_size(decode_data_uri(url), url[:64])
        data = await asyncio.to_thread(self._fetch, url)
        return image_size(data, url)

    def _fetch(self, url: str) -> bytes:
        try:
            with self.session.get(url, timeout=self.timeout, stream=True) as response:
                response.raise_for_status()
                chunks = []
                total = 0
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    total += len(chunk)
                    if total > self.max_bytes:
                        raise ResourceProbeFailed(url, f"larger than {self.max_bytes} bytes")
                    chunks.append(chunk)
                return b''.join(chunks)
        except requests.Timeout:
            raise ResourceProbeFailed(url, "timeout") from None
        except requests.RequestException as exc:
            raise ResourceProbeFailed(url, str(exc)) from exc

    def close(self) -> None:
        self.session.close()
