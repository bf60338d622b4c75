"""Image attachment filtering and size-limited downloading."""

import asyncio

import discord
import requests

from scanguard.detection.errors import DownloadFailure
from scanguard.util.logger import get_logger

logger = get_logger("image_utils")

SCANNED_CONTENT_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
_CHUNK_SIZE = 64 * 1024


def is_image_attachment(attachment: discord.Attachment) -> bool:
    """
    Return True if the attachment is one of the scanned image types
    (jpeg, png, gif, webp).

    The content type is authoritative when Discord provides it; otherwise the
    filename extension decides.
    """
    content_type = (attachment.content_type or "").split(";")[0].strip().lower()
    if content_type:
        return content_type in SCANNED_CONTENT_TYPES
    filename = (attachment.filename or "").lower()
    return filename.endswith((".png", ".jpg", ".jpeg", ".gif", ".webp"))


def download_image_bytes(url: str, max_bytes: int, timeout: float = 10.0) -> bytes:
    """
    Download an image, refusing anything larger than ``max_bytes``.

    Blocks the calling thread; use ``fetch_image_bytes`` from async code.

    Raises:
        DownloadFailure: on network errors, non-2xx responses or oversize images.
    """
    logger.debug("[DOWNLOAD] Downloading image from %s", url)
    try:
        with requests.get(url, timeout=timeout, stream=True) as response:
            response.raise_for_status()

            declared = response.headers.get("Content-Length")
            if declared and declared.isdigit() and int(declared) > max_bytes:
                raise DownloadFailure(url, f"image is {declared} bytes, limit is {max_bytes}")

            buffer = bytearray()
            for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                buffer.extend(chunk)
                if len(buffer) > max_bytes:
                    raise DownloadFailure(url, f"image exceeds limit of {max_bytes} bytes")
    except requests.RequestException as exc:
        raise DownloadFailure(url, str(exc)) from exc

    logger.debug("[DOWNLOAD] Downloaded %d bytes from %s", len(buffer), url)
    return bytes(buffer)


async def fetch_image_bytes(url: str, max_bytes: int, timeout: float = 10.0) -> bytes:
    """Async wrapper around ``download_image_bytes``."""
    return await asyncio.to_thread(download_image_bytes, url, max_bytes, timeout)
