"""Source video download."""

import asyncio
import logging
import os
import shutil
from typing import Optional
from urllib.parse import unquote, urlparse

import httpx

from hls_pipeline.core.config import settings
from hls_pipeline.core.logging import log_error, log_info
from hls_pipeline.modules.transcoding.cleanup import remove_tree
from hls_pipeline.modules.transcoding.errors import TransientIOError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


async def _stream_to_file(url: str, destination: str, timeout: float) -> int:
    written = 0
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        async with client.stream("GET", url) as response:
            response.raise_for_status()
            with open(destination, "wb") as f:
                async for chunk in response.aiter_bytes(CHUNK_SIZE):
                    f.write(chunk)
                    written += len(chunk)
    return written


def _copy_local(url: str, destination: str) -> int:
    source = unquote(urlparse(url).path)
    shutil.copyfile(source, destination)
    return os.path.getsize(destination)


async def download_source(
    url: str,
    destination: str,
    timeout: Optional[float] = None,
) -> str:
    """Download a source video to a local path.

    Signed http(s) URLs are streamed with a fixed overall timeout; file://
    URLs (local storage backend) are copied.

    Args:
        url: Signed download URL
        destination: Local file path to write
        timeout: Timeout in seconds

    Returns:
        The destination path

    Raises:
        TransientIOError: On HTTP errors, timeouts, or an empty download
    """
    timeout = timeout or settings.DOWNLOAD_TIMEOUT_SECONDS
    os.makedirs(os.path.dirname(destination) or ".", exist_ok=True)

    try:
        if urlparse(url).scheme == "file":
            loop = asyncio.get_running_loop()
            size = await asyncio.wait_for(
                loop.run_in_executor(None, _copy_local, url, destination),
                timeout,
            )
        else:
            size = await asyncio.wait_for(
                _stream_to_file(url, destination, timeout),
                timeout,
            )
        if size == 0:
            raise TransientIOError(f"Downloaded file is empty: {destination}")
    except (httpx.HTTPError, OSError, asyncio.TimeoutError) as e:
        remove_tree(destination)
        log_error(logger, "Source download failed", exception=e, destination=destination)
        raise TransientIOError(f"Failed to download source: {e}") from e
    except TransientIOError:
        remove_tree(destination)
        raise

    log_info(logger, "Source downloaded", destination=destination, size=size)
    return destination
