"""Async storage access for conversion outputs.

Wraps the synchronous storage backends for use from the event loop and
uploads a finished HLS tree under bounded concurrency.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from hls_pipeline.core.config import settings
from hls_pipeline.core.logging import log_error, log_info
from hls_pipeline.core.metrics import UPLOADED_FILES_TOTAL
from hls_pipeline.core.storage import Storage, get_storage
from hls_pipeline.modules.transcoding.errors import TransientIOError
from hls_pipeline.modules.transcoding.models import UploadTask

logger = logging.getLogger(__name__)

PLAYLIST_CONTENT_TYPE = "application/x-mpegURL"
SEGMENT_CONTENT_TYPE = "video/MP2T"
IMAGE_CONTENT_TYPE = "image/jpeg"


def job_prefix(object_id: str, remote_prefix: Optional[str] = None) -> str:
    """Remote key prefix under which every artifact of a job is stored."""
    return f"{(remote_prefix or settings.REMOTE_PREFIX).rstrip('/')}/{object_id}"


def content_type_for(path: str) -> str:
    if path.endswith(".m3u8"):
        return PLAYLIST_CONTENT_TYPE
    return SEGMENT_CONTENT_TYPE


def collect_upload_tasks(root: str, prefix: str) -> list[UploadTask]:
    """Enumerate every regular file under root, in sorted order.

    Args:
        root: Local directory to walk
        prefix: Remote key prefix

    Returns:
        One UploadTask per file, keyed by prefix + POSIX relative path
    """
    root_path = Path(root)
    prefix = prefix.rstrip("/")
    return [
        UploadTask(
            local_path=str(path),
            remote_key=f"{prefix}/{path.relative_to(root_path).as_posix()}",
            content_type=content_type_for(path.name),
        )
        for path in sorted(root_path.rglob("*"))
        if path.is_file()
    ]


class StorageGateway:
    """Event-loop friendly facade over the configured storage backend.

    Backend calls are blocking (boto3, file copies), so each one runs in the
    default executor. Failures surface as TransientIOError.
    """

    def __init__(self, storage: Optional[Storage] = None):
        self.storage = storage or get_storage()

    async def signed_download_url(
        self,
        bucket: str,
        key: str,
        expires_in: Optional[int] = None,
    ) -> str:
        """Get a time-limited download URL for an object."""
        expires_in = expires_in or settings.SIGNED_URL_EXPIRES_SECONDS
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                None,
                self.storage.get_signed_url,
                bucket,
                key,
                expires_in,
            )
        except (BotoCoreError, ClientError, OSError) as e:
            raise TransientIOError(f"Failed to sign URL for {bucket}/{key}: {e}") from e

    async def upload(
        self,
        bucket: str,
        key: str,
        file_path: str,
        content_type: str,
    ) -> str:
        """Upload a local file and return its storage location.

        Raises:
            TransientIOError: If the backend rejects the upload
        """
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            None,
            self.storage.upload,
            bucket,
            file_path,
            key,
            content_type,
        )
        if not result.success:
            UPLOADED_FILES_TOTAL.labels(status="failure").inc()
            raise TransientIOError(
                f"Failed to upload {file_path} to {bucket}/{key}: {result.error_message}"
            )
        UPLOADED_FILES_TOTAL.labels(status="success").inc()
        return result.url


async def upload_directory(
    gateway: StorageGateway,
    root: str,
    prefix: str,
    bucket: Optional[str] = None,
    concurrency: Optional[int] = None,
) -> list[str]:
    """Upload a directory tree, all-or-nothing.

    Args:
        gateway: Storage gateway
        root: Local directory to upload
        prefix: Remote key prefix
        bucket: Destination bucket (defaults to the converted bucket)
        concurrency: Maximum simultaneous uploads

    Returns:
        Remote keys of the uploaded files, in walk order

    Raises:
        TransientIOError: On the first failed upload; the rest are cancelled
    """
    bucket = bucket or settings.CONVERTED_BUCKET
    semaphore = asyncio.Semaphore(concurrency or settings.UPLOAD_CONCURRENCY)
    upload_tasks = collect_upload_tasks(root, prefix)

    async def _upload_one(task: UploadTask) -> str:
        async with semaphore:
            await gateway.upload(bucket, task.remote_key, task.local_path, task.content_type)
            return task.remote_key

    running = [asyncio.ensure_future(_upload_one(task)) for task in upload_tasks]
    try:
        keys = await asyncio.gather(*running)
    except Exception as e:
        for future in running:
            future.cancel()
        await asyncio.gather(*running, return_exceptions=True)
        log_error(logger, "Directory upload failed", exception=e, root=root, prefix=prefix)
        if isinstance(e, TransientIOError):
            raise
        raise TransientIOError(f"Failed to upload {root}: {e}") from e

    log_info(logger, "Directory uploaded", root=root, prefix=prefix, files=len(keys))
    return list(keys)
