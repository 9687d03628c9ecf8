"""Conversion API router.

Implements the endpoint that downloads a stored video and converts it to
HLS, plus a phase lookup for running and recent jobs.
"""

import logging
import os
import re
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from hls_pipeline.core.config import settings
from hls_pipeline.core.logging import log_error, log_info, set_correlation_id
from hls_pipeline.modules.transcoding.cleanup import cleanup_job
from hls_pipeline.modules.transcoding.download import download_source
from hls_pipeline.modules.transcoding.errors import (
    JobInProgressError,
    ResourceError,
    ValidationError,
)
from hls_pipeline.modules.transcoding.schemas import (
    ConversionResponse,
    ConversionStatusResponse,
    ErrorResponse,
)
from hls_pipeline.modules.transcoding.service import ConversionService
from hls_pipeline.modules.transcoding.status import (
    JobLeaseRegistry,
    StatusRegister,
    job_leases,
    status_register,
)
from hls_pipeline.modules.transcoding.storage import StorageGateway, job_prefix

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/objects", tags=["objects"])

SOURCE_FILENAME = "original.mp4"
_INVALID_ID_CHARS = re.compile(r"[^a-zA-Z0-9\-_]")


def sanitize_object_id(raw: Optional[str]) -> str:
    """Strip every character outside [a-zA-Z0-9-_].

    Raises:
        ValidationError: If nothing is left
    """
    object_id = _INVALID_ID_CHARS.sub("", raw or "")
    if not object_id:
        raise ValidationError("ObjectId is required")
    return object_id


def get_status_register() -> StatusRegister:
    return status_register


def get_job_leases() -> JobLeaseRegistry:
    return job_leases


def get_storage_gateway() -> StorageGateway:
    return StorageGateway()


def get_conversion_service(
    gateway: StorageGateway = Depends(get_storage_gateway),
    status_reg: StatusRegister = Depends(get_status_register),
) -> ConversionService:
    return ConversionService(gateway=gateway, status=status_reg)


def _error(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=error, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def _download_and_convert(
    object_id: str,
    gateway: StorageGateway,
    service: ConversionService,
) -> ConversionResponse:
    job_dir = os.path.join(service.work_root, object_id)
    try:
        os.makedirs(job_dir, exist_ok=True)
    except OSError as e:
        raise ResourceError(f"Failed to create folder for object: {object_id}") from e

    # service.convert owns cleanup once it starts
    file_path = os.path.join(job_dir, SOURCE_FILENAME)
    try:
        signed_url = await gateway.signed_download_url(
            settings.SOURCE_BUCKET,
            job_prefix(object_id),
            settings.SIGNED_URL_EXPIRES_SECONDS,
        )
        log_info(logger, "Generated signed URL", object_id=object_id, key=job_prefix(object_id))

        await download_source(signed_url, file_path, settings.DOWNLOAD_TIMEOUT_SECONDS)
    except BaseException:
        cleanup_job(object_id, file_path, service.work_root)
        raise

    await service.convert(object_id, file_path)
    return ConversionResponse(url=signed_url, file_path=file_path)


@router.get(
    "",
    response_model=ConversionResponse,
    responses={
        400: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def convert_object(
    object_id: Optional[str] = Query(None, alias="objectId"),
    gateway: StorageGateway = Depends(get_storage_gateway),
    service: ConversionService = Depends(get_conversion_service),
    leases: JobLeaseRegistry = Depends(get_job_leases),
):
    """Download a stored video, convert it to HLS and upload the result."""
    try:
        object_id = sanitize_object_id(object_id)
    except ValidationError as e:
        log_error(logger, str(e))
        return _error(status.HTTP_400_BAD_REQUEST, str(e))

    set_correlation_id(object_id)

    try:
        async with leases.acquire(object_id):
            return await _download_and_convert(object_id, gateway, service)
    except JobInProgressError as e:
        return _error(status.HTTP_409_CONFLICT, str(e))
    except Exception as e:
        log_error(logger, "Error processing request", exception=e, object_id=object_id)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to process request", str(e))


@router.get(
    "/{object_id}/status",
    response_model=ConversionStatusResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_conversion_status(
    object_id: str,
    status_reg: StatusRegister = Depends(get_status_register),
):
    """Get the current phase of a conversion job."""
    phase = status_reg.get_phase(object_id)
    if phase is None:
        return _error(status.HTTP_404_NOT_FOUND, f"No conversion found for {object_id}")
    return ConversionStatusResponse(object_id=object_id, status=phase)
