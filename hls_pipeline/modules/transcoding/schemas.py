"""Pydantic schemas for the conversion API."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from hls_pipeline.modules.transcoding.models import JobPhase


class ConversionResponse(BaseModel):
    """Result of a completed conversion request."""
    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(..., description="Signed URL of the source object")
    file_path: str = Field(..., alias="filePath", description="Local path the source was downloaded to")


class ConversionStatusResponse(BaseModel):
    """Current phase of a conversion job."""
    model_config = ConfigDict(populate_by_name=True)

    object_id: str = Field(..., alias="objectId")
    status: JobPhase


class ErrorResponse(BaseModel):
    """Error body returned by the conversion API."""
    error: str
    details: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = "ok"
