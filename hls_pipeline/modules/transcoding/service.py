"""Job orchestration for HLS conversion.

A conversion is an ordered list of pipeline steps run by a single runner.
Best-effort steps (thumbnail, sprite sheet) are logged and skipped on
failure; any mandatory step failure marks the job as errored and is
re-raised. Local working state is removed once the job ends, whatever the
outcome.
"""

import logging
import os
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from hls_pipeline.core.config import settings
from hls_pipeline.core.logging import log_error, log_info, log_warning
from hls_pipeline.core.metrics import (
    JOBS_IN_PROGRESS,
    PIPELINE_JOBS_TOTAL,
    PIPELINE_STEP_DURATION_SECONDS,
    PIPELINE_STEP_FAILURES_TOTAL,
)
from hls_pipeline.modules.transcoding.abr import plan_resolutions
from hls_pipeline.modules.transcoding.cleanup import HLS_DIRNAME, cleanup_job
from hls_pipeline.modules.transcoding.errors import NoVideoStreamError, ResourceError
from hls_pipeline.modules.transcoding.ffmpeg import FFmpegEngine
from hls_pipeline.modules.transcoding.hls import VariantEncoder, write_master_playlist
from hls_pipeline.modules.transcoding.models import ConversionJob, JobPhase
from hls_pipeline.modules.transcoding.sprite import SpriteSheetGenerator
from hls_pipeline.modules.transcoding.status import StatusRegister, status_register
from hls_pipeline.modules.transcoding.storage import (
    IMAGE_CONTENT_TYPE,
    StorageGateway,
    job_prefix,
    upload_directory,
)
from hls_pipeline.modules.transcoding.thumbnail import ThumbnailGenerator, thumbnail_filename

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineStep:
    """One stage of a conversion."""
    name: str
    mandatory: bool
    handler: Callable[[ConversionJob], Awaitable[None]]
    phase: Optional[JobPhase] = None  # entered before the handler runs


class ConversionService:
    """Runs conversion jobs end to end."""

    def __init__(
        self,
        engine: Optional[FFmpegEngine] = None,
        gateway: Optional[StorageGateway] = None,
        status: Optional[StatusRegister] = None,
        work_root: Optional[str] = None,
        bucket: Optional[str] = None,
        encode_workers: Optional[int] = None,
        upload_concurrency: Optional[int] = None,
    ):
        """Initialize service.

        Args:
            engine: Transcoding engine
            gateway: Storage gateway for uploads
            status: Status register receiving phase updates
            work_root: Root of local working state
            bucket: Destination bucket for converted output
            encode_workers: Width of the variant encode pool
            upload_concurrency: Maximum simultaneous uploads
        """
        self.engine = engine or FFmpegEngine()
        self.gateway = gateway or StorageGateway()
        self.status = status if status is not None else status_register
        self.work_root = work_root or settings.WORK_ROOT
        self.bucket = bucket or settings.CONVERTED_BUCKET
        self.upload_concurrency = upload_concurrency or settings.UPLOAD_CONCURRENCY

        self.thumbnails = ThumbnailGenerator(self.engine, self.work_root)
        self.sprites = SpriteSheetGenerator(self.engine, self.gateway, self.work_root, self.bucket)
        self.encoder = VariantEncoder(self.engine, encode_workers)

    def job_dir(self, object_id: str) -> str:
        return os.path.join(self.work_root, object_id)

    def hls_root(self, object_id: str) -> str:
        return os.path.join(self.work_root, HLS_DIRNAME, object_id)

    def steps(self) -> list[PipelineStep]:
        return [
            PipelineStep("prepare", True, self._prepare, JobPhase.CONVERTING),
            PipelineStep("thumbnail", False, self._thumbnail),
            PipelineStep("sprite", False, self._sprite),
            PipelineStep("probe", True, self._probe),
            PipelineStep("plan", True, self._plan),
            PipelineStep("encode", True, self._encode),
            PipelineStep("manifest", True, self._manifest),
            PipelineStep("upload", True, self._upload, JobPhase.UPLOADING),
        ]

    def _set_phase(self, job: ConversionJob, phase: JobPhase) -> None:
        job.phase = phase
        self.status.set_phase(job.object_id, phase)

    async def _prepare(self, job: ConversionJob) -> None:
        for directory in (self.job_dir(job.object_id), self.hls_root(job.object_id)):
            try:
                os.makedirs(directory, exist_ok=True)
            except OSError as e:
                raise ResourceError(f"Cannot create {directory}: {e}") from e

    async def _thumbnail(self, job: ConversionJob) -> None:
        path = await self.thumbnails.generate(job.source_path, job.object_id)
        key = f"{job_prefix(job.object_id)}/{thumbnail_filename(job.object_id)}"
        await self.gateway.upload(self.bucket, key, path, IMAGE_CONTENT_TYPE)
        job.thumbnail_key = key

    async def _sprite(self, job: ConversionJob) -> None:
        job.sprite_key = await self.sprites.generate(job.source_path, job.object_id)

    async def _probe(self, job: ConversionJob) -> None:
        probe = await self.engine.probe(job.source_path)
        stream = probe.primary_video
        if stream is None:
            raise NoVideoStreamError(f"No video stream found in {job.source_path}")
        job.source_width = stream.width
        job.source_height = stream.height
        log_info(
            logger,
            "Source resolution probed",
            object_id=job.object_id,
            width=stream.width,
            height=stream.height,
        )

    async def _plan(self, job: ConversionJob) -> None:
        job.plan = plan_resolutions(job.source_width, job.source_height)
        log_info(
            logger,
            "Resolution ladder planned",
            object_id=job.object_id,
            tiers=[tier.name for tier in job.plan],
        )

    async def _encode(self, job: ConversionJob) -> None:
        job.variant_playlists = await self.encoder.encode_all(
            job.source_path,
            job.plan,
            self.hls_root(job.object_id),
        )

    async def _manifest(self, job: ConversionJob) -> None:
        job.master_playlist_path = write_master_playlist(
            self.hls_root(job.object_id),
            job.variant_playlists,
        )

    async def _upload(self, job: ConversionJob) -> None:
        job.uploaded_keys = await upload_directory(
            self.gateway,
            self.hls_root(job.object_id),
            job_prefix(job.object_id),
            bucket=self.bucket,
            concurrency=self.upload_concurrency,
        )

    async def _run_step(self, job: ConversionJob, step: PipelineStep) -> None:
        if step.phase is not None:
            self._set_phase(job, step.phase)

        started = time.perf_counter()
        try:
            await step.handler(job)
        except Exception as e:
            PIPELINE_STEP_FAILURES_TOTAL.labels(
                step=step.name,
                mandatory=str(step.mandatory).lower(),
            ).inc()
            if step.mandatory:
                raise
            log_warning(
                logger,
                f"Step '{step.name}' failed, continuing with conversion",
                object_id=job.object_id,
                step=step.name,
                error=str(e),
            )
        finally:
            PIPELINE_STEP_DURATION_SECONDS.labels(step=step.name).observe(
                time.perf_counter() - started
            )

    async def convert(self, object_id: str, source_path: str) -> ConversionJob:
        """Convert a local source video to HLS and upload the result.

        Args:
            object_id: Job id
            source_path: Local path of the downloaded source

        Returns:
            The completed job

        Raises:
            TranscodingError: The failure of the first mandatory step
        """
        job = ConversionJob(object_id=object_id, source_path=source_path)
        JOBS_IN_PROGRESS.inc()
        log_info(logger, "Conversion started", object_id=object_id, source=source_path)
        try:
            for step in self.steps():
                await self._run_step(job, step)
            self._set_phase(job, JobPhase.COMPLETED)
        except Exception as e:
            self._set_phase(job, JobPhase.ERROR)
            PIPELINE_JOBS_TOTAL.labels(outcome="error").inc()
            log_error(logger, "HLS conversion failed", exception=e, object_id=object_id)
            raise
        finally:
            JOBS_IN_PROGRESS.dec()
            cleanup_job(object_id, source_path, self.work_root)

        PIPELINE_JOBS_TOTAL.labels(outcome="completed").inc()
        log_info(
            logger,
            "Conversion completed",
            object_id=object_id,
            variants=len(job.variant_playlists),
            uploaded=len(job.uploaded_keys),
        )
        return job
