"""Shared fixtures for conversion pipeline tests.

FakeEngine stands in for ffmpeg/ffprobe: it records every call and writes
small placeholder files where the real binaries would write output.
"""

import asyncio
import os
from pathlib import Path
from typing import Optional

import pytest

from hls_pipeline.core.storage import Storage, StorageConfig
from hls_pipeline.modules.transcoding.errors import EngineError
from hls_pipeline.modules.transcoding.models import (
    PlannedTier,
    ProbeResult,
    VideoStreamInfo,
)
from hls_pipeline.modules.transcoding.status import JobLeaseRegistry, StatusRegister
from hls_pipeline.modules.transcoding.storage import StorageGateway


class FakeEngine:
    """In-memory transcoding engine."""

    def __init__(
        self,
        duration: float = 720.0,
        width: int = 1920,
        height: int = 1080,
        frame_rate: Optional[str] = "30/1",
        has_video: bool = True,
    ):
        streams = (VideoStreamInfo(width, height, frame_rate),) if has_video else ()
        self.probe_result = ProbeResult(duration_seconds=duration, video_streams=streams)
        self.calls: list[tuple] = []
        self.failing_timestamps: set[str] = set()
        self.failing_tiers: set[str] = set()
        self.encode_delays: dict[str, float] = {}
        self.fail_tile = False
        self.active_encodes = 0
        self.max_active_encodes = 0

    def calls_to(self, op: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == op]

    async def probe(self, input_path: str) -> ProbeResult:
        self.calls.append(("probe", input_path))
        return self.probe_result

    async def extract_frame(
        self,
        input_path: str,
        timestamp: str,
        output_path: str,
        size: str,
        accurate_seek: bool = True,
    ) -> str:
        self.calls.append(("extract_frame", timestamp, output_path, size, accurate_seek))
        if timestamp in self.failing_timestamps:
            raise EngineError(f"extraction failed at {timestamp}", stderr="seek error")
        Path(output_path).write_bytes(b"\xff\xd8frame\xff\xd9")
        return output_path

    async def encode_hls(self, input_path: str, tier: PlannedTier, output_dir: str) -> str:
        self.calls.append(("encode_hls", tier.name, output_dir))
        self.active_encodes += 1
        self.max_active_encodes = max(self.max_active_encodes, self.active_encodes)
        try:
            await asyncio.sleep(self.encode_delays.get(tier.name, 0))
            if tier.name in self.failing_tiers:
                raise EngineError(f"encode failed for {tier.name}", stderr="x264 error")
            playlist = os.path.join(output_dir, "index.m3u8")
            Path(playlist).write_text("#EXTM3U\n#EXT-X-ENDLIST\n")
            for index in range(2):
                Path(output_dir, f"segment_{index:03d}.ts").write_bytes(b"ts")
            return playlist
        finally:
            self.active_encodes -= 1

    async def tile(self, frame_pattern: str, cols: int, rows: int, output_path: str) -> str:
        self.calls.append(("tile", frame_pattern, cols, rows, output_path))
        if self.fail_tile:
            raise EngineError("tile failed")
        Path(output_path).write_bytes(b"\xff\xd8sprite\xff\xd9")
        return output_path


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def make_engine():
    """Factory for engines with a non-default probe result."""
    return FakeEngine


@pytest.fixture
def work_root(tmp_path) -> str:
    root = tmp_path / "uploads"
    root.mkdir()
    return str(root)


@pytest.fixture
def storage_root(tmp_path) -> Path:
    return tmp_path / "storage"


@pytest.fixture
def local_storage(storage_root) -> Storage:
    return Storage(StorageConfig(backend="local", local_path=str(storage_root)))


@pytest.fixture
def gateway(local_storage) -> StorageGateway:
    return StorageGateway(storage=local_storage)


@pytest.fixture
def status_reg() -> StatusRegister:
    return StatusRegister(ttl_seconds=3600, max_entries=100)


@pytest.fixture
def leases() -> JobLeaseRegistry:
    return JobLeaseRegistry()


@pytest.fixture
def source_video(work_root) -> str:
    """A placeholder source file at the standard download location."""
    job_dir = Path(work_root, "job-1")
    job_dir.mkdir(parents=True, exist_ok=True)
    path = job_dir / "original.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
    return str(path)
