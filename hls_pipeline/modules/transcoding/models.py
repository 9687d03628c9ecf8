"""Domain models for the HLS conversion pipeline.

Nothing here is persisted: the tier catalog is a process-wide constant and
every other model lives only for the duration of one conversion job.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class JobPhase(str, Enum):
    """Externally observable phase of a conversion job."""
    CONVERTING = "converting"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class ResolutionTier:
    """Catalog entry for one rung of the adaptive-bitrate ladder."""
    name: str
    width: int
    height: int
    base_bitrate: int  # kbps at 1080p-equivalent pixel count
    crf: int

    @property
    def pixels(self) -> int:
        return self.width * self.height


# Ordered by descending pixel count
RESOLUTION_TIERS: tuple[ResolutionTier, ...] = (
    ResolutionTier("2160p", 3840, 2160, 15000, 20),  # 4K
    ResolutionTier("1440p", 2560, 1440, 8000, 21),  # 2K
    ResolutionTier("1080p", 1920, 1080, 5000, 22),  # Full HD
    ResolutionTier("720p", 1280, 720, 2500, 23),  # HD
    ResolutionTier("480p", 854, 480, 1000, 23),  # SD
)

# Reference frame size the base bitrates are expressed against
REFERENCE_PIXELS = 1920 * 1080

SOURCE_TIER_SUFFIX = " (source)"
SOURCE_TIER_CRF = 23


@dataclass(frozen=True)
class PlannedTier:
    """A tier selected for one job, with its computed bitrate."""
    name: str
    width: int
    height: int
    bitrate: str  # e.g. "1111k"
    crf: int

    @property
    def pixels(self) -> int:
        return self.width * self.height

    @property
    def directory(self) -> str:
        """Directory (and playlist prefix) used for this tier's output."""
        return self.name.replace(SOURCE_TIER_SUFFIX, "")


@dataclass(frozen=True)
class VideoStreamInfo:
    """Video stream properties reported by the probe."""
    width: int
    height: int
    frame_rate: Optional[str] = None  # rational string, e.g. "30000/1001"


@dataclass(frozen=True)
class ProbeResult:
    """Subset of ffprobe output the pipeline relies on."""
    duration_seconds: float
    video_streams: tuple[VideoStreamInfo, ...] = ()

    @property
    def primary_video(self) -> Optional[VideoStreamInfo]:
        return self.video_streams[0] if self.video_streams else None


@dataclass(frozen=True)
class VariantPlaylist:
    """One successfully encoded tier, as referenced by the master playlist."""
    width: int
    height: int
    bitrate: str
    resolution: str  # "WxH"
    playlist: str  # relative path, e.g. "720p/index.m3u8"


@dataclass(frozen=True)
class UploadTask:
    """A single file scheduled for upload."""
    local_path: str
    remote_key: str
    content_type: str


@dataclass
class ConversionJob:
    """State owned by the orchestrator for the lifetime of one job."""
    object_id: str
    source_path: str
    phase: JobPhase = JobPhase.CONVERTING
    plan: list[PlannedTier] = field(default_factory=list)
    variant_playlists: list[VariantPlaylist] = field(default_factory=list)
    thumbnail_key: Optional[str] = None
    sprite_key: Optional[str] = None
    master_playlist_path: Optional[str] = None
    uploaded_keys: list[str] = field(default_factory=list)
    source_width: int = 0
    source_height: int = 0
