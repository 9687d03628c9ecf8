"""Removal of a job's local working state.

Nothing in here raises: every removal failure is logged and recorded on the
returned report so a failed cleanup never masks the job's own outcome.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from typing import Optional

from hls_pipeline.core.config import settings
from hls_pipeline.core.logging import log_error, log_info, log_warning

logger = logging.getLogger(__name__)

HLS_DIRNAME = "hls"
JOB_ARTIFACT_SUFFIXES = ("_thumbnail.jpg", "_spritesheet.jpg")


@dataclass
class CleanupReport:
    """Paths removed and paths that could not be removed."""
    removed: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def remove_tree(path: str) -> bool:
    """Remove a file or directory tree.

    Returns:
        True if the path no longer exists, False if removal failed
    """
    try:
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        elif os.path.lexists(path):
            os.remove(path)
    except OSError as e:
        log_error(logger, "Failed to remove path", exception=e, target=path)
        return False
    return True


def _remove_into(path: str, report: CleanupReport) -> None:
    if not os.path.lexists(path):
        return
    if remove_tree(path):
        report.removed.append(path)
    else:
        report.failures.append(path)


def _belongs_to(name: str, object_id: str) -> bool:
    """True for the id itself, "<id>.<ext>" and the job's named artifacts.

    Ids never contain ".", so the "<id>." prefix is unambiguous; "_" is a
    valid id character, so underscore names must match a known artifact.
    """
    if name == object_id or name.startswith(f"{object_id}."):
        return True
    return any(name == f"{object_id}{suffix}" for suffix in JOB_ARTIFACT_SUFFIXES)


def _sweep(directory: str, object_id: str, report: CleanupReport) -> None:
    """Delete residual files named after the job.

    Only descends into the directory named exactly after the id and the
    shared HLS root, so ids sharing a prefix ("job-1", "job-10") never
    touch each other's state.
    """
    try:
        entries = list(os.scandir(directory))
    except OSError as e:
        if os.path.exists(directory):
            log_error(logger, "Failed to scan directory", exception=e, target=directory)
            report.failures.append(directory)
        return

    for entry in entries:
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
            is_file = entry.is_file(follow_symlinks=False)
        except OSError:
            continue
        if is_dir:
            if entry.name == object_id or entry.name == HLS_DIRNAME:
                _sweep(entry.path, object_id, report)
        elif is_file and _belongs_to(entry.name, object_id):
            log_warning(logger, "Found residual file", object_id=object_id, target=entry.path)
            _remove_into(entry.path, report)


def cleanup_job(
    object_id: str,
    source_path: Optional[str] = None,
    work_root: Optional[str] = None,
) -> CleanupReport:
    """Remove all local state of a job. Idempotent; never raises.

    Args:
        object_id: Job id
        source_path: Downloaded source file
        work_root: Root of local working state

    Returns:
        CleanupReport of what was removed and what failed
    """
    work_root = work_root or settings.WORK_ROOT
    report = CleanupReport()

    if source_path:
        _remove_into(source_path, report)
    _remove_into(os.path.join(work_root, HLS_DIRNAME, object_id), report)
    _remove_into(os.path.join(work_root, object_id), report)
    _sweep(work_root, object_id, report)

    log_info(
        logger,
        "Cleanup completed",
        object_id=object_id,
        removed=len(report.removed),
        failures=len(report.failures),
    )
    return report
