"""
Release progress record: what has been done so far, saved between retries.

Step implementations read the record before doing any remote work and write
their results into it, so re-running the same step graph against a saved
record skips everything that already happened. The runner knows nothing about
this structure.

While steps are running they may modify the record; only read or save it
when no run is in progress.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class DayState(BaseModel):
    """State of the release day that isn't tied to a single version."""

    # Issue that receives status updates.
    release_issue: int = 0

    go_images_commit: str = ""
    go_images_official_build_id: str = ""

    announcement_written: bool = False
    mar_version_checked: bool = False


class VersionState(BaseModel):
    """State of one version's release."""

    upstream_commit: str = ""
    update_pr: int = 0
    commit: str = ""
    official_build_id: str = ""
    innerloop_build_id: str = ""

    image_update_pr: int = 0
    images_updated: bool = False

    github_tag: str = ""
    github_release: str = ""

    akams_build_id: str = ""
    akams_updated: bool = False

    azure_linux_update_build_id: str = ""
    azure_linux_pr_submitted: bool = False


class ReleaseState(BaseModel):
    """
    Progress record for a release.

    input_checksum ties the record to the ReleaseInput that started the
    release. It catches mistakes like resuming with the right state but the
    wrong inputs; it is not a security feature.
    """

    input_checksum: int = 0
    day: DayState = Field(default_factory=DayState)
    versions: Dict[str, VersionState] = Field(default_factory=dict)


def load_state(path: str | Path) -> Optional[ReleaseState]:
    """Read a saved progress record. Returns None if the file doesn't exist."""
    p = Path(path)
    if not p.exists():
        logger.debug("no saved state at %s", p)
        return None
    return ReleaseState.model_validate_json(p.read_text(encoding="utf-8"))


def save_state(state: ReleaseState, path: str | Path) -> None:
    """Write the progress record as indented JSON, replacing the file atomically."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=p.name + ".", suffix=".tmp", dir=p.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(state.model_dump_json(indent=2))
            f.write("\n")
        os.replace(tmp, p)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    logger.debug("saved state to %s", p)
