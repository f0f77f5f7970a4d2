# release.py
"""
Step graph for a release of one or more versions.

create_step_graph() only contains coordination code: moving inputs and
outputs between steps through the ReleaseState and expressing ordering with
dependencies. All work involving external resources goes through the
ServiceBundle.
"""
from __future__ import annotations

import logging
import os
import re
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from pydantic import BaseModel

from .context import StepContext
from .dsl import graph, indicator, root_step, step
from .model import NO_TIMEOUT, Step
from .runner import StepRunner
from .state import ReleaseState, VersionState, load_state, save_state

logger = logging.getLogger(__name__)

_MINUTE = 60.0
_HOUR = 60 * _MINUTE

# Timeouts are low enough to alert the release runner quickly when manual
# intervention is needed, and high enough not to trip on transient issues.
# Waiting on an external manual process is the only NO_TIMEOUT use.

# API calls, including ones that upload or download a significant amount.
SHORT_TIMEOUT = 10 * _MINUTE
# Mirroring a commit from GitHub to AzDO.
INTERNAL_MIRROR_TIMEOUT = 16 * _MINUTE

MICROSOFT_GO_PR_CI_TIMEOUT = 1 * _HOUR + 30 * _MINUTE
MICROSOFT_GO_OFFICIAL_CI_TIMEOUT = 3 * _HOUR
MICROSOFT_GO_INNERLOOP_CI_TIMEOUT = 2 * _HOUR

MICROSOFT_GO_IMAGES_PR_CI_TIMEOUT = 2 * _HOUR
MICROSOFT_GO_IMAGES_OFFICIAL_CI_TIMEOUT = 2 * _HOUR


# ----------------------------------------------------------------------
# Inputs
# ----------------------------------------------------------------------

_VERSION_RE = re.compile(r"^(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:-(\d+))?(?:-([A-Za-z].*))?$")


def normalize_version(v: str) -> str:
    """
    Fill in defaults for a version: "1.22" -> "1.22.0-1", "1.22.3-2-fips" stays.

    Raises ValueError for unparseable versions and major versions other than 1.
    """
    m = _VERSION_RE.match(v.strip())
    if not m:
        raise ValueError(f"invalid version: {v!r}")
    major, minor, patch, revision, note = m.groups()
    if major != "1":
        raise ValueError(f"major version must be 1, got {major!r} in {v!r}")
    full = f"{major}.{minor or '0'}.{patch or '0'}-{revision or '1'}"
    return f"{full}-{note}" if note else full


class ReleaseInput(BaseModel):
    """
    Inputs for a release. Provided once by the release runner and must stay
    the same on retry (see ReleaseState.input_checksum).
    """

    versions: List[str]
    # Any of the versions contains security fixes.
    security: bool = False
    # GitHub user in charge of the release; "ghost" means nobody is notified.
    runner_github_user: str = "ghost"
    # AzDO variable group with the release configuration, passed to child pipelines.
    release_config_variable_group: str = ""

    target_repo: str = ""
    target_azdo_repo: str = ""
    target_go_images_repo: str = ""
    target_azdo_go_images_repo: str = ""

    microsoft_go_pipeline: int = 0
    microsoft_go_innerloop_pipeline: int = 0
    microsoft_go_images_pipeline: int = 0
    microsoft_go_akams_pipeline: int = 0
    azure_linux_create_pr_pipeline: int = 0

    def checksum(self) -> int:
        return zlib.crc32(self.model_dump_json().encode("utf-8"))


@dataclass
class Secret:
    """
    Secrets needed by the services. Kept out of ReleaseInput so a rotated
    secret doesn't change the input checksum of a paused release.
    """
    github_pat: str = field(default="", repr=False)
    github_reviewer_pat: str = field(default="", repr=False)
    azdo_pat: str = field(default="", repr=False)


class ServiceBundle(Protocol):
    """
    Everything the release steps do to the outside world.

    If a method raises, nothing it would have returned is recorded, and the
    step is retried as a whole on the next run.
    """

    async def create_release_day_tracking_issue(
        self, ctx: StepContext, repo: str, runner: str, versions: Sequence[str], secret: Secret
    ) -> int: ...

    async def poll_upstream_tag_commit(self, ctx: StepContext, version: str) -> str: ...

    async def create_github_sync_pr(
        self, ctx: StepContext, repo: str, upstream_commit: str, secret: Secret
    ) -> int: ...

    async def poll_merged_github_pr_commit(
        self, ctx: StepContext, repo: str, pr: int, secret: Secret
    ) -> str: ...

    async def poll_azdo_mirror(
        self, ctx: StepContext, target: str, commit: str, secret: Secret
    ) -> None: ...

    async def trigger_build_pipeline(
        self,
        ctx: StepContext,
        pipeline_id: int,
        parameters: Optional[Dict[str, str]],
        optional_parameters: Optional[Dict[str, str]],
        secret: Secret,
    ) -> str: ...

    async def poll_pipeline_complete(self, ctx: StepContext, build_id: str, secret: Secret) -> None: ...

    async def download_pipeline_artifact_to_dir(
        self, ctx: StepContext, build_id: str, artifact_name: str, secret: Secret
    ) -> str: ...

    async def verify_asset_version(self, ctx: StepContext, asset_json_path: str, version: str) -> None: ...

    async def create_github_tag(
        self, ctx: StepContext, version: str, repo: str, tag: str, commit: str, secret: Secret
    ) -> None: ...

    async def create_github_release(
        self,
        ctx: StepContext,
        repo: str,
        tag: str,
        asset_json_path: str,
        build_asset_dir: str,
        secret: Secret,
    ) -> None: ...

    async def create_docker_images_pr(
        self, ctx: StepContext, repo: str, asset_json_path: str, manual_branch: str, secret: Secret
    ) -> int: ...

    async def poll_images_commit(self, ctx: StepContext, versions: Sequence[str], secret: Secret) -> str: ...

    async def check_latest_mar_go_version(self, ctx: StepContext, versions: Sequence[str]) -> None: ...

    async def create_announcement_blog_file(
        self, ctx: StepContext, versions: Sequence[str], user: str, security: bool, secret: Secret
    ) -> None: ...


@dataclass
class VersionScratch:
    """
    Per-version data that is local to this build machine, so it isn't part of
    the saved state. Downloads are always redone on retry.
    """
    asset_json_path: str = ""
    artifacts_dir: str = ""


# ----------------------------------------------------------------------
# Graph
# ----------------------------------------------------------------------

def create_step_graph(
    ri: ReleaseInput,
    secret: Optional[Secret],
    rs: Optional[ReleaseState],
    sb: Optional[ServiceBundle],
) -> Tuple[List[Step], ReleaseState]:
    """
    Create the (not yet running) steps for a release.

    If rs is None, a new empty state is created. Otherwise rs is resumed: it
    must have been created for the same input. Returns the steps and the
    state, which steps update as they run.

    Raises ValueError if there are no versions or the input checksum doesn't
    match the state's.
    """
    if ri is None or not ri.versions:
        raise ValueError("no versions to release")

    checksum = ri.checksum()
    if rs is None:
        rs = ReleaseState(input_checksum=checksum)
    elif rs.input_checksum != checksum:
        raise ValueError(
            "release input doesn't match initial input: "
            f"expected checksum {rs.input_checksum} (from state), got {checksum} (by calculation)"
        )

    for version in ri.versions:
        rs.versions.setdefault(version, VersionState())

    async def create_status_report_issue(ctx: StepContext) -> None:
        if rs.day.release_issue:
            return
        rs.day.release_issue = await sb.create_release_day_tracking_issue(
            ctx, ri.target_repo, ri.runner_github_user, ri.versions, secret
        )

    report_issue = root_step("Create release day issue", SHORT_TIMEOUT, create_status_report_issue)

    version_complete: List[Step] = []
    version_external_publish: List[Step] = []
    for version in ri.versions:
        complete, external = _version_steps(
            ri, secret, sb, version, rs.versions[version], VersionScratch(), report_issue
        )
        version_complete.append(complete)
        version_external_publish.append(external)

    versions_complete = indicator(
        "✅ All microsoft/go publish and go-images PRs complete", *version_complete
    )

    async def get_images_commit(ctx: StepContext) -> None:
        if not rs.day.go_images_commit:
            rs.day.go_images_commit = await sb.poll_images_commit(ctx, ri.versions, secret)
        await sb.poll_azdo_mirror(ctx, ri.target_azdo_go_images_repo, rs.day.go_images_commit, secret)

    async def trigger_images_build(ctx: StepContext) -> None:
        if rs.day.go_images_official_build_id:
            return
        rs.day.go_images_official_build_id = await sb.trigger_build_pipeline(
            ctx, ri.microsoft_go_images_pipeline, None, None, secret
        )

    async def wait_images_build(ctx: StepContext) -> None:
        await sb.poll_pipeline_complete(ctx, rs.day.go_images_official_build_id, secret)

    async def check_published_image(ctx: StepContext) -> None:
        if rs.day.mar_version_checked:
            return
        await sb.check_latest_mar_go_version(ctx, ri.versions)
        rs.day.mar_version_checked = True

    images_ready = (
        step("Get go-images commit", SHORT_TIMEOUT, get_images_commit, versions_complete)
        .then("🚀 Trigger go-image build/publish", SHORT_TIMEOUT, trigger_images_build)
        .then("⌚ Wait for go-image build/publish", MICROSOFT_GO_IMAGES_OFFICIAL_CI_TIMEOUT, wait_images_build)
        # May need to grow to cover MAR latency.
        .then("🌊 Check published image version", SHORT_TIMEOUT, check_published_image)
    )

    async def create_blog(ctx: StepContext) -> None:
        if rs.day.announcement_written:
            return
        await sb.create_announcement_blog_file(
            ctx, ri.versions, ri.runner_github_user, ri.security, secret
        )
        rs.day.announcement_written = True

    blog = step("📰 Create blog post markdown", SHORT_TIMEOUT, create_blog, versions_complete, images_ready)

    complete = indicator("✅ Complete", *version_external_publish, images_ready, blog)
    return graph(complete), rs


def _version_steps(
    ri: ReleaseInput,
    secret: Optional[Secret],
    sb: Optional[ServiceBundle],
    version: str,
    vs: VersionState,
    scratch: VersionScratch,
    report_issue: Step,
) -> Tuple[Step, Step]:
    """
    Steps for one version. Returns (publish and go-images PR complete,
    external publish complete).
    """
    def name(n: str) -> str:
        return f"{n}, {version}"

    async def get_upstream_commit(ctx: StepContext) -> None:
        if vs.upstream_commit:
            return
        vs.upstream_commit = await sb.poll_upstream_tag_commit(ctx, version)

    async def create_sync_pr(ctx: StepContext) -> None:
        if vs.update_pr:
            return
        vs.update_pr = await sb.create_github_sync_pr(ctx, ri.target_repo, vs.upstream_commit, secret)

    async def wait_pr_merge(ctx: StepContext) -> None:
        if vs.commit:
            return
        vs.commit = await sb.poll_merged_github_pr_commit(ctx, ri.target_repo, vs.update_pr, secret)

    async def wait_azdo_sync(ctx: StepContext) -> None:
        await sb.poll_azdo_mirror(ctx, ri.target_azdo_repo, vs.commit, secret)

    sync_update = (
        step(name("⌚ Get upstream commit for release"), NO_TIMEOUT, get_upstream_commit, report_issue)
        .then(name("Create sync PR"), SHORT_TIMEOUT, create_sync_pr)
        .then(name("⌚ Wait for PR merge"), MICROSOFT_GO_PR_CI_TIMEOUT, wait_pr_merge)
        .then(name("⌚ Wait for AzDO sync"), INTERNAL_MIRROR_TIMEOUT, wait_azdo_sync)
    )

    async def trigger_official(ctx: StepContext) -> None:
        if vs.official_build_id:
            return
        vs.official_build_id = await sb.trigger_build_pipeline(
            ctx, ri.microsoft_go_pipeline, None, None, secret
        )

    async def wait_official(ctx: StepContext) -> None:
        await sb.poll_pipeline_complete(ctx, vs.official_build_id, secret)

    official_build = step(
        name("🚀 Trigger official build"), SHORT_TIMEOUT, trigger_official, sync_update
    ).then(name("⌚ Wait for official build"), MICROSOFT_GO_OFFICIAL_CI_TIMEOUT, wait_official)

    async def trigger_innerloop(ctx: StepContext) -> None:
        if vs.innerloop_build_id:
            return
        vs.innerloop_build_id = await sb.trigger_build_pipeline(
            ctx, ri.microsoft_go_innerloop_pipeline, None, None, secret
        )

    async def wait_innerloop(ctx: StepContext) -> None:
        await sb.poll_pipeline_complete(ctx, vs.innerloop_build_id, secret)

    innerloop_build = step(
        name("🚀 Trigger innerloop build"), SHORT_TIMEOUT, trigger_innerloop, sync_update
    ).then(name("⌚ Wait for innerloop build"), MICROSOFT_GO_INNERLOOP_CI_TIMEOUT, wait_innerloop)

    ready_for_publish = indicator(name("✅ Artifacts ok to publish"), official_build, innerloop_build)

    async def download_asset_metadata(ctx: StepContext) -> None:
        d = await sb.download_pipeline_artifact_to_dir(ctx, vs.official_build_id, "BuildAssets", secret)
        scratch.asset_json_path = os.path.join(d, "assets.json")
        await sb.verify_asset_version(ctx, scratch.asset_json_path, version)

    async def download_artifacts(ctx: StepContext) -> None:
        scratch.artifacts_dir = await sb.download_pipeline_artifact_to_dir(
            ctx, vs.official_build_id, "Binaries Signed", secret
        )

    asset_metadata = step(name("Download asset metadata"), SHORT_TIMEOUT, download_asset_metadata, official_build)
    artifacts = step(name("Download artifacts"), SHORT_TIMEOUT, download_artifacts, official_build)

    async def create_tag(ctx: StepContext) -> None:
        if vs.github_tag:
            return
        tag = f"v{version}"
        await sb.create_github_tag(ctx, version, ri.target_repo, tag, vs.commit, secret)
        vs.github_tag = tag

    async def create_release(ctx: StepContext) -> None:
        if vs.github_release:
            return
        await sb.create_github_release(
            ctx, ri.target_repo, vs.github_tag, scratch.asset_json_path, scratch.artifacts_dir, secret
        )
        vs.github_release = vs.github_tag

    github_publish = step(
        name("🎓 Create GitHub tag"), SHORT_TIMEOUT, create_tag, ready_for_publish
    ).then(name("🎓 Create GitHub release"), SHORT_TIMEOUT, create_release, asset_metadata, artifacts)

    async def update_akams(ctx: StepContext) -> None:
        if not vs.akams_build_id:
            vs.akams_build_id = await sb.trigger_build_pipeline(
                ctx, ri.microsoft_go_akams_pipeline, None, None, secret
            )
        if not vs.akams_updated:
            await sb.poll_pipeline_complete(ctx, vs.akams_build_id, secret)
            vs.akams_updated = True

    akams_publish = step(
        name("🎓 Update aka.ms links"), SHORT_TIMEOUT, update_akams, ready_for_publish, asset_metadata
    )

    async def update_dockerfiles(ctx: StepContext) -> None:
        if not vs.image_update_pr:
            vs.image_update_pr = await sb.create_docker_images_pr(
                ctx, ri.target_repo, scratch.asset_json_path, "", secret
            )
        if not vs.images_updated:
            await sb.poll_merged_github_pr_commit(ctx, ri.target_repo, vs.image_update_pr, secret)
            vs.images_updated = True

    dockerfile_publish = step(
        name("Update Dockerfiles"),
        # Worst case, every version adds its update to the shared PR just before CI finishes.
        MICROSOFT_GO_IMAGES_PR_CI_TIMEOUT * len(ri.versions),
        update_dockerfiles,
        ready_for_publish,
        asset_metadata,
    )

    async def trigger_azure_linux_pr(ctx: StepContext) -> None:
        if not vs.azure_linux_update_build_id:
            vs.azure_linux_update_build_id = await sb.trigger_build_pipeline(
                ctx, ri.azure_linux_create_pr_pipeline, None, None, secret
            )
        if not vs.azure_linux_pr_submitted:
            await sb.poll_pipeline_complete(ctx, vs.azure_linux_update_build_id, secret)
            vs.azure_linux_pr_submitted = True
        # The PR itself isn't tracked: approval to merge can take arbitrarily long.

    azure_linux_publish = step(
        name("🚀 Trigger Azure Linux PR creation"), SHORT_TIMEOUT, trigger_azure_linux_pr, ready_for_publish
    )

    return (
        indicator(
            name("✅ microsoft/go publish and go-images PR complete"),
            github_publish,
            akams_publish,
            dockerfile_publish,
        ),
        indicator(name("✅ External publish complete"), azure_linux_publish),
    )


# ----------------------------------------------------------------------
# Resumable run
# ----------------------------------------------------------------------

async def run_release(
    ri: ReleaseInput,
    secret: Secret,
    sb: ServiceBundle,
    state_path: str | Path,
    *,
    runner: Optional[StepRunner] = None,
) -> Tuple[StepRunner, ReleaseState]:
    """
    Run (or resume) a release, persisting progress to state_path.

    The state is saved whether or not the run succeeds, so a failed release
    can be retried by calling this again with the same input and state file.
    Pass a runner to choose fail_fast or to inspect per-step results after
    a failed run.
    """
    rs = load_state(state_path)
    if rs is not None:
        logger.info("resuming release from %s", state_path)
    steps, rs = create_step_graph(ri, secret, rs, sb)

    if runner is None:
        runner = StepRunner()
    try:
        await runner.execute(steps)
    finally:
        save_state(rs, state_path)
    return runner, rs
