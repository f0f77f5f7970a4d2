"""
Service bundle that talks to nothing. Every call is logged and returns a
placeholder, so a release graph can be walked end to end without credentials.
"""
from __future__ import annotations

import os
from typing import Dict, List, Optional, Sequence

from .context import StepContext
from .release import Secret


class DryRunServices:
    """
    Stand-in for the real services. `delay` simulates remote latency for
    each call; `calls` lists method names in call order.
    """

    def __init__(self, delay: float = 0.0, artifact_root: str = "dry-run-artifacts"):
        self.delay = delay
        self.artifact_root = artifact_root
        self.calls: List[str] = []
        self._builds = 0

    async def _call(self, ctx: StepContext, method: str, *args) -> None:
        self.calls.append(method)
        ctx.logger.info("[dry-run] %s: %s%r", ctx.step_name, method, args)
        if self.delay:
            await ctx.sleep(self.delay)

    async def create_release_day_tracking_issue(
        self, ctx: StepContext, repo: str, runner: str, versions: Sequence[str], secret: Secret
    ) -> int:
        await self._call(ctx, "create_release_day_tracking_issue", repo, runner, list(versions))
        return 1

    async def poll_upstream_tag_commit(self, ctx: StepContext, version: str) -> str:
        await self._call(ctx, "poll_upstream_tag_commit", version)
        return f"upstream-{version}"

    async def create_github_sync_pr(self, ctx: StepContext, repo: str, upstream_commit: str, secret: Secret) -> int:
        await self._call(ctx, "create_github_sync_pr", repo, upstream_commit)
        return 1

    async def poll_merged_github_pr_commit(self, ctx: StepContext, repo: str, pr: int, secret: Secret) -> str:
        await self._call(ctx, "poll_merged_github_pr_commit", repo, pr)
        return f"merged-{pr}"

    async def poll_azdo_mirror(self, ctx: StepContext, target: str, commit: str, secret: Secret) -> None:
        await self._call(ctx, "poll_azdo_mirror", target, commit)

    async def trigger_build_pipeline(
        self,
        ctx: StepContext,
        pipeline_id: int,
        parameters: Optional[Dict[str, str]],
        optional_parameters: Optional[Dict[str, str]],
        secret: Secret,
    ) -> str:
        await self._call(ctx, "trigger_build_pipeline", pipeline_id)
        self._builds += 1
        return f"{pipeline_id}-{self._builds}"

    async def poll_pipeline_complete(self, ctx: StepContext, build_id: str, secret: Secret) -> None:
        await self._call(ctx, "poll_pipeline_complete", build_id)

    async def download_pipeline_artifact_to_dir(
        self, ctx: StepContext, build_id: str, artifact_name: str, secret: Secret
    ) -> str:
        await self._call(ctx, "download_pipeline_artifact_to_dir", build_id, artifact_name)
        return os.path.join(self.artifact_root, build_id, artifact_name)

    async def verify_asset_version(self, ctx: StepContext, asset_json_path: str, version: str) -> None:
        await self._call(ctx, "verify_asset_version", asset_json_path, version)

    async def create_github_tag(
        self, ctx: StepContext, version: str, repo: str, tag: str, commit: str, secret: Secret
    ) -> None:
        await self._call(ctx, "create_github_tag", repo, tag, commit)

    async def create_github_release(
        self, ctx: StepContext, repo: str, tag: str, asset_json_path: str, build_asset_dir: str, secret: Secret
    ) -> None:
        await self._call(ctx, "create_github_release", repo, tag)

    async def create_docker_images_pr(
        self, ctx: StepContext, repo: str, asset_json_path: str, manual_branch: str, secret: Secret
    ) -> int:
        await self._call(ctx, "create_docker_images_pr", repo, asset_json_path)
        return 2

    async def poll_images_commit(self, ctx: StepContext, versions: Sequence[str], secret: Secret) -> str:
        await self._call(ctx, "poll_images_commit", list(versions))
        return "images-commit"

    async def check_latest_mar_go_version(self, ctx: StepContext, versions: Sequence[str]) -> None:
        await self._call(ctx, "check_latest_mar_go_version", list(versions))

    async def create_announcement_blog_file(
        self, ctx: StepContext, versions: Sequence[str], user: str, security: bool, secret: Secret
    ) -> None:
        await self._call(ctx, "create_announcement_blog_file", list(versions), user, security)
