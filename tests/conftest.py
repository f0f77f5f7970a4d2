"""Shared fixtures for releaseagent tests."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any

import pytest

from releaseagent import StepContext
from releaseagent.release import ReleaseInput, Secret


class Recorder:
    """Records which implementations ran and when (event loop time)."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.started: dict[str, float] = {}
        self.ended: dict[str, float] = {}

    def impl(self, name: str, *, delay: float = 0.0, error: Exception | None = None):
        async def run(ctx: StepContext) -> None:
            loop = asyncio.get_running_loop()
            self.calls.append(name)
            self.started[name] = loop.time()
            if delay:
                await asyncio.sleep(delay)
            self.ended[name] = loop.time()
            if error is not None:
                raise error

        return run


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


class FakeServices:
    """
    In-memory ServiceBundle. Every call is recorded by method name; set
    `fail` to make a method raise instead.
    """

    def __init__(self) -> None:
        self.calls: dict[str, list[tuple[Any, ...]]] = defaultdict(list)
        self.fail: dict[str, Exception] = {}

    def _record(self, method: str, *args: Any) -> None:
        self.calls[method].append(args)
        if method in self.fail:
            raise self.fail[method]

    def count(self, method: str) -> int:
        return len(self.calls[method])

    async def create_release_day_tracking_issue(self, ctx, repo, runner, versions, secret):
        self._record("create_release_day_tracking_issue", repo, runner, list(versions))
        return 42

    async def poll_upstream_tag_commit(self, ctx, version):
        self._record("poll_upstream_tag_commit", version)
        return "abcdef-upstream-commit"

    async def create_github_sync_pr(self, ctx, repo, upstream_commit, secret):
        self._record("create_github_sync_pr", repo, upstream_commit)
        return 1234

    async def poll_merged_github_pr_commit(self, ctx, repo, pr, secret):
        self._record("poll_merged_github_pr_commit", repo, pr)
        return "abcdef-merged-commit"

    async def poll_azdo_mirror(self, ctx, target, commit, secret):
        self._record("poll_azdo_mirror", target, commit)

    async def trigger_build_pipeline(self, ctx, pipeline_id, parameters, optional_parameters, secret):
        self._record("trigger_build_pipeline", pipeline_id)
        return f"{pipeline_id}-running-pipeline"

    async def poll_pipeline_complete(self, ctx, build_id, secret):
        self._record("poll_pipeline_complete", build_id)

    async def download_pipeline_artifact_to_dir(self, ctx, build_id, artifact_name, secret):
        self._record("download_pipeline_artifact_to_dir", build_id, artifact_name)
        return f"/tmp/go-artifacts/{artifact_name}"

    async def verify_asset_version(self, ctx, asset_json_path, version):
        self._record("verify_asset_version", asset_json_path, version)

    async def create_github_tag(self, ctx, version, repo, tag, commit, secret):
        self._record("create_github_tag", version, repo, tag, commit)

    async def create_github_release(self, ctx, repo, tag, asset_json_path, build_asset_dir, secret):
        self._record("create_github_release", repo, tag, asset_json_path, build_asset_dir)

    async def create_docker_images_pr(self, ctx, repo, asset_json_path, manual_branch, secret):
        self._record("create_docker_images_pr", repo, asset_json_path)
        return 50

    async def poll_images_commit(self, ctx, versions, secret):
        self._record("poll_images_commit", list(versions))
        return "abcdef-images-with-versions"

    async def check_latest_mar_go_version(self, ctx, versions):
        self._record("check_latest_mar_go_version", list(versions))

    async def create_announcement_blog_file(self, ctx, versions, user, security, secret):
        self._record("create_announcement_blog_file", list(versions), user, security)


@pytest.fixture
def services() -> FakeServices:
    return FakeServices()


@pytest.fixture
def release_input() -> ReleaseInput:
    return ReleaseInput(
        versions=["1.22.10-1", "1.23.4-1"],
        security=False,
        runner_github_user="ghost",
        release_config_variable_group="go-release-variables",
        target_repo="microsoft/go",
        target_azdo_repo="dnceng/internal/_git/microsoft-go",
        target_go_images_repo="microsoft/go-images",
        target_azdo_go_images_repo="dnceng/internal/_git/microsoft-go-images",
        microsoft_go_pipeline=20,
        microsoft_go_innerloop_pipeline=30,
        microsoft_go_images_pipeline=40,
        microsoft_go_akams_pipeline=50,
        azure_linux_create_pr_pipeline=60,
    )


@pytest.fixture
def secret() -> Secret:
    return Secret(github_pat="Placeholder", github_reviewer_pat="PlaceholderReviewer", azdo_pat="PlaceholderAzDO")
