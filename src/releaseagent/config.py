"""
Release configuration: where a release publishes to and which pipelines it
triggers.

Priority (highest to lowest):
1. Environment variables (RELEASEAGENT_KEY, e.g. RELEASEAGENT_TARGET_REPO)
2. Config file values (releaseagent.json in the working directory by default)
3. Defaults
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from .release import ReleaseInput

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "releaseagent.json"
ENV_PREFIX = "RELEASEAGENT"


@dataclass(frozen=True)
class ReleaseConfig:
    """Release targets that stay the same from one release to the next."""
    target_repo: str = "microsoft/go"
    target_azdo_repo: str = "dnceng/internal/_git/microsoft-go"
    target_go_images_repo: str = "microsoft/go-images"
    target_azdo_go_images_repo: str = "dnceng/internal/_git/microsoft-go-images"

    microsoft_go_pipeline: int = 0
    microsoft_go_innerloop_pipeline: int = 0
    microsoft_go_images_pipeline: int = 0
    microsoft_go_akams_pipeline: int = 0
    azure_linux_create_pr_pipeline: int = 0

    release_config_variable_group: str = ""
    log_level: str = "WARNING"

    def to_input(
        self,
        versions: Sequence[str],
        *,
        security: bool = False,
        runner: str = "ghost",
    ) -> ReleaseInput:
        return ReleaseInput(
            versions=list(versions),
            security=security,
            runner_github_user=runner,
            release_config_variable_group=self.release_config_variable_group,
            target_repo=self.target_repo,
            target_azdo_repo=self.target_azdo_repo,
            target_go_images_repo=self.target_go_images_repo,
            target_azdo_go_images_repo=self.target_azdo_go_images_repo,
            microsoft_go_pipeline=self.microsoft_go_pipeline,
            microsoft_go_innerloop_pipeline=self.microsoft_go_innerloop_pipeline,
            microsoft_go_images_pipeline=self.microsoft_go_images_pipeline,
            microsoft_go_akams_pipeline=self.microsoft_go_akams_pipeline,
            azure_linux_create_pr_pipeline=self.azure_linux_create_pr_pipeline,
        )


def _env_override(data: dict, prefix: str = ENV_PREFIX) -> dict:
    """Override config values with RELEASEAGENT_<FIELD> environment variables."""
    for key, value in os.environ.items():
        if key.startswith(f"{prefix}_"):
            data[key[len(prefix) + 1:].lower()] = value
    return data


def _parse_config_file(path: Path) -> dict:
    """Parse a JSON config file. Returns empty dict if it doesn't exist."""
    try:
        with open(path) as f:
            return json.load(f)
    except FileNotFoundError:
        logger.debug("Config file not found: %s", path)
        return {}
    except json.JSONDecodeError as e:
        logger.warning("Invalid config file %s: %s", path, e)
        return {}


def _build_config(data: dict) -> ReleaseConfig:
    """Build ReleaseConfig from a dict, ignoring unknown keys."""
    fields = {f.name: f for f in dataclasses.fields(ReleaseConfig)}
    filtered = {k: v for k, v in data.items() if k in fields}

    # Environment values arrive as strings.
    for name, value in filtered.items():
        if isinstance(value, str) and fields[name].type == "int":
            filtered[name] = int(value)

    return ReleaseConfig(**filtered)


def load_config(
    path: Optional[str | Path] = None,
    env_prefix: str = ENV_PREFIX,
) -> ReleaseConfig:
    """Load configuration from file and environment variables.

    Args:
        path: Path to config file (JSON). Defaults to releaseagent.json in CWD.
        env_prefix: Environment variable prefix. Defaults to RELEASEAGENT.
    """
    config_path = Path(path) if path else Path(DEFAULT_CONFIG_FILE)
    data = _parse_config_file(config_path)
    data = _env_override(data, env_prefix)
    return _build_config(data)
