# cli.py
from __future__ import annotations

import asyncio
import logging
import sys

import click

from releaseagent.config import load_config
from releaseagent.dag import topo_levels
from releaseagent.dryrun import DryRunServices
from releaseagent.errors import CoordinatorError, StepError
from releaseagent.logging import configure_logging
from releaseagent.release import Secret, create_step_graph, normalize_version, run_release
from releaseagent.runner import StepRunner
from releaseagent.state import ReleaseState
from releaseagent.ui.console import Console, get_console, set_console


def parse_versions(values: tuple[str, ...]) -> list[str]:
    """
    Normalize --version values, rejecting obvious mistakes.

    Raises click.BadParameter for invalid or duplicate versions.
    """
    versions: list[str] = []
    for value in values:
        try:
            v = normalize_version(value)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--version") from e
        if v in versions:
            raise click.BadParameter(f"duplicate version passed: {value!r}", param_hint="--version")
        versions.append(v)
    if not versions:
        raise click.BadParameter("at least one version is required", param_hint="--version")
    return versions


def release_input_options(f):
    """Options shared by every command that builds a release graph."""
    f = click.option(
        "--config", "config_path", default=None,
        help="Release config file (defaults to releaseagent.json if present)",
    )(f)
    f = click.option("--runner", default="ghost", show_default=True,
                     help="GitHub username of the dev in charge of this release")(f)
    f = click.option("--security", is_flag=True, default=False,
                     help="This release contains security fixes. Changes announcement text")(f)
    f = click.option("--version", "versions", multiple=True,
                     help="A version to release. Pass multiple times to release multiple versions")(f)
    return f


def _build_input(ctx, versions, security, runner, config_path):
    config = load_config(config_path)
    # --debug wins over the configured level.
    if not ctx.obj["debug"]:
        level = config.log_level.upper()
        if level not in logging.getLevelNamesMapping():
            raise click.BadParameter(
                f"unknown log level {config.log_level!r}", param_hint="log_level (config)"
            )
        configure_logging(level, json_format=ctx.obj["json_logs"])
    return config.to_input(parse_versions(versions), security=security, runner=runner)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces, dependencies and debug logs)",
)
@click.option("--json-logs", is_flag=True, default=False, help="Emit logs as JSON lines")
@click.pass_context
def cli(ctx, debug, json_logs):
    """releaseagent: coordinates a release as a graph of resumable steps."""
    set_console(Console(debug=debug))
    configure_logging(logging.DEBUG if debug else logging.WARNING, json_format=json_logs)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["json_logs"] = json_logs


@cli.command()
@release_input_options
@click.pass_context
def plan(ctx, versions, security, runner, config_path):
    """Print the release steps and which of them can run in parallel."""
    console = get_console()
    ri = _build_input(ctx, versions, security, runner, config_path)

    try:
        steps, _state = create_step_graph(ri, None, None, None)
        levels = topo_levels(steps)
    except (CoordinatorError, ValueError) as e:
        console.print_error("Invalid release graph", str(e))
        sys.exit(1)

    console.print_release_started(ri.versions, len(steps))
    console.print_plan(steps)
    console.print_stages(levels)


@cli.command("state-template")
@release_input_options
@click.pass_context
def state_template(ctx, versions, security, runner, config_path):
    """Print the progress record a new release with these inputs starts from."""
    ri = _build_input(ctx, versions, security, runner, config_path)
    try:
        _steps, state = create_step_graph(ri, None, None, None)
    except (CoordinatorError, ValueError) as e:
        get_console().print_error("Invalid release graph", str(e))
        sys.exit(1)
    click.echo(_dump_state(state))


@cli.command("dry-run")
@release_input_options
@click.option("--state", "state_path", default="release-state.json", show_default=True,
              help="Progress record to resume from and save to")
@click.option("--delay", default=0.0, show_default=True, type=float,
              help="Seconds each simulated service call takes")
@click.option("--no-fail-fast", is_flag=True, default=False,
              help="Keep running independent steps after a failure")
@click.pass_context
def dry_run(ctx, versions, security, runner, config_path, state_path, delay, no_fail_fast):
    """Walk the release graph against placeholder services, saving progress."""
    console = get_console()
    ri = _build_input(ctx, versions, security, runner, config_path)
    step_runner = StepRunner(fail_fast=not no_fail_fast)
    services = DryRunServices(delay=delay)

    console.print_header(f"Dry run: {', '.join(ri.versions)}")
    try:
        asyncio.run(run_release(ri, Secret(), services, state_path, runner=step_runner))
    except StepError:
        console.print_results(step_runner.results())
        console.print_failures(step_runner.states)
        sys.exit(1)
    except (CoordinatorError, ValueError) as e:
        console.print_error("Cannot run release", str(e), suggestion=f"Check or remove {state_path}")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print_error("Interrupted", f"Progress saved to {state_path}")
        sys.exit(130)

    console.print_results(step_runner.results())
    console.print_info(f"{len(services.calls)} service calls; progress saved to {state_path}")


def _dump_state(state: ReleaseState) -> str:
    return state.model_dump_json(indent=2)


if __name__ == "__main__":
    cli()
