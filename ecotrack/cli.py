"""CLI entry point for ecosystem-tracker."""

from __future__ import annotations

import asyncio
import json
import sys
import time
from pathlib import Path
from typing import Optional

import click
import httpx

from ecotrack import __version__
from ecotrack.config import TrackerConfig, get_env_github_token, load_config
from ecotrack.models import UnknownPlatformError, VersionParseError
from ecotrack.poller import DiscoveryPoller, GitHubClient, ReleasePoller, TransientRemoteError
from ecotrack.registry import CompatibilityStore, StoreError
from ecotrack.reporter import AdoptionChart
from ecotrack.runner import (
    BuildOrchestrator,
    CompilerError,
    CompilerRunner,
    FullRefresh,
    GitClient,
    MigrationProber,
    RunMode,
    RunReport,
    SelectiveCheck,
)
from ecotrack.utils.atomic import AtomicWriteError
from ecotrack.utils.logging import (
    configure_logging,
    get_logger,
    log_stage_timing,
    new_run_id,
    set_run_context,
    set_stage,
)
from ecotrack.utils.result import ExitCode

DEFAULT_CONFIG = "./config"


class Context:
    """CLI context for sharing state between commands."""

    def __init__(self, config: TrackerConfig, log_level: str) -> None:
        self.config = config
        self.log_level = log_level
        self.logger = get_logger("cli")


pass_context = click.make_pass_decorator(Context)


def output_json(data: dict) -> None:
    """Output JSON to stdout."""
    click.echo(json.dumps(data, indent=2, default=str))


def build_orchestrator(config: TrackerConfig, store: CompatibilityStore) -> BuildOrchestrator:
    compiler = CompilerRunner(config.compiler.binary, timeout=config.compiler.timeout)
    return BuildOrchestrator(
        store=store,
        compiler=compiler,
        git=GitClient(retry=config.retry),
        build_dir=config.storage.build_dir,
        manifest_name=config.compiler.manifest_name,
        prober=MigrationProber(compiler, max_steps=config.migration.max_steps),
    )


async def run_update(config: TrackerConfig, store: CompatibilityStore) -> RunReport:
    """Discovery poll, release poll, then a full refresh build pass."""
    started = time.monotonic()
    async with GitHubClient(config.github, config.retry) as client:
        set_stage("discovery")
        await DiscoveryPoller(client, config.github).poll(store)

        set_stage("releases")
        await ReleasePoller(
            client,
            config.release_tracks,
            strict_assets=config.storage.strict_assets,
        ).poll(store)
    log_stage_timing("polling", time.monotonic() - started)

    started = time.monotonic()
    report = await build_orchestrator(config, store).run(FullRefresh())
    log_stage_timing("build", time.monotonic() - started)
    return report


@click.group()
@click.option(
    "--config",
    "config_dir",
    type=click.Path(exists=False, file_okay=False, path_type=Path),
    default=DEFAULT_CONFIG,
    help="Path to config directory",
)
@click.option("--quiet", is_flag=True, default=False, help="Only log errors")
@click.option("--verbose", is_flag=True, default=False, help="Use verbose output")
@click.option(
    "--log-format",
    type=click.Choice(["json", "text"], case_sensitive=False),
    default=None,
    help="Log format (overrides config)",
)
@click.version_option(version=__version__)
@click.pass_context
def cli(
    ctx: click.Context,
    config_dir: Path,
    quiet: bool,
    verbose: bool,
    log_format: Optional[str],
) -> None:
    """
    Ecosystem tracker - compiler adoption and build-compatibility history.

    Discovers community projects, records release downloads, and verifies
    that every tracked project still builds with the current compiler,
    migrating sources across minor versions where needed.
    """
    result = load_config(config_dir)
    if result.is_err():
        configure_logging(level="error")
        get_logger("cli").error("config_invalid", error=str(result.unwrap_err()))
        ctx.exit(ExitCode.CONFIG_INVALID)
    config = result.unwrap()

    if quiet:
        level = "error"
    elif verbose:
        level = "debug"
    else:
        level = config.logging.level
    configure_logging(level=level, format_type=log_format or config.logging.format)

    ctx.obj = Context(config=config.with_token(get_env_github_token()), log_level=level)


@cli.command()
@pass_context
def update(ctx: Context) -> None:
    """Poll discovery and releases, rebuild every project, save and plot."""
    config = ctx.config
    set_run_context(new_run_id("update"), stage="load")

    db_path = config.storage.db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)
    store = CompatibilityStore.load_or_create(db_path)

    if not config.github.token:
        ctx.logger.warning("github_token_missing")

    report = asyncio.run(run_update(config, store))

    set_stage("save")
    store.save(db_path)

    set_stage("plot")
    AdoptionChart().write(store.adoption_series(), config.storage.chart_path)

    output_json({
        "status": "success",
        "db_path": str(db_path),
        "chart_path": str(config.storage.chart_path),
        **report.to_dict(),
    })


@cli.command()
@click.option(
    "--path",
    "compiler_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Compiler binary to test instead of the configured one",
)
@click.option(
    "--all",
    "include_known_failures",
    is_flag=True,
    default=False,
    help="Also check projects whose latest build failed",
)
@click.option("--version", "target_version", default=None, help="Pin the target compiler version")
@click.option(
    "--reference",
    "reference_version",
    default=None,
    help="Reference compiler version to compare generated output against",
)
@click.option(
    "--force",
    is_flag=True,
    default=False,
    help="Build even when revision and compiler version are unchanged",
)
@pass_context
def check(
    ctx: Context,
    compiler_path: Optional[Path],
    include_known_failures: bool,
    target_version: Optional[str],
    reference_version: Optional[str],
    force: bool,
) -> None:
    """Build tracked projects without recording the results."""
    config = ctx.config.with_compiler_binary(compiler_path)
    set_run_context(new_run_id("check"), stage="load")

    store = CompatibilityStore.load_or_create(config.storage.db_path)
    mode: RunMode = SelectiveCheck(
        target_version=target_version,
        reference_version=reference_version,
        include_known_failures=include_known_failures,
        force=force,
    )

    report = asyncio.run(build_orchestrator(config, store).run(mode))

    output_json({
        "status": "success",
        **report.to_dict(),
    })


@cli.command()
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format",
)
@pass_context
def status(ctx: Context, output_format: str) -> None:
    """Show what the store currently holds."""
    store = CompatibilityStore.load_or_create(ctx.config.storage.db_path)
    stats = store.get_stats()

    if output_format == "json":
        output_json(stats.to_dict())
        return

    click.echo("Ecosystem Tracker Status")
    click.echo("=" * 40)
    click.echo(f"Tracked projects: {stats.total_projects}")
    click.echo(f"  Passing: {stats.passing}")
    click.echo(f"  Failing: {stats.failing}")
    click.echo(f"  Untested: {stats.untested}")
    click.echo(f"Build logs: {stats.build_logs}")
    if stats.latest_snapshot:
        snapshot = stats.latest_snapshot
        click.echo(f"\nLatest discovery: {snapshot['date']}")
        click.echo(f"  Source files: {snapshot['sources']}")
        click.echo(f"  Projects: {snapshot['projects']}")
    if stats.latest_versions:
        click.echo("\nLatest versions:")
        for track, version in stats.latest_versions.items():
            click.echo(f"  {track}: {version or '-'}")


def main() -> None:
    """Main entry point."""
    logger = get_logger("cli")
    try:
        exit_code = cli(standalone_mode=False)
        if isinstance(exit_code, int) and exit_code:
            sys.exit(exit_code)
    except click.exceptions.Exit as e:
        sys.exit(e.exit_code)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        sys.exit(ExitCode.GENERAL_ERROR)
    except (StoreError, AtomicWriteError) as e:
        logger.error("store_failed", error=str(e))
        sys.exit(ExitCode.STORE_FAILED)
    except (VersionParseError, UnknownPlatformError) as e:
        logger.error("upstream_contract_violated", error=str(e))
        sys.exit(ExitCode.UPSTREAM_CONTRACT)
    except (TransientRemoteError, httpx.HTTPError) as e:
        logger.error("remote_failed", error=str(e))
        sys.exit(ExitCode.REMOTE_FAILED)
    except CompilerError as e:
        logger.error("compiler_failed", error=str(e))
        sys.exit(ExitCode.COMPILER_FAILED)
    except Exception as e:
        logger.error("cli_error", error=str(e))
        sys.exit(ExitCode.GENERAL_ERROR)


if __name__ == "__main__":
    main()
