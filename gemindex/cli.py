"""CLI interface for gemindex."""

import logging
from pathlib import Path
from typing import Any, Optional

import click

from .api import GemindexClient
from .config import GemindexConfig, load_config
from .exceptions import (
    GemindexAPIError,
    GemindexCancelledError,
    GemindexConfigError,
    GemindexScanError,
)
from .output import OutputFormatter
from .sync.cancellation import CancellationToken, default_interrupts, interrupt_handler
from .sync.engine import SyncEngine
from .sync.planner import SyncPlan
from .utils import DEFAULT_CONFIG_FILE_NAME

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_CANCELLED = 130  # Standard exit code for SIGINT


@click.group()
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="gemindex")
@click.pass_context
def main(ctx: Any, quiet: bool, json: bool, verbose: bool) -> None:
    """gemindex - Sync local files to a File Search store."""
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    # Configure logging based on verbose flag
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("gemindex").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


def _apply_overrides(
    config: GemindexConfig,
    store: Optional[str],
    endpoint: Optional[str],
    delete: bool,
    concurrency: Optional[int],
) -> GemindexConfig:
    """Apply command line overrides on top of the loaded config."""
    if store:
        config.store = store
    if endpoint:
        config.api.endpoint = endpoint
    if delete:
        config.sync.delete = True
    if concurrency is not None:
        config.sync.concurrency = concurrency
    return config


def _confirm_plan(out: OutputFormatter, plan: SyncPlan) -> bool:
    """Ask the user to approve a plan. Only the literal answer 'yes' counts."""
    out.print("")
    out.print("[bold]Do you want to apply these changes?[/bold]")
    out.print("  Only 'yes' will be accepted to approve.")
    out.print("")
    try:
        with default_interrupts():
            answer = click.prompt("  Enter a value", default="", show_default=False)
    except click.Abort:
        return False
    return answer.strip() == "yes"


@main.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_CONFIG_FILE_NAME,
    show_default=True,
    help="Path to the config file",
)
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt")
@click.option(
    "--dry-run", "-n", is_flag=True, help="Show what would change without syncing"
)
@click.option(
    "--delete", "-d", is_flag=True, help="Delete remote files not present locally"
)
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Number of parallel transfers (overrides config)",
)
@click.option("--store", "-s", help="Store name (overrides config)")
@click.option("--endpoint", "-e", help="API endpoint URL (overrides config)")
@click.pass_context
def sync(
    ctx: Any,
    config_path: Path,
    yes: bool,
    dry_run: bool,
    delete: bool,
    concurrency: Optional[int],
    store: Optional[str],
    endpoint: Optional[str],
) -> None:
    """Sync local files with a File Search store.

    Files matching the config's include patterns are hashed and compared
    with the store. New and changed files are uploaded, unchanged files are
    skipped and, with --delete, remote files that no longer exist locally
    are removed.

    Examples:
        gemindex sync                  # Show plan, ask, then sync
        gemindex sync --dry-run        # Only show the plan
        gemindex sync -y --delete      # Sync and prune without asking
        gemindex sync -c docs/.gemindex.json --concurrency 4
    """
    out: OutputFormatter = ctx.obj["out"]

    # The plan is not rendered in JSON mode, so it cannot be confirmed
    if out.json_output and not (yes or dry_run):
        out.error("--json requires --yes or --dry-run")
        ctx.exit(EXIT_CONFIG_ERROR)

    try:
        config = _apply_overrides(
            load_config(config_path), store, endpoint, delete, concurrency
        )
    except GemindexConfigError as e:
        out.error(f"Configuration error: {e}")
        ctx.exit(EXIT_CONFIG_ERROR)

    out.info(f"Syncing to store: [bold]{config.store}[/bold]")
    if config.sync.delete:
        out.warning(
            "Delete mode enabled: remote files not present locally will be removed"
        )

    token = CancellationToken()
    client = GemindexClient(endpoint=config.api.endpoint, token=config.api.token)
    engine = SyncEngine(
        client,
        config.store,
        token=token,
        output=out,
        concurrency=config.sync.concurrency,
        max_attempts=config.sync.max_attempts,
        base_delay=config.sync.base_delay,
    )

    def _on_interrupt() -> None:
        out.warning("\nCancelling... press Ctrl+C again to force quit")

    confirm = None if yes else (lambda plan: _confirm_plan(out, plan))

    try:
        with interrupt_handler(token, on_first_interrupt=_on_interrupt):
            report = engine.sync(
                config.base_dir,
                config.include,
                config.exclude,
                delete_remote=config.sync.delete,
                dry_run=dry_run,
                confirm=confirm,
            )
    except (GemindexCancelledError, KeyboardInterrupt):
        out.warning("\nSync cancelled by user")
        ctx.exit(EXIT_CANCELLED)
    except GemindexScanError as e:
        out.error(f"Scan error: {e}")
        ctx.exit(EXIT_FAILURE)
    except GemindexAPIError as e:
        out.error(f"API error: {e}")
        ctx.exit(EXIT_FAILURE)
    finally:
        client.close()

    if out.json_output:
        out.output_json(report.to_dict())

    if report.cancelled:
        out.warning("Sync cancelled by user")
        ctx.exit(EXIT_CANCELLED)
    elif report.has_failures:
        ctx.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
