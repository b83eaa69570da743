"""converge CLI.

Drives the reconciliation engines against Azure Resource Manager.

Usage:
    converge wait RESOURCE_ID                      # Wait for provisioningState Succeeded
    converge wait RESOURCE_ID --target Deleted     # Wait until the resource is gone
    converge tags apply tags.yaml                  # Converge a scope's tags
    converge tags apply tags.yaml --dry-run        # Show the tag diff only

Exit codes:
    0  success
    1  failed (provider error, bad configuration or document)
    2  timed out
    3  not found
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import click

from .azure_backend import DEFAULT_API_VERSION, SUCCEEDED, ArmReconciler, TagSyncResult
from .batch import tags_to_map
from .config import Config, ConfigurationError
from .desired_state import DesiredStateError, load_tag_document
from .errors import ConvergeError, ErrorKind
from .main import setup_logging
from .security import CredentialError

logger = logging.getLogger(__name__)

EXIT_FAILED = 1
EXIT_TIMEOUT = 2
EXIT_NOT_FOUND = 3

_EXIT_CODES: dict[ErrorKind, int] = {
    ErrorKind.TIMEOUT: EXIT_TIMEOUT,
    ErrorKind.NOT_FOUND: EXIT_NOT_FOUND,
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def exit_code_for(err: BaseException) -> int:
    """Map an error to the process exit code."""
    if isinstance(err, ConvergeError):
        return _EXIT_CODES.get(err.kind, EXIT_FAILED)
    return EXIT_FAILED


def build_reconciler(config: Config, api_version: str) -> ArmReconciler:
    """Build the ARM reconciler (patched in tests)."""
    return ArmReconciler.from_config(config, api_version=api_version)


@contextmanager
def handle_errors() -> Iterator[None]:
    """Report known errors on stderr and exit with the mapped code."""
    try:
        yield
    except (ConvergeError, ConfigurationError, CredentialError, DesiredStateError) as e:
        exit_code = exit_code_for(e)
        logger.debug("Command failed", extra={"error_type": type(e).__name__, "exit_code": exit_code})
        click.echo(f"Error: {e}", err=True)
        sys.exit(exit_code)


def _emit(summary: dict[str, Any]) -> None:
    click.echo(json.dumps(summary, indent=2, sort_keys=True))


def _tag_sync_summary(result: TagSyncResult) -> dict[str, Any]:
    return {
        "scope": result.scope,
        "dry_run": result.dry_run,
        "changed": result.changed,
        "tags_to_create": tags_to_map(result.created),
        "tags_to_remove": sorted(tag.key for tag in result.removed),
        "chunks_applied": result.removed_batch.chunks_applied + result.added_batch.chunks_applied,
        "chunks_skipped": result.removed_batch.chunks_skipped + result.added_batch.chunks_skipped,
    }


# =============================================================================
# Root group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="converge")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Log level for JSON logs on stderr",
)
def cli(log_level: str) -> None:
    """converge: wait for and converge Azure resources.

    \b
    Configuration comes from the environment:
        AZURE_SUBSCRIPTION_ID              (required)
        AZURE_MANAGED_IDENTITY_CLIENT_ID   (user-assigned identity)
        CONVERGE_POLL_INTERVAL, CONVERGE_DEFAULT_TIMEOUT, CONVERGE_TAG_CHUNK_SIZE
    """
    setup_logging(log_level)


# =============================================================================
# Wait
# =============================================================================


@cli.command()
@click.argument("resource_id")
@click.option(
    "--target",
    default=SUCCEEDED,
    show_default=True,
    help="provisioningState to wait for, 'Exists', or 'Deleted'",
)
@click.option("--timeout", "timeout_seconds", type=click.IntRange(min=1), help="Timeout in seconds")
@click.option("--api-version", default=DEFAULT_API_VERSION, show_default=True)
def wait(resource_id: str, target: str, timeout_seconds: int | None, api_version: str) -> None:
    """Poll RESOURCE_ID until it reaches TARGET."""
    with handle_errors():
        config = Config.from_env()
        reconciler = build_reconciler(config, api_version)
        result = reconciler.wait(resource_id, target, timeout_seconds)

    _emit(
        {
            "resource_id": resource_id,
            "target": target,
            "status": result.status if result is not None else None,
            "present": result is not None,
        }
    )


# =============================================================================
# Tags
# =============================================================================


@cli.group()
def tags() -> None:
    """Tag convergence commands."""
    pass


@tags.command("apply")
@click.argument("file", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--timeout", "timeout_seconds", type=click.IntRange(min=1), help="Timeout in seconds")
@click.option("--dry-run", is_flag=True, help="Compute the tag diff without writing")
@click.option("--api-version", default=DEFAULT_API_VERSION, show_default=True)
def tags_apply(
    file: Path, timeout_seconds: int | None, dry_run: bool, api_version: str
) -> None:
    """Bring a scope's tags to the set declared in FILE."""
    with handle_errors():
        document = load_tag_document(file)
        config = Config.from_env()
        reconciler = build_reconciler(config, api_version)
        result = reconciler.sync_tags(
            document.scope,
            document.tags,
            timeout_seconds=timeout_seconds or document.timeout_seconds,
            dry_run=dry_run,
        )

    _emit(_tag_sync_summary(result))


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
