"""
Main entry point for ticket-branch.

Orchestrates a single run:
1. Fetch the ticket from the issue tracker
2. List the branches known to the local repository
3. Resolve the base reference and the new branch name
4. Create the branch
"""

import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

import click

from . import __version__
from .config import AppConfig, ConfigError, PARENT_FALLBACK_PARENT_LABEL, load_config
from .git_ops import CreationError, GitRepository
from .models import ResolutionResult
from .naming import NamingError, derive_branch_name
from .resolver import ResolutionError, ResolverSettings, resolve
from .tracker import FetchError, fetch_ticket


EXIT_CONFIG_ERROR = 1
EXIT_FETCH_ERROR = 2
EXIT_RESOLUTION_ERROR = 3
EXIT_CREATION_ERROR = 4
EXIT_INTERRUPTED = 130


def setup_logging(level: str) -> None:
    """
    Configure application logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def validate_config(config: AppConfig) -> None:
    """
    Validate configuration before running.

    Raises:
        ConfigError: If configuration is invalid.
    """
    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        raise ConfigError(
            f"Configuration validation failed: {'; '.join(errors)}"
        )


def run(
    ticket_id: int,
    config: AppConfig,
    dry_run: bool = False,
    repo: Optional[GitRepository] = None,
) -> Optional[ResolutionResult]:
    """
    Create the branch of a ticket.

    Args:
        ticket_id: Ticket number.
        config: Application configuration.
        dry_run: Resolve and report without creating the branch.
        repo: Repository to work in (built from config if omitted).

    Returns:
        The resolution that was applied, or None when HEAD already is
        the ticket's branch.

    Raises:
        ConfigError, FetchError, ResolutionError, NamingError, CreationError.
    """
    validate_config(config)
    if repo is None:
        repo = GitRepository.from_config(config.git)

    logger.info(f"Repository found at: {repo.toplevel()}")

    ticket = fetch_ticket(
        ticket_id,
        config.tracker,
        config.naming,
        with_parent=config.resolution.parent_fallback == PARENT_FALLBACK_PARENT_LABEL,
    )

    current = repo.current_branch()
    if current is not None and current == derive_branch_name(ticket, config.naming):
        logger.info(f"Already on the desired branch {current}")
        return None

    known_refs = repo.list_refs()
    result = resolve(ticket, known_refs, ResolverSettings.from_config(config))
    logger.info(f"Resolved: {result.describe()}")

    if dry_run:
        logger.info("Dry run: branch not created")
        return result

    repo.create_branch(result.new_branch, result.base_ref)
    return result


def _fail(error: Exception, exit_code: int) -> None:
    kind = getattr(error, "kind", type(error).__name__)
    click.echo(f"{kind}: {error}", err=True)
    sys.exit(exit_code)


@click.group()
@click.version_option(__version__, prog_name="ticket-branch")
def cli() -> None:
    """Create git branches from issue tracker tickets."""


@cli.command()
@click.argument("ticket_id", type=click.IntRange(min=1))
@click.option(
    "--token",
    envvar="TRACKER_API_KEY",
    show_envvar=True,
    help="Tracker API key (overrides configuration)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML configuration file overriding environment settings",
)
@click.option(
    "--repo",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Path inside the git repository (default: current directory)",
)
@click.option(
    "--default-ref",
    help="Default base reference, e.g. origin/main",
)
@click.option(
    "--dry-run",
    "-n",
    is_flag=True,
    default=False,
    help="Show what would be created without creating the branch",
)
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug logging",
)
def create(
    ticket_id: int,
    token: Optional[str],
    config_path: Optional[Path],
    repo: Optional[Path],
    default_ref: Optional[str],
    dry_run: bool,
    debug: bool,
) -> None:
    """
    Create a branch for TICKET_ID.

    The branch is based on the parent ticket's branch, the maintenance
    branch of the target version, or the default reference, in that
    order of preference.
    """
    try:
        config = load_config(config_path)

        if token:
            config = replace(config, tracker=replace(config.tracker, api_key=token))
        if repo:
            config = replace(config, git=replace(config.git, repo_path=repo))
        if default_ref:
            config = replace(config, git=replace(config.git, default_ref=default_ref))
        if debug:
            config = replace(config, log_level="DEBUG")

        setup_logging(config.log_level)
        result = run(ticket_id, config, dry_run=dry_run)

    except ConfigError as e:
        _fail(e, EXIT_CONFIG_ERROR)
    except FetchError as e:
        _fail(e, EXIT_FETCH_ERROR)
    except (ResolutionError, NamingError) as e:
        _fail(e, EXIT_RESOLUTION_ERROR)
    except CreationError as e:
        _fail(e, EXIT_CREATION_ERROR)
    except KeyboardInterrupt:
        click.echo("\nOperation cancelled by user", err=True)
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        if debug:
            import traceback
            traceback.print_exc()
        sys.exit(EXIT_CONFIG_ERROR)

    if result is None:
        click.echo(f"Already on the branch of ticket #{ticket_id}")
    elif dry_run:
        click.echo(f"Would create {result.describe()}")
    else:
        click.echo(f"Created {result.describe()}")


main = cli


if __name__ == "__main__":
    main()
