"""
Entry point for the `crmbatch` command.

Logging and .env loading happen before the click group is imported, so
messages emitted while the environment is prepared honour -v and -q.
"""

import sys
import logging


def __configure_early_logging(verbose=False, quiet=False):
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True
    )


def __load_cli_environment(verbose=False):
    """Load .env files. Missing credentials are reported by the commands that need them."""
    logger = logging.getLogger(__name__)
    try:
        from ..core.utils.environment import setup_environment
        loaded = setup_environment(verbose=verbose)
        logger.debug(f"Environment ready (.env loaded: {loaded})")
    except OSError as e:
        # Variables may still be set system-wide
        logger.warning(f"Could not read .env file: {e}")


def main():
    """Run the CLI."""
    # click parses the flags later; peek at them for the early logging setup
    verbose = '-v' in sys.argv or '--verbose' in sys.argv
    quiet = '-q' in sys.argv or '--quiet' in sys.argv

    __configure_early_logging(verbose=verbose, quiet=quiet)
    __load_cli_environment(verbose=verbose)

    logger = logging.getLogger(__name__)
    try:
        from .cli import cli
        cli()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)
    except Exception as e:
        if verbose:
            logger.exception("crmbatch failed")
        else:
            logger.error(f"crmbatch failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
