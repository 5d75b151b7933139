"""Centralized logging configuration for CLI commands.

Provides three logging levels:
- Default: Clean output, suppress library logs
- Verbose: Show routing decisions and timings, suppress library logs
- Debug: Show everything including library internals
"""

import logging

NOISY_LOGGERS = ('httpx', 'httpcore', 'urllib3', 'qdrant_client', 'meilisearch')


def setup_logging_default():
    """Default logging: Clean output, only warnings and errors.

    Shows:
    - Max-roles truncation and role inheritance cycle warnings
    - Errors
    """
    logging.basicConfig(
        level=logging.WARNING,
        format='%(levelname)s: %(message)s'
    )

    logging.getLogger('govsearch').setLevel(logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)


def setup_logging_verbose():
    """Verbose logging: Show search progress.

    Shows:
    - Catalog and configuration details
    - Routing decisions (full text or catalog store)
    """
    logging.basicConfig(
        level=logging.INFO,
        format='%(levelname)s: %(message)s'
    )

    logging.getLogger('govsearch').setLevel(logging.INFO)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging_debug():
    """Debug logging: Show everything including library internals.

    Use for:
    - Inspecting translated backend filters
    - Backend query timings
    """
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(name)s - %(levelname)s: %(message)s'
    )

    # No suppression in debug mode
    logging.getLogger('govsearch').setLevel(logging.DEBUG)


def setup_logging(verbose: bool = False, debug: bool = False):
    if debug:
        setup_logging_debug()
    elif verbose:
        setup_logging_verbose()
    else:
        setup_logging_default()
