"""Backend connectivity checks for a govsearch setup."""

import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from govsearch.config import SearchConfig
from govsearch.errors import EXIT_ERROR, GovSearchError

from .logging_config import setup_logging
from .output import print_error, print_info, print_json, print_warning
from .utils import create_fulltext_backend, create_qdrant_client, load_search_config

# (passed, message); passed is None for a check that does not apply
CheckResult = Tuple[Optional[bool], str]


def check_catalog_file(catalog_path: Path) -> CheckResult:
    """Check a catalog file loads."""
    from govsearch.backends.memory import MemoryCatalogStore

    try:
        MemoryCatalogStore.from_file(catalog_path)
    except (FileNotFoundError, GovSearchError) as e:
        return False, f"Catalog file unreadable: {e}"
    return True, f"Catalog file {catalog_path}"


def check_qdrant(config: SearchConfig, verbose: bool = False) -> CheckResult:
    """Check the Qdrant server is reachable and holds the catalog collection."""
    collection = config.qdrant.collection
    try:
        client = create_qdrant_client(config.qdrant)
        if not client.collection_exists(collection):
            return False, f"Qdrant collection '{collection}' not found"
    except Exception as e:
        if verbose:
            return False, f"Qdrant connection failed: {e}"
        return False, "Qdrant connection failed (check server is running)"
    return True, f"Qdrant collection '{collection}'"


def check_fulltext(config: SearchConfig) -> CheckResult:
    """Check the MeiliSearch server is healthy and holds the catalog index."""
    backend = create_fulltext_backend(config)
    if backend is None:
        return None, "Full-text search disabled"
    if not backend.health_check():
        return False, f"MeiliSearch unavailable at {backend.url}"
    try:
        if not backend.index_exists():
            return False, f"MeiliSearch index '{backend.index_name}' not found"
    except GovSearchError as e:
        return False, str(e)
    return True, f"MeiliSearch index '{backend.index_name}'"


def doctor_command(catalog: Optional[str], config_path: Optional[str], output_json: bool, verbose: bool):
    """Run the setup checks and exit non-zero when any fails.

    With a catalog file only the file is checked; otherwise Qdrant and,
    when enabled, MeiliSearch.
    """
    setup_logging(verbose)

    try:
        config = load_search_config(Path(config_path) if config_path else None)
    except GovSearchError as e:
        print_error(str(e), output_json)
        sys.exit(e.exit_code)

    checks: List[Tuple[str, CheckResult]] = []
    if catalog:
        checks.append(("catalog", check_catalog_file(Path(catalog))))
    else:
        checks.append(("qdrant", check_qdrant(config, verbose)))
        checks.append(("fulltext", check_fulltext(config)))

    failed = [name for name, (passed, _) in checks if passed is False]

    if output_json:
        data: Dict[str, object] = {
            "checks": [
                {"name": name, "passed": passed, "message": message}
                for name, (passed, message) in checks
            ],
        }
        status = "error" if failed else "success"
        print_json(status, f"{len(failed)} check(s) failed" if failed else "All checks passed", data)
    else:
        for name, (passed, message) in checks:
            if passed is None:
                print_warning(message)
            else:
                print_info(f"[{'OK' if passed else 'FAIL'}] {message}")
        if not failed:
            print_info("All checks passed")

    if failed:
        sys.exit(EXIT_ERROR)
