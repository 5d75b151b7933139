"""CLI commands for catalog search."""

import logging
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from rich.console import Console
from rich.table import Table

from govsearch.errors import ConfigurationError, GovSearchError
from govsearch.search.filters import describe_filter, parse_filters
from govsearch.search.formatter import (
    TABLE_COLUMNS,
    format_json_results,
    format_page_summary,
    format_summary,
    table_cells,
)
from govsearch.search.options import (
    CurrentAccessStatus,
    IdentityRef,
    ObjectType,
    SearchOptions,
    SearchType,
    TypeOptions,
)

from .logging_config import setup_logging
from .output import print_error, print_json, print_success
from .utils import build_context, load_search_config

console = Console()
logger = logging.getLogger(__name__)

SEARCH_TYPES = {
    'keyword': SearchType.KEYWORD,
    'identity': SearchType.IDENTITY,
    'population': SearchType.POPULATION,
    'current-access': SearchType.CURRENT_ACCESS,
}

OBJECT_TYPES = {
    'role': ObjectType.ROLE,
    'entitlement': ObjectType.ENTITLEMENT,
}


def build_options(
    types: Sequence[str],
    search_type: str,
    requester: Optional[str],
    target: Optional[str],
    start: int,
    limit: int,
    max_results: int,
    filters: Sequence[str],
    identity_filters: Sequence[str],
    status: Optional[str],
    include_non_requestable: bool = False,
    population_minimum: Optional[int] = None
) -> SearchOptions:
    """Build SearchOptions from command-line values.

    Every included type gets the same filters. With no --type both types
    are included.

    Raises:
        ConfigurationError: A filter string is malformed
    """
    try:
        parsed_filters = parse_filters(filters)
        parsed_identity_filters = parse_filters(identity_filters)
    except ValueError as e:
        raise ConfigurationError(f"Invalid filter: {e}") from e

    attributes = {}
    if include_non_requestable:
        attributes[TypeOptions.OPTION_INCLUDE_NON_REQUESTABLE] = True
    if population_minimum is not None:
        attributes[TypeOptions.OPTION_POPULATION_MINIMUM] = population_minimum

    options = SearchOptions(
        start=start,
        limit=limit,
        max_result_count=max_results,
        requester=IdentityRef(id=requester) if requester else None,
        target_identity=IdentityRef(id=target) if target else None,
        search_type=SEARCH_TYPES[search_type],
        status=CurrentAccessStatus(status) if status else None,
    )
    for type_name in types or list(OBJECT_TYPES):
        options = options.include(
            OBJECT_TYPES[type_name],
            filters=parsed_filters,
            identity_filters=parsed_identity_filters,
            attributes=attributes,
        )
    return options


def _results_table(rows: List[dict], start: int) -> Table:
    table = Table(show_header=True, header_style="bold")
    for column in TABLE_COLUMNS:
        table.add_column(column)
    for position, row in enumerate(rows, start + 1):
        table.add_row(*table_cells(position, row))
    return table


def search_command(
    terms: Sequence[str],
    types: Sequence[str],
    search_type: str,
    requester: Optional[str],
    target: Optional[str],
    start: int,
    limit: int,
    max_results: int,
    filters: Sequence[str],
    identity_filters: Sequence[str],
    status: Optional[str],
    include_non_requestable: bool,
    population_minimum: Optional[int],
    catalog: Optional[str],
    config_path: Optional[str],
    output_json: bool,
    verbose: bool,
    debug: bool
):
    """Search roles and entitlements.

    Exits with the error's exit code on failure.
    """
    from govsearch.search.facade import SearchFacade

    setup_logging(verbose, debug)

    try:
        config = load_search_config(Path(config_path) if config_path else None)
        options = build_options(
            types, search_type, requester, target, start, limit, max_results,
            filters, identity_filters, status, include_non_requestable, population_minimum,
        )
        context = build_context(config, Path(catalog) if catalog else None)

        started = time.time()
        results = SearchFacade(context).search(list(terms), options)
        logger.info(f"Search completed in {(time.time() - started) * 1000:.1f}ms")

    except GovSearchError as e:
        print_error(str(e), output_json)
        sys.exit(e.exit_code)

    if output_json:
        # print() not console.print() so Rich does not wrap the JSON
        print(format_json_results(terms, options.search_type.value, results, start, limit))
        return

    if terms:
        console.print(f"Searching for: {' '.join(terms)}")
    console.print(format_page_summary(results, start))
    if results.rows:
        console.print(_results_table(results.rows, start))


def explain_command(
    terms: Sequence[str],
    types: Sequence[str],
    search_type: str,
    requester: Optional[str],
    target: Optional[str],
    filters: Sequence[str],
    catalog: Optional[str],
    config_path: Optional[str],
    output_json: bool,
    verbose: bool,
    debug: bool
):
    """Show how a keyword search would be scoped and routed, without fetching rows."""
    from govsearch.search.combined import CombinedSearcher

    setup_logging(verbose, debug)

    try:
        config = load_search_config(Path(config_path) if config_path else None)
        options = build_options(types, search_type, requester, target, 0, 0, 1000, filters, [], None)
        context = build_context(config, Path(catalog) if catalog else None)

        combined = CombinedSearcher(options, context)
        routing: Dict[str, object] = {
            "search_type": options.search_type.value,
            "fulltext_enabled": context.is_fulltext_enabled(),
        }
        descriptions: Dict[str, str] = {}
        scope_filters = []
        for searcher in combined.searchers:
            if not options.is_included(searcher.object_type):
                continue
            info = combined.query_info(searcher)
            name = searcher.object_type.value
            if info.return_none:
                descriptions[name] = "nothing in scope"
                continue
            descriptions[name] = describe_filter(info.filter)
            if info.filter is not None:
                scope_filters.append(info.filter)
        routing["route"] = "full text" if combined.roles.can_use_fulltext(scope_filters, list(terms)) else "catalog store"

    except GovSearchError as e:
        print_error(str(e), output_json)
        sys.exit(e.exit_code)

    if output_json:
        print_json("success", "Search plan", data={**routing, "filters": descriptions})
    else:
        console.print(format_summary(routing, descriptions))


def enabled_command(
    object_type: str,
    requester: Optional[str],
    target: Optional[str],
    config_path: Optional[str],
    catalog: Optional[str],
    output_json: bool
):
    """Print whether the requester may request items of a type."""
    from govsearch.search.facade import SearchFacade

    setup_logging()

    try:
        config = load_search_config(Path(config_path) if config_path else None)
        context = build_context(config, Path(catalog) if catalog else None)
        enabled = SearchFacade(context).is_enabled(
            OBJECT_TYPES[object_type],
            IdentityRef(id=requester) if requester else None,
            IdentityRef(id=target) if target else None,
        )
    except GovSearchError as e:
        print_error(str(e), output_json)
        sys.exit(e.exit_code)

    message = f"{OBJECT_TYPES[object_type].value} requests {'enabled' if enabled else 'disabled'}"
    print_success(message, output_json, data={"object_type": object_type, "enabled": enabled})
