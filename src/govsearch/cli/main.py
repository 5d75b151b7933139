"""Main CLI entry point for govsearch."""

import sys

import click

from govsearch import __version__
from govsearch.errors import EXIT_ERROR, EXIT_INVALID_ARGS, EXIT_SUCCESS, GovSearchError

# Version check
MIN_PYTHON = (3, 11)
if sys.version_info < MIN_PYTHON:
    print(f"[ERROR] Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+ required")
    sys.exit(1)

TYPE_CHOICE = click.Choice(['role', 'entitlement'])
SEARCH_TYPE_CHOICE = click.Choice(['keyword', 'identity', 'population', 'current-access'])


@click.group()
@click.version_option(version=__version__)
def cli():
    """govsearch: Role and entitlement search over a governance catalog"""
    pass


@cli.command('search')
@click.argument('terms', nargs=-1)
@click.option('--type', '-t', 'types', multiple=True, type=TYPE_CHOICE, help='Item type to include (repeatable, default: both)')
@click.option('--search-type', type=SEARCH_TYPE_CHOICE, default='keyword', help='Query shape (default: keyword)')
@click.option('--requester', required=True, help='Id of the identity searching')
@click.option('--target', help='Id of the identity access is requested for')
@click.option('--start', type=int, default=0, help='First result row (default: 0)')
@click.option('--limit', type=int, default=10, help='Page size, 0 for all (default: 10)')
@click.option('--max-results', type=int, default=1000, help='Cap on reported results (default: 1000)')
@click.option('--filter', 'filters', multiple=True, help='Item filter, e.g. type=it or risk_score_weight:gte:500')
@click.option('--identity-filter', 'identity_filters', multiple=True, help='Population filter for identity/population searches')
@click.option('--status', type=click.Choice(['active', 'requested']), help='Current access status')
@click.option('--include-non-requestable', is_flag=True, help='Include entitlements that are not requestable')
@click.option('--population-minimum', type=int, help='Drop items held by less than this percentage of the population')
@click.option('--catalog', type=click.Path(exists=True, dir_okay=False), help='Search a YAML/JSON catalog file instead of Qdrant')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), help='Config file (default: ~/.govsearch/config.yaml)')
@click.option('--json', 'output_json', is_flag=True, help='Output JSON format')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.option('--debug', is_flag=True, help='Debug mode (show backend queries)')
def search(terms, types, search_type, requester, target, start, limit, max_results, filters, identity_filters,
           status, include_non_requestable, population_minimum, catalog, config_path, output_json, verbose, debug):
    """Search roles and entitlements"""
    from govsearch.cli.search import search_command
    search_command(terms, types, search_type, requester, target, start, limit, max_results, filters,
                   identity_filters, status, include_non_requestable, population_minimum, catalog,
                   config_path, output_json, verbose, debug)


@cli.command('explain')
@click.argument('terms', nargs=-1)
@click.option('--type', '-t', 'types', multiple=True, type=TYPE_CHOICE, help='Item type to include (repeatable, default: both)')
@click.option('--search-type', type=SEARCH_TYPE_CHOICE, default='keyword', help='Query shape (default: keyword)')
@click.option('--requester', required=True, help='Id of the identity searching')
@click.option('--target', help='Id of the identity access is requested for')
@click.option('--filter', 'filters', multiple=True, help='Item filter, e.g. type=it')
@click.option('--catalog', type=click.Path(exists=True, dir_okay=False), help='Use a YAML/JSON catalog file instead of Qdrant')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), help='Config file (default: ~/.govsearch/config.yaml)')
@click.option('--json', 'output_json', is_flag=True, help='Output JSON format')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.option('--debug', is_flag=True, help='Debug mode (show backend queries)')
def explain(terms, types, search_type, requester, target, filters, catalog, config_path, output_json, verbose, debug):
    """Show scoping filters and routing for a search without running it"""
    from govsearch.cli.search import explain_command
    explain_command(terms, types, search_type, requester, target, filters, catalog, config_path,
                    output_json, verbose, debug)


@cli.command('enabled')
@click.argument('object_type', type=TYPE_CHOICE)
@click.option('--requester', required=True, help='Id of the identity searching')
@click.option('--target', help='Id of the identity access is requested for')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), help='Config file (default: ~/.govsearch/config.yaml)')
@click.option('--catalog', type=click.Path(exists=True, dir_okay=False), help='Use a YAML/JSON catalog file instead of Qdrant')
@click.option('--json', 'output_json', is_flag=True, help='Output JSON format')
def enabled(object_type, requester, target, config_path, catalog, output_json):
    """Check whether the requester may request an item type"""
    from govsearch.cli.search import enabled_command
    enabled_command(object_type, requester, target, config_path, catalog, output_json)


@cli.command('doctor')
@click.option('--catalog', type=click.Path(dir_okay=False), help='Check a YAML/JSON catalog file instead of Qdrant')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), help='Config file (default: ~/.govsearch/config.yaml)')
@click.option('--json', 'output_json', is_flag=True, help='Output JSON format')
@click.option('--verbose', '-v', is_flag=True, help='Show connection error details')
def doctor(catalog, config_path, output_json, verbose):
    """Check that the configured backends are reachable"""
    from govsearch.cli.doctor import doctor_command
    doctor_command(catalog, config_path, output_json, verbose)


@cli.group('config')
def config_group():
    """Manage the govsearch config file"""
    pass


@config_group.command('init')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), help='Config file (default: ~/.govsearch/config.yaml)')
@click.option('--force', is_flag=True, help='Overwrite an existing file')
@click.option('--json', 'output_json', is_flag=True, help='Output JSON format')
def init_config(config_path, force, output_json):
    """Write a config file with every default"""
    from govsearch.cli.config import init_config_command
    init_config_command(config_path, force, output_json)


def main():
    """Main CLI entry point with structured error handling."""
    try:
        cli(standalone_mode=False)
        return EXIT_SUCCESS
    except click.ClickException as e:
        # Click handles its own exceptions (usage errors, etc.)
        e.show()
        return EXIT_INVALID_ARGS
    except KeyboardInterrupt:
        print("\n[INFO] Operation cancelled by user", file=sys.stderr)
        return EXIT_ERROR
    except GovSearchError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return e.exit_code
    except Exception as e:
        print(f"[ERROR] Unexpected error: {e}", file=sys.stderr)
        if '--verbose' in sys.argv or '-v' in sys.argv:
            import traceback
            traceback.print_exc()
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
