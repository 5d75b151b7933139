"""Error taxonomy for govsearch.

Every error carries the exit code the CLI uses when it surfaces the error.

Exit Codes:
- 0: Success
- 1: General error (backend failure, capacity, data integrity)
- 2: Invalid arguments or search options
"""

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_INVALID_ARGS = 2


class GovSearchError(Exception):
    """Base exception for all govsearch errors.

    Default exit code is EXIT_ERROR (1).
    """
    exit_code = EXIT_ERROR


class ConfigurationError(GovSearchError):
    """Search options are missing or inconsistent.

    Examples:
    - No requester
    - Negative start or limit
    - Non-positive max result count
    - Population search without identity filters
    - Current access search without a target identity

    Raised before any backend call is made.

    Exit code: 2
    """
    exit_code = EXIT_INVALID_ARGS


class BackendError(GovSearchError):
    """The full-text index or the catalog store failed.

    Never retried. The library exception is chained as __cause__.
    """
    pass


class CapacityError(GovSearchError):
    """Population statistics would cover more identities than allowed.

    Callers should ask the user to refine the identity filters.
    """

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"Population of {size} identities exceeds the limit of {limit}; refine the search"
        )
        self.size = size
        self.limit = limit


class DataIntegrityError(GovSearchError):
    """A current-access entry references a catalog object that no longer exists."""
    pass
