"""Public entry point of the search engine."""

import logging
from typing import Optional, Sequence

from .combined import CombinedSearcher
from .context import SearchContext
from .entitlements import EntitlementItemSearcher
from .options import IdentityRef, ObjectType, SearchOptions
from .results import SearchResults
from .roles import RoleItemSearcher

logger = logging.getLogger(__name__)

SEARCHERS = {
    ObjectType.ROLE: RoleItemSearcher,
    ObjectType.ENTITLEMENT: EntitlementItemSearcher,
}


class SearchFacade:
    """Selects the searcher for the item types a request includes.

    Example:
        >>> facade = SearchFacade(context)
        >>> options = SearchOptions(requester=IdentityRef(id="u1"), limit=10).include(ObjectType.ROLE)
        >>> results = facade.search(["admin"], options)
    """

    def __init__(self, context: SearchContext):
        self.context = context

    def search(self, terms: Optional[Sequence[str]], options: SearchOptions) -> SearchResults:
        """Search the catalog.

        Args:
            terms: Keyword terms; ignored by identity searches
            options: Search options with at least one item type included

        Returns:
            SearchResults (empty when no item type is included)

        Raises:
            ConfigurationError: Invalid options, before any backend call
            BackendError: A backend failed
            CapacityError: Population too large for statistics
            DataIntegrityError: Current access references a missing catalog object
        """
        included = options.included_types()
        terms = [term for term in terms or [] if term]
        logger.debug(f"{options.search_type.value} search of {[t.value for t in included]} for terms {terms}")

        if len(included) == len(SEARCHERS):
            return CombinedSearcher(options, self.context).search(terms)
        if len(included) == 1:
            searcher = SEARCHERS[included[0]](options, self.context)
            return searcher.search(terms)
        return SearchResults.empty()

    def is_enabled(
        self,
        object_type: ObjectType,
        requester: Optional[IdentityRef],
        target: Optional[IdentityRef]
    ) -> bool:
        """Whether the requester may request items of this type for the target."""
        self_service = requester is not None and target is not None and requester.id == target.id
        return self.context.authority.is_enabled(object_type, requester, target, None, self_service)
