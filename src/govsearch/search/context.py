"""Collaborators shared by the searchers of one request."""

from dataclasses import dataclass
from typing import Optional

from govsearch.backends.base import (
    AuthorityService,
    CatalogStore,
    CurrentAccessProvider,
    FullTextBackend,
)
from govsearch.config import SearchConfig


@dataclass
class SearchContext:
    """Backends and configuration a search runs against.

    ``fulltext`` is optional; without it every query takes the relational
    path.
    """
    store: CatalogStore
    authority: AuthorityService
    current_access: CurrentAccessProvider
    config: SearchConfig
    fulltext: Optional[FullTextBackend] = None

    def is_fulltext_enabled(self) -> bool:
        return self.fulltext is not None and self.fulltext.is_search_enabled()
