"""Search options and the enums that shape a search call."""

from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_MAX_RESULT_COUNT = 1000


class ObjectType(str, Enum):
    """Item types the engine searches."""
    ROLE = "Role"
    ENTITLEMENT = "Entitlement"


class SearchType(str, Enum):
    """The four query shapes."""
    KEYWORD = "Keyword"
    IDENTITY = "Identity"
    POPULATION = "Population"
    CURRENT_ACCESS = "CurrentAccess"

    @property
    def is_identity_search(self) -> bool:
        return self in (SearchType.IDENTITY, SearchType.POPULATION)


class CurrentAccessStatus(str, Enum):
    """Status of a held item: granted, or requested and still pending."""
    ACTIVE = "active"
    REQUESTED = "requested"


class SearchMode(Enum):
    """How a searcher finishes its rows.

    STANDALONE sorts and trims to the requested page. COMBINED returns the
    rows untrimmed so a caller merging several searchers can sort and page
    the union once.
    """
    STANDALONE = "standalone"
    COMBINED = "combined"


class IdentityRef(BaseModel):
    """Reference to an identity in the catalog."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None


class TypeOptions(BaseModel):
    """Per item type search options.

    ``filters`` and ``identity_filters`` hold govsearch.search.filters.Filter
    objects; identity filters scope the population for identity searches.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    OPTION_POPULATION_MINIMUM: ClassVar[str] = "populationMinimum"
    OPTION_INCLUDE_NON_REQUESTABLE: ClassVar[str] = "includeNonRequestable"

    included: bool = False
    filters: List[Any] = Field(default_factory=list)
    columns: List[str] = Field(default_factory=list)
    identity_filters: List[Any] = Field(default_factory=list)
    attributes: Dict[str, Any] = Field(default_factory=dict)


def _excluded_types() -> Dict[ObjectType, TypeOptions]:
    return {object_type: TypeOptions() for object_type in ObjectType}


class SearchOptions(BaseModel):
    """Everything one search call needs.

    Built once per request and never mutated afterwards: ``include`` and
    ``model_copy`` return new instances. Both item types start excluded.
    Field values are checked by ItemSearcher.validate, not here, so invalid
    options surface as ConfigurationError at search time.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    start: int = 0
    limit: int = 0
    max_result_count: int = DEFAULT_MAX_RESULT_COUNT
    requester: Optional[IdentityRef] = None
    target_identity: Optional[IdentityRef] = None
    search_type: SearchType = SearchType.KEYWORD
    status: Optional[CurrentAccessStatus] = None
    quick_link: Optional[str] = None
    locale: Optional[str] = None
    timezone: Optional[str] = None
    type_options: Dict[ObjectType, TypeOptions] = Field(default_factory=_excluded_types)
    attributes: Dict[str, Any] = Field(default_factory=dict)

    def include(self, object_type: ObjectType, **type_options) -> "SearchOptions":
        """Return a copy with the item type included.

        Args:
            object_type: Item type to include
            **type_options: TypeOptions fields (filters, columns, identity_filters, attributes)
        """
        updated = dict(self.type_options)
        updated[object_type] = TypeOptions(included=True, **type_options)
        return self.model_copy(update={"type_options": updated})

    def type_options_for(self, object_type: ObjectType) -> TypeOptions:
        return self.type_options.get(object_type) or TypeOptions()

    def is_included(self, object_type: ObjectType) -> bool:
        return self.type_options_for(object_type).included

    def included_types(self) -> List[ObjectType]:
        return [t for t in ObjectType if self.is_included(t)]

    def is_self_service(self) -> bool:
        """True when the requester searches on their own behalf."""
        if self.requester is None or self.target_identity is None:
            return False
        return self.target_identity.id == self.requester.id
