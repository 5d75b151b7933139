"""Tests for entitlement searches and entitlement population statistics."""

from unittest.mock import MagicMock

import pytest

from govsearch.config import FullTextConfig, RequestControls, SearchConfig
from govsearch.errors import CapacityError, DataIntegrityError
from govsearch.search.entitlements import EntitlementItemSearcher, EntitlementStatistician
from govsearch.search.filters import eq
from govsearch.search.options import (
    CurrentAccessStatus,
    IdentityRef,
    ObjectType,
    SearchMode,
    SearchType,
    TypeOptions,
)
from govsearch.search.query import QueryInfo


def ids(results):
    return [row.get("id") for row in results.rows]


def config_with(**settings):
    return SearchConfig(fulltext=FullTextConfig(enabled=False), match_mode="anywhere", **settings)


class TestEntitlementKeywordSearch:
    """Test keyword searches of requestable entitlements."""

    def test_requestable_non_permission_entitlements(self, context, entitlement_options):
        results = EntitlementItemSearcher(entitlement_options, context).search([])
        assert ids(results) == ["e2", "e1"]
        assert results.total_result_count == 2

    def test_terms_match_display_name(self, context, entitlement_options):
        results = EntitlementItemSearcher(entitlement_options, context).search(["admin"])
        assert ids(results) == ["e2", "e1"]
        assert results.rows[0]["application.name"] == "SAP"
        assert results.rows[0]["object_type"] == ObjectType.ENTITLEMENT

    def test_terms_match_application_name(self, context, entitlement_options):
        assert ids(EntitlementItemSearcher(entitlement_options, context).search(["sap"])) == ["e2"]

    def test_every_term_must_match(self, context, entitlement_options):
        assert ids(EntitlementItemSearcher(entitlement_options, context).search(["admin", "sap"])) == ["e2"]

    def test_include_non_requestable(self, context, entitlement_options):
        options = entitlement_options.include(
            ObjectType.ENTITLEMENT,
            attributes={TypeOptions.OPTION_INCLUDE_NON_REQUESTABLE: True},
        )
        assert ids(EntitlementItemSearcher(options, context).search(["help"])) == ["e3"]
        assert ids(EntitlementItemSearcher(entitlement_options, context).search(["help"])) == []

    def test_application_selector(self, context_factory, catalog_objects, entitlement_options):
        context = context_factory(catalog_objects, config_with(selectors={"application": "name=SAP"}))
        assert ids(EntitlementItemSearcher(entitlement_options, context).search([])) == ["e2"]

    def test_application_selector_none_skips_entitlement_selector(self, entitlement_options):
        context = MagicMock()
        context.config = config_with()
        context.authority.is_enabled.return_value = True
        context.authority.selector_query_info.return_value = QueryInfo.nothing()
        searcher = EntitlementItemSearcher(entitlement_options, context)

        assert searcher.keyword_query_info().return_none
        assert context.authority.selector_query_info.call_count == 1
        assert searcher.search([]).rows == []
        context.store.search.assert_not_called()

    def test_entitlement_selector_none(self, context_factory, catalog_objects, entitlement_options):
        context = context_factory(catalog_objects, config_with(selectors={"entitlement": "none"}))
        results = EntitlementItemSearcher(entitlement_options, context).search([])
        assert results.total_result_count == 0

    def test_entitlements_disabled(self, context_factory, catalog_objects, entitlement_options):
        context = context_factory(
            catalog_objects,
            config_with(request_controls=RequestControls(allow_entitlements=False)),
        )
        assert EntitlementItemSearcher(entitlement_options, context).search([]).rows == []

    def test_paging(self, context, entitlement_options):
        options = entitlement_options.model_copy(update={"start": 1, "limit": 1})
        results = EntitlementItemSearcher(options, context).search([])
        assert ids(results) == ["e1"]
        assert results.total_result_count == 2


class TestEntitlementStatistician:
    """Test holder counts across a population."""

    def test_counts_distinct_holders(self, context):
        population = EntitlementStatistician(context.store, 100).crunch([eq("active", True)])
        assert population.total_identities == 3
        assert population.counts == {"e1": 3, "e2": 2, "e3": 1}

    def test_entitlement_filter(self, context):
        population = EntitlementStatistician(context.store, 100).crunch(
            [eq("active", True)], entitlement_filter=eq("requestable", True)
        )
        assert population.entitlement_ids == ["e1", "e2"]
        assert population.count("e3") == 0

    def test_application_filter_is_prefixed(self, context):
        population = EntitlementStatistician(context.store, 100).crunch(
            [eq("active", True)], application_filter=eq("name", "SAP")
        )
        assert population.counts == {"e2": 2}

    def test_capacity(self, context):
        with pytest.raises(CapacityError) as exc_info:
            EntitlementStatistician(context.store, 2).crunch([eq("active", True)])
        assert exc_info.value.size == 3
        assert exc_info.value.limit == 2

    def test_empty_population(self, context):
        population = EntitlementStatistician(context.store, 100).crunch([eq("department", "hr")])
        assert population.total_identities == 0
        assert population.entitlement_ids == []


class TestEntitlementIdentitySearch:
    """Test entitlements held across an identity population."""

    @pytest.fixture
    def identity_options(self, keyword_options):
        options = keyword_options.model_copy(update={"search_type": SearchType.POPULATION})
        return options.include(ObjectType.ENTITLEMENT, identity_filters=[eq("active", True)])

    def test_ranked_by_holders(self, context, identity_options):
        results = EntitlementItemSearcher(identity_options, context).search()

        assert ids(results) == ["e1", "e2"]
        assert results.total_result_count == 2
        first = results.rows[0]["pop_stats"]
        assert (first.count, first.total, first.percent, first.has_high_risk) == (3, 3, 100, True)
        assert results.rows[1]["pop_stats"].count == 2

    def test_population_minimum(self, context, identity_options):
        options = identity_options.include(
            ObjectType.ENTITLEMENT,
            identity_filters=[eq("active", True)],
            attributes={TypeOptions.OPTION_POPULATION_MINIMUM: 70},
        )
        assert ids(EntitlementItemSearcher(options, context).search()) == ["e1"]

    def test_config_population_minimum(self, context_factory, catalog_objects, identity_options):
        context = context_factory(catalog_objects, config_with(population_minimum=70))
        assert ids(EntitlementItemSearcher(identity_options, context).search()) == ["e1"]

    def test_population_too_large(self, context_factory, catalog_objects, identity_options):
        context = context_factory(catalog_objects, config_with(population_size_limit=2))
        with pytest.raises(CapacityError):
            EntitlementItemSearcher(identity_options, context).search()

    def test_identity_scope_is_applied(self, context_factory, catalog_objects, identity_options):
        context = context_factory(catalog_objects, config_with(identity_scope="department=it"))
        results = EntitlementItemSearcher(identity_options, context).search()
        assert sorted(ids(results)) == ["e1", "e2"]
        assert all(row["pop_stats"].total == 1 for row in results.rows)

    def test_nobody_in_scope(self, context_factory, catalog_objects, identity_options):
        context = context_factory(catalog_objects, config_with(identity_scope="none"))
        assert EntitlementItemSearcher(identity_options, context).search().rows == []

    def test_application_selector_none(self, context_factory, catalog_objects, identity_options):
        context = context_factory(catalog_objects, config_with(selectors={"application": "none"}))
        assert EntitlementItemSearcher(identity_options, context).search().rows == []

    def test_combined_mode_leaves_rows_unsorted(self, context, identity_options):
        options = identity_options.model_copy(update={"limit": 1})
        searcher = EntitlementItemSearcher(options, context)
        assert len(searcher.search(None, SearchMode.COMBINED).rows) == 2
        assert len(searcher.search(None, SearchMode.STANDALONE).rows) == 1


class TestEntitlementCurrentAccess:
    """Test entitlements the target holds, resolved or not."""

    @pytest.fixture
    def held_catalog(self, catalog_objects):
        alice = catalog_objects["Identity"][0]
        alice["entitlements"] = [
            {"application": "SAP", "attribute": "role", "value": "SAP_ADMIN",
             "native_identity": "alice01", "account": "alice"},
            {"application": "AD", "attribute": "memberOf", "value": "CN=Domain Admins"},
            {"application": "AD", "attribute": "memberOf", "value": "CN=Helpdesk", "entitlement_id": "e3"},
            {"application": "AD", "attribute": "memberOf", "value": "CN=Legacy", "instance": "eu"},
            {"application": "octo", "attribute": "team", "value": "octo"},
        ]
        alice["pending_requests"] = [
            {"object_type": "Entitlement", "application": "SAP", "attribute": "role", "value": "SAP_AUDIT"},
        ]
        return catalog_objects

    @pytest.fixture
    def access_options(self, entitlement_options):
        return entitlement_options.model_copy(update={
            "search_type": SearchType.CURRENT_ACCESS,
            "target_identity": IdentityRef(id="u1"),
            "status": CurrentAccessStatus.ACTIVE,
        })

    def test_resolved_and_unresolved_entries(self, context_factory, held_catalog, config, access_options):
        results = EntitlementItemSearcher(access_options, context_factory(held_catalog, config)).search([])

        names = [row["display_name"] for row in results.rows]
        assert names == ["Admin Users", "CN=Legacy", "Domain Admins", "Helpdesk", "octo"]
        assert ids(results) == ["e2", None, "e1", "e3", None]
        assert results.total_result_count == 5

        sap = results.rows[0]
        assert sap["application.name"] == "SAP"
        assert sap["native_identity"] == "alice01"
        assert sap["account"] == "alice"
        assert sap["status"] == "active"

        legacy = results.rows[1]
        assert legacy["application.name"] == "AD"
        assert legacy["attribute"] == "memberOf"
        assert legacy["value"] == "CN=Legacy"
        assert legacy["instance"] == "eu"
        assert legacy["object_type"] == ObjectType.ENTITLEMENT

    def test_terms_apply_to_unresolved_entries(self, context_factory, held_catalog, config, access_options):
        results = EntitlementItemSearcher(access_options, context_factory(held_catalog, config)).search(["cn"])
        assert [row["display_name"] for row in results.rows] == ["CN=Legacy"]

    def test_type_filters_apply_in_memory(self, context_factory, held_catalog, config, access_options):
        options = access_options.include(ObjectType.ENTITLEMENT, filters=[eq("application.name", "AD")])
        results = EntitlementItemSearcher(options, context_factory(held_catalog, config)).search([])
        assert [row["display_name"] for row in results.rows] == ["CN=Legacy", "Domain Admins", "Helpdesk"]

    def test_application_id_is_looked_up_for_unresolved_entries(self, context_factory, held_catalog, config,
                                                              access_options):
        options = access_options.include(ObjectType.ENTITLEMENT, filters=[eq("application.id", "a1")])
        results = EntitlementItemSearcher(options, context_factory(held_catalog, config)).search([])
        assert "CN=Legacy" in [row["display_name"] for row in results.rows]
        assert "octo" not in [row["display_name"] for row in results.rows]

    def test_requested_entries(self, context_factory, held_catalog, config, access_options):
        options = access_options.model_copy(update={"status": CurrentAccessStatus.REQUESTED})
        results = EntitlementItemSearcher(options, context_factory(held_catalog, config)).search([])
        assert [row["display_name"] for row in results.rows] == ["SAP_AUDIT"]
        assert results.rows[0]["displayable_status"] == "Requested"

    def test_paging_happens_before_detailed_conversion(self, context_factory, held_catalog, config, access_options):
        options = access_options.model_copy(update={"start": 1, "limit": 2})
        results = EntitlementItemSearcher(options, context_factory(held_catalog, config)).search([])
        assert [row["display_name"] for row in results.rows] == ["CN=Legacy", "Domain Admins"]
        assert results.total_result_count == 5

    def test_combined_mode_keeps_every_row(self, context_factory, held_catalog, config, access_options):
        options = access_options.model_copy(update={"limit": 2})
        searcher = EntitlementItemSearcher(options, context_factory(held_catalog, config))
        assert len(searcher.search([], SearchMode.COMBINED).rows) == 5

    def test_missing_explicit_entitlement_raises(self, context_factory, held_catalog, config, access_options):
        held_catalog["Identity"][0]["entitlements"].append(
            {"application": "AD", "attribute": "memberOf", "value": "CN=Gone", "entitlement_id": "e404"}
        )
        with pytest.raises(DataIntegrityError, match="e404"):
            EntitlementItemSearcher(access_options, context_factory(held_catalog, config)).search([])

    def test_removal_rule_none_hides_resolved_entries(self, context_factory, held_catalog, access_options):
        config = config_with(removal_rules={"entitlement": "none"})
        results = EntitlementItemSearcher(access_options, context_factory(held_catalog, config)).search([])
        assert results.rows == []
