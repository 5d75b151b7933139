"""Shared pytest fixtures for govsearch tests."""

import copy
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
import yaml

from govsearch.backends.authority import ConfiguredAuthority
from govsearch.backends.base import FullTextResult
from govsearch.backends.current_access import CatalogCurrentAccessProvider
from govsearch.backends.memory import MemoryCatalogStore
from govsearch.config import FullTextConfig, SearchConfig
from govsearch.search.context import SearchContext
from govsearch.search.options import IdentityRef, ObjectType, SearchOptions


# ============================================================================
# Auto-mark tests based on directory
# ============================================================================

def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        test_path = str(item.fspath)

        if '/tests/unit/' in test_path or '\\tests\\unit\\' in test_path:
            item.add_marker(pytest.mark.unit)
        elif '/tests/integration/' in test_path or '\\tests\\integration\\' in test_path:
            item.add_marker(pytest.mark.integration)


# ============================================================================
# Catalog Fixtures
# ============================================================================

SAMPLE_CATALOG: Dict[str, List[Dict[str, Any]]] = {
    "Role": [
        {"id": "r1", "name": "sales", "display_name": "Sales Business", "type": "business",
         "risk_score_weight": 100, "permits": ["r10", "r12"], "inheritance": ["r2"]},
        {"id": "r2", "name": "staff", "display_name": "Staff Business", "type": "business",
         "risk_score_weight": 50, "permits": ["r11"], "inheritance": []},
        {"id": "r3", "name": "admin", "display_name": "Admin Business", "type": "business",
         "risk_score_weight": 900, "permits": [], "inheritance": []},
        {"id": "r10", "name": "crm", "display_name": "CRM Access", "type": "it"},
        {"id": "r11", "name": "badge", "display_name": "Badge Access", "type": "it"},
        {"id": "r12", "name": "admin-tools", "display_name": "Admin Tools", "type": "it"},
    ],
    "Application": [
        {"id": "a1", "name": "AD"},
        {"id": "a2", "name": "SAP"},
    ],
    "Entitlement": [
        {"id": "e1", "display_name": "Domain Admins", "type": "group", "requestable": True,
         "application": {"id": "a1", "name": "AD"}, "attribute": "memberOf", "value": "CN=Domain Admins"},
        {"id": "e2", "display_name": "Admin Users", "type": "role", "requestable": True,
         "application": {"id": "a2", "name": "SAP"}, "attribute": "role", "value": "SAP_ADMIN"},
        {"id": "e3", "display_name": "Helpdesk", "type": "group", "requestable": False,
         "application": {"id": "a1", "name": "AD"}, "attribute": "memberOf", "value": "CN=Helpdesk"},
        {"id": "e4", "display_name": "Read Permission", "type": "Permission", "requestable": True,
         "application": {"id": "a1", "name": "AD"}, "attribute": "perm", "value": "read"},
    ],
    "Identity": [
        {"id": "u1", "name": "alice", "active": True, "department": "sales", "composite_score": 100,
         "assigned_roles": ["r1"], "detected_roles": []},
        {"id": "u2", "name": "bob", "active": True, "department": "sales", "composite_score": 800,
         "assigned_roles": ["r3"], "detected_roles": ["r2"]},
        {"id": "u3", "name": "carol", "active": True, "department": "it", "composite_score": 200,
         "assigned_roles": ["r1"], "detected_roles": []},
        {"id": "admin", "name": "admin", "active": False, "assigned_roles": [], "detected_roles": []},
    ],
    "IdentityEntitlement": [
        {"identity": {"id": "u1"}, "entitlement_id": "e1"},
        {"identity": {"id": "u2"}, "entitlement_id": "e1"},
        {"identity": {"id": "u3"}, "entitlement_id": "e1"},
        {"identity": {"id": "u2"}, "entitlement_id": "e2"},
        {"identity": {"id": "u3"}, "entitlement_id": "e2"},
        {"identity": {"id": "u1"}, "entitlement_id": "e3"},
    ],
}


def make_context(
    objects: Dict[str, List[Dict[str, Any]]],
    config: Optional[SearchConfig] = None,
    fulltext=None
) -> SearchContext:
    """Build a SearchContext over an in-memory catalog."""
    config = config or SearchConfig(fulltext=FullTextConfig(enabled=False))
    store = MemoryCatalogStore(copy.deepcopy(objects))
    return SearchContext(
        store=store,
        authority=ConfiguredAuthority(config, store),
        current_access=CatalogCurrentAccessProvider(store, config),
        config=config,
        fulltext=fulltext,
    )


@pytest.fixture
def context_factory():
    """Factory building a SearchContext over a given catalog and config."""
    return make_context


@pytest.fixture
def catalog_objects():
    """A deep copy of the sample catalog, safe to modify."""
    return copy.deepcopy(SAMPLE_CATALOG)


@pytest.fixture
def config():
    """Configuration with full text off and keyword terms matched anywhere."""
    return SearchConfig(fulltext=FullTextConfig(enabled=False), match_mode="anywhere")


@pytest.fixture
def context(catalog_objects, config):
    return make_context(catalog_objects, config)


@pytest.fixture
def requester():
    return IdentityRef(id="admin", name="admin")


@pytest.fixture
def keyword_options(requester):
    """Keyword options for the admin requester with no type included yet."""
    return SearchOptions(requester=requester, limit=10, max_result_count=50)


@pytest.fixture
def role_options(keyword_options):
    return keyword_options.include(ObjectType.ROLE)


@pytest.fixture
def entitlement_options(keyword_options):
    return keyword_options.include(ObjectType.ENTITLEMENT)


# ============================================================================
# Mock Backend Fixtures
# ============================================================================

@pytest.fixture
def mock_fulltext():
    """Create a mocked FullTextBackend that is enabled and returns no hits."""
    fulltext = MagicMock()
    fulltext.is_search_enabled.return_value = True
    fulltext.search.return_value = FullTextResult(rows=[], total_rows=0)
    return fulltext


@pytest.fixture
def mock_qdrant_client():
    """Create a mocked QdrantClient for testing."""
    client = MagicMock()
    client.scroll.return_value = ([], None)
    client.count.return_value = MagicMock(count=0)
    return client


@pytest.fixture
def mock_meili_client():
    """Create a mocked meilisearch.Client for testing."""
    client = MagicMock()
    client.health.return_value = {'status': 'available'}
    client.index.return_value.search.return_value = {
        'hits': [],
        'estimatedTotalHits': 0,
        'processingTimeMs': 5,
    }
    return client


# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def catalog_file(tmp_path) -> Path:
    """The sample catalog written as YAML."""
    path = tmp_path / "catalog.yaml"
    path.write_text(yaml.safe_dump(SAMPLE_CATALOG))
    return path


@pytest.fixture
def config_file(tmp_path) -> Path:
    """A config file with full text disabled and keyword terms matched anywhere."""
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"fulltext": {"enabled": False}, "match_mode": "anywhere"}))
    return path


# ============================================================================
# Environment Fixtures
# ============================================================================

@pytest.fixture
def clean_env():
    """Provide a clean environment without backend env vars."""
    env_vars = ['QDRANT_URL', 'MEILISEARCH_URL', 'MEILISEARCH_API_KEY']
    old_values = {}
    for var in env_vars:
        old_values[var] = os.environ.pop(var, None)

    yield

    for var, value in old_values.items():
        if value is not None:
            os.environ[var] = value


# ============================================================================
# CLI Runner Fixture
# ============================================================================

@pytest.fixture
def cli_runner():
    """Provide Click's CliRunner for testing CLI commands."""
    from click.testing import CliRunner
    return CliRunner()
