"""CLI utility functions: configuration loading and backend construction."""

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from qdrant_client import QdrantClient

from govsearch.config import QdrantConfig, SearchConfig, load_config
from govsearch.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".govsearch" / "config.yaml"


def load_search_config(config_path: Optional[Path] = None) -> SearchConfig:
    """Load the search configuration.

    An explicit path must exist; the default path is optional and falls
    back to built-in defaults.

    Raises:
        ConfigurationError: The file is missing (explicit path) or invalid
    """
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        if config_path is not None:
            raise ConfigurationError(f"Config file not found: {config_path}")
        logger.debug(f"No config at {path}; using defaults")
        return SearchConfig()

    try:
        return load_config(path)
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Invalid config file {path}: {e}") from e


def create_qdrant_client(qdrant_config: QdrantConfig, url: Optional[str] = None) -> QdrantClient:
    """Create QdrantClient with timeout configuration.

    Environment Variables:
        QDRANT_URL: Override Qdrant URL
    """
    final_url = url or os.environ.get("QDRANT_URL") or qdrant_config.url
    logger.debug(f"Creating QdrantClient: url={final_url}, timeout={qdrant_config.timeout}s")
    return QdrantClient(url=final_url, timeout=qdrant_config.timeout)


def create_fulltext_backend(config: SearchConfig):
    """Create the MeiliSearch backend, or None when full text is disabled.

    Environment Variables:
        MEILISEARCH_URL: Override MeiliSearch URL
        MEILISEARCH_API_KEY: Override API key
    """
    from govsearch.backends.fulltext import MeiliFullTextBackend

    fulltext = config.fulltext
    if not fulltext.enabled:
        return None
    url = os.environ.get("MEILISEARCH_URL") or fulltext.url
    api_key = os.environ.get("MEILISEARCH_API_KEY") or fulltext.api_key
    return MeiliFullTextBackend(url, api_key, fulltext.index, fulltext.enabled)


def build_context(config: SearchConfig, catalog_path: Optional[Path] = None):
    """Assemble a SearchContext.

    With a catalog file the in-memory store is used and full text is off;
    otherwise the Qdrant store, with MeiliSearch when enabled.
    """
    from govsearch.backends.authority import ConfiguredAuthority
    from govsearch.backends.current_access import CatalogCurrentAccessProvider
    from govsearch.search.context import SearchContext

    if catalog_path is not None:
        from govsearch.backends.memory import MemoryCatalogStore
        store = MemoryCatalogStore.from_file(catalog_path)
        fulltext = None
    else:
        from govsearch.backends.qdrant_store import QdrantCatalogStore
        store = QdrantCatalogStore(create_qdrant_client(config.qdrant), config.qdrant.collection)
        fulltext = create_fulltext_backend(config)

    return SearchContext(
        store=store,
        authority=ConfiguredAuthority(config, store),
        current_access=CatalogCurrentAccessProvider(store, config),
        config=config,
        fulltext=fulltext,
    )
