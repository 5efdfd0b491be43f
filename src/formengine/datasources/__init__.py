"""Data source loading, transformation and caching.

This package provides:
- DataSourceLoader: cached, collapsed loads of field options
- PopinLoader: popin pre-fill objects
- DataSourceProxyClient: client side of the trusted proxy
- CredentialStore: server-side credentials keyed by dataSourceId
- transform_response / transform_item: response-to-items mapping
"""

from formengine.datasources.auth import auth_cache_key, auth_headers
from formengine.datasources.cache import ResponseCache
from formengine.datasources.credentials import CredentialStore
from formengine.datasources.loader import (
    DataSourceLoader,
    data_source_cache_key,
    fetch_json,
)
from formengine.datasources.popin import PopinLoader, popin_cache_key
from formengine.datasources.proxy import DataSourceProxyClient
from formengine.datasources.transformer import (
    lookup_path,
    transform_item,
    transform_response,
)

__all__ = [
    "CredentialStore",
    "DataSourceLoader",
    "DataSourceProxyClient",
    "PopinLoader",
    "ResponseCache",
    "auth_cache_key",
    "auth_headers",
    "data_source_cache_key",
    "fetch_json",
    "lookup_path",
    "popin_cache_key",
    "transform_item",
    "transform_response",
]
