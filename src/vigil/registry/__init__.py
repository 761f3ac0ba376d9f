"""
Local service status table

This package provides:
1. InMemoryRegistry — dict-backed table of the last status reported per watcher
2. ServiceRegistryClient — HTTP client for querying the table
3. start_registry_server — launches an HTTP query API in a daemon thread
"""

from .service_registry import (
    InMemoryRegistry,
    ServiceRegistryClient,
    ServiceRecord,
    ServiceStatus,
    start_registry_server,
)

__all__ = [
    'InMemoryRegistry',
    'ServiceRegistryClient',
    'ServiceRecord',
    'ServiceStatus',
    'start_registry_server',
]
