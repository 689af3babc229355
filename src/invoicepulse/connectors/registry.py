"""
Connector Registry — builds and tracks invoice connectors.

Built-in backends are addressed by short name; anything else in the
storage ``type`` is loaded as a fully qualified class path (plugin support).
"""

from __future__ import annotations

import importlib
import logging

from invoicepulse.config import InvoicePulseConfig, StorageConfig
from invoicepulse.connectors.base import BaseConnector
from invoicepulse.exceptions import SourceUnavailable
from invoicepulse.store.base import SnapshotStore
from invoicepulse.store.memory_store import InMemorySnapshotStore

logger = logging.getLogger("invoicepulse.connectors.registry")

# Built-in connector type mapping
_BUILTIN_CONNECTORS: dict[str, str] = {
    "memory": "invoicepulse.connectors.memory_connector.MemoryConnector",
    "sql": "invoicepulse.connectors.sql_connector.SQLConnector",
}


class ConnectorRegistry:
    """Manages the active invoice connectors.

    Supports:
    - Creating the configured backend from ``StorageConfig``.
    - Manual registration of custom connectors.
    - Plugin-style connector loading by class path.
    """

    def __init__(self) -> None:
        self._connectors: dict[str, BaseConnector] = {}

    def __len__(self) -> int:
        return len(self._connectors)

    @property
    def active_connectors(self) -> list[BaseConnector]:
        """Return all active connectors."""
        return list(self._connectors.values())

    def register(self, connector: BaseConnector) -> None:
        """Register a connector instance."""
        self._connectors[connector.name] = connector
        logger.info("Registered connector: %s", connector.name)

    def get(self, name: str) -> BaseConnector | None:
        """Get a connector by name."""
        return self._connectors.get(name)

    def create(self, storage: StorageConfig) -> BaseConnector:
        """Instantiate and register the connector described by ``storage``.

        Raises:
            SourceUnavailable: The connector class cannot be loaded or built.
        """
        connector_path = _BUILTIN_CONNECTORS.get(storage.type, storage.type)
        if "." not in connector_path:
            raise SourceUnavailable(f"Unknown storage type '{storage.type}'")

        module_path, class_name = connector_path.rsplit(".", 1)
        try:
            module = importlib.import_module(module_path)
            connector_cls = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise SourceUnavailable(f"Cannot load connector '{storage.type}': {e}") from e

        credentials = {"connection_string": storage.connection_string}
        try:
            connector = connector_cls(credentials=credentials, **storage.options)
        except (TypeError, ValueError) as e:
            raise SourceUnavailable(f"Cannot create connector '{storage.type}': {e}") from e

        self.register(connector)
        return connector

    @classmethod
    def from_config(cls, config: InvoicePulseConfig) -> tuple[ConnectorRegistry, BaseConnector, SnapshotStore]:
        """Build the configured connector and the snapshot store that goes with it."""
        registry = cls()
        connector = registry.create(config.storage)
        store = connector.snapshot_store()
        if store is None:
            logger.warning(
                "Connector '%s' has no snapshot store; snapshots are kept in memory only",
                connector.name,
            )
            store = InMemorySnapshotStore()
        return registry, connector, store
