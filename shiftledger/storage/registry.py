"""Mini README: Store registry enabling pluggable ledger backends.

Structure:
    * StoreRegistry - maps backend names to ``LedgerStore`` classes.
    * REGISTRY - shared registry pre-loaded with the built-in backends.
    * create_store - build the backend named in the settings.

Third-party packages can add backends by exposing a ``LedgerStore``
subclass under the ``shiftledger.stores`` entry point group; call
``REGISTRY.discover()`` to register them.
"""

from __future__ import annotations

from importlib.metadata import entry_points
from typing import Any, Dict, Iterable, List, Type

from ..logging_utils import get_logger
from .base import LedgerStore
from .local_store import LocalLedgerStore
from .remote_store import RemoteLedgerStore

LOGGER = get_logger(__name__)

ENTRY_POINT_GROUP = "shiftledger.stores"


class StoreRegistry:
    """Simple registry for mapping backend identifiers to store classes."""

    def __init__(self) -> None:
        self._stores: Dict[str, Type[LedgerStore]] = {}

    def register(self, store: Type[LedgerStore]) -> None:
        """Register a new store class with the registry."""

        identifier = store.backend_name.lower()
        LOGGER.debug("Registering store '%s'", identifier)
        self._stores[identifier] = store

    def available_backends(self) -> Iterable[str]:
        """Return iterable of backend identifiers for display."""

        return sorted(self._stores.keys())

    def get(self, identifier: str) -> Type[LedgerStore]:
        store_cls = self._stores.get(identifier.lower())
        if not store_cls:
            raise KeyError(f"Unknown ledger store '{identifier}'")
        return store_cls

    def create(self, identifier: str, settings: Any) -> LedgerStore:
        """Instantiate the store matching the identifier from settings."""

        store_cls = self.get(identifier)
        LOGGER.info("Creating ledger store '%s'", identifier)
        factory = getattr(store_cls, "from_settings", None)
        if factory is None:
            return store_cls()
        return factory(settings)

    def discover(self, group: str = ENTRY_POINT_GROUP) -> List[str]:
        """Register store classes published through entry points."""

        loaded: List[str] = []
        for entry_point in entry_points(group=group):
            try:
                store_cls = entry_point.load()
            except Exception as exc:  # pragma: no cover - plugin import errors vary
                LOGGER.exception("Failed to load store plugin '%s': %s", entry_point.name, exc)
                continue
            if not (isinstance(store_cls, type) and issubclass(store_cls, LedgerStore)):
                LOGGER.warning("Entry point '%s' is not a LedgerStore subclass", entry_point.name)
                continue
            self.register(store_cls)
            loaded.append(store_cls.backend_name)
        return loaded


REGISTRY = StoreRegistry()
REGISTRY.register(LocalLedgerStore)
REGISTRY.register(RemoteLedgerStore)


def create_store(settings: Any) -> LedgerStore:
    """Build the backend selected by ``settings.storage_backend``."""

    return REGISTRY.create(settings.storage_backend, settings)
