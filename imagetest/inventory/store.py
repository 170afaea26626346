"""Per-seed inventories of harnesses and their features."""

from __future__ import annotations

import logging
import threading

from imagetest.exceptions import InventoryError
from imagetest.inventory.backends import InventoryBackend, MemoryBackend
from imagetest.inventory.models import Feature, Harness

logger = logging.getLogger(__name__)


class Inventory:
    """Registry of harnesses and features for one inventory seed.

    Entries only accumulate for the lifetime of the process; there is no
    removal path.

    Parameters
    ----------
    seed : str
        Opaque seed identifying the logical test environment
    backend : InventoryBackend
        Backing store shared by every inventory of the owning store
    """

    def __init__(self, seed: str, backend: InventoryBackend) -> None:
        self.seed = seed
        self._backend = backend

    def add_harness(self, harness: Harness) -> bool:
        """Add a harness to the inventory.

        Parameters
        ----------
        harness : Harness
            Harness identifier

        Returns
        -------
        bool
            True if the harness was newly added, False if already present

        Raises
        ------
        InventoryError
            If the backing store fails
        """
        added = self._call("add harness", self._backend.add_harness, harness)
        if added:
            logger.debug("Inventory %s: added harness %s", self.seed, harness)
        return added

    def add_feature(self, harness: Harness, feature: Feature) -> bool:
        """Register a feature against a harness.

        Re-registering a feature name replaces its labels.

        Parameters
        ----------
        harness : Harness
            Harness identifier the feature runs against
        feature : Feature
            Feature record

        Returns
        -------
        bool
            True if the feature name was not yet registered for the harness

        Raises
        ------
        InventoryError
            If the backing store fails
        """
        added = self._call("add feature", self._backend.add_feature, harness, feature)
        if added:
            logger.debug(
                "Inventory %s: added feature %s to harness %s", self.seed, feature.name, harness
            )
        return added

    def get_features(self, harness: Harness) -> list[Feature]:
        """Return every feature registered against a harness.

        Parameters
        ----------
        harness : Harness
            Harness identifier

        Returns
        -------
        list[Feature]
            Registered features, empty when there are none

        Raises
        ------
        InventoryError
            If the backing store fails
        """
        return self._call("get features", self._backend.get_features, harness)

    def harnesses(self) -> list[Harness]:
        """Return every harness identifier in insertion order."""
        return self._call("list harnesses", self._backend.list_harnesses)

    def _call(self, operation: str, fn, *args):
        try:
            return fn(self.seed, *args)
        except InventoryError:
            raise
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise InventoryError(f"inventory {self.seed}: failed to {operation}: {e}") from e


class InventoryStore:
    """Process-wide collection of inventories keyed by seed.

    Inventories are created lazily on first reference and never destroyed.
    One store is constructed per process invocation and injected wherever
    inventories are needed.

    Parameters
    ----------
    backend : InventoryBackend | None
        Backing store; defaults to an in-memory backend
    """

    def __init__(self, backend: InventoryBackend | None = None) -> None:
        self.backend = backend or MemoryBackend()
        self._lock = threading.Lock()
        self._inventories: dict[str, Inventory] = {}

    def get(self, seed: str) -> Inventory:
        """Return the inventory for a seed, creating it on first use.

        Parameters
        ----------
        seed : str
            Inventory seed

        Returns
        -------
        Inventory
            The single inventory instance for the seed
        """
        with self._lock:
            inventory = self._inventories.get(seed)
            if inventory is None:
                inventory = Inventory(seed, self.backend)
                self._inventories[seed] = inventory
            return inventory

    def seeds(self) -> list[str]:
        with self._lock:
            return list(self._inventories)
