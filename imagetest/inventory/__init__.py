"""Inventory of harnesses and features, keyed by seed."""

from __future__ import annotations

from imagetest.inventory.backends import FileBackend, InventoryBackend, MemoryBackend
from imagetest.inventory.encoder import SeedEncoder
from imagetest.inventory.models import Feature, Harness
from imagetest.inventory.store import Inventory, InventoryStore

__all__ = [
    "Feature",
    "FileBackend",
    "Harness",
    "Inventory",
    "InventoryBackend",
    "InventoryStore",
    "MemoryBackend",
    "SeedEncoder",
]
