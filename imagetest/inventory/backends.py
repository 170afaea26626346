"""Backing stores for inventory membership.

Two backends are provided. ``MemoryBackend`` keeps membership in process
memory and is the default. ``FileBackend`` keeps one JSON document per seed
in a directory so that separate processes evaluating the same seed observe
a single membership set.
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Protocol

from imagetest.constants import INVENTORY_FILE_PREFIX
from imagetest.exceptions import InventoryError
from imagetest.inventory.models import Feature, Harness

logger = logging.getLogger(__name__)


class InventoryBackend(Protocol):
    """Protocol for inventory backing stores.

    Every mutation must be an atomic check-and-insert.
    """

    def add_harness(self, seed: str, harness: Harness) -> bool: ...

    def add_feature(self, seed: str, harness: Harness, feature: Feature) -> bool: ...

    def get_features(self, seed: str, harness: Harness) -> list[Feature]: ...

    def list_harnesses(self, seed: str) -> list[Harness]: ...


class MemoryBackend:
    """In-process inventory backend guarded by a single lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._harnesses: dict[str, list[Harness]] = {}
        self._features: dict[str, dict[Harness, dict[str, Feature]]] = {}

    def add_harness(self, seed: str, harness: Harness) -> bool:
        with self._lock:
            harnesses = self._harnesses.setdefault(seed, [])
            if harness in harnesses:
                return False
            harnesses.append(harness)
            return True

    def add_feature(self, seed: str, harness: Harness, feature: Feature) -> bool:
        with self._lock:
            features = self._features.setdefault(seed, {}).setdefault(harness, {})
            added = feature.name not in features
            features[feature.name] = feature
            return added

    def get_features(self, seed: str, harness: Harness) -> list[Feature]:
        with self._lock:
            return list(self._features.get(seed, {}).get(harness, {}).values())

    def list_harnesses(self, seed: str) -> list[Harness]:
        with self._lock:
            return list(self._harnesses.get(seed, []))


class FileBackend:
    """Inventory backend persisting one JSON document per seed.

    Each operation opens a lock file and holds an exclusive ``flock`` for
    the whole read-modify-write, then replaces the document atomically via
    a temporary file and rename.

    Parameters
    ----------
    directory : Path | str
        Directory holding inventory documents; created if missing
    """

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def _paths(self, seed: str) -> tuple[Path, Path]:
        digest = hashlib.sha256(seed.encode("utf-8")).hexdigest()
        path = self.directory / f"{INVENTORY_FILE_PREFIX}{digest}.json"
        return path, path.with_suffix(".lock")

    def _read(self, path: Path, seed: str) -> dict[str, Any]:
        if not path.exists():
            return {"seed": seed, "harnesses": [], "features": {}}

        try:
            doc = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise InventoryError(f"corrupt inventory document {path}: {e}") from e

        if doc.get("seed") != seed:
            raise InventoryError(
                f"inventory document {path} belongs to seed {doc.get('seed')!r}, not {seed!r}"
            )
        return doc

    def _write(self, path: Path, doc: dict[str, Any]) -> None:
        temp_path = path.with_suffix(".tmp")
        try:
            temp_path.write_text(json.dumps(doc, indent=2, sort_keys=True))
            temp_path.rename(path)
        except Exception:
            if temp_path.exists():
                temp_path.unlink()
            raise

    def _transact(
        self, seed: str, mutate: Callable[[dict[str, Any]], tuple[Any, bool]]
    ) -> Any:
        """Run ``mutate(doc)`` under the seed's exclusive lock.

        ``mutate`` returns ``(result, changed)``; the document is written
        back only when ``changed`` is true.
        """
        path, lock_path = self._paths(seed)

        with self._lock:
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                with open(lock_path, "a") as lock_file:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                    try:
                        doc = self._read(path, seed)
                        result, changed = mutate(doc)
                        if changed:
                            self._write(path, doc)
                            logger.debug("Wrote inventory document %s", path)
                        return result
                    finally:
                        fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
            except OSError as e:
                raise InventoryError(f"inventory store {self.directory} unavailable: {e}") from e

    def add_harness(self, seed: str, harness: Harness) -> bool:
        def mutate(doc: dict[str, Any]) -> tuple[bool, bool]:
            if harness in doc["harnesses"]:
                return False, False
            doc["harnesses"].append(harness)
            return True, True

        return self._transact(seed, mutate)

    def add_feature(self, seed: str, harness: Harness, feature: Feature) -> bool:
        def mutate(doc: dict[str, Any]) -> tuple[bool, bool]:
            features = doc["features"].setdefault(harness, [])
            for i, existing in enumerate(features):
                if existing["name"] == feature.name:
                    features[i] = feature.to_dict()
                    return False, True
            features.append(feature.to_dict())
            return True, True

        return self._transact(seed, mutate)

    def get_features(self, seed: str, harness: Harness) -> list[Feature]:
        def read(doc: dict[str, Any]) -> tuple[list[Feature], bool]:
            entries = doc["features"].get(harness, [])
            return [Feature.from_dict(entry) for entry in entries], False

        return self._transact(seed, read)

    def list_harnesses(self, seed: str) -> list[Harness]:
        def read(doc: dict[str, Any]) -> tuple[list[Harness], bool]:
            return [Harness(h) for h in doc["harnesses"]], False

        return self._transact(seed, read)
