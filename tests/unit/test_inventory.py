"""Unit tests for inventories and their backing stores."""

import json
import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from imagetest.exceptions import InventoryError
from imagetest.inventory import (
    Feature,
    FileBackend,
    Harness,
    Inventory,
    InventoryStore,
    MemoryBackend,
)


@pytest.fixture(params=["memory", "file"])
def backend(request: pytest.FixtureRequest, tmp_path: Path):
    """Each inventory behaviour must hold for both backends."""
    if request.param == "memory":
        return MemoryBackend()
    return FileBackend(tmp_path / "inventory")


class TestInventoryMembership:
    """Test harness and feature membership semantics."""

    def test_add_harness_twice(self, backend) -> None:
        """Test first add returns True and the second returns False."""
        inventory = Inventory("suite-a", backend)

        assert inventory.add_harness(Harness("k3s-abc")) is True
        assert inventory.add_harness(Harness("k3s-abc")) is False
        assert inventory.harnesses() == ["k3s-abc"]

    def test_harnesses_keep_insertion_order(self, backend) -> None:
        """Test harnesses are listed in insertion order."""
        inventory = Inventory("suite-a", backend)
        for name in ("c", "a", "b"):
            inventory.add_harness(Harness(name))

        assert inventory.harnesses() == ["c", "a", "b"]

    def test_seeds_are_isolated(self, backend) -> None:
        """Test the same harness may be added once per seed."""
        first = Inventory("suite-a", backend)
        second = Inventory("suite-b", backend)

        assert first.add_harness(Harness("k3s-abc")) is True
        assert second.add_harness(Harness("k3s-abc")) is True
        assert second.harnesses() == ["k3s-abc"]

    def test_get_features_empty(self, backend) -> None:
        """Test harness without features has an empty feature list."""
        inventory = Inventory("suite-a", backend)
        inventory.add_harness(Harness("k3s-abc"))

        assert inventory.get_features(Harness("k3s-abc")) == []

    def test_add_feature_and_get_features(self, backend) -> None:
        """Test registered features are returned with their labels."""
        inventory = Inventory("suite-a", backend)
        harness = Harness("k3s-abc")

        assert inventory.add_feature(harness, Feature("smoke", {"env": "prod"})) is True
        assert inventory.add_feature(harness, Feature("load", {})) is True

        features = inventory.get_features(harness)
        assert [f.name for f in features] == ["smoke", "load"]
        assert dict(features[0].labels) == {"env": "prod"}

    def test_add_feature_replaces_labels(self, backend) -> None:
        """Test re-registering a feature name replaces its labels."""
        inventory = Inventory("suite-a", backend)
        harness = Harness("k3s-abc")

        inventory.add_feature(harness, Feature("smoke", {"env": "prod"}))
        assert inventory.add_feature(harness, Feature("smoke", {"env": "dev"})) is False

        features = inventory.get_features(harness)
        assert len(features) == 1
        assert dict(features[0].labels) == {"env": "dev"}

    def test_concurrent_adds_yield_single_true(self, backend) -> None:
        """Test N concurrent adds of one harness report exactly one True."""
        inventory = Inventory("suite-a", backend)
        barrier = threading.Barrier(16)
        results: list[bool] = []
        results_lock = threading.Lock()

        def add() -> None:
            barrier.wait()
            added = inventory.add_harness(Harness("k3s-abc"))
            with results_lock:
                results.append(added)

        threads = [threading.Thread(target=add) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert results.count(False) == 15
        assert inventory.harnesses() == ["k3s-abc"]


class TestFileBackend:
    """Test file-backed persistence."""

    def test_membership_shared_across_instances(self, tmp_path: Path) -> None:
        """Test separate backends on one directory see one membership set."""
        first = Inventory("suite-a", FileBackend(tmp_path))
        second = Inventory("suite-a", FileBackend(tmp_path))

        assert first.add_harness(Harness("k3s-abc")) is True
        assert second.add_harness(Harness("k3s-abc")) is False

    def test_document_contents(self, tmp_path: Path) -> None:
        """Test the persisted document records seed, harnesses and features."""
        inventory = Inventory("suite-a", FileBackend(tmp_path))
        inventory.add_harness(Harness("k3s-abc"))
        inventory.add_feature(Harness("k3s-abc"), Feature("smoke", {"env": "prod"}))

        (document,) = tmp_path.glob("inventory-*.json")
        doc = json.loads(document.read_text())

        assert doc["seed"] == "suite-a"
        assert doc["harnesses"] == ["k3s-abc"]
        assert doc["features"]["k3s-abc"] == [{"name": "smoke", "labels": {"env": "prod"}}]

    def test_no_temp_file_left_behind(self, tmp_path: Path) -> None:
        """Test documents are replaced via rename."""
        Inventory("suite-a", FileBackend(tmp_path)).add_harness(Harness("k3s-abc"))

        assert list(tmp_path.glob("*.tmp")) == []

    def test_corrupt_document_raises(self, tmp_path: Path) -> None:
        """Test unreadable JSON surfaces as an inventory error."""
        backend = FileBackend(tmp_path)
        path, _ = backend._paths("suite-a")
        path.write_text("{not json")

        with pytest.raises(InventoryError, match="corrupt inventory document"):
            Inventory("suite-a", backend).add_harness(Harness("k3s-abc"))

    def test_document_for_other_seed_raises(self, tmp_path: Path) -> None:
        """Test a document whose seed does not match is rejected."""
        backend = FileBackend(tmp_path)
        path, _ = backend._paths("suite-a")
        path.write_text(json.dumps({"seed": "suite-b", "harnesses": [], "features": {}}))

        with pytest.raises(InventoryError, match="belongs to seed"):
            Inventory("suite-a", backend).harnesses()

    def test_unwritable_directory_raises(self, tmp_path: Path) -> None:
        """Test OS errors surface as inventory errors."""
        blocker = tmp_path / "blocker"
        blocker.write_text("")

        with pytest.raises(InventoryError, match="unavailable"):
            Inventory("suite-a", FileBackend(blocker / "sub")).add_harness(Harness("k3s-abc"))


class TestInventoryErrors:
    """Test backend failures are translated."""

    def test_backend_os_error_wrapped(self) -> None:
        """Test an OSError from a backend becomes an InventoryError."""
        backend = MagicMock()
        backend.add_harness.side_effect = OSError("disk full")

        with pytest.raises(InventoryError, match="failed to add harness: disk full"):
            Inventory("suite-a", backend).add_harness(Harness("k3s-abc"))

    def test_inventory_error_passes_through(self) -> None:
        """Test InventoryError is not wrapped twice."""
        backend = MagicMock()
        backend.get_features.side_effect = InventoryError("boom")

        with pytest.raises(InventoryError, match="^boom$"):
            Inventory("suite-a", backend).get_features(Harness("k3s-abc"))


class TestInventoryStore:
    """Test the per-seed inventory store."""

    def test_get_returns_same_instance(self) -> None:
        """Test one inventory instance exists per seed."""
        store = InventoryStore()
        assert store.get("suite-a") is store.get("suite-a")
        assert store.get("suite-a") is not store.get("suite-b")

    def test_seeds_lists_referenced_seeds(self) -> None:
        """Test seeds are recorded on first reference."""
        store = InventoryStore()
        store.get("suite-a")
        store.get("suite-b")

        assert store.seeds() == ["suite-a", "suite-b"]

    def test_concurrent_get_creates_one_inventory(self) -> None:
        """Test concurrent first references agree on one inventory."""
        store = InventoryStore()
        barrier = threading.Barrier(8)
        seen = []

        def get() -> None:
            barrier.wait()
            seen.append(store.get("suite-a"))

        threads = [threading.Thread(target=get) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert all(inv is seen[0] for inv in seen)


class TestFeatureModel:
    """Test the inventory feature record."""

    def test_labels_are_read_only(self) -> None:
        """Test feature labels cannot be mutated after construction."""
        feature = Feature("smoke", {"env": "prod"})

        with pytest.raises(TypeError):
            feature.labels["env"] = "dev"  # type: ignore[index]

    def test_dict_conversion(self) -> None:
        """Test to_dict and from_dict agree."""
        feature = Feature.from_dict({"name": "smoke", "labels": {"env": "prod"}})

        assert feature.to_dict() == {"name": "smoke", "labels": {"env": "prod"}}
        assert Feature.from_dict({"name": "bare"}).labels == {}
