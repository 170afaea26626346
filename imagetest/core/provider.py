"""Process-wide provider state shared by harness and feature resources."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any, Callable

import docker

from imagetest.core.registry import HarnessRegistry
from imagetest.harnesses.k3s.auth import DockerKeychain, Keychain
from imagetest.harnesses.k3s.model import ProviderK3sDefaults
from imagetest.inventory import Inventory, InventoryStore, SeedEncoder

logger = logging.getLogger(__name__)


class ProviderStore:
    """Shared state for one process invocation.

    Owns the inventory store, the runtime harness registry, the seed
    encoder and the runtime label filter. One instance is constructed per
    process and injected into every resource; nothing here is global.

    Parameters
    ----------
    labels : Mapping[str, str] | None
        Runtime label filter; empty disables label-based skipping
    k3s_defaults : ProviderK3sDefaults | None
        Provider-wide registries and networks for k3s harnesses
    inventories : InventoryStore | None
        Inventory store, defaults to an in-memory store
    harnesses : HarnessRegistry | None
        Runtime registry of live harness handles
    encoder : SeedEncoder | None
        Seed encoder for harness identifiers
    docker_client_factory : Callable[[], Any] | None
        Factory for the Docker client, defaults to ``docker.from_env``
    keychain : Keychain | None
        Credential lookup for keychain-auth registries
    cwd : str | None
        Base directory for relative mount sources, None for the process cwd
    """

    def __init__(
        self,
        labels: Mapping[str, str] | None = None,
        k3s_defaults: ProviderK3sDefaults | None = None,
        inventories: InventoryStore | None = None,
        harnesses: HarnessRegistry | None = None,
        encoder: SeedEncoder | None = None,
        docker_client_factory: Callable[[], Any] | None = None,
        keychain: Keychain | None = None,
        cwd: str | None = None,
    ) -> None:
        self.labels = dict(labels or {})
        self.k3s_defaults = k3s_defaults or ProviderK3sDefaults()
        self.inventories = inventories or InventoryStore()
        self.harnesses = harnesses or HarnessRegistry()
        self.encoder = encoder or SeedEncoder()
        self.keychain = keychain or DockerKeychain()
        self.cwd = cwd
        self._docker_client_factory = docker_client_factory or docker.from_env
        self._docker_client: Any = None
        self._client_lock = threading.Lock()

    def inventory(self, seed: str) -> Inventory:
        return self.inventories.get(seed)

    def encode(self, seed: str) -> str:
        return self.encoder.encode(seed)

    @property
    def docker_client(self) -> Any:
        """Docker client, created on first use and shared afterwards.

        Raises
        ------
        docker.errors.DockerException
            If the Docker daemon cannot be reached
        """
        with self._client_lock:
            if self._docker_client is None:
                logger.debug("Connecting to Docker")
                self._docker_client = self._docker_client_factory()
            return self._docker_client
