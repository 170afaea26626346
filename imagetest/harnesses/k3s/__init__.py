"""k3s harness: model, bootstrap options and Docker-backed handle."""

from __future__ import annotations

from imagetest.harnesses.k3s.auth import DockerKeychain, KeychainAuth, StaticAuth
from imagetest.harnesses.k3s.harness import K3sHarness, StepFailedError
from imagetest.harnesses.k3s.model import HarnessK3sModel, ProviderK3sDefaults
from imagetest.harnesses.k3s.options import build_bootstrap_spec, build_options
from imagetest.harnesses.k3s.spec import BootstrapSpec, RegistryConfig

__all__ = [
    "BootstrapSpec",
    "DockerKeychain",
    "HarnessK3sModel",
    "K3sHarness",
    "KeychainAuth",
    "ProviderK3sDefaults",
    "RegistryConfig",
    "StaticAuth",
    "StepFailedError",
    "build_bootstrap_spec",
    "build_options",
]
