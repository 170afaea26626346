"""Resolved bootstrap specification of a k3s harness."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import yaml

from imagetest.constants import (
    DEFAULT_DISABLE_CNI,
    DEFAULT_DISABLE_METRICS_SERVER,
    DEFAULT_DISABLE_TRAEFIK,
    DEFAULT_K3S_IMAGE,
)
from imagetest.harnesses.k3s.auth import Keychain, RegistryAuth, resolve_auth
from imagetest.harnesses.k3s.reference import ImageReference, parse_reference


@dataclass(frozen=True)
class BindMount:
    source: str
    target: str


@dataclass(frozen=True)
class RegistryTls:
    cert_file: str | None = None
    key_file: str | None = None
    ca_file: str | None = None


@dataclass(frozen=True)
class RegistryConfig:
    """Configuration for one registry host.

    Attributes
    ----------
    auth : RegistryAuth | None
        Keychain or static credentials
    tls : RegistryTls | None
        Client certificate material
    mirrors : tuple[str, ...]
        Ordered alternate endpoints
    """

    auth: RegistryAuth | None = None
    tls: RegistryTls | None = None
    mirrors: tuple[str, ...] = ()


@dataclass(frozen=True)
class SandboxSpec:
    image: ImageReference
    privileged: bool = False
    env: Mapping[str, str] = field(default_factory=dict)
    mounts: tuple[BindMount, ...] = ()
    networks: tuple[str, ...] = ()


@dataclass(frozen=True)
class BootstrapSpec:
    """Everything a k3s harness needs to come up.

    Built once per create and never mutated afterwards.
    """

    sandbox: SandboxSpec
    image: ImageReference = field(default_factory=lambda: parse_reference(DEFAULT_K3S_IMAGE))
    disable_cni: bool = DEFAULT_DISABLE_CNI
    disable_traefik: bool = DEFAULT_DISABLE_TRAEFIK
    disable_metrics_server: bool = DEFAULT_DISABLE_METRICS_SERVER
    registries: Mapping[str, RegistryConfig] = field(default_factory=dict)
    networks: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "registries", MappingProxyType(dict(self.registries)))

    def server_args(self) -> list[str]:
        """Return the ``k3s server`` arguments implied by the toggles."""
        args = ["server"]
        if self.disable_cni:
            args += ["--flannel-backend=none", "--disable-network-policy"]
        if self.disable_traefik:
            args.append("--disable=traefik")
        if self.disable_metrics_server:
            args.append("--disable=metrics-server")
        return args

    def registries_document(self, keychain: Keychain) -> dict[str, Any]:
        """Build the k3s ``registries.yaml`` document.

        Keychain credentials are resolved here, at setup time.
        """
        mirrors: dict[str, Any] = {}
        configs: dict[str, Any] = {}

        for host, reg in self.registries.items():
            if reg.mirrors:
                mirrors[host] = {"endpoint": list(reg.mirrors)}

            config: dict[str, Any] = {}
            if reg.auth is not None:
                creds = resolve_auth(reg.auth, keychain)
                if creds is not None:
                    auth = {
                        "username": creds.username,
                        "password": creds.password,
                        "auth": creds.auth,
                    }
                    config["auth"] = {k: v for k, v in auth.items() if v}
            if reg.tls is not None:
                tls = {
                    "cert_file": reg.tls.cert_file,
                    "key_file": reg.tls.key_file,
                    "ca_file": reg.tls.ca_file,
                }
                config["tls"] = {k: v for k, v in tls.items() if v}
            if config:
                configs[host] = config

        return {"mirrors": mirrors, "configs": configs}

    def render_registries(self, keychain: Keychain) -> str:
        return yaml.safe_dump(self.registries_document(keychain), sort_keys=True)
