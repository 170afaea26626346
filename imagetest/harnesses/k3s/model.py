"""Declared configuration of k3s harness resources.

These models hold exactly what a harness declaration and the provider
configuration say, with ``None`` meaning "unset". Defaults and merge rules
are applied later by the option builder.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from imagetest.constants import (
    DEFAULT_DISABLE_CNI,
    DEFAULT_DISABLE_METRICS_SERVER,
    DEFAULT_DISABLE_TRAEFIK,
    DEFAULT_SANDBOX_IMAGE,
)


@dataclass
class RegistryAuthModel:
    username: str | None = None
    password: str | None = None
    auth: str | None = None

    def is_unset(self) -> bool:
        return self.username is None and self.password is None and self.auth is None


@dataclass
class RegistryTlsModel:
    cert_file: str | None = None
    key_file: str | None = None
    ca_file: str | None = None


@dataclass
class RegistryMirrorModel:
    # Left undecoded; the builder validates it into an ordered endpoint list.
    endpoints: Any = None


@dataclass
class RegistryModel:
    auth: RegistryAuthModel | None = None
    tls: RegistryTlsModel | None = None
    mirror: RegistryMirrorModel | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> RegistryModel:
        data = data or {}
        auth = data.get("auth")
        tls = data.get("tls")
        mirror = data.get("mirror")
        return cls(
            auth=RegistryAuthModel(**auth) if auth is not None else None,
            tls=RegistryTlsModel(**tls) if tls is not None else None,
            mirror=RegistryMirrorModel(**mirror) if mirror is not None else None,
        )


@dataclass
class MountModel:
    source: str
    destination: str


@dataclass
class SandboxModel:
    image: str = DEFAULT_SANDBOX_IMAGE
    privileged: bool = False
    envs: dict[str, str] = field(default_factory=dict)
    mounts: list[MountModel] = field(default_factory=list)
    networks: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SandboxModel:
        return cls(
            image=data.get("image") or DEFAULT_SANDBOX_IMAGE,
            privileged=bool(data.get("privileged", False)),
            envs=dict(data.get("envs") or {}),
            mounts=[
                MountModel(source=m["source"], destination=m["destination"])
                for m in data.get("mounts") or []
            ],
            networks=_network_names(data.get("networks")),
        )


@dataclass
class HarnessK3sModel:
    """A declared k3s harness.

    Attributes
    ----------
    name : str
        Harness name, unique within the inventory
    seed : str
        Seed of the inventory the harness belongs to
    id : str | None
        Computed ``{name}-{encoded-seed}`` identifier, set during plan
    skipped : bool
        Whether creation was skipped by the label policy
    image : str | None
        Explicit k3s image reference
    disable_cni, disable_traefik, disable_metrics_server : bool
        Cluster component toggles
    registries : dict[str, RegistryModel]
        Registry configuration keyed by registry host
    networks : dict[str, str]
        Existing Docker networks to attach, keyed by declaration key
    sandbox : SandboxModel | None
        Sandbox container configuration
    create_timeout : float | None
        Upper bound in seconds for setup, None for the default
    """

    name: str
    seed: str
    id: str | None = None
    skipped: bool = False
    image: str | None = None
    disable_cni: bool = DEFAULT_DISABLE_CNI
    disable_traefik: bool = DEFAULT_DISABLE_TRAEFIK
    disable_metrics_server: bool = DEFAULT_DISABLE_METRICS_SERVER
    registries: dict[str, RegistryModel] = field(default_factory=dict)
    networks: dict[str, str] = field(default_factory=dict)
    sandbox: SandboxModel | None = None
    create_timeout: float | None = None

    @classmethod
    def from_dict(cls, name: str, seed: str, data: Mapping[str, Any]) -> HarnessK3sModel:
        """Build a harness model from a validated configuration mapping."""
        sandbox = data.get("sandbox")
        timeouts = data.get("timeouts") or {}

        def toggle(key: str, default: bool) -> bool:
            value = data.get(key)
            return default if value is None else bool(value)

        return cls(
            name=name,
            seed=seed,
            image=data.get("image"),
            disable_cni=toggle("disable_cni", DEFAULT_DISABLE_CNI),
            disable_traefik=toggle("disable_traefik", DEFAULT_DISABLE_TRAEFIK),
            disable_metrics_server=toggle("disable_metrics_server", DEFAULT_DISABLE_METRICS_SERVER),
            registries={
                host: RegistryModel.from_dict(reg)
                for host, reg in (data.get("registries") or {}).items()
            },
            networks=_network_names(data.get("networks")),
            sandbox=SandboxModel.from_dict(sandbox) if sandbox is not None else None,
            create_timeout=timeouts.get("create"),
        )

    def state(self) -> dict[str, Any]:
        """Return the output passed to dependent features."""
        return {
            "id": self.id,
            "name": self.name,
            "inventory": {"seed": self.seed},
            "skipped": self.skipped,
        }


@dataclass
class ProviderK3sDefaults:
    """Provider-wide k3s settings applied to every k3s harness."""

    registries: dict[str, RegistryModel] = field(default_factory=dict)
    networks: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ProviderK3sDefaults:
        data = data or {}
        return cls(
            registries={
                host: RegistryModel.from_dict(reg)
                for host, reg in (data.get("registries") or {}).items()
            },
            networks=list(_network_names(data.get("networks")).values()),
        )


def _network_names(networks: Any) -> dict[str, str]:
    """Normalize network declarations into ``{key: network name}``.

    Accepts ``{key: {name: ...}}``, ``{key: name}`` and ``[name, ...]``,
    preserving declaration order.
    """
    if not networks:
        return {}

    if isinstance(networks, Mapping):
        result = {}
        for key, value in networks.items():
            result[key] = value["name"] if isinstance(value, Mapping) else value
        return result

    return {str(i): (n["name"] if isinstance(n, Mapping) else n) for i, n in enumerate(networks)}
