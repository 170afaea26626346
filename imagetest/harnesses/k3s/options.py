"""Option composition for k3s harness bootstrap specifications.

A bootstrap specification is assembled by applying an explicit, ordered
list of options to a mutable ``K3sConfig`` and freezing the result. The
order produced by ``build_options`` is part of the contract:

1. toggles and image references (resource value, else default)
2. sandbox image, privileges, mounts, networks and environment
3. registries: resource entries, overwritten by provider entries on the
   same host
4. networks: resource networks followed by provider networks, duplicates
   preserved
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from imagetest.constants import (
    DEFAULT_DISABLE_CNI,
    DEFAULT_DISABLE_METRICS_SERVER,
    DEFAULT_DISABLE_TRAEFIK,
    DEFAULT_K3S_IMAGE,
    DEFAULT_SANDBOX_IMAGE,
)
from imagetest.exceptions import InvalidInputError
from imagetest.harnesses.k3s.auth import auth_from_fields
from imagetest.harnesses.k3s.model import HarnessK3sModel, ProviderK3sDefaults, RegistryModel
from imagetest.harnesses.k3s.reference import ImageReference, parse_reference
from imagetest.harnesses.k3s.spec import (
    BindMount,
    BootstrapSpec,
    RegistryConfig,
    RegistryTls,
    SandboxSpec,
)

logger = logging.getLogger(__name__)


@dataclass
class K3sConfig:
    """Mutable specification that options are applied to."""

    image: ImageReference = field(default_factory=lambda: parse_reference(DEFAULT_K3S_IMAGE))
    disable_cni: bool = DEFAULT_DISABLE_CNI
    disable_traefik: bool = DEFAULT_DISABLE_TRAEFIK
    disable_metrics_server: bool = DEFAULT_DISABLE_METRICS_SERVER
    sandbox_image: ImageReference = field(
        default_factory=lambda: parse_reference(DEFAULT_SANDBOX_IMAGE)
    )
    sandbox_privileged: bool = False
    sandbox_env: dict[str, str] = field(default_factory=dict)
    sandbox_mounts: list[BindMount] = field(default_factory=list)
    sandbox_networks: list[str] = field(default_factory=list)
    registries: dict[str, RegistryConfig] = field(default_factory=dict)
    networks: list[str] = field(default_factory=list)

    def freeze(self) -> BootstrapSpec:
        return BootstrapSpec(
            image=self.image,
            disable_cni=self.disable_cni,
            disable_traefik=self.disable_traefik,
            disable_metrics_server=self.disable_metrics_server,
            sandbox=SandboxSpec(
                image=self.sandbox_image,
                privileged=self.sandbox_privileged,
                env=dict(self.sandbox_env),
                mounts=tuple(self.sandbox_mounts),
                networks=tuple(self.sandbox_networks),
            ),
            registries=dict(self.registries),
            networks=tuple(self.networks),
        )

    def _registry(self, host: str) -> RegistryConfig:
        return self.registries.get(host, RegistryConfig())


Option = Callable[[K3sConfig], None]


def with_cni_disabled(disabled: bool) -> Option:
    def apply(cfg: K3sConfig) -> None:
        cfg.disable_cni = disabled

    return apply


def with_traefik_disabled(disabled: bool) -> Option:
    def apply(cfg: K3sConfig) -> None:
        cfg.disable_traefik = disabled

    return apply


def with_metrics_server_disabled(disabled: bool) -> Option:
    def apply(cfg: K3sConfig) -> None:
        cfg.disable_metrics_server = disabled

    return apply


def with_image_ref(ref: ImageReference) -> Option:
    def apply(cfg: K3sConfig) -> None:
        cfg.image = ref

    return apply


def with_sandbox_image_ref(ref: ImageReference) -> Option:
    def apply(cfg: K3sConfig) -> None:
        cfg.sandbox_image = ref

    return apply


def with_sandbox_privileged(privileged: bool) -> Option:
    def apply(cfg: K3sConfig) -> None:
        cfg.sandbox_privileged = privileged

    return apply


def with_sandbox_mounts(*mounts: BindMount) -> Option:
    def apply(cfg: K3sConfig) -> None:
        cfg.sandbox_mounts.extend(mounts)

    return apply


def with_sandbox_networks(*networks: str) -> Option:
    def apply(cfg: K3sConfig) -> None:
        cfg.sandbox_networks.extend(networks)

    return apply


def with_sandbox_env(env: Mapping[str, str]) -> Option:
    def apply(cfg: K3sConfig) -> None:
        cfg.sandbox_env.update(env)

    return apply


def with_registry(registry: str) -> Option:
    def apply(cfg: K3sConfig) -> None:
        cfg.registries[registry] = cfg._registry(registry)

    return apply


def with_auth_from_keychain(registry: str) -> Option:
    def apply(cfg: K3sConfig) -> None:
        cfg.registries[registry] = replace(
            cfg._registry(registry), auth=auth_from_fields(registry, None, None, None)
        )

    return apply


def with_auth_from_static(registry: str, username: str, password: str, auth: str) -> Option:
    def apply(cfg: K3sConfig) -> None:
        cfg.registries[registry] = replace(
            cfg._registry(registry),
            auth=auth_from_fields(registry, username, password, auth),
        )

    return apply


def with_registry_tls(registry: str, tls: RegistryTls) -> Option:
    def apply(cfg: K3sConfig) -> None:
        cfg.registries[registry] = replace(cfg._registry(registry), tls=tls)

    return apply


def with_registry_mirror(registry: str, *endpoints: str) -> Option:
    def apply(cfg: K3sConfig) -> None:
        cfg.registries[registry] = replace(cfg._registry(registry), mirrors=tuple(endpoints))

    return apply


def with_networks(*networks: str) -> Option:
    def apply(cfg: K3sConfig) -> None:
        cfg.networks.extend(networks)

    return apply


def apply_options(options: Iterable[Option]) -> BootstrapSpec:
    """Apply options in order to a fresh config and freeze it."""
    cfg = K3sConfig()
    for option in options:
        option(cfg)
    return cfg.freeze()


def resolve_mount_source(source: str, cwd: str | None = None) -> str:
    """Resolve a mount source to an absolute path.

    Relative sources are resolved against ``cwd``, or against the process
    working directory at call time when ``cwd`` is None, so the result
    depends on where the tool was invoked.

    Raises
    ------
    InvalidInputError
        If the source is empty or the working directory cannot be determined
    """
    if not isinstance(source, str) or not source:
        raise InvalidInputError(f"invalid mount source: {source!r}")

    try:
        base = cwd if cwd is not None else os.getcwd()
    except OSError as e:
        raise InvalidInputError(f"invalid mount source: {e}") from e

    return os.path.normpath(os.path.join(base, source))


def decode_mirror_endpoints(registry: str, endpoints: Any) -> list[str]:
    """Decode declared mirror endpoints into an ordered list.

    Raises
    ------
    InvalidInputError
        If the endpoints are not a list of non-empty strings
    """
    if endpoints is None:
        return []

    if isinstance(endpoints, (str, bytes)) or not isinstance(endpoints, Iterable):
        raise InvalidInputError(
            f"failed to convert mirror endpoints for registry {registry}: expected a list"
        )

    result = list(endpoints)
    for endpoint in result:
        if not isinstance(endpoint, str) or not endpoint:
            raise InvalidInputError(
                f"failed to convert mirror endpoints for registry {registry}: "
                f"invalid endpoint {endpoint!r}"
            )
    return result


def _parse_image(ref: str, what: str) -> ImageReference:
    try:
        return parse_reference(ref)
    except InvalidInputError as e:
        raise InvalidInputError(f"invalid {what} reference: {e}") from e


def merge_registries(
    resource: Mapping[str, RegistryModel], provider: Mapping[str, RegistryModel]
) -> dict[str, RegistryModel]:
    """Merge registry declarations; provider entries win on the same host."""
    merged = dict(resource)
    for host, reg in provider.items():
        merged[host] = reg
    return merged


def merge_networks(resource: Iterable[str], provider: Iterable[str]) -> list[str]:
    """Concatenate network names, resource first, duplicates preserved."""
    return [*resource, *provider]


def build_options(
    model: HarnessK3sModel,
    defaults: ProviderK3sDefaults | None = None,
    cwd: str | None = None,
) -> list[Option]:
    """Translate a harness declaration into an ordered option list.

    Parameters
    ----------
    model : HarnessK3sModel
        Declared harness
    defaults : ProviderK3sDefaults | None
        Provider-wide registries and networks
    cwd : str | None
        Base directory for relative mount sources, None for the process cwd

    Returns
    -------
    list[Option]
        Options to apply in order

    Raises
    ------
    InvalidInputError
        If an image reference, mount source or mirror list is invalid
    """
    defaults = defaults or ProviderK3sDefaults()

    options: list[Option] = [
        with_cni_disabled(model.disable_cni),
        with_traefik_disabled(model.disable_traefik),
        with_metrics_server_disabled(model.disable_metrics_server),
    ]

    if model.image is not None:
        options.append(with_image_ref(_parse_image(model.image, "image")))

    if model.sandbox is not None:
        sandbox = model.sandbox
        options.append(with_sandbox_image_ref(_parse_image(sandbox.image, "sandbox image")))
        options.append(with_sandbox_privileged(sandbox.privileged))

        for mount in sandbox.mounts:
            source = resolve_mount_source(mount.source, cwd)
            options.append(with_sandbox_mounts(BindMount(source=source, target=mount.destination)))

        for network in sandbox.networks.values():
            options.append(with_sandbox_networks(network))

        options.append(with_sandbox_env(dict(sandbox.envs)))

    registries = merge_registries(model.registries, defaults.registries)
    networks = merge_networks(model.networks.values(), defaults.networks)

    for host, reg in registries.items():
        options.append(with_registry(host))

        if reg.auth is not None:
            if reg.auth.is_unset():
                options.append(with_auth_from_keychain(host))
            else:
                options.append(
                    with_auth_from_static(
                        host,
                        reg.auth.username or "",
                        reg.auth.password or "",
                        reg.auth.auth or "",
                    )
                )

        if reg.tls is not None:
            options.append(
                with_registry_tls(
                    host,
                    RegistryTls(
                        cert_file=reg.tls.cert_file,
                        key_file=reg.tls.key_file,
                        ca_file=reg.tls.ca_file,
                    ),
                )
            )

        if reg.mirror is not None:
            endpoints = decode_mirror_endpoints(host, reg.mirror.endpoints)
            options.append(with_registry_mirror(host, *endpoints))

    options.append(with_networks(*networks))

    logger.debug(
        "Harness %s: %d options, %d registries, %d networks",
        model.name,
        len(options),
        len(registries),
        len(networks),
    )
    return options


def build_bootstrap_spec(
    model: HarnessK3sModel,
    defaults: ProviderK3sDefaults | None = None,
    cwd: str | None = None,
) -> BootstrapSpec:
    """Assemble the bootstrap specification for a harness declaration."""
    return apply_options(build_options(model, defaults, cwd))
