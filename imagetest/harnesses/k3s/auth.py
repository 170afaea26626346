"""Registry credentials: static values or ambient Docker keychain lookup."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol, Union

from docker import auth as docker_auth
from docker import errors as docker_errors

from imagetest.exceptions import HarnessSetupError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeychainAuth:
    """Credentials resolved at setup time from the ambient Docker keychain."""

    registry: str


@dataclass(frozen=True)
class StaticAuth:
    """Credentials given explicitly; unset fields are empty strings."""

    username: str = ""
    password: str = ""
    auth: str = ""

    def __repr__(self) -> str:
        return f"StaticAuth(username={self.username!r}, password='***', auth='***')"


RegistryAuth = Union[KeychainAuth, StaticAuth]


def auth_from_fields(
    registry: str, username: str | None, password: str | None, auth: str | None
) -> RegistryAuth:
    """Select the auth variant from which fields are populated.

    All three fields unset selects a keychain lookup by registry name;
    anything else is used as given, without inferring missing fields.
    """
    if username is None and password is None and auth is None:
        return KeychainAuth(registry=registry)
    return StaticAuth(username=username or "", password=password or "", auth=auth or "")


class Keychain(Protocol):
    """Protocol for ambient credential lookups."""

    def resolve(self, registry: str) -> StaticAuth | None: ...


class DockerKeychain:
    """Look up registry credentials the way the Docker CLI does.

    Reads ``~/.docker/config.json`` (or ``DOCKER_CONFIG``), including
    ``credsStore`` and ``credHelpers`` entries.

    Parameters
    ----------
    config_path : str | None
        Explicit Docker config file, None for the default location
    """

    def __init__(self, config_path: str | None = None) -> None:
        self.config_path = config_path
        self._config: Any = None

    def _load(self) -> Any:
        if self._config is None:
            self._config = docker_auth.load_config(config_path=self.config_path)
        return self._config

    def resolve(self, registry: str) -> StaticAuth | None:
        """Resolve credentials for a registry.

        Parameters
        ----------
        registry : str
            Registry host

        Returns
        -------
        StaticAuth | None
            Credentials, or None for anonymous access

        Raises
        ------
        HarnessSetupError
            If a configured credential helper fails
        """
        try:
            entry = self._load().resolve_authconfig(registry)
        except docker_errors.DockerException as e:
            raise HarnessSetupError(
                f"failed to resolve credentials for registry {registry}: {e}"
            ) from e

        if not entry:
            logger.debug("No keychain credentials for %s, using anonymous access", registry)
            return None

        username = entry.get("username") or entry.get("Username") or ""
        password = (
            entry.get("password")
            or entry.get("Password")
            or entry.get("IdentityToken")
            or ""
        )
        return StaticAuth(username=username, password=password, auth=entry.get("auth") or "")


def resolve_auth(auth: RegistryAuth, keychain: Keychain) -> StaticAuth | None:
    """Turn an auth variant into concrete credentials."""
    if isinstance(auth, KeychainAuth):
        return keychain.resolve(auth.registry)
    return auth
