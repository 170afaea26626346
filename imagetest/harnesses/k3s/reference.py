"""Parsing and validation of container image references."""

from __future__ import annotations

import re
from dataclasses import dataclass

from docker import auth as docker_auth
from docker import errors as docker_errors
from docker.utils import parse_repository_tag

from imagetest.exceptions import InvalidInputError

_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*"
_REPOSITORY_RE = re.compile(rf"^{_COMPONENT}(?:/{_COMPONENT})*$")
_TAG_RE = re.compile(r"^[\w][\w.-]{0,127}$")
_DIGEST_RE = re.compile(r"^[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[0-9a-fA-F]{32,}$")


@dataclass(frozen=True)
class ImageReference:
    """A parsed image reference.

    Attributes
    ----------
    registry : str
        Registry host, ``docker.io`` when the reference names none
    repository : str
        Repository path within the registry
    tag : str | None
        Tag, ``latest`` when neither tag nor digest is given
    digest : str | None
        Content digest
    """

    registry: str
    repository: str
    tag: str | None = None
    digest: str | None = None

    def __str__(self) -> str:
        ref = f"{self.registry}/{self.repository}"
        if self.tag:
            ref += f":{self.tag}"
        if self.digest:
            ref += f"@{self.digest}"
        return ref


def parse_reference(ref: str) -> ImageReference:
    """Parse an image reference such as ``cgr.dev/chainguard/k3s:latest``.

    Parameters
    ----------
    ref : str
        Image reference

    Returns
    -------
    ImageReference
        Parsed reference with registry and default tag resolved

    Raises
    ------
    InvalidInputError
        If the reference is empty or malformed
    """
    if not isinstance(ref, str) or not ref.strip():
        raise InvalidInputError(f"invalid image reference {ref!r}: empty")

    if ref != ref.strip() or any(c.isspace() for c in ref):
        raise InvalidInputError(f"invalid image reference {ref!r}: contains whitespace")

    name, digest = ref, None
    if "@" in ref:
        name, digest = ref.split("@", 1)
        if not _DIGEST_RE.match(digest):
            raise InvalidInputError(f"invalid image reference {ref!r}: bad digest")

    repo, tag = parse_repository_tag(name)
    if tag is not None and not _TAG_RE.match(tag):
        raise InvalidInputError(f"invalid image reference {ref!r}: bad tag {tag!r}")

    try:
        index, remote = docker_auth.resolve_repository_name(repo)
    except docker_errors.InvalidRepository as e:
        raise InvalidInputError(f"invalid image reference {ref!r}: {e}") from e

    if index == docker_auth.INDEX_NAME:
        if "/" not in remote:
            remote = f"library/{remote}"

    if not _REPOSITORY_RE.match(remote):
        raise InvalidInputError(f"invalid image reference {ref!r}: bad repository {remote!r}")

    if tag is None and digest is None:
        tag = "latest"

    return ImageReference(registry=index, repository=remote, tag=tag, digest=digest)
