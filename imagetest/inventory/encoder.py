"""Deterministic encoding of inventory seeds into short identifiers."""

from __future__ import annotations

import hashlib

from imagetest.constants import ENCODED_SEED_LENGTH
from imagetest.exceptions import EncodeError


class SeedEncoder:
    """Encode inventory seeds into stable short tokens.

    The token is a truncated SHA-256 hex digest of the UTF-8 seed, so it is
    identical across calls and process restarts and safe to embed in Docker
    object names.

    Parameters
    ----------
    length : int
        Number of hex characters to keep from the digest
    """

    def __init__(self, length: int = ENCODED_SEED_LENGTH) -> None:
        if not 8 <= length <= 64:
            raise ValueError(f"encoded seed length must be between 8 and 64, got {length}")
        self.length = length

    def encode(self, seed: str) -> str:
        """Encode a seed.

        Parameters
        ----------
        seed : str
            Opaque inventory seed

        Returns
        -------
        str
            Lowercase hex token of ``length`` characters

        Raises
        ------
        EncodeError
            If the seed is not a non-empty string or is not UTF-8 encodable
        """
        if not isinstance(seed, str) or not seed:
            raise EncodeError(f"inventory seed must be a non-empty string, got {seed!r}")

        try:
            raw = seed.encode("utf-8")
        except UnicodeEncodeError as e:
            raise EncodeError(f"inventory seed is not encodable: {e}") from e

        return hashlib.sha256(raw).hexdigest()[: self.length]

    def harness_id(self, name: str, seed: str) -> str:
        """Build the ``{name}-{encoded-seed}`` identifier of a harness.

        Parameters
        ----------
        name : str
            Harness name, unique within its inventory
        seed : str
            Inventory seed

        Returns
        -------
        str
            Harness identifier
        """
        return f"{name}-{self.encode(seed)}"
