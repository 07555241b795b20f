"""
Admin key resolution -- who is allowed to sign this roster?

Each admin's key is looked up through an ordered chain of sources:
the local keyring first (no network, maybe stale), then the roster
service. A source answers with a key, with None ("not here, try the
next one"), or raises KeySourceError ("this source is broken").

Resolution is all-or-nothing. If one admin's key can't be found the
whole resolution fails, rather than verifying against a partial set.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import pgpy

from .api import RosterClient
from .errors import (
    InvalidKey,
    KeyNotFound,
    KeyResolutionFailed,
    NotFound,
    RosterError,
    TransportFailure,
)
from .keyring import Keyring
from .models import Team, normalize_fingerprint
from .signing import key_fingerprint, parse_armored_key

logger = logging.getLogger("keyroster.resolver")


class KeySourceError(RosterError):
    """A key source failed in a way that isn't simply "not found"."""


class KeySource(ABC):
    """Somewhere a public key might be found."""

    @abstractmethod
    def find(self, fingerprint: str) -> Optional[pgpy.PGPKey]:
        """Look up a public key.

        Args:
            fingerprint: Normalised fingerprint.

        Returns:
            The key, or None if this source doesn't have it.

        Raises:
            KeySourceError: If the source itself failed.
        """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable source name."""


class KeyringSource(KeySource):
    """The local keyring."""

    def __init__(self, keyring: Keyring) -> None:
        self.keyring = keyring

    @property
    def name(self) -> str:
        return "keyring"

    def find(self, fingerprint: str) -> Optional[pgpy.PGPKey]:
        try:
            return self.keyring.lookup(fingerprint)
        except KeyNotFound:
            return None
        except (InvalidKey, OSError) as exc:
            raise KeySourceError(f"keyring copy of {fingerprint} unusable: {exc}") from exc


class RemoteKeySource(KeySource):
    """The roster service's public key directory."""

    def __init__(self, client: RosterClient) -> None:
        self.client = client

    @property
    def name(self) -> str:
        return "api"

    def find(self, fingerprint: str) -> Optional[pgpy.PGPKey]:
        try:
            armored = self.client.get_public_key(fingerprint)
        except NotFound:
            return None
        except TransportFailure as exc:
            raise KeySourceError(str(exc)) from exc

        try:
            return parse_armored_key(armored)
        except InvalidKey as exc:
            raise KeySourceError(f"server sent a bad key for {fingerprint}: {exc}") from exc


class AdminKeyResolver:
    """Resolve every admin's public key through an ordered source chain.

    Args:
        sources: Key sources, tried in order for each admin.
    """

    def __init__(self, sources: Sequence[KeySource]) -> None:
        self.sources = list(sources)

    def resolve_key(self, fingerprint: str) -> pgpy.PGPKey:
        """Find one public key, trying each source in turn.

        Raises:
            KeyResolutionFailed: If no source produced a matching key.
        """
        fp = normalize_fingerprint(fingerprint)
        for source in self.sources:
            try:
                key = source.find(fp)
            except KeySourceError as exc:
                logger.warning("Failed to get key %s from %s: %s", fp, source.name, exc)
                continue

            if key is None:
                logger.debug("Key %s not found in %s", fp, source.name)
                continue

            if key_fingerprint(key) != fp:
                logger.warning(
                    "Source %s returned key %s when asked for %s, ignoring it",
                    source.name, key_fingerprint(key), fp,
                )
                continue
            return key

        raise KeyResolutionFailed(fp)

    def resolve_admin_keys(self, team: Team) -> list[pgpy.PGPKey]:
        """Public keys of every admin in a team.

        Args:
            team: The team whose admins may sign its roster.

        Returns:
            list: One key per admin, in roster order.

        Raises:
            KeyResolutionFailed: If any admin's key can't be found.
        """
        admins = team.admins()
        if not admins:
            raise KeyResolutionFailed("(team has no admins)")
        return [self.resolve_key(admin.fingerprint) for admin in admins]
