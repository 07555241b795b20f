"""
Error hierarchy for roster verification, validation and sync.

Every failure a sync pass can hit is a RosterError. The orchestrator
catches these per team, per request and per key, records them, and
keeps going. Nothing here is fatal to the process.
"""

from __future__ import annotations


class RosterError(Exception):
    """Base class for every keyroster error."""


class MalformedRoster(RosterError):
    """Raised when a roster document can't be parsed into a team."""


class SignatureInvalid(RosterError):
    """Raised when no candidate key validates a roster signature."""


class SignatureKeyLocked(RosterError):
    """Raised when signing is attempted with a passphrase-locked key."""


class UpdateRejected(RosterError):
    """Base class for roster updates refused by the update validator."""


class ImmutableFieldChanged(UpdateRejected):
    """Raised when an update changes a field that must never change."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"can't change team {field}")


class SignerNotAdmin(UpdateRejected):
    """Raised when the signing key isn't an admin in the updated roster."""

    def __init__(self, fingerprint: str) -> None:
        self.fingerprint = fingerprint
        super().__init__(f"signing key {fingerprint} isn't an admin of the team")


class NoAdminRemaining(UpdateRejected):
    """Raised when an update would leave the team without an admin."""

    def __init__(self) -> None:
        super().__init__("team must have at least one admin")


class DuplicateMember(UpdateRejected):
    """Raised when an email or fingerprint appears twice in a roster."""

    def __init__(self, field: str, value: str) -> None:
        self.field = field
        self.value = value
        super().__init__(f"{field} {value} appears more than once in the roster")


class ReplayedRoster(UpdateRejected):
    """Raised when a previously superseded roster is submitted again."""

    def __init__(self, digest: str) -> None:
        self.digest = digest
        super().__init__(f"roster {digest[:16]} has already been superseded")


class KeyResolutionFailed(RosterError):
    """Raised when an admin's public key can't be found anywhere."""

    def __init__(self, fingerprint: str) -> None:
        self.fingerprint = fingerprint
        super().__init__(f"failed multiple attempts to get public key for {fingerprint}")


class KeyNotFound(RosterError):
    """Raised when a key isn't in the local keyring."""

    def __init__(self, fingerprint: str) -> None:
        self.fingerprint = fingerprint
        super().__init__(f"no key for {fingerprint} in keyring")


class KeyUnlockFailed(RosterError):
    """Raised when a private key can't be unlocked with the given password."""

    def __init__(self, fingerprint: str, reason: str = "") -> None:
        self.fingerprint = fingerprint
        detail = f": {reason}" if reason else ""
        super().__init__(f"failed to unlock key {fingerprint}{detail}")


class ApiError(RosterError):
    """Base class for errors talking to the roster service."""


class Forbidden(ApiError):
    """The requesting key has no access to the resource (yet)."""


class NotFound(ApiError):
    """The service answered, but has no such team or key."""


class AlreadyRequested(ApiError):
    """A request to join the team already exists for this key."""


class TransportFailure(ApiError):
    """Network failure, timeout, or an unexpected response from the service."""


class InvalidKey(RosterError):
    """Raised when armored key material can't be parsed."""
