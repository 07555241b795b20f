"""
Pydantic models for teams, rosters, join requests and sync outcomes.

A Team is what a roster says. A TrustedRoster is what we've verified.
A RequestToJoinTeam is what we're still waiting on.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

_FINGERPRINT_RE = re.compile(r"^[0-9A-F]{40}$")


def normalize_fingerprint(value: str) -> str:
    """Normalise an OpenPGP v4 fingerprint to 40 upper-case hex characters.

    Accepts the spaced form PGPy and GnuPG print, lower-case hex, and
    the ``OPENPGP4FPR:`` URI prefix.

    Args:
        value: Fingerprint in any of the accepted forms.

    Returns:
        str: The normalised fingerprint.

    Raises:
        ValueError: If the value isn't a 40-hex fingerprint.
    """
    fp = "".join(str(value).split()).upper()
    if fp.startswith("OPENPGP4FPR:"):
        fp = fp[len("OPENPGP4FPR:"):]
    if not _FINGERPRINT_RE.match(fp):
        raise ValueError(f"invalid fingerprint: {value!r}")
    return fp


class Person(BaseModel):
    """A member of a team, identified by their key's fingerprint.

    Attributes:
        email: Contact email, unique within the team.
        fingerprint: OpenPGP fingerprint, unique within the team.
        is_admin: Whether this person may sign roster updates.
    """

    email: str
    fingerprint: str
    is_admin: bool = False

    @field_validator("fingerprint")
    @classmethod
    def _check_fingerprint(cls, v: str) -> str:
        return normalize_fingerprint(v)

    @field_validator("email")
    @classmethod
    def _check_email(cls, v: str) -> str:
        v = v.strip()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError(f"invalid email: {v!r}")
        return v


class Team(BaseModel):
    """A team as described by its roster.

    Identity is the UUID. The name is a display label, frozen at
    creation. People are kept in roster order.
    """

    uuid: UUID
    name: str
    people: list[Person] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("team name can't be empty")
        return v

    def admins(self) -> list[Person]:
        """Return the team's admins in roster order."""
        return [p for p in self.people if p.is_admin]

    def get_person(self, fingerprint: str) -> Optional[Person]:
        """Find a person by fingerprint, or None."""
        fp = normalize_fingerprint(fingerprint)
        for person in self.people:
            if person.fingerprint == fp:
                return person
        return None

    def is_admin(self, fingerprint: str) -> bool:
        person = self.get_person(fingerprint)
        return person is not None and person.is_admin


class TrustedRoster(BaseModel):
    """A roster and signature this client has verified and accepted."""

    team_uuid: UUID
    roster: str
    signature: str
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RequestToJoinTeam(BaseModel):
    """A locally stored request to join a team, awaiting admin approval."""

    uuid: UUID = Field(default_factory=uuid4)
    team_uuid: UUID
    team_name: str = ""
    fingerprint: str
    email: str
    requested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("fingerprint")
    @classmethod
    def _check_fingerprint(cls, v: str) -> str:
        return normalize_fingerprint(v)

    def age(self, now: Optional[datetime] = None) -> float:
        """Seconds since the request was made."""
        now = now or datetime.now(timezone.utc)
        requested = self.requested_at
        if requested.tzinfo is None:
            requested = requested.replace(tzinfo=timezone.utc)
        return (now - requested).total_seconds()


class Membership(BaseModel):
    """A stored team together with the local person ("me") in it."""

    team: Team
    me: Person


class OutcomeKind(str, Enum):
    """What happened to one team, request or key during a sync pass."""

    ROSTER_UNCHANGED = "roster_unchanged"
    ROSTER_UPDATED = "roster_updated"
    ROSTER_FAILED = "roster_failed"
    UNLOCK_FAILED = "unlock_failed"
    KEY_IMPORTED = "key_imported"
    KEY_FAILED = "key_failed"
    REQUEST_PENDING = "request_pending"
    REQUEST_APPROVED = "request_approved"
    REQUEST_EXPIRED = "request_expired"
    REQUEST_FAILED = "request_failed"


class Outcome(BaseModel):
    """One step's result. ``error`` is set when the step failed."""

    kind: OutcomeKind
    subject: str
    team_name: str = ""
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class SyncSummary(BaseModel):
    """The reduced result of a whole fetch run."""

    outcomes: list[Outcome] = Field(default_factory=list)

    @classmethod
    def from_outcomes(cls, outcomes: list[Outcome]) -> SyncSummary:
        return cls(outcomes=list(outcomes))

    @property
    def ok(self) -> bool:
        """True only if no team, request or key import hit an error."""
        return not any(o.failed for o in self.outcomes)

    @property
    def errors(self) -> list[Outcome]:
        return [o for o in self.outcomes if o.failed]

    def count(self, kind: OutcomeKind) -> int:
        return sum(1 for o in self.outcomes if o.kind == kind)
