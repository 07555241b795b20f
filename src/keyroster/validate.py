"""
Roster update rules -- what a signed update is allowed to change.

A valid signature proves an admin signed the roster. It doesn't prove
the roster is sane. Rules run in order and the first failure wins:

    1. team uuid can't change
    2. team name can't change
    3. the signer must be an admin in the new roster
    4. at least one admin must remain
    5. no email or fingerprint may appear twice
    6. a superseded roster can't be replayed
    7. the signer can't change their own email in the same update

Rule 3 also means an admin can never remove or demote themself:
another admin has to do it.
"""

from __future__ import annotations

from typing import Iterable, Optional, Union

from .errors import (
    DuplicateMember,
    ImmutableFieldChanged,
    NoAdminRemaining,
    ReplayedRoster,
    SignerNotAdmin,
)
from .models import Team, normalize_fingerprint
from .roster import canonical_bytes, roster_digest


def validate_update(
    before: Team,
    after: Team,
    signer_fingerprint: str,
    seen_digests: Iterable[str] = (),
    after_bytes: Optional[Union[bytes, str]] = None,
) -> None:
    """Check a proposed roster against the last trusted one.

    Args:
        before: The team as the last trusted roster describes it.
        after: The team as the proposed roster describes it.
        signer_fingerprint: Fingerprint of the key that signed ``after``.
        seen_digests: SHA-256 digests of superseded rosters for this team.
        after_bytes: The exact proposed roster bytes, if already known.
            Defaults to the canonical bytes of ``after``.

    Raises:
        UpdateRejected: The first rule the update breaks.
    """
    signer = normalize_fingerprint(signer_fingerprint)

    _validate_team_uuid(before, after)
    _validate_team_name(before, after)
    _validate_signer_is_admin(after, signer)
    _validate_admin_remains(after)
    _validate_no_duplicates(after)
    _validate_not_replayed(after, seen_digests, after_bytes)
    _validate_signer_identity(before, after, signer)


def _validate_team_uuid(before: Team, after: Team) -> None:
    if before.uuid != after.uuid:
        raise ImmutableFieldChanged("uuid")


def _validate_team_name(before: Team, after: Team) -> None:
    if before.name != after.name:
        raise ImmutableFieldChanged("name")


def _validate_signer_is_admin(after: Team, signer: str) -> None:
    if not after.is_admin(signer):
        raise SignerNotAdmin(signer)


def _validate_admin_remains(after: Team) -> None:
    if not after.admins():
        raise NoAdminRemaining()


def _validate_no_duplicates(after: Team) -> None:
    emails: set[str] = set()
    fingerprints: set[str] = set()
    for person in after.people:
        email = person.email.lower()
        if email in emails:
            raise DuplicateMember("email", person.email)
        emails.add(email)

        if person.fingerprint in fingerprints:
            raise DuplicateMember("fingerprint", person.fingerprint)
        fingerprints.add(person.fingerprint)


def _validate_not_replayed(
    after: Team,
    seen_digests: Iterable[str],
    after_bytes: Optional[Union[bytes, str]],
) -> None:
    seen = set(seen_digests)
    if not seen:
        return
    digest = roster_digest(after_bytes if after_bytes is not None else canonical_bytes(after))
    if digest in seen:
        raise ReplayedRoster(digest)


def _validate_signer_identity(before: Team, after: Team, signer: str) -> None:
    old_me = before.get_person(signer)
    new_me = after.get_person(signer)
    if old_me is None or new_me is None:
        return
    if old_me.email.lower() != new_me.email.lower():
        raise ImmutableFieldChanged("email")
