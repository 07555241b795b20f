"""
Admin roster changes -- edit by hand, or approve a request to join.

Both end the same way: the new roster is checked against the one we
trust, canonicalised, signed with our key, uploaded, and only then
saved as the new trusted roster.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Union
from uuid import UUID

import click

from .errors import NotFound, RosterError, SignerNotAdmin
from .models import Membership, Person, Team
from .roster import canonical_bytes, parse_roster
from .session import Session
from .validate import validate_update

logger = logging.getLogger("keyroster.edit")

Editor = Callable[[str], Optional[str]]


def admin_memberships(session: Session) -> list[Membership]:
    """Memberships in which we're an admin."""
    return [m for m in session.memberships() if m.me.is_admin]


def edit_team(
    session: Session,
    membership: Membership,
    editor: Optional[Editor] = None,
) -> Optional[Team]:
    """Open the team roster in an editor, then sign and upload the result.

    Args:
        session: The run's collaborators.
        membership: The team to edit; ``me`` must be an admin.
        editor: Takes the roster text, returns the edited text or None
            if the edit was abandoned. Defaults to ``click.edit``.

    Returns:
        Team: The updated team, or None if nothing changed.

    Raises:
        SignerNotAdmin: If we aren't an admin of the team.
        MalformedRoster: If the edited roster can't be parsed.
        UpdateRejected: If the edit breaks an update rule.
    """
    before = _trusted_team(session, membership)
    current = canonical_bytes(before).decode("utf-8")

    if editor is None:
        editor = _click_editor(session.config.editor)
    edited = editor(current)
    if edited is None:
        logger.info("Roster edit abandoned")
        return None

    after = parse_roster(edited)
    if canonical_bytes(after) == canonical_bytes(before):
        logger.info("No change to roster for %s", before.name)
        return None

    return _sign_and_publish(session, membership.me, before, after)


def approve_request(
    session: Session,
    membership: Membership,
    request_uuid: Union[UUID, str],
) -> Team:
    """Add a requester to the team as a (non-admin) member.

    Args:
        session: The run's collaborators.
        membership: The team; ``me`` must be an admin.
        request_uuid: Which request to join to approve.

    Returns:
        Team: The updated team.

    Raises:
        NotFound: If no such request exists for the team.
    """
    before = _trusted_team(session, membership)
    me = membership.me
    request_uuid = str(UUID(str(request_uuid)))

    requests = session.client.list_join_requests(before.uuid, me.fingerprint)
    match = next((r for r in requests if r["uuid"] == request_uuid), None)
    if match is None:
        raise NotFound(f"no request to join {before.name} with id {request_uuid}")

    after = before.model_copy(deep=True)
    after.people.append(Person(email=match["email"], fingerprint=match["fingerprint"]))

    updated = _sign_and_publish(session, me, before, after)
    session.client.delete_join_request(before.uuid, request_uuid, me.fingerprint)
    logger.info("Approved %s joining %s", match["email"], before.name)
    return updated


# --- Private helpers ---


def _trusted_team(session: Session, membership: Membership) -> Team:
    me = membership.me
    if not membership.team.is_admin(me.fingerprint):
        raise SignerNotAdmin(me.fingerprint)

    trusted = session.store.load(membership.team.uuid)
    if trusted is None:
        raise RosterError(f"no trusted roster for {membership.team.name}")
    return parse_roster(trusted.roster)


def _sign_and_publish(session: Session, me: Person, before: Team, after: Team) -> Team:
    roster_bytes = canonical_bytes(after)
    validate_update(
        before,
        after,
        me.fingerprint,
        seen_digests=session.store.superseded_digests(before.uuid),
        after_bytes=roster_bytes,
    )

    unlocked = session.keyring.unlock(
        me.fingerprint,
        session.prompter,
        context=f"{me.email} to sign the roster for {before.name}",
    )
    signature = unlocked.sign(roster_bytes)
    roster = roster_bytes.decode("utf-8")

    session.client.upsert_team(roster, signature, me.fingerprint)
    session.store.save(before.uuid, roster, signature)
    logger.info("Signed and uploaded new roster for %s", before.name)
    return after


def _click_editor(editor: Optional[str]) -> Editor:
    def run(text: str) -> Optional[str]:
        return click.edit(text, editor=editor, extension=".yaml", require_save=True)
    return run
