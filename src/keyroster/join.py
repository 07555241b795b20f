"""
Requests to join teams -- from "please let me in" to a trusted roster.

    Pending --(admin adds us, roster fetch succeeds)--> Approved
    Pending --(older than request_expiry_days)--------> Expired
    Pending --(user withdraws it)---------------------> Withdrawn

Every sync pass looks at each pending request. The server answers a
roster fetch with 403 until an admin has added us, so Forbidden just
means "still waiting". Once the fetch succeeds we usually have no
previous roster to check it against, so the first roster is verified
against its own admins' keys. That is a weaker guarantee than an
update, and we also insist our own key is in it. If we already trust a
roster for the team, the fetched one is treated as a normal update.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterator, Union
from uuid import UUID

from .errors import Forbidden, KeyNotFound, RosterError
from .models import Outcome, OutcomeKind, RequestToJoinTeam, normalize_fingerprint
from .roster import parse_roster
from .session import Session
from .signing import key_fingerprint, verify_roster
from .validate import validate_update

logger = logging.getLogger("keyroster.join")

SECONDS_PER_DAY = 24 * 60 * 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JoinRequestManager:
    """Drives our pending requests to join teams through their lifecycle.

    Args:
        session: The run's collaborators.
        clock: Returns "now"; injectable for tests.
    """

    def __init__(
        self,
        session: Session,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session = session
        self.clock = clock

    def process(self) -> list[Outcome]:
        """Process every stored request. One failure never stops the rest."""
        return list(self.iter_process())

    def iter_process(self) -> Iterator[Outcome]:
        try:
            pending = self.session.requests.list_requests()
        except RosterError as exc:
            logger.warning("Failed to get requests to join teams: %s", exc)
            yield Outcome(
                kind=OutcomeKind.REQUEST_FAILED,
                subject="requests to join teams",
                error=str(exc),
            )
            return

        for request in pending:
            outcome = self.process_request(request)
            self.session.report(outcome)
            yield outcome

    def process_request(self, request: RequestToJoinTeam) -> Outcome:
        """Move one request along, returning what happened to it."""
        team_label = request.team_name or str(request.team_uuid)

        try:
            if self.is_expired(request):
                return self._expire(request, team_label)
            return self._check_approval(request, team_label)
        except (RosterError, OSError) as exc:
            logger.warning("Request to join %s: %s", team_label, exc)
            return Outcome(
                kind=OutcomeKind.REQUEST_FAILED,
                subject=request.email,
                team_name=team_label,
                error=str(exc),
            )

    def is_expired(self, request: RequestToJoinTeam) -> bool:
        max_age = self.session.config.request_expiry_days * SECONDS_PER_DAY
        return request.age(self.clock()) > max_age

    def request_to_join(
        self,
        team_uuid: Union[UUID, str],
        fingerprint: str,
        email: str,
    ) -> RequestToJoinTeam:
        """Ask to join a team and remember that we asked.

        Args:
            team_uuid: The team to join.
            fingerprint: Our key; its secret half must be in the keyring.
            email: The email to appear in the roster.

        Returns:
            RequestToJoinTeam: The stored request.

        Raises:
            KeyNotFound: If we don't hold the secret key.
            NotFound: If the team doesn't exist.
            AlreadyRequested: If the server already has a request for this key.
        """
        team_uuid = UUID(str(team_uuid))
        fp = normalize_fingerprint(fingerprint)
        if not self.session.keyring.has_secret_key(fp):
            raise KeyNotFound(fp)

        team_name = self.session.client.get_team_name(team_uuid)
        self.session.client.request_to_join_team(team_uuid, fp, email)

        request = RequestToJoinTeam(
            team_uuid=team_uuid,
            team_name=team_name,
            fingerprint=fp,
            email=email,
            requested_at=self.clock(),
        )
        self.session.requests.add(request)
        logger.info("Requested to join %s as %s", team_name, email)
        return request

    def withdraw(self, team_uuid: Union[UUID, str], fingerprint: str) -> bool:
        """Forget a pending request locally.

        Returns:
            bool: True if there was a request to withdraw.
        """
        withdrawn = self.session.requests.delete(team_uuid, fingerprint)
        if withdrawn:
            logger.info("Withdrew request to join team %s", team_uuid)
        return withdrawn

    # --- Private helpers ---

    def _expire(self, request: RequestToJoinTeam, team_label: str) -> Outcome:
        days = int(request.age(self.clock()) // SECONDS_PER_DAY)
        logger.warning("Request to join %s expired after %d days", team_label, days)
        self.session.requests.delete(request.team_uuid, request.fingerprint)
        # an error, so unattended runs draw attention to it
        return Outcome(
            kind=OutcomeKind.REQUEST_EXPIRED,
            subject=request.email,
            team_name=team_label,
            error=(
                f"Your request to join {team_label} {days} days ago wasn't approved "
                f"and has expired"
            ),
        )

    def _check_approval(self, request: RequestToJoinTeam, team_label: str) -> Outcome:
        session = self.session
        unlocked = session.keyring.unlock(
            request.fingerprint,
            session.prompter,
            context=f"{request.email} to check request to join {team_label}",
        )

        try:
            roster, signature = session.client.get_roster(
                request.team_uuid, unlocked.fingerprint
            )
        except Forbidden:
            logger.info("Request to join %s hasn't been approved yet", team_label)
            return Outcome(
                kind=OutcomeKind.REQUEST_PENDING,
                subject=request.email,
                team_name=team_label,
            )

        team = parse_roster(roster)
        if team.uuid != request.team_uuid:
            raise RosterError(
                f"asked for team {request.team_uuid}, got roster for {team.uuid}"
            )
        if team.get_person(request.fingerprint) is None:
            raise RosterError(f"roster for {team.name} doesn't include key {request.fingerprint}")

        store = session.store
        trusted = store.load(team.uuid)
        if trusted is not None:
            # Already trusted: the previous admins must have signed it
            prior = parse_roster(trusted.roster)
            admin_keys = session.resolver().resolve_admin_keys(prior)
            signer = verify_roster(roster, signature, admin_keys)
            validate_update(
                prior,
                team,
                key_fingerprint(signer),
                seen_digests=store.superseded_digests(team.uuid),
                after_bytes=roster,
            )
        else:
            admin_keys = session.resolver().resolve_admin_keys(team)
            signer = verify_roster(roster, signature, admin_keys)
            validate_update(team, team, key_fingerprint(signer), after_bytes=roster)
            logger.warning(
                "First roster for %s trusted on the strength of its own admin keys", team.name
            )

        store.save(team.uuid, roster, signature)
        session.requests.delete(request.team_uuid, request.fingerprint)
        logger.info("Request to join %s approved", team.name)
        return Outcome(
            kind=OutcomeKind.REQUEST_APPROVED,
            subject=request.email,
            team_name=team.name,
        )

