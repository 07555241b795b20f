"""
Team fetch -- the sync pass over every team we belong to.

    keyroster team fetch  ->  join requests -> for each team:
                              unlock -> fetch roster -> verify -> save
                              -> fetch and import everyone's key

Nothing here aborts the run. Each step yields an Outcome; the run
folds them into a SyncSummary, which is only ok if nothing failed.
A team whose roster won't verify keeps its old trusted roster, and
we still fetch keys for the people in it.
"""

from __future__ import annotations

import logging
from itertools import chain
from typing import Iterator, Optional

from .errors import NotFound, RosterError
from .join import JoinRequestManager
from .models import Membership, Outcome, OutcomeKind, Person, SyncSummary, Team
from .roster import parse_roster
from .session import Session
from .signing import key_fingerprint, verify_roster
from .validate import validate_update

logger = logging.getLogger("keyroster.fetch")


class TeamFetcher:
    """Synchronises every team membership with the roster service.

    Args:
        session: The run's collaborators.
        join_manager: Handles the join-request phase. Defaults to one
            built from the session.
    """

    def __init__(
        self,
        session: Session,
        join_manager: Optional[JoinRequestManager] = None,
    ) -> None:
        self.session = session
        self.join_manager = join_manager or JoinRequestManager(session)

    def run(self) -> SyncSummary:
        """Process join requests, then sync each membership in turn."""
        outcomes = chain(
            self.join_manager.iter_process(),
            self._membership_outcomes(),
        )
        return SyncSummary.from_outcomes(list(outcomes))

    def sync_membership(self, membership: Membership) -> Iterator[Outcome]:
        """Update one team's roster, then fetch its members' keys.

        Failing to unlock our key or to update the roster doesn't stop
        the key fetch: the last trusted roster is still good for that.
        """
        team, me = membership.team, membership.me
        logger.info("Syncing team %s", team.name)

        try:
            unlocked = self.session.keyring.unlock(
                me.fingerprint,
                self.session.prompter,
                context=f"{me.email} to check {team.name} for updates",
            )
        except (RosterError, OSError) as exc:
            logger.warning("Failed to unlock key to check %s for updates: %s", team.name, exc)
            yield self._emit(Outcome(
                kind=OutcomeKind.UNLOCK_FAILED,
                subject=me.email,
                team_name=team.name,
                error=str(exc),
            ))
        else:
            outcome, team = self.update_roster(team, unlocked.fingerprint)
            yield self._emit(outcome)

        for outcome in self.fetch_team_keys(team, me):
            yield self._emit(outcome)

    def update_roster(self, team: Team, my_fingerprint: str) -> tuple[Outcome, Team]:
        """Fetch, verify and adopt a team's latest roster.

        Args:
            team: The team as currently trusted.
            my_fingerprint: Our key, used to authorise the fetch.

        Returns:
            tuple: (outcome, team to use from now on). On any failure the
            team returned is the one passed in.
        """
        store = self.session.store
        try:
            roster, signature = self.session.client.get_roster(team.uuid, my_fingerprint)

            trusted = store.load(team.uuid)
            if trusted is not None and trusted.roster == roster:
                logger.info("No change to roster for %s, nothing to do", team.name)
                return Outcome(
                    kind=OutcomeKind.ROSTER_UNCHANGED,
                    subject=team.name,
                    team_name=team.name,
                ), team

            # the admins we already trust vouch for the update, not the update itself
            prior = parse_roster(trusted.roster) if trusted is not None else team
            admin_keys = self.session.resolver().resolve_admin_keys(prior)
            signer = verify_roster(roster, signature, admin_keys)
            logger.info("New roster for %s verified OK", team.name)

            updated = parse_roster(roster)
            validate_update(
                prior,
                updated,
                key_fingerprint(signer),
                seen_digests=store.superseded_digests(team.uuid),
                after_bytes=roster,
            )
            store.save(team.uuid, roster, signature)
        except (RosterError, OSError) as exc:
            logger.warning("Failed to check %s for updates: %s", team.name, exc)
            return Outcome(
                kind=OutcomeKind.ROSTER_FAILED,
                subject=team.name,
                team_name=team.name,
                error=str(exc),
            ), team

        if updated.get_person(my_fingerprint) is None:
            logger.info("You're no longer a member of %s", team.name)
        return Outcome(
            kind=OutcomeKind.ROSTER_UPDATED,
            subject=team.name,
            team_name=team.name,
        ), updated

    def fetch_team_keys(self, team: Team, me: Person) -> Iterator[Outcome]:
        """Fetch and import the public key of everyone else in the team.

        A failure for one person is reported and the loop moves on.
        """
        for person in team.people:
            if person.fingerprint == me.fingerprint:
                continue
            yield self._import_key(team, person)

    # --- Private helpers ---

    def _membership_outcomes(self) -> Iterator[Outcome]:
        # memberships are read after the join phase so approved teams are included
        try:
            memberships = self.session.memberships()
        except (RosterError, OSError) as exc:
            yield self._emit(Outcome(
                kind=OutcomeKind.ROSTER_FAILED,
                subject="team memberships",
                error=str(exc),
            ))
            return

        for membership in memberships:
            yield from self.sync_membership(membership)

    def _import_key(self, team: Team, person: Person) -> Outcome:
        try:
            armored = self.session.client.get_public_key(person.fingerprint)
            self.session.keyring.import_key(armored, expected_fingerprint=person.fingerprint)
        except NotFound:
            error = f"couldn't find key {person.fingerprint}"
        except (RosterError, OSError) as exc:
            error = str(exc)
        else:
            return Outcome(
                kind=OutcomeKind.KEY_IMPORTED,
                subject=person.email,
                team_name=team.name,
            )

        logger.warning("Failed to import key for %s: %s", person.email, error)
        return Outcome(
            kind=OutcomeKind.KEY_FAILED,
            subject=person.email,
            team_name=team.name,
            error=error,
        )

    def _emit(self, outcome: Outcome) -> Outcome:
        self.session.report(outcome)
        return outcome
