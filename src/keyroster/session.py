"""
The session -- everything one run needs, passed explicitly.

No module-level client, keyring or "current user". Whoever starts a
run builds a Session and hands it to the operations that need it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .api import RosterClient
from .config import RosterConfig, load_config
from .errors import MalformedRoster
from .keyring import Keyring
from .models import Membership, Outcome
from .prompt import EnvPasswordPrompter, InteractivePasswordPrompter, PasswordPrompter
from .resolver import AdminKeyResolver, KeyringSource, RemoteKeySource
from .roster import parse_roster
from .store import JoinRequestStore, RosterStore

logger = logging.getLogger("keyroster.session")


def _ignore(outcome: Outcome) -> None:
    return None


@dataclass
class Session:
    """Collaborators for one keyroster run.

    Attributes:
        home: keyroster home directory.
        config: Loaded configuration.
        client: Roster service client.
        keyring: Local OpenPGP keyring.
        store: Trusted roster store.
        requests: Local join-request store.
        prompter: Password source for unlocking our keys.
        report: Called with each outcome as it happens (for live output).
    """

    home: Path
    config: RosterConfig
    client: RosterClient
    keyring: Keyring
    store: RosterStore
    requests: JoinRequestStore
    prompter: PasswordPrompter
    report: Callable[[Outcome], None] = field(default=_ignore)

    @classmethod
    def create(
        cls,
        home: Path,
        interactive: bool = True,
        config: Optional[RosterConfig] = None,
        client: Optional[RosterClient] = None,
        prompter: Optional[PasswordPrompter] = None,
    ) -> Session:
        """Build a session from the home directory and its config.

        Args:
            home: keyroster home directory.
            interactive: Prompt on the terminal for passwords. When False,
                passwords come from the configured environment variable.
            config: Override the on-disk configuration.
            client: Override the roster service client.
            prompter: Override the password prompter.
        """
        home = Path(home).expanduser()
        config = config or load_config(home)
        if prompter is None:
            prompter = (
                InteractivePasswordPrompter()
                if interactive
                else EnvPasswordPrompter(config.password_env_var)
            )
        return cls(
            home=home,
            config=config,
            client=client or RosterClient(config.api_url, timeout=config.request_timeout),
            keyring=Keyring(home, import_to_gpg=config.import_to_gpg),
            store=RosterStore(home),
            requests=JoinRequestStore(home),
            prompter=prompter,
        )

    def resolver(self) -> AdminKeyResolver:
        """Keyring first, then the roster service."""
        return AdminKeyResolver([
            KeyringSource(self.keyring),
            RemoteKeySource(self.client),
        ])

    def memberships(self) -> list[Membership]:
        """Every stored team in which one of our secret keys is a member."""
        mine = set(self.keyring.secret_fingerprints())
        memberships = []
        for trusted in self.store.list_teams():
            try:
                team = parse_roster(trusted.roster)
            except MalformedRoster as exc:
                logger.warning("Stored roster for team %s is malformed: %s", trusted.team_uuid, exc)
                continue
            for person in team.people:
                if person.fingerprint in mine:
                    memberships.append(Membership(team=team, me=person))
        return memberships
