"""Shared test fixtures for keyroster.

Keys are real PGPy RSA keys, generated once per session. The roster
service is an in-memory fake that behaves like the real one: a key can
read a team's roster only once it appears in that roster.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union
from uuid import UUID, uuid4

import pgpy
import pytest
from pgpy.constants import (
    HashAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
    SymmetricKeyAlgorithm,
)

from keyroster.config import RosterConfig
from keyroster.errors import AlreadyRequested, Forbidden, NotFound
from keyroster.models import Person, Team, normalize_fingerprint
from keyroster.prompt import StaticPasswordPrompter
from keyroster.roster import canonical_bytes, parse_roster
from keyroster.session import Session
from keyroster.signing import parse_armored_key, sign_roster

PASSPHRASE = "test-roster-key-2026"
TEAM_UUID = UUID("74bb40b4-3510-11e9-968e-53c38df634be")


@dataclass
class KeyPair:
    """A generated test key and its identity."""

    name: str
    email: str
    private: str
    public: str
    fingerprint: str


def _generate_keypair(name: str, email: str) -> KeyPair:
    key = pgpy.PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)
    uid = pgpy.PGPUID.new(name, email=email)
    key.add_uid(
        uid,
        usage={KeyFlags.Sign, KeyFlags.Certify},
        hashes=[HashAlgorithm.SHA256],
        ciphers=[SymmetricKeyAlgorithm.AES256],
    )
    key.protect(PASSPHRASE, SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA256)
    return KeyPair(
        name=name,
        email=email,
        private=str(key),
        public=str(key.pubkey),
        fingerprint=normalize_fingerprint(str(key.fingerprint)),
    )


@pytest.fixture(scope="session")
def keys() -> dict[str, KeyPair]:
    """Session-scoped keys: two admins, a member and an outsider."""
    return {
        name: _generate_keypair(name.title(), f"{name}@example.com")
        for name in ("alice", "bob", "carol", "mallory")
    }


class FakeRosterService:
    """In-memory stand-in for the roster service client."""

    def __init__(self) -> None:
        self.rosters: dict[str, tuple[str, str]] = {}
        self.public_keys: dict[str, str] = {}
        self.team_names: dict[str, str] = {}
        self.join_requests: dict[str, list[dict[str, str]]] = {}
        self.roster_errors: dict[str, Exception] = {}
        self.key_errors: dict[str, Exception] = {}
        self.calls: list[tuple] = []

    def publish(self, roster: str, signature: str) -> None:
        team = parse_roster(roster)
        self.rosters[str(team.uuid)] = (roster, signature)
        self.team_names[str(team.uuid)] = team.name

    def get_roster(self, team_uuid, fingerprint):
        self.calls.append(("get_roster", str(team_uuid), fingerprint))
        if str(team_uuid) in self.roster_errors:
            raise self.roster_errors[str(team_uuid)]
        if str(team_uuid) not in self.rosters:
            raise NotFound(f"team {team_uuid} not found")
        roster, signature = self.rosters[str(team_uuid)]
        if parse_roster(roster).get_person(fingerprint) is None:
            raise Forbidden("forbidden")
        return roster, signature

    def upsert_team(self, roster, signature, fingerprint):
        self.calls.append(("upsert_team", fingerprint))
        self.publish(roster, signature)

    def get_public_key(self, fingerprint):
        fp = normalize_fingerprint(fingerprint)
        self.calls.append(("get_public_key", fp))
        if fp in self.key_errors:
            raise self.key_errors[fp]
        if fp not in self.public_keys:
            raise NotFound(f"key {fp} not found")
        return self.public_keys[fp]

    def get_team_name(self, team_uuid):
        if str(team_uuid) not in self.team_names:
            raise NotFound(f"team {team_uuid} not found")
        return self.team_names[str(team_uuid)]

    def request_to_join_team(self, team_uuid, fingerprint, email):
        self.calls.append(("request_to_join_team", str(team_uuid), fingerprint, email))
        requests = self.join_requests.setdefault(str(team_uuid), [])
        if any(r["fingerprint"] == fingerprint for r in requests):
            raise AlreadyRequested("already requested")
        requests.append({"uuid": str(uuid4()), "fingerprint": fingerprint, "email": email})

    def list_join_requests(self, team_uuid, fingerprint):
        return list(self.join_requests.get(str(team_uuid), []))

    def delete_join_request(self, team_uuid, request_uuid, fingerprint=None):
        self.calls.append(("delete_join_request", str(team_uuid), str(request_uuid)))
        self.join_requests[str(team_uuid)] = [
            r for r in self.join_requests.get(str(team_uuid), [])
            if r["uuid"] != str(request_uuid)
        ]

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def roster_home(tmp_path: Path) -> Path:
    """Provide a temporary keyroster home directory."""
    home = tmp_path / ".keyroster"
    home.mkdir()
    return home


@pytest.fixture
def service(keys: dict[str, KeyPair]) -> FakeRosterService:
    """A fake roster service that knows everyone's public key."""
    fake = FakeRosterService()
    for k in keys.values():
        fake.public_keys[k.fingerprint] = k.public
    return fake


@pytest.fixture
def session(roster_home: Path, service: FakeRosterService) -> Session:
    """A session wired to the fake service, answering with the test passphrase."""
    return Session.create(
        roster_home,
        config=RosterConfig(),
        client=service,
        prompter=StaticPasswordPrompter(PASSPHRASE),
    )


@pytest.fixture
def make_team(keys: dict[str, KeyPair]) -> Callable[..., Team]:
    """Build a team from key names."""

    def _make(
        name: str = "Acme",
        admins: tuple[str, ...] = ("alice",),
        members: tuple[str, ...] = ("carol",),
        team_uuid: UUID = TEAM_UUID,
    ) -> Team:
        people = [
            Person(email=keys[n].email, fingerprint=keys[n].fingerprint, is_admin=True)
            for n in admins
        ] + [
            Person(email=keys[n].email, fingerprint=keys[n].fingerprint)
            for n in members
        ]
        return Team(uuid=team_uuid, name=name, people=people)

    return _make


@pytest.fixture
def sign(keys: dict[str, KeyPair]) -> Callable[..., tuple[str, str]]:
    """Sign a team (or raw roster text) as one of the test keys."""

    def _sign(team: Union[Team, str], signer: str = "alice") -> tuple[str, str]:
        roster = team if isinstance(team, str) else canonical_bytes(team).decode("utf-8")
        private = parse_armored_key(keys[signer].private)
        return roster, sign_roster(roster.encode("utf-8"), private, PASSPHRASE)

    return _sign


@pytest.fixture
def member_of(
    session: Session,
    service: FakeRosterService,
    keys: dict[str, KeyPair],
    make_team: Callable[..., Team],
    sign: Callable[..., tuple[str, str]],
) -> Callable[..., Team]:
    """Make "me" a member of a team: trusted roster stored, secret key held."""

    def _member_of(me: str = "carol", team: Optional[Team] = None) -> Team:
        team = team or make_team()
        roster, signature = sign(team)
        session.store.save(team.uuid, roster, signature)
        service.publish(roster, signature)
        session.keyring.import_key(keys[me].private)
        return team

    return _member_of
