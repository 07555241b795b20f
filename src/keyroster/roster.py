"""
Roster codec -- the team as a signable YAML document.

The signature is computed over canonical_bytes(), so every admin's
client has to produce exactly the same bytes for the same team.
Key order is fixed, people stay in roster order, fingerprints are
normalised, and nothing depends on dict ordering or the clock.

    team = parse_roster(roster_text)
    roster_bytes = canonical_bytes(team)
"""

from __future__ import annotations

import hashlib
from typing import Any, Union

import yaml
from pydantic import ValidationError

from .errors import MalformedRoster
from .models import Team

ROSTER_HEADER = (
    "# keyroster team roster\n"
    "#\n"
    "# Changes to this file must be signed by a team admin.\n"
    "# The team uuid and name can't be changed.\n"
    "\n"
)


def parse_roster(data: Union[bytes, str]) -> Team:
    """Parse a roster document into a Team.

    Args:
        data: Roster document, as bytes (UTF-8) or text.

    Returns:
        Team: The parsed team.

    Raises:
        MalformedRoster: If the document isn't a structurally valid roster.
    """
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedRoster(f"roster isn't valid UTF-8: {exc}") from exc

    try:
        doc = yaml.safe_load(data)
    except yaml.YAMLError as exc:
        raise MalformedRoster(f"roster isn't valid YAML: {exc}") from exc

    if not isinstance(doc, dict):
        raise MalformedRoster("roster must be a mapping with uuid, name and people")

    for required in ("uuid", "name"):
        if required not in doc:
            raise MalformedRoster(f"roster is missing '{required}'")

    people = doc.get("people") or []
    if not isinstance(people, list):
        raise MalformedRoster("roster 'people' must be a list")

    try:
        return Team.model_validate({
            "uuid": str(doc["uuid"]),
            "name": str(doc["name"]) if doc["name"] is not None else "",
            "people": [_check_person(i, p) for i, p in enumerate(people)],
        })
    except ValidationError as exc:
        raise MalformedRoster(f"invalid roster: {_first_error(exc)}") from exc


def canonical_bytes(team: Team) -> bytes:
    """Serialise a team to its canonical, signable roster bytes.

    Args:
        team: The team to serialise.

    Returns:
        bytes: UTF-8 YAML, identical for identical teams.
    """
    doc = {
        "uuid": str(team.uuid),
        "name": team.name,
        "people": [
            {
                "email": p.email,
                "fingerprint": p.fingerprint,
                "is_admin": p.is_admin,
            }
            for p in team.people
        ],
    }
    body = yaml.safe_dump(
        doc,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=4096,
    )
    return (ROSTER_HEADER + body).encode("utf-8")


def roster_digest(roster: Union[bytes, str]) -> str:
    """SHA-256 hex digest of a roster's bytes."""
    if isinstance(roster, str):
        roster = roster.encode("utf-8")
    return hashlib.sha256(roster).hexdigest()


def _check_person(index: int, entry: Any) -> Any:
    # YAML reads an unquoted all-digit fingerprint as a number, sometimes octal
    if isinstance(entry, dict):
        fingerprint = entry.get("fingerprint")
        if isinstance(fingerprint, (int, float)) and not isinstance(fingerprint, bool):
            raise MalformedRoster(
                f"people.{index}.fingerprint: fingerprint must be quoted, "
                f"YAML read it as the number {fingerprint!r}"
            )
    return entry


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    where = ".".join(str(part) for part in first.get("loc", ()))
    return f"{where}: {first.get('msg', 'invalid value')}"
