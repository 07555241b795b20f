"""
Trusted roster store and local join-request store.

Storage layout:
    ~/.keyroster/
    ├── teams/<team-uuid>/
    │   ├── trusted.json     # roster + signature we last accepted
    │   └── history.json     # SHA-256 digests of superseded rosters
    └── requests.json        # our pending requests to join teams

trusted.json holds the roster and its signature in one record and is
replaced atomically, so a crash can never pair a roster with the
wrong signature or leave half of one behind.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union
from uuid import UUID

from pydantic import ValidationError

from .errors import RosterError
from .models import RequestToJoinTeam, TrustedRoster, normalize_fingerprint
from .roster import roster_digest

logger = logging.getLogger("keyroster.store")


def _write_atomic(path: Path, text: str) -> None:
    """Write-temp-then-rename, fsynced, in the target's own directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


class RosterStore:
    """Per-team trusted roster baselines.

    Args:
        home: keyroster home directory (~/.keyroster).
    """

    def __init__(self, home: Path) -> None:
        self.home = Path(home).expanduser()
        self.teams_dir = self.home / "teams"

    def team_dir(self, team_uuid: Union[UUID, str]) -> Path:
        return self.teams_dir / str(UUID(str(team_uuid)))

    def load(self, team_uuid: Union[UUID, str]) -> Optional[TrustedRoster]:
        """Load the trusted roster for a team.

        Returns:
            TrustedRoster or None if we've never accepted one.

        Raises:
            RosterError: If the stored record can't be read.
        """
        trusted_file = self.team_dir(team_uuid) / "trusted.json"
        if not trusted_file.exists():
            return None
        try:
            return TrustedRoster.model_validate_json(
                trusted_file.read_text(encoding="utf-8")
            )
        except (ValidationError, OSError) as exc:
            raise RosterError(
                f"trusted roster for team {team_uuid} is unreadable: {exc}"
            ) from exc

    def save(
        self,
        team_uuid: Union[UUID, str],
        roster: str,
        signature: str,
    ) -> TrustedRoster:
        """Replace a team's trusted roster with a newly verified one.

        The roster being replaced is recorded as superseded first, so it
        can never be accepted again.

        Args:
            team_uuid: The team.
            roster: Verified roster text.
            signature: Its armored detached signature.

        Returns:
            TrustedRoster: The record now on disk.
        """
        team_uuid = UUID(str(team_uuid))
        previous = self.load(team_uuid)
        if previous is not None and previous.roster != roster:
            self._record_superseded(team_uuid, roster_digest(previous.roster))

        record = TrustedRoster(
            team_uuid=team_uuid,
            roster=roster,
            signature=signature,
            saved_at=datetime.now(timezone.utc),
        )
        _write_atomic(
            self.team_dir(team_uuid) / "trusted.json",
            record.model_dump_json(indent=2),
        )
        logger.info("Saved trusted roster for team %s", team_uuid)
        return record

    def superseded_digests(self, team_uuid: Union[UUID, str]) -> set[str]:
        """Digests of every roster this team has moved past."""
        history_file = self.team_dir(team_uuid) / "history.json"
        if not history_file.exists():
            return set()
        try:
            data = json.loads(history_file.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            raise RosterError(
                f"roster history for team {team_uuid} is unreadable: {exc}"
            ) from exc
        return set(data.get("superseded", []))

    def list_teams(self) -> list[TrustedRoster]:
        """Every trusted roster in the store, ordered by team UUID."""
        if not self.teams_dir.exists():
            return []

        rosters = []
        for team_dir in sorted(self.teams_dir.iterdir()):
            if not (team_dir / "trusted.json").exists():
                continue
            try:
                record = self.load(team_dir.name)
            except (RosterError, ValueError) as exc:
                logger.warning("Skipping team directory %s: %s", team_dir.name, exc)
                continue
            if record is not None:
                rosters.append(record)
        return rosters

    def _record_superseded(self, team_uuid: UUID, digest: str) -> None:
        digests = self.superseded_digests(team_uuid)
        if digest in digests:
            return
        history = sorted(digests | {digest})
        _write_atomic(
            self.team_dir(team_uuid) / "history.json",
            json.dumps({"superseded": history}, indent=2),
        )


class JoinRequestStore:
    """Our own pending requests to join teams.

    Args:
        home: keyroster home directory (~/.keyroster).
    """

    def __init__(self, home: Path) -> None:
        self.home = Path(home).expanduser()
        self.requests_file = self.home / "requests.json"

    def list_requests(self) -> list[RequestToJoinTeam]:
        """All stored requests, oldest first."""
        if not self.requests_file.exists():
            return []
        try:
            data = json.loads(self.requests_file.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            raise RosterError(f"requests file is unreadable: {exc}") from exc

        requests = []
        for entry in data.get("requests", []):
            try:
                requests.append(RequestToJoinTeam.model_validate(entry))
            except ValidationError as exc:
                logger.warning("Skipping invalid request to join team: %s", exc)
        return sorted(requests, key=lambda r: r.requested_at)

    def get(
        self, team_uuid: Union[UUID, str], fingerprint: str
    ) -> Optional[RequestToJoinTeam]:
        team_uuid = UUID(str(team_uuid))
        fp = normalize_fingerprint(fingerprint)
        for request in self.list_requests():
            if request.team_uuid == team_uuid and request.fingerprint == fp:
                return request
        return None

    def add(self, request: RequestToJoinTeam) -> None:
        """Store a request, replacing any for the same team and key."""
        requests = [
            r for r in self.list_requests()
            if not (r.team_uuid == request.team_uuid and r.fingerprint == request.fingerprint)
        ]
        requests.append(request)
        self._write(requests)

    def delete(self, team_uuid: Union[UUID, str], fingerprint: str) -> bool:
        """Delete the request for a team and key.

        Returns:
            bool: True if a request was found and deleted.
        """
        team_uuid = UUID(str(team_uuid))
        fp = normalize_fingerprint(fingerprint)
        requests = self.list_requests()
        remaining = [
            r for r in requests
            if not (r.team_uuid == team_uuid and r.fingerprint == fp)
        ]
        if len(remaining) == len(requests):
            return False
        self._write(remaining)
        return True

    def _write(self, requests: list[RequestToJoinTeam]) -> None:
        data = {"requests": [r.model_dump(mode="json") for r in requests]}
        _write_atomic(self.requests_file, json.dumps(data, indent=2))
