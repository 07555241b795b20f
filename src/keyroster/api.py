"""
Roster service client -- the HTTP side of team sync.

Thin on purpose: it moves rosters, signatures and keys, and turns
HTTP status codes into typed errors. It never decides what to trust.

    404 -> NotFound
    403 -> Forbidden         (e.g. join request not approved yet)
    409 -> AlreadyRequested
    anything else non-2xx, timeouts, connection errors -> TransportFailure
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional, Union
from urllib.parse import urljoin
from uuid import UUID

import requests

from . import __version__
from .errors import AlreadyRequested, Forbidden, NotFound, TransportFailure
from .models import normalize_fingerprint

logger = logging.getLogger("keyroster.api")

DEFAULT_API_URL = "https://api.fluidkeys.com/v1/"


def authorization(fingerprint: str) -> str:
    """Authorization header value identifying the requesting key."""
    return f"tmpfingerprint: OPENPGP4FPR:{normalize_fingerprint(fingerprint)}"


class RosterClient:
    """Client for the remote roster service.

    Args:
        base_url: API root. ``KEYROSTER_API_URL`` overrides it.
        timeout: Seconds before a request is abandoned.
        session: Optional pre-configured requests session.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ) -> None:
        base_url = os.environ.get("KEYROSTER_API_URL", base_url)
        if not base_url.endswith("/"):
            base_url += "/"
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": f"keyroster-{__version__}"})

    def get_roster(
        self, team_uuid: Union[UUID, str], fingerprint: str
    ) -> tuple[str, str]:
        """Download a team's roster and its detached signature.

        Args:
            team_uuid: The team.
            fingerprint: Key making the request; must be a member.

        Returns:
            tuple: (roster, armored_signature).

        Raises:
            Forbidden: If the key isn't (yet) a member of the team.
            NotFound: If the team doesn't exist.
            TransportFailure: On any other failure.
        """
        data = self._request_json(
            "GET", f"team/{team_uuid}/roster", auth_fingerprint=fingerprint
        )
        try:
            return data["teamRoster"], data["armoredDetachedSignature"]
        except (KeyError, TypeError) as exc:
            raise TransportFailure(f"malformed roster response: missing {exc}") from exc

    def upsert_team(self, roster: str, signature: str, fingerprint: str) -> None:
        """Create or update a team from a signed roster."""
        self._request(
            "POST",
            "teams",
            auth_fingerprint=fingerprint,
            json_body={
                "teamRoster": roster,
                "armoredDetachedSignature": signature,
            },
        )

    def get_public_key(self, fingerprint: str) -> str:
        """Download an armored public key by fingerprint.

        Raises:
            NotFound: If the service has no key for the fingerprint.
            TransportFailure: On any other failure.
        """
        fp = normalize_fingerprint(fingerprint)
        response = self._request("GET", f"key/{fp}.asc")
        if not response.text.strip():
            raise TransportFailure(f"got HTTP {response.status_code} but an empty key")
        return response.text

    def get_team_name(self, team_uuid: Union[UUID, str]) -> str:
        data = self._request_json("GET", f"team/{team_uuid}")
        try:
            return data["name"]
        except (KeyError, TypeError) as exc:
            raise TransportFailure(f"malformed team response: missing {exc}") from exc

    def request_to_join_team(
        self, team_uuid: Union[UUID, str], fingerprint: str, email: str
    ) -> None:
        """Ask the team's admins to add this key.

        Raises:
            AlreadyRequested: If a request for this key already exists.
        """
        self._request(
            "POST",
            f"team/{team_uuid}/requests-to-join",
            auth_fingerprint=fingerprint,
            json_body={"teamEmail": email},
        )

    def list_join_requests(
        self, team_uuid: Union[UUID, str], fingerprint: str
    ) -> list[dict[str, str]]:
        """List requests to join a team (admins only).

        Entries with an invalid uuid or fingerprint are skipped.

        Returns:
            list: Dicts with ``uuid``, ``fingerprint`` and ``email``.
        """
        data = self._request_json(
            "GET", f"team/{team_uuid}/requests-to-join", auth_fingerprint=fingerprint
        )
        requests_out = []
        for entry in data.get("requests", []) if isinstance(data, dict) else []:
            try:
                requests_out.append({
                    "uuid": str(UUID(entry["uuid"])),
                    "fingerprint": normalize_fingerprint(entry["fingerprint"]),
                    "email": entry.get("email", ""),
                })
            except (KeyError, TypeError, ValueError) as exc:
                logger.debug("Skipping malformed request to join: %s", exc)
        return requests_out

    def delete_join_request(
        self,
        team_uuid: Union[UUID, str],
        request_uuid: Union[UUID, str],
        fingerprint: Optional[str] = None,
    ) -> None:
        self._request(
            "DELETE",
            f"team/{team_uuid}/requests-to-join/{request_uuid}",
            auth_fingerprint=fingerprint,
        )

    # --- Private helpers ---

    def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self._request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise TransportFailure(
                f"{method} {path}: response wasn't JSON: {exc}"
            ) from exc

    def _request(
        self,
        method: str,
        path: str,
        auth_fingerprint: Optional[str] = None,
        json_body: Optional[dict] = None,
    ) -> requests.Response:
        url = urljoin(self.base_url, path)
        headers = {}
        if auth_fingerprint:
            headers["authorization"] = authorization(auth_fingerprint)

        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(
                method, url, headers=headers, json=json_body, timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportFailure(f"{method} {path} failed: {exc}") from exc

        if 200 <= response.status_code < 300:
            return response

        if response.status_code == 404:
            raise NotFound(f"{method} {path}: not found")
        if response.status_code == 403:
            raise Forbidden(f"{method} {path}: forbidden")
        if response.status_code == 409:
            raise AlreadyRequested(f"{method} {path}: already exists")
        if response.status_code == 401:
            raise TransportFailure("couldn't sign in to API")

        detail = _error_detail(response)
        if detail:
            raise TransportFailure(f"API error: {response.status_code} {detail}")
        raise TransportFailure(f"API error: {response.status_code}")


def _error_detail(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return ""
    if isinstance(data, dict):
        return str(data.get("detail", ""))
    return ""
