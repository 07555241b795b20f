"""Team commands: fetch, join, requests, withdraw, list, show, edit, pending, approve."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import click
from rich.table import Table

from ._common import (
    ROSTER_HOME,
    console,
    humanize_age,
    print_failure,
    print_outcome,
    print_success,
    print_warning,
)
from ..errors import AlreadyRequested, MalformedRoster, RosterError, UpdateRejected
from ..models import Membership


def _session(home: str, interactive: bool = True):
    from ..session import Session

    session = Session.create(Path(home).expanduser(), interactive=interactive)
    session.report = print_outcome
    return session


def _pick_admin_membership(session, team_uuid: Optional[str]) -> Membership:
    from ..edit import admin_memberships

    memberships = admin_memberships(session)
    if team_uuid:
        memberships = [m for m in memberships if str(m.team.uuid) == team_uuid.lower()]

    if not memberships:
        print_failure("You aren't an admin of any matching teams")
        sys.exit(1)
    if len(memberships) > 1:
        print_failure(
            "You're an admin of more than one team",
            [f"{m.team.name}: {m.team.uuid}" for m in memberships]
            + ["", "Choose one with [cyan]--team TEAM_UUID[/]"],
        )
        sys.exit(1)
    return memberships[0]


def register_team_commands(main: click.Group) -> None:
    """Register the team command group."""

    @main.group()
    def team():
        """Teams: signed rosters and everyone's keys."""

    @team.command("fetch")
    @click.option("--home", default=ROSTER_HOME, type=click.Path())
    @click.option(
        "--non-interactive",
        is_flag=True,
        help="Don't prompt; read key passwords from the environment (cron).",
    )
    def team_fetch(home, non_interactive):
        """Check join requests, update rosters and import every member's key."""
        from ..fetch import TeamFetcher

        session = _session(home, interactive=not non_interactive)
        summary = TeamFetcher(session).run()

        if not summary.ok:
            console.print()
            print_failure(
                "Encountered errors while syncing",
                [f"{o.team_name or o.subject}: {o.error}" for o in summary.errors],
            )
            sys.exit(1)

        print_success(
            "Successfully fetched keys",
            ["You have fetched everyone's key in your teams."],
        )

    @team.command("join")
    @click.argument("team_uuid")
    @click.option("--key", "fingerprint", required=True, help="Fingerprint of your key.")
    @click.option("--email", required=True, help="Email to appear in the roster.")
    @click.option("--home", default=ROSTER_HOME, type=click.Path())
    def team_join(team_uuid, fingerprint, email, home):
        """Request to join a team."""
        from ..join import JoinRequestManager

        session = _session(home)
        try:
            request = JoinRequestManager(session).request_to_join(team_uuid, fingerprint, email)
        except AlreadyRequested:
            print_warning("You've already requested to join this team")
            sys.exit(1)
        except (RosterError, ValueError) as exc:
            print_failure("Failed to request to join team", [], exc)
            sys.exit(1)

        print_success(
            f"Requested to join {request.team_name}",
            [
                "An admin of the team needs to approve your request.",
                "Run [cyan]keyroster team fetch[/] to check if you've been approved.",
            ],
        )

    @team.command("requests")
    @click.option("--home", default=ROSTER_HOME, type=click.Path())
    def team_requests(home):
        """List your pending requests to join teams."""
        session = _session(home)
        requests = session.requests.list_requests()
        if not requests:
            console.print("\n  [dim]No pending requests to join teams.[/]\n")
            return

        table = Table(title="Requests to join teams")
        table.add_column("Team")
        table.add_column("Email")
        table.add_column("Key", style="dim")
        table.add_column("Requested")
        for r in requests:
            table.add_row(
                r.team_name or str(r.team_uuid),
                r.email,
                r.fingerprint[-16:],
                humanize_age(r.age()) + " ago",
            )
        console.print(table)

    @team.command("withdraw")
    @click.argument("team_uuid")
    @click.option("--key", "fingerprint", required=True, help="Fingerprint of your key.")
    @click.option("--home", default=ROSTER_HOME, type=click.Path())
    def team_withdraw(team_uuid, fingerprint, home):
        """Withdraw a request to join a team."""
        from ..join import JoinRequestManager

        session = _session(home)
        if not JoinRequestManager(session).withdraw(team_uuid, fingerprint):
            print_warning("No matching request to join that team")
            sys.exit(1)
        print_success("Request withdrawn")

    @team.command("list")
    @click.option("--home", default=ROSTER_HOME, type=click.Path())
    def team_list(home):
        """List your teams."""
        session = _session(home)
        memberships = session.memberships()
        if not memberships:
            console.print("\n  [dim]You aren't in any teams.[/]\n")
            return

        table = Table(title="Teams")
        table.add_column("Team")
        table.add_column("UUID", style="dim")
        table.add_column("Members", justify="right")
        table.add_column("You")
        for m in memberships:
            role = "admin" if m.me.is_admin else "member"
            table.add_row(m.team.name, str(m.team.uuid), str(len(m.team.people)), f"{m.me.email} ({role})")
        console.print(table)

    @team.command("show")
    @click.argument("team_uuid")
    @click.option("--home", default=ROSTER_HOME, type=click.Path())
    def team_show(team_uuid, home):
        """Show a team's trusted roster."""
        from ..roster import parse_roster

        session = _session(home)
        try:
            trusted = session.store.load(team_uuid)
        except ValueError:
            print_failure(f"Not a team UUID: {team_uuid}")
            sys.exit(1)
        except RosterError as exc:
            print_failure("Failed to load trusted roster", [], exc)
            sys.exit(1)
        if trusted is None:
            print_failure(f"No trusted roster for team {team_uuid}")
            sys.exit(1)

        try:
            t = parse_roster(trusted.roster)
        except MalformedRoster as exc:
            print_failure("Stored roster is malformed", [], exc)
            sys.exit(1)

        table = Table(title=f"{t.name} [dim]({t.uuid})[/]")
        table.add_column("Email")
        table.add_column("Fingerprint", style="dim")
        table.add_column("Admin")
        for p in t.people:
            table.add_row(p.email, p.fingerprint, "[green]yes[/]" if p.is_admin else "")
        console.print(table)
        console.print(f"  [dim]Trusted since {trusted.saved_at.isoformat()}[/]\n")

    @team.command("edit")
    @click.option("--team", "team_uuid", default=None, help="Team to edit, if you admin several.")
    @click.option("--home", default=ROSTER_HOME, type=click.Path())
    def team_edit(team_uuid, home):
        """Edit a team roster, then sign and upload it."""
        from ..edit import edit_team

        session = _session(home)
        membership = _pick_admin_membership(session, team_uuid)
        console.print(f"\n  [bold]Edit team {membership.team.name}[/]\n")

        try:
            updated = edit_team(session, membership)
        except (MalformedRoster, UpdateRejected) as exc:
            print_failure("Problem with new team roster", [], exc)
            sys.exit(1)
        except RosterError as exc:
            print_failure("Failed to sign and upload roster", [], exc)
            sys.exit(1)

        if updated is None:
            console.print("  [dim]No changes made.[/]\n")
            return
        print_success(f"Updated roster for {updated.name}", [f"{len(updated.people)} member(s)"])

    @team.command("pending")
    @click.option("--team", "team_uuid", default=None, help="Team to check, if you admin several.")
    @click.option("--home", default=ROSTER_HOME, type=click.Path())
    def team_pending(team_uuid, home):
        """List requests to join a team you admin."""
        session = _session(home)
        membership = _pick_admin_membership(session, team_uuid)
        try:
            requests = session.client.list_join_requests(
                membership.team.uuid, membership.me.fingerprint
            )
        except RosterError as exc:
            print_failure("Failed to get requests to join team", [], exc)
            sys.exit(1)

        if not requests:
            console.print(f"\n  [dim]No requests to join {membership.team.name}.[/]\n")
            return

        table = Table(title=f"Requests to join {membership.team.name}")
        table.add_column("Request", style="dim")
        table.add_column("Email")
        table.add_column("Fingerprint")
        for r in requests:
            table.add_row(r["uuid"], r["email"], r["fingerprint"])
        console.print(table)

    @team.command("approve")
    @click.argument("request_uuid")
    @click.option("--team", "team_uuid", default=None, help="Team the request is for.")
    @click.option("--home", default=ROSTER_HOME, type=click.Path())
    def team_approve(request_uuid, team_uuid, home):
        """Approve a request to join a team you admin."""
        from ..edit import approve_request

        session = _session(home)
        membership = _pick_admin_membership(session, team_uuid)
        try:
            updated = approve_request(session, membership, request_uuid)
        except (RosterError, ValueError) as exc:
            print_failure("Failed to approve request", [], exc)
            sys.exit(1)
        print_success(f"Approved request to join {updated.name}")
