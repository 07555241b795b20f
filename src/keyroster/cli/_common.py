"""Shared utilities for all CLI command modules.

Provides the Rich console instance and the success / warning /
failure panels every command prints.
"""

from __future__ import annotations

from typing import Iterable, Optional

from rich.console import Console
from rich.panel import Panel

from .. import ROSTER_HOME, __version__
from ..models import Outcome, OutcomeKind

console = Console()


def _panel(style: str, headline: str, lines: Iterable[str], error: Optional[object]) -> Panel:
    body = list(lines)
    if error is not None:
        if body:
            body.append("")
        body.append(f"[{style}]{error}[/]")
    return Panel(
        "\n".join(body) if body else "",
        title=f"[bold {style}]{headline}[/]",
        title_align="left",
        border_style=style,
    )


def print_success(headline: str, lines: Iterable[str] = ()) -> None:
    console.print(_panel("green", headline, lines, None))


def print_info(headline: str, lines: Iterable[str] = ()) -> None:
    console.print(_panel("cyan", headline, lines, None))


def print_warning(headline: str, lines: Iterable[str] = (), error: Optional[object] = None) -> None:
    console.print(_panel("yellow", headline, lines, error))


def print_failure(headline: str, lines: Iterable[str] = (), error: Optional[object] = None) -> None:
    console.print(_panel("red", headline, lines, error))


def print_outcome(outcome: Outcome) -> None:
    """Render one sync outcome as it happens.

    Args:
        outcome: The step that just finished.
    """
    team = outcome.team_name
    kind = outcome.kind

    if kind == OutcomeKind.KEY_IMPORTED:
        console.print(f"  [green]✔[/] {outcome.subject}")
    elif kind == OutcomeKind.KEY_FAILED:
        console.print(f"  [red]✘[/] {outcome.subject} [dim]({outcome.error})[/]")
    elif kind == OutcomeKind.ROSTER_UNCHANGED:
        console.print(f"\n  [bold]{team}[/] [dim]roster unchanged[/]")
    elif kind == OutcomeKind.ROSTER_UPDATED:
        console.print(f"\n  [bold]{team}[/] [green]roster updated and verified[/]")
    elif kind == OutcomeKind.ROSTER_FAILED:
        print_warning("Failed to check team for updates", [team] if team else [], outcome.error)
    elif kind == OutcomeKind.UNLOCK_FAILED:
        print_failure(
            "Failed to unlock key to check for team updates",
            [
                "Checking for updates to the team requires an unlocked key.",
                "Fetching the team's keys from the last trusted roster anyway.",
            ],
            outcome.error,
        )
    elif kind == OutcomeKind.REQUEST_PENDING:
        print_info(
            f"Your request to join {team} hasn't been approved",
            ["The admin hasn't approved this request yet."],
        )
    elif kind == OutcomeKind.REQUEST_APPROVED:
        print_success(
            f"Your request to join {team} has been approved",
            ["The admin has approved this request."],
        )
    elif kind == OutcomeKind.REQUEST_EXPIRED:
        print_warning(
            f"Your request to join {team} has expired",
            [
                str(outcome.error),
                "",
                "You can request to join the team again by running",
                "[cyan]keyroster team join TEAM_UUID --key FINGERPRINT --email EMAIL[/]",
            ],
        )
    elif kind == OutcomeKind.REQUEST_FAILED:
        print_failure(f"Failed to check request to join {team}", [], outcome.error)


def humanize_age(seconds: float) -> str:
    """Rough, human-friendly duration: "3 days", "5 hours", "a minute"."""
    for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
        count = int(seconds // size)
        if count >= 1:
            return f"{count} {unit}{'s' if count != 1 else ''}"
    return "moments"


__all__ = [
    "ROSTER_HOME",
    "__version__",
    "console",
    "humanize_age",
    "print_failure",
    "print_info",
    "print_outcome",
    "print_success",
    "print_warning",
]
