"""
keyroster CLI -- signed team rosters from the command line.

Each command group lives in its own module and is registered on the
main Click group here.

Entry point: keyroster.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="keyroster")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr.")
def main(verbose):
    """keyroster -- signed team rosters for OpenPGP keys.

    Fetch your teams. Verify the roster. Import everyone's key.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.ERROR,
        format="%(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .team import register_team_commands

register_team_commands(main)
