"""
keyroster -- signed team rosters for OpenPGP key holders.

A team is a list of public keys. The list is signed by the team's
admins, fetched from the server, verified against the admins you
already trust, and only then believed.

Everyone's keys, everywhere. Verified before trusted.
"""

import os

__version__ = "0.1.0"

ROSTER_HOME = os.environ.get("KEYROSTER_HOME", "~/.keyroster")
