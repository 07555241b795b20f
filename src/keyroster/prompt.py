"""
Password prompters for unlocking private keys.

Interactive runs ask on the terminal. Scheduled runs can't, so they
read the password from the environment instead, or skip unlocking.
"""

from __future__ import annotations

import os
from typing import Optional, Protocol

import click

from .errors import KeyUnlockFailed


class PasswordPrompter(Protocol):
    """Anything that can produce a password for a key."""

    def prompt_password(self, fingerprint: str, context: str = "") -> str:
        ...


class InteractivePasswordPrompter:
    """Ask for the password on the terminal, without echo."""

    def prompt_password(self, fingerprint: str, context: str = "") -> str:
        label = context or f"key {fingerprint}"
        return click.prompt(
            f"Enter password for {label}",
            hide_input=True,
            default="",
            show_default=False,
        )


class EnvPasswordPrompter:
    """Read the password from an environment variable (cron mode)."""

    def __init__(self, env_var: str = "KEYROSTER_PASSWORD") -> None:
        self.env_var = env_var

    def prompt_password(self, fingerprint: str, context: str = "") -> str:
        value = os.environ.get(self.env_var)
        if value is None:
            raise KeyUnlockFailed(
                fingerprint, f"not running interactively and ${self.env_var} is unset"
            )
        return value


class StaticPasswordPrompter:
    """Always answer with the same password. For automation and tests."""

    def __init__(self, password: Optional[str]) -> None:
        self.password = password
        self.calls = 0

    def prompt_password(self, fingerprint: str, context: str = "") -> str:
        self.calls += 1
        if self.password is None:
            raise KeyUnlockFailed(fingerprint, "no password available")
        return self.password
