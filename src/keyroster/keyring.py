"""
Local OpenPGP keyring -- armored keys on disk, read with PGPy.

Storage layout:
    ~/.keyroster/keyring/
    ├── public/<FINGERPRINT>.asc    # everyone we've imported
    └── secret/<FINGERPRINT>.asc    # our own keys, passphrase-protected

Imported public keys can optionally be mirrored into GnuPG so the
rest of the user's tooling sees the team too.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import pgpy
from pgpy.errors import PGPDecryptionError

from .errors import InvalidKey, KeyNotFound, KeyUnlockFailed, RosterError
from .models import normalize_fingerprint
from .prompt import PasswordPrompter
from .signing import key_fingerprint, parse_armored_key, sign_roster
from .store import _write_atomic

logger = logging.getLogger("keyroster.keyring")


@dataclass
class UnlockedKey:
    """A private key whose passphrase has been checked.

    PGPy only keeps a key unlocked inside a context manager, so the
    passphrase travels with the key and each signature unlocks it
    for exactly as long as it needs.
    """

    key: pgpy.PGPKey
    passphrase: Optional[str] = None

    @property
    def fingerprint(self) -> str:
        return key_fingerprint(self.key)

    def sign(self, data: Union[bytes, str]) -> str:
        """Detached-sign data with this key."""
        return sign_roster(data, self.key, self.passphrase)


class Keyring:
    """Public and secret keys stored under the keyroster home.

    Args:
        home: keyroster home directory (~/.keyroster).
        import_to_gpg: Also run ``gpg --import`` for imported public keys.
    """

    def __init__(self, home: Path, import_to_gpg: bool = False) -> None:
        self.home = Path(home).expanduser()
        self.public_dir = self.home / "keyring" / "public"
        self.secret_dir = self.home / "keyring" / "secret"
        self.import_to_gpg = import_to_gpg

    def lookup(self, fingerprint: str) -> pgpy.PGPKey:
        """Load a public key by fingerprint.

        Raises:
            KeyNotFound: If neither a public nor a secret key is stored.
        """
        fp = normalize_fingerprint(fingerprint)
        public_file = self.public_dir / f"{fp}.asc"
        if public_file.exists():
            return parse_armored_key(public_file.read_text(encoding="utf-8"))

        secret_file = self.secret_dir / f"{fp}.asc"
        if secret_file.exists():
            return parse_armored_key(secret_file.read_text(encoding="utf-8")).pubkey

        raise KeyNotFound(fp)

    def import_key(self, armored: str, expected_fingerprint: Optional[str] = None) -> str:
        """Store an armored key. Secret keys also store their public half.

        Args:
            armored: ASCII-armored public or private key.
            expected_fingerprint: Refuse the key unless it has this fingerprint.

        Returns:
            str: The imported key's fingerprint.

        Raises:
            InvalidKey: If the key can't be parsed or isn't the expected one.
        """
        key = parse_armored_key(armored)
        fp = key_fingerprint(key)
        if expected_fingerprint and fp != normalize_fingerprint(expected_fingerprint):
            raise InvalidKey(f"expected key {expected_fingerprint}, got {fp}")

        if key.is_public:
            public_armor = str(key)
        else:
            _write_atomic(self.secret_dir / f"{fp}.asc", str(key))
            public_armor = str(key.pubkey)

        _write_atomic(self.public_dir / f"{fp}.asc", public_armor)
        logger.info("Imported key %s into keyring", fp)

        if self.import_to_gpg:
            self._import_to_gpg(fp, public_armor)
        return fp

    def has_secret_key(self, fingerprint: str) -> bool:
        fp = normalize_fingerprint(fingerprint)
        return (self.secret_dir / f"{fp}.asc").exists()

    def secret_fingerprints(self) -> list[str]:
        """Fingerprints of every secret key in the keyring."""
        if not self.secret_dir.exists():
            return []
        return sorted(f.stem for f in self.secret_dir.glob("*.asc"))

    def unlock(
        self,
        fingerprint: str,
        prompter: PasswordPrompter,
        context: str = "",
    ) -> UnlockedKey:
        """Load a secret key and check its passphrase.

        Args:
            fingerprint: Which secret key to unlock.
            prompter: Source of the passphrase.
            context: Shown to the user when prompting.

        Returns:
            UnlockedKey: The key with a passphrase known to work.

        Raises:
            KeyNotFound: If no secret key is stored for the fingerprint.
            KeyUnlockFailed: If the passphrase is wrong or unavailable.
        """
        fp = normalize_fingerprint(fingerprint)
        secret_file = self.secret_dir / f"{fp}.asc"
        if not secret_file.exists():
            raise KeyNotFound(fp)

        key = parse_armored_key(secret_file.read_text(encoding="utf-8"))
        if not key.is_protected:
            return UnlockedKey(key=key)

        passphrase = prompter.prompt_password(fp, context)
        try:
            with key.unlock(passphrase):
                pass
        except PGPDecryptionError as exc:
            raise KeyUnlockFailed(fp, "wrong password") from exc
        return UnlockedKey(key=key, passphrase=passphrase)

    def _import_to_gpg(self, fingerprint: str, public_armor: str) -> None:
        if not shutil.which("gpg"):
            raise RosterError("gpg not found, can't import key into GnuPG")
        try:
            result = subprocess.run(
                ["gpg", "--batch", "--import"],
                input=public_armor,
                capture_output=True,
                text=True,
                timeout=30,
            )
        except (subprocess.TimeoutExpired, OSError) as exc:
            raise RosterError(f"failed to import key into gpg: {exc}") from exc
        if result.returncode != 0:
            raise RosterError(
                f"failed to import key {fingerprint} into gpg: {result.stderr.strip()}"
            )
        logger.debug("Imported key %s into GnuPG", fingerprint)
