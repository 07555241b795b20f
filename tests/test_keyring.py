"""Tests for the local OpenPGP keyring.

Covers:
- import_key (public, secret, expected fingerprint, garbage)
- lookup (public, secret-only, missing)
- unlock (right password, wrong password, no prompter answer, missing key)
- UnlockedKey.sign
- optional GnuPG mirroring
"""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from keyroster.errors import InvalidKey, KeyNotFound, KeyUnlockFailed, RosterError
from keyroster.keyring import Keyring
from keyroster.prompt import StaticPasswordPrompter
from keyroster.signing import key_fingerprint, parse_armored_key, verify_roster

from conftest import PASSPHRASE


@pytest.fixture
def keyring(roster_home):
    return Keyring(roster_home)


class TestImportKey:
    """Tests for Keyring.import_key()."""

    def test_import_public(self, keyring, keys):
        fp = keyring.import_key(keys["bob"].public)
        assert fp == keys["bob"].fingerprint
        assert (keyring.public_dir / f"{fp}.asc").exists()
        assert not keyring.has_secret_key(fp)

    def test_import_secret_stores_both_halves(self, keyring, keys):
        fp = keyring.import_key(keys["carol"].private)
        assert keyring.has_secret_key(fp)
        assert (keyring.public_dir / f"{fp}.asc").exists()
        assert keyring.secret_fingerprints() == [fp]

    def test_expected_fingerprint_mismatch(self, keyring, keys):
        """The server can't slip us a different key than the one we asked for."""
        with pytest.raises(InvalidKey, match="expected key"):
            keyring.import_key(keys["mallory"].public, expected_fingerprint=keys["bob"].fingerprint)
        assert not keyring.public_dir.exists() or not list(keyring.public_dir.iterdir())

    def test_garbage(self, keyring):
        with pytest.raises(InvalidKey):
            keyring.import_key("-----BEGIN PGP PUBLIC KEY BLOCK-----\nnope\n")

    def test_reimport_overwrites(self, keyring, keys):
        keyring.import_key(keys["bob"].public)
        keyring.import_key(keys["bob"].public)
        assert len(list(keyring.public_dir.glob("*.asc"))) == 1


class TestLookup:
    """Tests for Keyring.lookup()."""

    def test_public(self, keyring, keys):
        keyring.import_key(keys["bob"].public)
        assert key_fingerprint(keyring.lookup(keys["bob"].fingerprint)) == keys["bob"].fingerprint

    def test_returns_public_half_of_secret(self, keyring, keys):
        fp = keyring.import_key(keys["carol"].private)
        (keyring.public_dir / f"{fp}.asc").unlink()
        assert keyring.lookup(fp).is_public

    def test_missing(self, keyring):
        with pytest.raises(KeyNotFound):
            keyring.lookup("0" * 40)


class TestUnlock:
    """Tests for Keyring.unlock()."""

    def test_right_password(self, keyring, keys):
        fp = keyring.import_key(keys["carol"].private)
        prompter = StaticPasswordPrompter(PASSPHRASE)
        unlocked = keyring.unlock(fp, prompter)
        assert unlocked.fingerprint == fp
        assert prompter.calls == 1

    def test_unlocked_key_signs(self, keyring, keys):
        fp = keyring.import_key(keys["carol"].private)
        unlocked = keyring.unlock(fp, StaticPasswordPrompter(PASSPHRASE))
        signature = unlocked.sign(b"roster")
        verify_roster(b"roster", signature, [parse_armored_key(keys["carol"].public)])

    def test_wrong_password(self, keyring, keys):
        fp = keyring.import_key(keys["carol"].private)
        with pytest.raises(KeyUnlockFailed, match="wrong password"):
            keyring.unlock(fp, StaticPasswordPrompter("guess"))

    def test_no_password_available(self, keyring, keys):
        fp = keyring.import_key(keys["carol"].private)
        with pytest.raises(KeyUnlockFailed):
            keyring.unlock(fp, StaticPasswordPrompter(None))

    def test_no_secret_key(self, keyring, keys):
        keyring.import_key(keys["bob"].public)
        with pytest.raises(KeyNotFound):
            keyring.unlock(keys["bob"].fingerprint, StaticPasswordPrompter(PASSPHRASE))


class TestGpgImport:
    """Tests for mirroring imported keys into GnuPG."""

    def test_runs_gpg_import(self, roster_home, keys):
        keyring = Keyring(roster_home, import_to_gpg=True)
        done = MagicMock(returncode=0, stderr="")
        with patch("keyroster.keyring.shutil.which", return_value="/usr/bin/gpg"), \
             patch("keyroster.keyring.subprocess.run", return_value=done) as run:
            keyring.import_key(keys["bob"].public)

        args, kwargs = run.call_args
        assert args[0] == ["gpg", "--batch", "--import"]
        assert "BEGIN PGP PUBLIC KEY BLOCK" in kwargs["input"]

    def test_gpg_missing(self, roster_home, keys):
        keyring = Keyring(roster_home, import_to_gpg=True)
        with patch("keyroster.keyring.shutil.which", return_value=None):
            with pytest.raises(RosterError, match="gpg not found"):
                keyring.import_key(keys["bob"].public)

    def test_gpg_fails(self, roster_home, keys):
        keyring = Keyring(roster_home, import_to_gpg=True)
        failed = MagicMock(returncode=2, stderr="gpg: no valid OpenPGP data found.\n")
        with patch("keyroster.keyring.shutil.which", return_value="/usr/bin/gpg"), \
             patch("keyroster.keyring.subprocess.run", return_value=failed):
            with pytest.raises(RosterError, match="no valid OpenPGP data"):
                keyring.import_key(keys["bob"].public)

    def test_gpg_timeout(self, roster_home, keys):
        keyring = Keyring(roster_home, import_to_gpg=True)
        with patch("keyroster.keyring.shutil.which", return_value="/usr/bin/gpg"), \
             patch(
                 "keyroster.keyring.subprocess.run",
                 side_effect=subprocess.TimeoutExpired("gpg", 30),
             ):
            with pytest.raises(RosterError, match="failed to import"):
                keyring.import_key(keys["bob"].public)
