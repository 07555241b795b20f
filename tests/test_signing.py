"""Tests for roster signing and verification with real PGPy keys.

Covers:
- sign_roster (protected key, wrong passphrase, missing passphrase, public key)
- verify_roster (valid, tampered, wrong key, any-of-many, no candidates, garbage)
- parse_armored_key / key_fingerprint
"""

from __future__ import annotations

import pytest

from keyroster.errors import InvalidKey, RosterError, SignatureInvalid, SignatureKeyLocked
from keyroster.signing import key_fingerprint, parse_armored_key, sign_roster, verify_roster

from conftest import PASSPHRASE

ROSTER = b"uuid: 74bb40b4-3510-11e9-968e-53c38df634be\nname: Kiffix\n"


@pytest.fixture
def alice_private(keys):
    return parse_armored_key(keys["alice"].private)


@pytest.fixture
def public(keys):
    """Public key objects by name."""
    return {name: parse_armored_key(k.public) for name, k in keys.items()}


class TestParseArmoredKey:
    """Tests for loading armored keys."""

    def test_fingerprint_matches(self, keys, public):
        assert key_fingerprint(public["alice"]) == keys["alice"].fingerprint

    def test_private_key_loads(self, alice_private):
        assert not alice_private.is_public
        assert alice_private.is_protected

    def test_garbage_rejected(self):
        with pytest.raises(InvalidKey):
            parse_armored_key("not a key at all")


class TestSignRoster:
    """Tests for sign_roster()."""

    def test_sign_then_verify(self, alice_private, public):
        """A signature from a protected key verifies against its public half."""
        signature = sign_roster(ROSTER, alice_private, PASSPHRASE)
        assert "BEGIN PGP SIGNATURE" in signature
        assert verify_roster(ROSTER, signature, [public["alice"]]) is public["alice"]

    def test_text_and_bytes_sign_the_same_content(self, alice_private, public):
        signature = sign_roster(ROSTER.decode("utf-8"), alice_private, PASSPHRASE)
        verify_roster(ROSTER, signature, [public["alice"]])

    def test_missing_passphrase(self, alice_private):
        """A locked key with no passphrase can't sign."""
        with pytest.raises(SignatureKeyLocked):
            sign_roster(ROSTER, alice_private)

    def test_wrong_passphrase(self, alice_private):
        with pytest.raises(SignatureKeyLocked, match="passphrase"):
            sign_roster(ROSTER, alice_private, "not the passphrase")

    def test_public_key_cannot_sign(self, public):
        with pytest.raises(RosterError, match="secret key"):
            sign_roster(ROSTER, public["alice"], PASSPHRASE)

    def test_key_stays_locked_afterwards(self, alice_private):
        sign_roster(ROSTER, alice_private, PASSPHRASE)
        assert not alice_private.is_unlocked


class TestVerifyRoster:
    """Tests for verify_roster()."""

    @pytest.fixture
    def signature(self, alice_private):
        return sign_roster(ROSTER, alice_private, PASSPHRASE)

    def test_tampered_roster(self, signature, public):
        """Changing one byte of the roster breaks the signature."""
        with pytest.raises(SignatureInvalid):
            verify_roster(ROSTER.replace(b"Kiffix", b"Kiffiy"), signature, [public["alice"]])

    def test_wrong_key(self, signature, public):
        """A signature by alice doesn't verify against mallory's key."""
        with pytest.raises(SignatureInvalid, match="1 admin key"):
            verify_roster(ROSTER, signature, [public["mallory"]])

    def test_any_one_admin_is_enough(self, signature, public):
        """Verification succeeds if any candidate made the signature."""
        signer = verify_roster(
            ROSTER, signature, [public["bob"], public["mallory"], public["alice"]]
        )
        assert signer is public["alice"]

    def test_no_candidates(self, signature):
        with pytest.raises(SignatureInvalid, match="no admin keys"):
            verify_roster(ROSTER, signature, [])

    def test_unreadable_signature(self, public):
        with pytest.raises(SignatureInvalid, match="couldn't read"):
            verify_roster(ROSTER, "garbage", [public["alice"]])

    def test_accepts_generator(self, signature, public):
        """Candidates may be any iterable, consumed once."""
        keys = (k for k in [public["alice"]])
        assert verify_roster(ROSTER, signature, keys) is public["alice"]
