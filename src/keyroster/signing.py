"""
Roster signatures -- detached OpenPGP signatures via PGPy.

A roster is only as good as its signature, and a signature is only
as good as the key that checks it. verify_roster() takes the keys
you already trust and accepts the roster if any one of them made
the signature. One admin is enough; this isn't a quorum.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Union

import pgpy
from pgpy.errors import PGPDecryptionError, PGPError

from .errors import InvalidKey, RosterError, SignatureInvalid, SignatureKeyLocked
from .models import normalize_fingerprint

logger = logging.getLogger("keyroster.signing")


def parse_armored_key(armored: str) -> pgpy.PGPKey:
    """Load a single OpenPGP key from ASCII armor.

    Args:
        armored: ASCII-armored public or private key.

    Returns:
        pgpy.PGPKey: The primary key in the blob.

    Raises:
        InvalidKey: If the armor can't be parsed.
    """
    try:
        key, _ = pgpy.PGPKey.from_blob(armored)
    except (PGPError, ValueError, TypeError) as exc:
        raise InvalidKey(f"couldn't parse key: {exc}") from exc
    return key


def key_fingerprint(key: pgpy.PGPKey) -> str:
    """Normalised 40-hex fingerprint of a PGPy key."""
    return normalize_fingerprint(str(key.fingerprint))


def verify_roster(
    roster: Union[bytes, str],
    signature: str,
    candidate_keys: Iterable[pgpy.PGPKey],
) -> pgpy.PGPKey:
    """Check a detached signature over a roster against candidate keys.

    Pure: touches nothing but its arguments.

    Args:
        roster: The exact roster bytes that were signed.
        signature: ASCII-armored detached signature.
        candidate_keys: Keys allowed to have signed (the admins).

    Returns:
        pgpy.PGPKey: The candidate key that made the signature.

    Raises:
        SignatureInvalid: If the signature is unreadable or no key validates it.
    """
    if isinstance(roster, str):
        roster = roster.encode("utf-8")

    try:
        sig = pgpy.PGPSignature.from_blob(signature)
    except (PGPError, ValueError, TypeError) as exc:
        raise SignatureInvalid(f"couldn't read roster signature: {exc}") from exc

    tried = 0
    for key in candidate_keys:
        tried += 1
        try:
            if key.verify(roster, sig):
                logger.debug("Roster signature valid for %s", key_fingerprint(key))
                return key
        except PGPError as exc:
            # PGPy refuses outright when the signature was issued by another key
            logger.debug("Key %s didn't verify roster: %s", key_fingerprint(key), exc)

    if tried == 0:
        raise SignatureInvalid("no admin keys to verify the roster against")
    raise SignatureInvalid(
        f"roster signature wasn't made by any of the {tried} admin key(s)"
    )


def sign_roster(
    roster: Union[bytes, str],
    private_key: pgpy.PGPKey,
    passphrase: Optional[str] = None,
) -> str:
    """Make a detached signature over roster bytes.

    Args:
        roster: Canonical roster bytes to sign.
        private_key: The signer's private key.
        passphrase: Passphrase, if the key is protected.

    Returns:
        str: ASCII-armored detached signature.

    Raises:
        SignatureKeyLocked: If the key is protected and can't be unlocked.
        RosterError: If the key has no secret material.
    """
    if isinstance(roster, str):
        roster = roster.encode("utf-8")

    if private_key.is_public:
        raise RosterError(
            f"key {key_fingerprint(private_key)} has no secret key material"
        )

    if not private_key.is_protected or private_key.is_unlocked:
        return str(private_key.sign(roster))

    if passphrase is None:
        raise SignatureKeyLocked(
            f"key {key_fingerprint(private_key)} is locked with a passphrase"
        )

    try:
        with private_key.unlock(passphrase):
            sig = private_key.sign(roster)
    except PGPDecryptionError as exc:
        raise SignatureKeyLocked(
            f"passphrase didn't unlock key {key_fingerprint(private_key)}"
        ) from exc
    return str(sig)
