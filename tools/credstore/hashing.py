"""Password digest schemes.

``sha1`` is the default: an unpadded base64 SHA-1 digest, deterministic
and readable by older deployments of the same table layout. ``bcrypt``
stores a salted 60-character hash instead. bcrypt reads at most 72 bytes,
so it is fed the base64 SHA-256 of the password (44 bytes) and every
password length hashes and verifies the same way.
"""

from __future__ import annotations

import base64
import hashlib
import hmac

import bcrypt

from .errors import ConfigError

SHA1 = "sha1"
BCRYPT = "bcrypt"
SCHEMES = (SHA1, BCRYPT)

_DUMMY_HASH = bcrypt.hashpw(b"dummy", bcrypt.gensalt())


def _check_scheme(scheme: str) -> None:
    if scheme not in SCHEMES:
        raise ConfigError(f"Unknown password scheme: {scheme!r}")


def _sha1_base64(password: str) -> str:
    raw = hashlib.sha1(password.encode("utf-8")).digest()
    return base64.b64encode(raw).decode("ascii").rstrip("=")


def _bcrypt_input(password: str) -> bytes:
    return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())


def digest_password(password: str, scheme: str = SHA1) -> str:
    """Return the digest stored in place of ``password``."""
    _check_scheme(scheme)
    if scheme == BCRYPT:
        return bcrypt.hashpw(_bcrypt_input(password), bcrypt.gensalt()).decode("utf-8")
    return _sha1_base64(password)


def verify_password(password: str, stored: str | None, scheme: str = SHA1) -> bool:
    """Check a plaintext password against a stored digest.

    ``stored`` is None when no record exists; that is a failed check, and
    for bcrypt the comparison still runs against a dummy hash so unknown
    users cost the same as wrong passwords.
    """
    _check_scheme(scheme)
    if scheme == BCRYPT:
        candidate = _bcrypt_input(password)
        if stored is None:
            bcrypt.checkpw(candidate, _DUMMY_HASH)
            return False
        try:
            return bcrypt.checkpw(candidate, stored.encode("utf-8"))
        except ValueError:
            # stored value is not a bcrypt hash
            return False

    if stored is None:
        return False
    return hmac.compare_digest(
        _sha1_base64(password).encode("utf-8"), stored.encode("utf-8")
    )
