"""
Tool signing keys.

Parses the tool's RSA private key and publishes its public half as a JWKS so
the platform can verify client assertions signed by the tool.
"""

from __future__ import annotations

import json

from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.hazmat.primitives.serialization import load_pem_private_key
from jwt.algorithms import RSAAlgorithm

from lti_roster.errors import InvalidKeyError

SIGNING_ALGORITHM = "RS256"


def load_signing_key(pem: str | None) -> RSAPrivateKey:
    """Parse an unencrypted PEM RSA private key."""
    if not pem or not pem.strip():
        raise InvalidKeyError("signing key is missing")
    try:
        key = load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError) as e:
        raise InvalidKeyError(f"signing key is malformed: {e}") from e
    if not isinstance(key, RSAPrivateKey):
        raise InvalidKeyError(f"signing key must be RSA, got {type(key).__name__}")
    return key


def public_jwk(key: RSAPrivateKey, key_id: str) -> dict:
    """Return the public JWK for *key*, tagged with *key_id*."""
    jwk = json.loads(RSAAlgorithm.to_jwk(key.public_key()))
    jwk.update({"kid": key_id, "alg": SIGNING_ALGORITHM, "use": "sig"})
    return jwk


def keyset(pem: str, key_id: str) -> dict:
    """Return a JWKS document containing the public half of *pem*."""
    return {"keys": [public_jwk(load_signing_key(pem), key_id)]}
