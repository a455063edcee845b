from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from jwcrypto import jwk

from app.errors import ValidationError
from app.utils import b64url_decode

SEED_LENGTH = 32


def seed_bytes(seed: str) -> bytes:
    raw = (seed or "").encode()
    if len(raw) != SEED_LENGTH:
        raise ValidationError(f"seed must be exactly {SEED_LENGTH} bytes, got {len(raw)}")
    return raw


def ed25519_key_from_seed(seed: str) -> jwk.JWK:
    private = Ed25519PrivateKey.from_private_bytes(seed_bytes(seed))
    return jwk.JWK.from_pyca(private)


def public_key_bytes(key: jwk.JWK) -> bytes:
    return b64url_decode(key.export_public(as_dict=True)["x"])
