from typing import NamedTuple

import base58

from app.crypto import ed25519_key_from_seed, public_key_bytes


class IndyKey(NamedTuple):
    did: str
    verkey: str


def indy_key_from_seed(seed: str) -> IndyKey:
    # nym is the first 16 bytes of the verkey
    verkey = public_key_bytes(ed25519_key_from_seed(seed))
    return IndyKey(
        did=base58.b58encode(verkey[:16]).decode(),
        verkey=base58.b58encode(verkey).decode(),
    )


def qualified_did(method: str, nym: str) -> str:
    return f"did:indy:{method}:{nym}"
