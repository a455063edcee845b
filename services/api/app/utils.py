import base64
import json
import secrets
import time


def now_ts():
    return int(time.time())


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def b64url_decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def b64url_json(doc) -> str:
    return b64url(json.dumps(doc, separators=(",", ":")).encode())


def short_code(length: int = 8) -> str:
    return secrets.token_urlsafe(length)[:length]


def four_digit_id() -> str:
    return str(1000 + secrets.randbelow(9000))
