import os
import json
import base64
import hmac
import hashlib
import time

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
ALGORITHM = "HS256"
EXPIRE_MINUTES = int(os.getenv("TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))   # 7일

_HEADER = {"alg": ALGORITHM, "typ": "JWT"}


def _encode_segment(obj) -> str:
    raw = json.dumps(obj, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _decode_segment(segment: str) -> dict:
    padded = segment + "=" * (-len(segment) % 4)
    return json.loads(base64.urlsafe_b64decode(padded))


def _signature(signing_input: str) -> str:
    # HMACSHA256(header + "." + payload)
    digest = hmac.new(SECRET_KEY.encode(), signing_input.encode(), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode()


def create_access_token(data: dict, expire_minutes: int = None) -> str:
    minutes = EXPIRE_MINUTES if expire_minutes is None else expire_minutes
    claims = dict(data, exp=int(time.time()) + minutes * 60)

    signing_input = f"{_encode_segment(_HEADER)}.{_encode_segment(claims)}"
    return f"{signing_input}.{_signature(signing_input)}"


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry; raises ValueError for any bad token."""
    parts = token.split(".")
    if len(parts) != 3:
        raise ValueError("Invalid token")

    signing_input = f"{parts[0]}.{parts[1]}"
    if not hmac.compare_digest(_signature(signing_input), parts[2]):
        raise ValueError("Invalid signature")

    try:
        claims = _decode_segment(parts[1])
    except (ValueError, TypeError):
        raise ValueError("Invalid token")

    if not isinstance(claims, dict) or claims.get("exp", 0) < int(time.time()):
        raise ValueError("Token expired")

    return claims
