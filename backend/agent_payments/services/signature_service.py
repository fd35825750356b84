"""
Webhook Signature Verification

Validates the X-Twilio-Signature header on inbound status callbacks.

Algorithm:
- Start from the full callback URL (including the query string)
- Append every POST parameter as name + value, sorted by name
- HMAC-SHA1 with the account Auth Token, base64 encoded
- Constant-time comparison against the header value

JSON bodies are not part of the signed parameters. Instead the URL carries
a bodySHA256 query parameter (hex SHA-256 of the raw body), which is
covered by the URL signature and must match the body received.
"""
import base64
import hashlib
import hmac
from typing import Iterable, Mapping, Tuple, Union

ParamItems = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


def compute_signature(auth_token: str, url: str, params: ParamItems) -> str:
    """
    Compute the expected signature for a callback.

    Args:
        auth_token: Account Auth Token used as the HMAC key
        url: Full URL the vendor posted to
        params: Form parameters (mapping or (name, value) pairs)

    Returns:
        Base64-encoded HMAC-SHA1 signature
    """
    items = params.items() if isinstance(params, Mapping) else params
    payload = url + "".join(f"{name}{value}" for name, value in sorted(items))

    digest = hmac.new(
        auth_token.encode("utf-8"),
        payload.encode("utf-8"),
        hashlib.sha1
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(auth_token: str, url: str, params: ParamItems, signature: str) -> bool:
    """
    Verify an X-Twilio-Signature header value.

    Returns:
        True if the signature matches, False otherwise (including empty)
    """
    if not signature:
        return False

    expected = compute_signature(auth_token, url, params)
    return hmac.compare_digest(expected, signature)


def compute_body_hash(body: bytes) -> str:
    """Hex SHA-256 of a raw request body, as carried in bodySHA256."""
    return hashlib.sha256(body).hexdigest()


def verify_body_hash(body: bytes, expected: str) -> bool:
    """
    Verify a bodySHA256 query value against the raw body.

    Returns:
        True if the hash matches, False otherwise (including empty)
    """
    if not expected:
        return False

    return hmac.compare_digest(compute_body_hash(body).encode("ascii"), expected.lower().encode("utf-8"))
