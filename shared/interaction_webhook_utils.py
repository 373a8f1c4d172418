from typing import Mapping, Tuple

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

SIGNATURE_HEADER = "X-Signature-Ed25519"
TIMESTAMP_HEADER = "X-Signature-Timestamp"


def _header(headers: Mapping[str, str], name: str) -> str:
    # aiohttp's CIMultiDict is case-insensitive; plain dicts (tests, scripts) may not be.
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return str(value or "").strip()


def _try_hex(s: str) -> bytes:
    try:
        return bytes.fromhex(s)
    except ValueError:
        return b""


def verify_interaction_signature(
    headers: Mapping[str, str],
    body_bytes: bytes,
    *,
    public_key: str,
) -> Tuple[bool, str]:
    """Check a Discord interaction request signature.

    Discord signs ``timestamp + raw body`` with the application's Ed25519 key and
    sends the detached signature hex-encoded in ``X-Signature-Ed25519``.
    The body must be the exact bytes received; re-serialized JSON will not verify.

    Returns ``(ok, reason)``; ``reason`` is ``"ok"`` on success.
    """
    key_hex = str(public_key or "").strip()
    if not key_hex:
        return (False, "missing_public_key")
    sig_hex = _header(headers, SIGNATURE_HEADER)
    timestamp = _header(headers, TIMESTAMP_HEADER)
    if not sig_hex or not timestamp:
        return (False, "missing_headers")

    key_bytes = _try_hex(key_hex)
    if len(key_bytes) != 32:
        return (False, "bad_public_key")
    signature = _try_hex(sig_hex)
    if len(signature) != 64:
        return (False, "bad_signature_encoding")

    message = timestamp.encode("utf-8") + (body_bytes or b"")
    try:
        VerifyKey(key_bytes).verify(message, signature)
    except BadSignatureError:
        return (False, "signature_mismatch")
    return (True, "ok")
