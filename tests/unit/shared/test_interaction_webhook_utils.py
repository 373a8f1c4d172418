"""
Tests for Discord interaction signature verification (Ed25519 over timestamp + body).
"""
import pytest
from nacl.signing import SigningKey

from shared.interaction_webhook_utils import verify_interaction_signature


def _signed_headers(key: SigningKey, body: bytes, timestamp: str = "1700000000") -> dict:
    sig = key.sign(timestamp.encode() + body).signature.hex()
    return {"X-Signature-Ed25519": sig, "X-Signature-Timestamp": timestamp}


@pytest.fixture
def key() -> SigningKey:
    return SigningKey.generate()


@pytest.fixture
def public_key(key) -> str:
    return key.verify_key.encode().hex()


class TestVerifyInteractionSignature:

    def test_valid_signature(self, key, public_key):
        body = b'{"type":1}'
        assert verify_interaction_signature(_signed_headers(key, body), body, public_key=public_key) == (True, "ok")

    def test_lowercase_header_names(self, key, public_key):
        body = b'{"type":1}'
        headers = {k.lower(): v for k, v in _signed_headers(key, body).items()}
        ok, _ = verify_interaction_signature(headers, body, public_key=public_key)
        assert ok is True

    def test_tampered_body(self, key, public_key):
        headers = _signed_headers(key, b'{"type":1}')
        assert verify_interaction_signature(headers, b'{"type":2}', public_key=public_key) == (False, "signature_mismatch")

    def test_signature_covers_timestamp(self, key, public_key):
        body = b'{"type":1}'
        headers = _signed_headers(key, body, timestamp="1700000000")
        headers["X-Signature-Timestamp"] = "1700000001"
        assert verify_interaction_signature(headers, body, public_key=public_key) == (False, "signature_mismatch")

    def test_other_key_rejected(self, key):
        body = b"{}"
        other = SigningKey.generate().verify_key.encode().hex()
        ok, reason = verify_interaction_signature(_signed_headers(key, body), body, public_key=other)
        assert (ok, reason) == (False, "signature_mismatch")

    @pytest.mark.parametrize("drop", ["X-Signature-Ed25519", "X-Signature-Timestamp"])
    def test_missing_header(self, key, public_key, drop):
        body = b"{}"
        headers = _signed_headers(key, body)
        del headers[drop]
        assert verify_interaction_signature(headers, body, public_key=public_key) == (False, "missing_headers")

    def test_missing_public_key(self, key):
        body = b"{}"
        assert verify_interaction_signature(_signed_headers(key, body), body, public_key="") == (False, "missing_public_key")

    def test_bad_public_key(self, key):
        body = b"{}"
        ok, reason = verify_interaction_signature(_signed_headers(key, body), body, public_key="not-hex")
        assert (ok, reason) == (False, "bad_public_key")

    def test_non_hex_signature(self, public_key):
        headers = {"X-Signature-Ed25519": "zz" * 64, "X-Signature-Timestamp": "1"}
        assert verify_interaction_signature(headers, b"{}", public_key=public_key) == (False, "bad_signature_encoding")
