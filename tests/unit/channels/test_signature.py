import hashlib
import hmac

from src.shared.security import compute_hub_signature, verify_hub_signature, verify_shared_secret


def test_valid_signature():
    secret = "s3cr3t"
    body = b'{"hello":"world"}'
    sig = "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    assert verify_hub_signature(body, secret, sig) is True
    assert compute_hub_signature(body, secret) == sig


def test_invalid_signature():
    secret = "s3cr3t"
    body = b'{"hello":"world"}'
    assert verify_hub_signature(body, secret, "sha256=deadbeef") is False
    assert verify_hub_signature(body, secret, None) is False
    assert verify_hub_signature(body, "", compute_hub_signature(body, secret)) is False
    assert verify_hub_signature(body + b" ", secret, compute_hub_signature(body, secret)) is False


def test_signature_without_prefix_rejected():
    body = b"{}"
    digest = hmac.new(b"k", body, hashlib.sha256).hexdigest()
    assert verify_hub_signature(body, "k", digest) is False


def test_shared_secret():
    assert verify_shared_secret("hook", "hook") is True
    assert verify_shared_secret("hook", "Hook") is False
    assert verify_shared_secret("hook", None) is False
    assert verify_shared_secret(None, "hook") is False
    assert verify_shared_secret("", "") is False
