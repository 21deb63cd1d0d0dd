"""Unit tests for auth/passwords.py -- bcrypt credential verification."""

from auth.passwords import BcryptVerifier, hash_password, password_too_long


def test_hash_is_salted_bcrypt():
    first = hash_password("wonderland")
    second = hash_password("wonderland")
    assert first.startswith("$2")
    assert first != second
    assert "wonderland" not in first


def test_verify_accepts_correct_password(alice_hash):
    assert BcryptVerifier().verify(alice_hash, "wonderland") is True


def test_verify_rejects_wrong_password(alice_hash):
    assert BcryptVerifier().verify(alice_hash, "wrong") is False


def test_verify_rejects_missing_hash():
    assert BcryptVerifier().verify(None, "wonderland") is False
    assert BcryptVerifier().verify("", "wonderland") is False


def test_legacy_plaintext_forms_no_longer_verify():
    verifier = BcryptVerifier()
    assert verifier.verify("wonderland", "wonderland") is False
    assert verifier.verify("hashed_wonderland", "wonderland") is False


def test_malformed_bcrypt_value_does_not_raise():
    assert BcryptVerifier().verify("$2b$12$not-a-real-hash", "wonderland") is False


def test_password_byte_limit_counts_utf8_bytes():
    assert password_too_long("a" * 72) is False
    assert password_too_long("a" * 73) is True
    assert password_too_long("ж" * 36) is False
    assert password_too_long("ж" * 37) is True
