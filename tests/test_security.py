from datetime import timedelta

import pytest

from errors import ExpiredToken, InvalidToken, ServerError
from security import bearer_token, create_access_token, decode_access_token, hash_password, verify_password
from settings import Settings


@pytest.fixture
def settings():
    return Settings(jwt_secret="unit-secret", bcrypt_rounds=4)


def test_password_hash_roundtrip():
    hashed = hash_password("secret123", rounds=4)
    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("wrong-pass", hashed)


def test_verify_password_rejects_garbage_hash():
    assert not verify_password("secret123", "")
    assert not verify_password("secret123", "not-a-hash")


def test_token_roundtrip(settings):
    token = create_access_token("64b000000000000000000001", settings)
    assert decode_access_token(token, settings) == "64b000000000000000000001"


def test_expired_token(settings):
    token = create_access_token("64b000000000000000000001", settings, expires_delta=timedelta(seconds=-5))
    with pytest.raises(ExpiredToken):
        decode_access_token(token, settings)


def test_token_signed_with_other_secret(settings):
    token = create_access_token("64b000000000000000000001", Settings(jwt_secret="other"))
    with pytest.raises(InvalidToken):
        decode_access_token(token, settings)
    with pytest.raises(InvalidToken):
        decode_access_token("garbage", settings)


def test_missing_secret_is_server_error():
    with pytest.raises(ServerError):
        create_access_token("64b000000000000000000001", Settings())


def test_bearer_token():
    assert bearer_token("Bearer abc") == "abc"
    assert bearer_token("bearer abc") == "abc"
    assert bearer_token("Token abc") is None
    assert bearer_token(None) is None
