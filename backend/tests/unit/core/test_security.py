import pytest
from fastapi import HTTPException

from cdc_admin.core.security import verify_password, get_password_hash, create_access_token, decode_token


def test_password_hash_round_trip():
    hashed = get_password_hash("s3cret-pass")
    assert hashed != "s3cret-pass"
    assert verify_password("s3cret-pass", hashed)
    assert not verify_password("wrong-pass", hashed)


def test_access_token_carries_subject_and_role():
    token = create_access_token({"sub": "user-1", "role": "teacher"})
    payload = decode_token(token)
    assert payload["sub"] == "user-1"
    assert payload["role"] == "teacher"
    assert payload["type"] == "access"


def test_tampered_token_is_rejected():
    token = create_access_token({"sub": "user-1"})
    with pytest.raises(HTTPException) as exc:
        decode_token(token[:-2] + "xx")
    assert exc.value.status_code == 401
