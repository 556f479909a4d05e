import jwt
import pytest

from synapse.auth import decode_token
from synapse.errors import CallableError, STATUS_CODES


def test_decode_token_uses_sub_and_name():
    token = jwt.encode({"sub": "user-9", "name": "Kavya"}, "s3cret", algorithm="HS256")
    user = decode_token(token, "s3cret")
    assert user.uid == "user-9"
    assert user.name == "Kavya"


def test_name_defaults_to_uid():
    token = jwt.encode({"sub": "user-9"}, "s3cret", algorithm="HS256")
    assert decode_token(token, "s3cret").name == "user-9"


@pytest.mark.parametrize("claims, secret", [
    ({"sub": "user-9"}, "wrong"),
    ({"name": "no subject"}, "s3cret"),
])
def test_rejected_tokens(claims, secret):
    token = jwt.encode(claims, secret, algorithm="HS256")
    with pytest.raises(CallableError) as exc:
        decode_token(token, "s3cret")
    assert exc.value.code == "unauthenticated"
    assert exc.value.http_status == 401


def test_error_codes_map_to_http_status():
    assert STATUS_CODES["resource-exhausted"] == 429
    with pytest.raises(ValueError):
        CallableError("teapot", "no such code")
