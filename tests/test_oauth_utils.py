"""Tests for OAuth state encoding and PKCE helpers."""

import base64

import pytest

from novura.utils.oauth import (
    PKCE_CHARSET,
    InvalidStateError,
    code_challenge_s256,
    decode_state,
    encode_state,
    generate_code_verifier,
)


class TestState:
    def test_round_trip(self):
        payload = {"organizationId": "org-1", "storeName": "Loja São João"}
        assert decode_state(encode_state(payload)) == payload

    def test_accepts_url_safe_without_padding(self):
        payload = {"organizationId": "b3f1c2d4", "redirect_uri": "https://x.test/cb?a=1&b=2"}
        state = encode_state(payload).replace("+", "-").replace("/", "_").rstrip("=")
        assert decode_state(state) == payload

    @pytest.mark.parametrize("state", [None, ""])
    def test_missing_state(self, state):
        with pytest.raises(InvalidStateError, match="Missing state"):
            decode_state(state)

    def test_not_json(self):
        with pytest.raises(InvalidStateError):
            decode_state(base64.b64encode(b"not json").decode())

    def test_json_that_is_not_an_object(self):
        with pytest.raises(InvalidStateError):
            decode_state(base64.b64encode(b"[1, 2]").decode())


class TestPkce:
    def test_verifier_length_and_charset(self):
        verifier = generate_code_verifier()
        assert len(verifier) == 64
        assert set(verifier) <= set(PKCE_CHARSET)

    def test_verifiers_differ(self):
        assert generate_code_verifier() != generate_code_verifier()

    def test_rfc7636_vector(self):
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert code_challenge_s256(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"
