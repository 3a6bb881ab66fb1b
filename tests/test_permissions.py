import pytest

from keepsake.auth.tokens import Principal
from keepsake.errors import InvalidSignature, MalformedToken, Unauthorized
from keepsake.permissions import RequestAuthenticator


@pytest.fixture()
def authenticator(tokens):
    return RequestAuthenticator(tokens)


def test_valid_bearer_header(authenticator, tokens):
    token = tokens.issue(Principal(5, "alice"))
    assert authenticator.authenticate(f"Bearer {token}") == Principal(5, "alice")


@pytest.mark.parametrize("header", [None, "", "Token abc", "bearer abc", "Basic dXNlcjpwdw==", "Bearer"])
def test_bad_header_shape(authenticator, header):
    with pytest.raises(Unauthorized):
        authenticator.authenticate(header)


def test_empty_token_after_prefix(authenticator):
    with pytest.raises(Unauthorized, match="Token is missing"):
        authenticator.authenticate("Bearer ")


def test_token_errors_propagate(authenticator, tokens):
    with pytest.raises(MalformedToken):
        authenticator.authenticate("Bearer not-a-token")

    token = tokens.issue(Principal(5, "alice"))
    signed, sig = token.rsplit(".", 1)
    forged = f"{signed}.{'A' if sig[0] != 'A' else 'B'}{sig[1:]}"
    with pytest.raises(InvalidSignature):
        authenticator.authenticate(f"Bearer {forged}")
