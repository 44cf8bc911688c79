import pytest

import lib.auth
import lib.credentials
from lib.models import TokenPair


@pytest.fixture
def store(tmp_path):
    return lib.credentials.CredentialStore(
        str(tmp_path / 'tokens.json'),
        str(tmp_path / 'verifier'),
    )


@pytest.fixture
def auth(store):
    return lib.auth.FitbitAuth(
        client_id='client',
        client_secret='secret',
        redirect_url='http://localhost:8080/redirect',
        store=store,
    )


@pytest.fixture
def logged_in(store):
    tokens = TokenPair(access_token='old-access', refresh_token='old-refresh', expires_in=28800)
    store.save_tokens(tokens)
    return tokens
