import json

import pytest

from lib.errors import NotAuthenticated
from lib.models import TokenPair


def test_load_tokens_returns_none_before_login(store):
    assert store.load_tokens() is None


def test_save_tokens_replaces_whole_record(store):
    store.save_tokens(TokenPair('a1', 'r1', token_type='Bearer', expires_in=100, user_id='ABC'))
    store.save_tokens(TokenPair('a2', 'r2'))

    loaded = store.load_tokens()
    assert loaded == TokenPair('a2', 'r2')
    with open(store.token_file) as f:
        assert json.load(f)['user_id'] is None


def test_save_tokens_leaves_no_temporary_files(store):
    store.save_tokens(TokenPair('a1', 'r1'))
    store.save_tokens(TokenPair('a2', 'r2'))

    assert [p.name for p in store.token_file.parent.iterdir()] == [store.token_file.name]


def test_verifier_is_single_use(store):
    store.save_verifier('first')
    store.save_verifier('second')

    assert store.pop_verifier() == 'second'
    assert store.pop_verifier() is None


def test_clear_removes_tokens_and_verifier(store):
    store.save_tokens(TokenPair('a1', 'r1'))
    store.save_verifier('v')

    store.clear()

    assert store.load_tokens() is None
    assert store.pop_verifier() is None


@pytest.mark.parametrize('content', ['{"access_token": "a1", "refr', '{"access_token": "a1"}', '[]'])
def test_unreadable_token_file_means_not_authenticated(store, content):
    store.token_file.write_text(content)

    with pytest.raises(NotAuthenticated):
        store.load_tokens()
