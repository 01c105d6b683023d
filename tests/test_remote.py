"""
Tests for sync/remote.py. HTTP is faked with MagicMock on the store's session.
"""
import json
from unittest.mock import MagicMock

import pytest
import requests

from sync.remote import KVStore, SyncError, merge_with_remote


def response(status=200, payload=None, text=''):
    r = MagicMock()
    r.status_code = status
    r.text = text
    if isinstance(payload, Exception):
        r.json.side_effect = payload
    else:
        r.json.return_value = payload
    return r


@pytest.fixture()
def store():
    s = KVStore('https://kv.example.com/', 'secret')
    s.session = MagicMock()
    return s


SNAPSHOT = {'decks': [{'id': 'd1', 'name': 'Verbs'}], 'cards': [], 'studyHistory': [],
            'userProfile': None, 'userAchievements': []}


class TestKVStore:
    def test_auth_header(self):
        assert KVStore('https://kv', 'tok').session.headers['Authorization'] == 'Bearer tok'

    def test_get_decodes_string_result(self, store):
        store.session.get.return_value = response(payload={'result': json.dumps(SNAPSHOT)})
        assert store.get_snapshot('my key') == SNAPSHOT
        url = store.session.get.call_args[0][0]
        assert url == 'https://kv.example.com/get/my%20key'

    def test_get_missing_key(self, store):
        store.session.get.return_value = response(payload={'result': None})
        assert store.get_snapshot('k') is None

    def test_get_http_error(self, store):
        store.session.get.return_value = response(status=401)
        with pytest.raises(SyncError, match='401'):
            store.get_snapshot('k')

    def test_get_network_error(self, store):
        store.session.get.side_effect = requests.ConnectionError('down')
        with pytest.raises(SyncError) as exc:
            store.get_snapshot('k')
        assert isinstance(exc.value.__cause__, requests.ConnectionError)

    def test_get_bad_json(self, store):
        store.session.get.return_value = response(payload=ValueError('bad'))
        with pytest.raises(SyncError):
            store.get_snapshot('k')

    def test_get_blob_not_an_object(self, store):
        store.session.get.return_value = response(payload={'result': '[1, 2]'})
        with pytest.raises(SyncError):
            store.get_snapshot('k')

    def test_put(self, store):
        store.session.post.return_value = response()
        store.put_snapshot('k', SNAPSHOT)
        args, kwargs = store.session.post.call_args
        assert args[0] == 'https://kv.example.com/set/k'
        assert json.loads(kwargs['data']) == SNAPSHOT

    def test_put_failure(self, store):
        store.session.post.return_value = response(status=500, text='boom')
        with pytest.raises(SyncError):
            store.put_snapshot('k', SNAPSHOT)


class TestMergeWithRemote:
    def test_first_sync_uploads_local(self):
        fake = MagicMock()
        fake.get_snapshot.return_value = None
        merged = merge_with_remote(fake, 'k', SNAPSHOT)
        fake.put_snapshot.assert_called_once_with('k', merged)
        assert merged['decks'] == SNAPSHOT['decks']

    def test_no_write_when_cloud_already_has_everything(self):
        fake = MagicMock()
        fake.get_snapshot.return_value = SNAPSHOT
        merge_with_remote(fake, 'k', SNAPSHOT)
        fake.put_snapshot.assert_not_called()

    def test_writes_merged_union(self):
        fake = MagicMock()
        fake.get_snapshot.return_value = {**SNAPSHOT, 'decks': [{'id': 'd0', 'name': 'Cloud'}]}
        merged = merge_with_remote(fake, 'k', SNAPSHOT)
        assert {d['id'] for d in merged['decks']} == {'d0', 'd1'}
        fake.put_snapshot.assert_called_once()

    def test_fetch_failure_propagates_without_write(self):
        fake = MagicMock()
        fake.get_snapshot.side_effect = SyncError('down')
        with pytest.raises(SyncError):
            merge_with_remote(fake, 'k', SNAPSHOT)
        fake.put_snapshot.assert_not_called()
