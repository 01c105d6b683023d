"""
Client for the remote key-value store (KV REST API dialect).

One JSON blob per sync key:
    GET  {url}/get/{key}  -> {"result": "<json string>" | null}
    POST {url}/set/{key}  <- JSON body
"""

import json
import logging
from urllib.parse import quote

import requests

from sync.merge import merge
from sync.snapshot import snapshots_equal

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """Remote store unreachable, refused the request, or sent garbage."""


class KVStore:
    def __init__(self, url: str, token: str, timeout: float = 10.0):
        self.url = url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers['Authorization'] = f'Bearer {token}'

    def get_snapshot(self, key: str) -> dict | None:
        try:
            r = self.session.get(f"{self.url}/get/{quote(key, safe='')}", timeout=self.timeout)
        except requests.RequestException as e:
            raise SyncError(f"Failed to load data: {e}") from e

        if r.status_code != 200:
            raise SyncError(f"Failed to load data: HTTP {r.status_code}")

        try:
            result = r.json().get('result')
            if result is None:
                return None
            # The store hands the blob back as a string
            data = json.loads(result) if isinstance(result, str) else result
        except (ValueError, AttributeError) as e:
            raise SyncError(f"Malformed data for sync key: {e}") from e

        if data is not None and not isinstance(data, dict):
            raise SyncError("Malformed data for sync key: not an object")
        return data

    def put_snapshot(self, key: str, snapshot: dict) -> None:
        try:
            r = self.session.post(
                f"{self.url}/set/{quote(key, safe='')}",
                data=json.dumps(snapshot),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise SyncError(f"Failed to save data: {e}") from e

        if r.status_code != 200:
            raise SyncError(f"Failed to save data: HTTP {r.status_code} {r.text[:200]}")


def merge_with_remote(store: KVStore, key: str, local: dict) -> dict:
    """
    Fetch the cloud copy, merge the local snapshot into it and store the
    result. The fetch happens right before the write to keep the window for
    concurrent writers small. Returns the merged snapshot.
    """
    cloud = store.get_snapshot(key)
    merged = merge(cloud, local)

    if cloud is not None and snapshots_equal(cloud, merged):
        logger.info(f"Cloud copy for {key!r} already up to date")
    else:
        store.put_snapshot(key, merged)
        logger.info(
            f"Stored merged snapshot for {key!r}: "
            f"{len(merged['decks'])} decks, {len(merged['cards'])} cards"
        )
    return merged
