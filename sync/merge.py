"""
Reconciles a cloud snapshot with a client snapshot.

Both inputs use the wire shape (see sync/snapshot.py). Every collection is
merged on its own:

  decks, cards      union by id; client fields win, but a tombstone on either
                    side sticks (isDeleted = cloud OR client)
  studyHistory      union, deduplicated by (cardId, date, rating)
  userProfile       text fields from the newer side, xp/level never decrease
  userAchievements  union by achievementId, earliest dateEarned wins

Decks and cards take the client's fields without comparing timestamps, so a
slow device can overwrite a newer cloud edit of the same item. The profile
merge does compare timestamps. The asymmetry is kept as-is.
"""

import logging

from utils.dates import parse_timestamp

logger = logging.getLogger(__name__)


def merge(cloud: dict | None, client: dict | None) -> dict:
    cloud = cloud or {}
    client = client or {}
    return {
        'decks': merge_collection(cloud.get('decks'), client.get('decks')),
        'cards': merge_collection(cloud.get('cards'), client.get('cards')),
        'studyHistory': merge_study_logs(cloud.get('studyHistory'), client.get('studyHistory')),
        'userProfile': merge_profile(cloud.get('userProfile'), client.get('userProfile')),
        'userAchievements': merge_achievements(
            cloud.get('userAchievements'), client.get('userAchievements')
        ),
    }


def merge_collection(cloud_items: list | None, client_items: list | None, key: str = 'id') -> list[dict]:
    """Deletion-aware union of two entity lists keyed by `key`."""
    merged: dict = {}

    for item in cloud_items or []:
        item_id = _item_id(item, key)
        if item_id is None:
            logger.warning(f"Skipping cloud item without {key}: {item!r}")
            continue
        merged[item_id] = item

    for item in client_items or []:
        item_id = _item_id(item, key)
        if item_id is None:
            logger.warning(f"Skipping client item without {key}: {item!r}")
            continue

        existing = merged.get(item_id)
        if existing is None:
            merged[item_id] = item
        else:
            merged[item_id] = {
                **item,
                'isDeleted': bool(existing.get('isDeleted')) or bool(item.get('isDeleted')),
            }

    return list(merged.values())


def merge_study_logs(cloud_logs: list | None, client_logs: list | None) -> list[dict]:
    """Append-only union; the same review seen on both sides is kept once."""
    seen = set()
    merged = []
    for log in [*(cloud_logs or []), *(client_logs or [])]:
        if not isinstance(log, dict) or not log.get('cardId'):
            logger.warning(f"Skipping malformed study log: {log!r}")
            continue
        dedupe_key = (log.get('cardId'), log.get('date'), log.get('rating'))
        if dedupe_key in seen:
            continue
        seen.add(dedupe_key)
        merged.append(log)
    return merged


def merge_profile(cloud_profile: dict | None, client_profile: dict | None) -> dict | None:
    if not cloud_profile:
        return client_profile or None
    if not client_profile:
        return cloud_profile

    cloud_ts = parse_timestamp(cloud_profile.get('profileLastUpdated'))
    client_ts = parse_timestamp(client_profile.get('profileLastUpdated'))

    if client_ts >= cloud_ts:
        newer, older = client_profile, cloud_profile
    else:
        newer, older = cloud_profile, client_profile

    merged = {**older, **newer}
    merged['xp'] = max(_number(cloud_profile.get('xp')), _number(client_profile.get('xp')))
    merged['level'] = max(_number(cloud_profile.get('level')), _number(client_profile.get('level')))

    checks = [c for c in (cloud_profile.get('lastStreakCheck'), client_profile.get('lastStreakCheck')) if c]
    if checks:
        merged['lastStreakCheck'] = max(checks)

    return merged


def merge_achievements(cloud_items: list | None, client_items: list | None) -> list[dict]:
    merged: dict = {}
    for item in [*(cloud_items or []), *(client_items or [])]:
        achievement_id = _item_id(item, 'achievementId')
        if achievement_id is None:
            logger.warning(f"Skipping malformed achievement: {item!r}")
            continue

        existing = merged.get(achievement_id)
        if existing is None or _earned_before(item, existing):
            merged[achievement_id] = item
    return list(merged.values())


def _earned_before(item: dict, other: dict) -> bool:
    if not item.get('dateEarned'):
        return False
    if not other.get('dateEarned'):
        return True
    return parse_timestamp(item['dateEarned']) < parse_timestamp(other['dateEarned'])


def _item_id(item, key: str):
    if not isinstance(item, dict):
        return None
    value = item.get(key)
    if value is None or value == '':
        return None
    return value


def _number(value) -> int | float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value
