"""
Wire codec for sync snapshots.

Store rows are snake_case dicts; the snapshot exchanged with the remote store
is camelCase JSON:

    {decks, cards, studyHistory, userProfile, userAchievements}

Optional fields that are None are left out of the wire item and come back as
None, so a row survives to_wire -> from_wire unchanged.
"""

# kind -> ((row key, wire key), ...)
FIELDS = {
    'deck': (
        ('deck_id', 'id'),
        ('name', 'name'),
        ('is_deleted', 'isDeleted'),
    ),
    'card': (
        ('card_id', 'id'),
        ('deck_id', 'deckId'),
        ('front', 'front'),
        ('back', 'back'),
        ('pronunciation', 'pronunciation'),
        ('part_of_speech', 'partOfSpeech'),
        ('definition', 'definition'),
        ('example_sentence_target', 'exampleSentenceTarget'),
        ('notes', 'notes'),
        ('audio_src', 'audioSrc'),
        ('is_deleted', 'isDeleted'),
        ('repetition', 'repetition'),
        ('easiness_factor', 'easinessFactor'),
        ('interval', 'interval'),
        ('due_date', 'dueDate'),
    ),
    'log': (
        ('card_id', 'cardId'),
        ('date', 'date'),
        ('rating', 'rating'),
    ),
    'profile': (
        ('xp', 'xp'),
        ('level', 'level'),
        ('last_streak_check', 'lastStreakCheck'),
        ('first_name', 'firstName'),
        ('last_name', 'lastName'),
        ('bio', 'bio'),
        ('profile_last_updated', 'profileLastUpdated'),
        ('daily_goals', 'dailyGoals'),
    ),
    'achievement': (
        ('achievement_id', 'achievementId'),
        ('date_earned', 'dateEarned'),
    ),
}

BOOL_FIELDS = {'is_deleted'}
LIST_FIELDS = {'definition', 'example_sentence_target'}
DICT_FIELDS = {'daily_goals'}

COLLECTION_KINDS = {
    'decks': 'deck',
    'cards': 'card',
    'studyHistory': 'log',
    'userAchievements': 'achievement',
}


def to_wire(kind: str, row: dict) -> dict:
    item = {}
    for row_key, wire_key in FIELDS[kind]:
        value = row.get(row_key)
        if value is None:
            continue
        if row_key in BOOL_FIELDS:
            value = bool(value)
        elif row_key in LIST_FIELDS:
            value = list(value)
        item[wire_key] = value
    return item


def from_wire(kind: str, item: dict) -> dict:
    row = {}
    for row_key, wire_key in FIELDS[kind]:
        value = item.get(wire_key)
        if row_key in BOOL_FIELDS:
            value = bool(value)
        elif row_key in LIST_FIELDS and value is not None:
            value = [str(v) for v in value] if isinstance(value, list) else [str(value)]
        elif row_key in DICT_FIELDS and not isinstance(value, dict):
            value = None
        row[row_key] = value
    return row


def build_snapshot(
    decks: list[dict],
    cards: list[dict],
    logs: list[dict],
    profile: dict | None,
    achievements: list[dict],
) -> dict:
    """Assemble a wire snapshot from store rows."""
    return {
        'decks': [to_wire('deck', d) for d in decks],
        'cards': [to_wire('card', c) for c in cards],
        'studyHistory': [to_wire('log', l) for l in logs],
        'userProfile': to_wire('profile', profile) if profile else None,
        'userAchievements': [to_wire('achievement', a) for a in achievements],
    }


def snapshot_rows(snapshot: dict | None) -> dict:
    """
    Decode a wire snapshot into store rows, keyed like the snapshot.
    Items that aren't objects are dropped.
    """
    snapshot = snapshot or {}
    rows = {}
    for collection, kind in COLLECTION_KINDS.items():
        rows[collection] = [
            from_wire(kind, item) for item in (snapshot.get(collection) or [])
            if isinstance(item, dict)
        ]
    profile = snapshot.get('userProfile')
    rows['userProfile'] = from_wire('profile', profile) if isinstance(profile, dict) else None
    return rows


def normalize_snapshot(snapshot: dict | None) -> dict:
    """
    Canonical form for comparison: only the fields the merge can change,
    collections sorted by key, logs as a set of (cardId, date, rating).
    """
    rows = snapshot_rows(snapshot)

    def _sorted(items, key):
        return sorted(items, key=lambda r: str(r.get(key)))

    def _canon(row):
        return {k: (list(v or []) if k in LIST_FIELDS else v) for k, v in row.items()}

    return {
        'decks': _sorted([_canon(r) for r in rows['decks']], 'deck_id'),
        'cards': _sorted([_canon(r) for r in rows['cards']], 'card_id'),
        'studyHistory': sorted({
            (str(r['card_id']), str(r['date']), str(r['rating'])) for r in rows['studyHistory']
        }),
        'userProfile': rows['userProfile'],
        'userAchievements': _sorted(rows['userAchievements'], 'achievement_id'),
    }


def snapshots_equal(a: dict | None, b: dict | None) -> bool:
    return normalize_snapshot(a) == normalize_snapshot(b)
