import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta

from database.schema import ADDED_COLUMNS, ALL_SCHEMAS
from config import DB_PATH
from sync.snapshot import build_snapshot, snapshot_rows
from utils.dates import to_iso, utc_now, utc_today
from utils.srs import new_card_srs

CARD_CONTENT_FIELDS = (
    'front', 'back', 'pronunciation', 'part_of_speech', 'definition',
    'example_sentence_target', 'notes', 'audio_src',
)

CARD_COLUMNS = (
    'card_id', 'deck_id', *CARD_CONTENT_FIELDS, 'is_deleted',
    'repetition', 'easiness_factor', 'interval', 'due_date',
)


def new_id() -> str:
    return uuid.uuid4().hex


# USER COMMANDS ============================================

def create_user(user_id, username, first_name):
    with get_db() as conn:
        conn.execute(
            'INSERT INTO users (user_id, username, name) VALUES (?, ?, ?)',
            (user_id, username, first_name)
        )
        logging.info(f"Created user: {user_id}")


def get_user(user_id):
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT * FROM users WHERE user_id=?', (user_id,))
        return cursor.fetchone()


def set_sync_key(user_id, sync_key):
    with get_db() as conn:
        conn.execute('UPDATE users SET sync_key = ? WHERE user_id = ?', (sync_key, user_id))
        logging.info(f"Sync key for user {user_id} set to {sync_key!r}")


def get_sync_key(user_id):
    with get_db() as conn:
        row = conn.execute('SELECT sync_key FROM users WHERE user_id = ?', (user_id,)).fetchone()
        return row['sync_key'] if row else None


# DECKS COMMANDS =============================================

def get_all_decks(user_id, include_deleted=False):
    with get_db() as conn:
        sql = 'SELECT deck_id, name, is_deleted FROM decks WHERE user_id = ?'
        if not include_deleted:
            sql += ' AND is_deleted = 0'
        rows = conn.execute(sql + ' ORDER BY name COLLATE NOCASE', (user_id,)).fetchall()
        return [_deck_row(row) for row in rows]


def get_deck(user_id, deck_id):
    with get_db() as conn:
        row = conn.execute(
            'SELECT deck_id, name, is_deleted FROM decks WHERE user_id = ? AND deck_id = ?',
            (user_id, deck_id)
        ).fetchone()
        return _deck_row(row) if row else None


def find_deck_by_name(user_id, name):
    """Case-insensitive lookup among decks that aren't deleted."""
    with get_db() as conn:
        row = conn.execute(
            """SELECT deck_id, name, is_deleted FROM decks
               WHERE user_id = ? AND is_deleted = 0 AND lower(name) = lower(?)""",
            (user_id, name.strip())
        ).fetchone()
        return _deck_row(row) if row else None


def create_deck(user_id, name):
    name = name.strip()
    if find_deck_by_name(user_id, name):
        raise ValueError(f'A deck named "{name}" already exists')

    deck_id = new_id()
    with get_db() as conn:
        conn.execute(
            'INSERT INTO decks (user_id, deck_id, name) VALUES (?, ?, ?)',
            (user_id, deck_id, name)
        )
    logging.info(f"Created deck {deck_id} ({name}) for user {user_id}")
    return deck_id


def get_or_create_deck(user_id, name):
    deck = find_deck_by_name(user_id, name)
    if deck:
        return deck['deck_id']
    return create_deck(user_id, name)


def rename_deck(user_id, deck_id, new_name):
    new_name = new_name.strip()
    existing = find_deck_by_name(user_id, new_name)
    if existing and existing['deck_id'] != deck_id:
        raise ValueError(f'A deck named "{new_name}" already exists')

    with get_db() as conn:
        conn.execute(
            'UPDATE decks SET name = ? WHERE user_id = ? AND deck_id = ?',
            (new_name, user_id, deck_id)
        )


def delete_deck(user_id, deck_id):
    """Soft-delete a deck together with all of its cards."""
    with get_db() as conn:
        conn.execute(
            'UPDATE cards SET is_deleted = 1 WHERE user_id = ? AND deck_id = ?',
            (user_id, deck_id)
        )
        conn.execute(
            'UPDATE decks SET is_deleted = 1 WHERE user_id = ? AND deck_id = ?',
            (user_id, deck_id)
        )
    logging.info(f"Deleted deck {deck_id} for user {user_id}")


def get_decks_with_stats(user_id, now=None):
    """Live decks with card count and due count in a single query."""
    now_iso = to_iso(now or utc_now())
    with get_db() as conn:
        cursor = conn.execute(
            """SELECT d.deck_id, d.name,
                      COUNT(c.card_id) AS card_count,
                      COALESCE(SUM(CASE WHEN c.due_date <= ? THEN 1 ELSE 0 END), 0) AS due_count
               FROM decks d
               LEFT JOIN cards c
                 ON c.user_id = d.user_id AND c.deck_id = d.deck_id AND c.is_deleted = 0
               WHERE d.user_id = ? AND d.is_deleted = 0
               GROUP BY d.deck_id
               ORDER BY d.name COLLATE NOCASE
            """,
            (now_iso, user_id)
        )
        return [dict(row) for row in cursor.fetchall()]


# CARDS COMMANDS =============================================

def create_card(user_id, deck_id, content, now=None):
    """content holds front/back and any optional fields from CARD_CONTENT_FIELDS."""
    return create_cards(user_id, deck_id, [content], now)[0]


def create_cards(user_id, deck_id, contents, now=None):
    cards = []
    for content in contents:
        card = {field: content.get(field) for field in CARD_CONTENT_FIELDS}
        card['back'] = card['back'] or ''
        card.update(card_id=new_id(), deck_id=deck_id, is_deleted=False, **new_card_srs(now))
        cards.append(card)

    upsert_cards(user_id, cards)
    logging.info(f"Created {len(cards)} card(s) in deck {deck_id} for user {user_id}")
    return [c['card_id'] for c in cards]


def get_card(user_id, card_id):
    with get_db() as conn:
        row = conn.execute(
            'SELECT * FROM cards WHERE user_id = ? AND card_id = ?',
            (user_id, card_id)
        ).fetchone()
        return _card_row(row) if row else None


def get_cards_in_deck(user_id, deck_id):
    with get_db() as conn:
        rows = conn.execute(
            """SELECT * FROM cards
               WHERE user_id = ? AND deck_id = ? AND is_deleted = 0
               ORDER BY rowid""",
            (user_id, deck_id)
        ).fetchall()
        return [_card_row(row) for row in rows]


def get_all_cards(user_id, include_deleted=False):
    with get_db() as conn:
        sql = 'SELECT * FROM cards WHERE user_id = ?'
        if not include_deleted:
            sql += ' AND is_deleted = 0'
        rows = conn.execute(sql + ' ORDER BY rowid', (user_id,)).fetchall()
        return [_card_row(row) for row in rows]


def upsert_card(user_id, card):
    upsert_cards(user_id, [card])


def upsert_cards(user_id, cards):
    with get_db() as conn:
        _write_cards(conn, user_id, cards)


def update_card_content(user_id, card_id, front, back):
    with get_db() as conn:
        conn.execute(
            'UPDATE cards SET front = ?, back = ? WHERE user_id = ? AND card_id = ?',
            (front, back, user_id, card_id)
        )


def delete_card(user_id, card_id):
    """Soft delete: the tombstone stays so the deletion reaches other devices."""
    with get_db() as conn:
        conn.execute(
            'UPDATE cards SET is_deleted = 1 WHERE user_id = ? AND card_id = ?',
            (user_id, card_id)
        )
    logging.info(f"Deleted card {card_id} for user {user_id}")


# REVIEW COMMANDS ============================================

def get_due_cards(user_id, deck_id=None, now=None):
    return get_study_cards(user_id, deck_id, due_before=now or utc_now())


def get_study_cards(user_id, deck_id=None, due_before=None):
    """Live cards in live decks, new ones first. due_before=None means every card."""
    sql = """SELECT c.* FROM cards c
             LEFT JOIN decks d ON d.user_id = c.user_id AND d.deck_id = c.deck_id
             WHERE c.user_id = ? AND c.is_deleted = 0 AND COALESCE(d.is_deleted, 0) = 0"""
    params = [user_id]
    if due_before is not None:
        sql += ' AND c.due_date <= ?'
        params.append(to_iso(due_before))
    if deck_id is not None:
        sql += ' AND c.deck_id = ?'
        params.append(deck_id)
    sql += ' ORDER BY CASE WHEN c.repetition = 0 THEN 0 ELSE 1 END, c.due_date'

    with get_db() as conn:
        rows = conn.execute(sql, params).fetchall()
        return [_card_row(row) for row in rows]


def add_study_log(user_id, card_id, rating, day=None):
    day = day or utc_today()
    with get_db() as conn:
        conn.execute(
            'INSERT INTO study_history (user_id, card_id, date, rating) VALUES (?, ?, ?, ?)',
            (user_id, card_id, day.isoformat(), rating)
        )


def save_review(user_id, card, rating, day):
    """
    Store a review: the card's SRS fields and its study log, in one transaction.
    Content and tombstone columns are left alone.
    """
    with get_db() as conn:
        conn.execute(
            """UPDATE cards SET repetition = ?, easiness_factor = ?, interval = ?, due_date = ?
               WHERE user_id = ? AND card_id = ?""",
            (card['repetition'], card['easiness_factor'], card['interval'], card['due_date'],
             user_id, card['card_id'])
        )
        conn.execute(
            'INSERT INTO study_history (user_id, card_id, date, rating) VALUES (?, ?, ?, ?)',
            (user_id, card['card_id'], day.isoformat(), rating)
        )


def get_study_logs(user_id):
    with get_db() as conn:
        rows = conn.execute(
            'SELECT card_id, date, rating FROM study_history WHERE user_id = ? ORDER BY log_id',
            (user_id,)
        ).fetchall()
        return [dict(row) for row in rows]


# PROFILE & ACHIEVEMENTS =====================================

def get_profile(user_id):
    """The account's profile, created with defaults on first use."""
    with get_db() as conn:
        row = conn.execute('SELECT * FROM user_profile WHERE user_id = ?', (user_id,)).fetchone()
        if row is None:
            conn.execute(
                'INSERT INTO user_profile (user_id, profile_last_updated) VALUES (?, ?)',
                (user_id, to_iso(utc_now()))
            )
            row = conn.execute('SELECT * FROM user_profile WHERE user_id = ?', (user_id,)).fetchone()
        return _profile_row(row)


def save_profile(user_id, profile):
    with get_db() as conn:
        _write_profile(conn, user_id, profile)


def get_achievements(user_id):
    with get_db() as conn:
        rows = conn.execute(
            'SELECT achievement_id, date_earned FROM user_achievements WHERE user_id = ? ORDER BY rowid',
            (user_id,)
        ).fetchall()
        return [dict(row) for row in rows]


def add_achievements(user_id, achievements):
    """Earning an achievement twice is a no-op."""
    with get_db() as conn:
        conn.executemany(
            'INSERT OR IGNORE INTO user_achievements (user_id, achievement_id, date_earned) VALUES (?, ?, ?)',
            [(user_id, a['achievement_id'], a.get('date_earned')) for a in achievements]
        )


# SNAPSHOTS ==================================================

def export_snapshot(user_id):
    """Everything the account owns, in the sync wire shape."""
    with get_db() as conn:
        profile = conn.execute('SELECT * FROM user_profile WHERE user_id = ?', (user_id,)).fetchone()
        return build_snapshot(
            decks=[_deck_row(r) for r in conn.execute(
                'SELECT deck_id, name, is_deleted FROM decks WHERE user_id = ? ORDER BY rowid', (user_id,))],
            cards=[_card_row(r) for r in conn.execute(
                'SELECT * FROM cards WHERE user_id = ? ORDER BY rowid', (user_id,))],
            logs=[dict(r) for r in conn.execute(
                'SELECT card_id, date, rating FROM study_history WHERE user_id = ? ORDER BY log_id', (user_id,))],
            profile=_profile_row(profile) if profile else None,
            achievements=[dict(r) for r in conn.execute(
                'SELECT achievement_id, date_earned FROM user_achievements WHERE user_id = ? ORDER BY rowid',
                (user_id,))],
        )


def replace_snapshot(user_id, snapshot):
    """
    Overwrite all of the account's collections with a wire snapshot.
    Runs in one transaction: either every collection is replaced or none is.
    """
    rows = snapshot_rows(snapshot)

    decks = [d for d in rows['decks'] if d['deck_id'] is not None]
    cards = [c for c in rows['cards'] if c['card_id'] is not None and c['deck_id'] is not None]
    logs = [l for l in rows['studyHistory'] if l['card_id'] and l['date'] and l['rating']]
    achievements = [a for a in rows['userAchievements'] if a['achievement_id']]

    skipped = (len(rows['decks']) - len(decks)) + (len(rows['cards']) - len(cards))
    if skipped:
        logging.warning(f"replace_snapshot: skipped {skipped} item(s) without ids for user {user_id}")

    with get_db() as conn:
        _clear_account(conn, user_id)

        conn.executemany(
            'INSERT OR REPLACE INTO decks (user_id, deck_id, name, is_deleted) VALUES (?, ?, ?, ?)',
            [(user_id, d['deck_id'], d['name'] or '', int(d['is_deleted'])) for d in decks]
        )
        _write_cards(conn, user_id, cards)
        conn.executemany(
            'INSERT INTO study_history (user_id, card_id, date, rating) VALUES (?, ?, ?, ?)',
            [(user_id, l['card_id'], l['date'], l['rating']) for l in logs]
        )
        if rows['userProfile']:
            _write_profile(conn, user_id, rows['userProfile'])
        conn.executemany(
            'INSERT OR IGNORE INTO user_achievements (user_id, achievement_id, date_earned) VALUES (?, ?, ?)',
            [(user_id, a['achievement_id'], a['date_earned']) for a in achievements]
        )

    logging.info(
        f"Replaced local data for user {user_id}: "
        f"{len(decks)} decks, {len(cards)} cards, {len(logs)} logs"
    )


def reset_account(user_id):
    """Hard-delete every card, deck, log, profile and achievement of the account."""
    with get_db() as conn:
        _clear_account(conn, user_id)
    logging.info(f"Reset all local data for user {user_id}")


# STATS COMMANDS =============================================

def get_card_stats(user_id, now=None):
    now_iso = to_iso(now or utc_now())
    with get_db() as conn:
        row = conn.execute(
            """SELECT
                   COUNT(*) AS total,
                   SUM(repetition = 0) AS new,
                   SUM(repetition > 0 AND interval < 21) AS learning,
                   SUM(repetition > 0 AND interval >= 21) AS mature,
                   SUM(due_date <= ?) AS due_today
               FROM cards WHERE user_id = ? AND is_deleted = 0
            """,
            (now_iso, user_id)
        ).fetchone()
        return {k: (row[k] or 0) for k in row.keys()}


def get_forecast(user_id, days=7, now=None):
    now = now or utc_now()
    today = now.date()
    end = datetime.combine(today + timedelta(days=days + 1), datetime.min.time(), tzinfo=now.tzinfo)
    with get_db() as conn:
        cursor = conn.execute(
            """SELECT substr(due_date, 1, 10) AS day, COUNT(*) AS cnt
               FROM cards
               WHERE user_id = ? AND is_deleted = 0
                 AND due_date > ? AND due_date < ?
               GROUP BY day
               ORDER BY day
            """,
            (user_id, to_iso(now), to_iso(end))
        )
        rows = {row['day']: row['cnt'] for row in cursor.fetchall()}

    return [
        {'day': (today + timedelta(d)).isoformat(), 'count': rows.get((today + timedelta(d)).isoformat(), 0)}
        for d in range(1, days + 1)
    ]


def get_difficult_cards(user_id, limit=5):
    """Live cards with the most AGAIN ratings, worst first."""
    with get_db() as conn:
        cursor = conn.execute(
            """SELECT c.card_id, c.front, COUNT(*) AS again_count
               FROM study_history h
               JOIN cards c ON c.user_id = h.user_id AND c.card_id = h.card_id
               WHERE h.user_id = ? AND h.rating = 'AGAIN' AND c.is_deleted = 0
               GROUP BY c.card_id
               ORDER BY again_count DESC, c.front
               LIMIT ?
            """,
            (user_id, limit)
        )
        return [dict(row) for row in cursor.fetchall()]


# ROW HELPERS ================================================

def _deck_row(row):
    deck = dict(row)
    deck['is_deleted'] = bool(deck['is_deleted'])
    return deck


def _card_row(row):
    card = {k: row[k] for k in CARD_COLUMNS}
    card['is_deleted'] = bool(card['is_deleted'])
    for field in ('definition', 'example_sentence_target'):
        if card[field] is not None:
            card[field] = json.loads(card[field])
    return card


def _profile_row(row):
    profile = dict(row)
    profile.pop('user_id', None)
    goals = profile.get('daily_goals')
    profile['daily_goals'] = json.loads(goals) if goals else None
    return profile


def _write_cards(conn, user_id, cards):
    now_iso = to_iso(utc_now())
    params = []
    for card in cards:
        values = []
        for column in CARD_COLUMNS:
            value = card.get(column)
            if column in ('definition', 'example_sentence_target') and value is not None:
                value = json.dumps(value, ensure_ascii=False)
            elif column == 'is_deleted':
                value = int(bool(value))
            elif column == 'repetition':
                value = value if value is not None else 0
            elif column == 'easiness_factor':
                value = value if value is not None else 2.5
            elif column == 'interval':
                value = value if value is not None else 0
            elif column == 'due_date':
                value = value or now_iso
            elif column in ('front', 'back'):
                value = value if value is not None else ''
            values.append(value)
        params.append((user_id, *values))

    placeholders = ', '.join('?' for _ in range(len(CARD_COLUMNS) + 1))
    conn.executemany(
        f"INSERT OR REPLACE INTO cards (user_id, {', '.join(CARD_COLUMNS)}) VALUES ({placeholders})",
        params
    )


def _write_profile(conn, user_id, profile):
    conn.execute(
        """INSERT OR REPLACE INTO user_profile
               (user_id, xp, level, last_streak_check, first_name, last_name, bio,
                profile_last_updated, daily_goals)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            user_id,
            profile.get('xp') or 0,
            profile.get('level') or 1,
            profile.get('last_streak_check') or '',
            profile.get('first_name') or '',
            profile.get('last_name') or '',
            profile.get('bio') or '',
            profile.get('profile_last_updated'),
            json.dumps(profile['daily_goals']) if profile.get('daily_goals') else None,
        )
    )


def _clear_account(conn, user_id):
    for table in ('decks', 'cards', 'study_history', 'user_profile', 'user_achievements'):
        conn.execute(f'DELETE FROM {table} WHERE user_id = ?', (user_id,))


# DB CONNECTION ==============================================

@contextmanager
def get_db():
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db():
    with get_db() as conn:
        for schema in ALL_SCHEMAS:
            conn.execute(schema)
        for table, columns in ADDED_COLUMNS.items():
            existing = {row['name'] for row in conn.execute(f'PRAGMA table_info({table})')}
            for column, column_type in columns:
                if column not in existing:
                    conn.execute(f'ALTER TABLE {table} ADD COLUMN {column} {column_type}')
                    logging.info(f"Added column {table}.{column}")
