# ======================= USERS ==========================

user_schema = '''
    CREATE TABLE IF NOT EXISTS users (
        user_id INTEGER PRIMARY KEY,
        username TEXT,
        name TEXT NOT NULL,

        -- Key of this account's blob in the remote store (NULL = sync off)
        sync_key TEXT,

        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
'''

# ======================= DECKS ==========================

deck_schema = '''
    CREATE TABLE IF NOT EXISTS decks (
        user_id INTEGER NOT NULL,
        deck_id TEXT NOT NULL,
        name TEXT NOT NULL,
        is_deleted INTEGER NOT NULL DEFAULT 0,

        PRIMARY KEY (user_id, deck_id),
        FOREIGN KEY (user_id) REFERENCES users(user_id) ON DELETE CASCADE
    )
'''

# ======================= CARDS ==========================

card_schema = '''
    CREATE TABLE IF NOT EXISTS cards (
        user_id INTEGER NOT NULL,
        card_id TEXT NOT NULL,
        deck_id TEXT NOT NULL,

        -- Card content
        front TEXT NOT NULL,
        back TEXT NOT NULL,
        pronunciation TEXT,
        part_of_speech TEXT,
        definition TEXT,                -- JSON list
        example_sentence_target TEXT,   -- JSON list
        notes TEXT,
        audio_src TEXT,

        is_deleted INTEGER NOT NULL DEFAULT 0,

        -- SRS parameters (SM-2)
        repetition INTEGER NOT NULL DEFAULT 0,
        easiness_factor REAL NOT NULL DEFAULT 2.5,
        interval INTEGER NOT NULL DEFAULT 0,
        due_date TEXT NOT NULL,

        PRIMARY KEY (user_id, card_id)
    )
'''

card_index = '''
    CREATE INDEX IF NOT EXISTS idx_cards_due ON cards (user_id, due_date)
'''

# ===================== STUDY HISTORY ====================

study_history_schema = '''
    CREATE TABLE IF NOT EXISTS study_history (
        log_id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        card_id TEXT NOT NULL,
        date TEXT NOT NULL,
        rating TEXT NOT NULL
    )
'''

# ===================== USER PROFILE =====================

profile_schema = '''
    CREATE TABLE IF NOT EXISTS user_profile (
        user_id INTEGER PRIMARY KEY,
        xp INTEGER NOT NULL DEFAULT 0,
        level INTEGER NOT NULL DEFAULT 1,
        last_streak_check TEXT DEFAULT '',
        first_name TEXT DEFAULT '',
        last_name TEXT DEFAULT '',
        bio TEXT DEFAULT '',
        profile_last_updated TEXT,
        daily_goals TEXT                -- JSON {date, goals, allCompleteAwarded}
    )
'''

# =================== USER ACHIEVEMENTS ==================

achievement_schema = '''
    CREATE TABLE IF NOT EXISTS user_achievements (
        user_id INTEGER NOT NULL,
        achievement_id TEXT NOT NULL,
        date_earned TEXT,

        PRIMARY KEY (user_id, achievement_id)
    )
'''

# Columns added after the first release: table -> ((column, type), ...)
ADDED_COLUMNS = {
    'user_profile': (('daily_goals', 'TEXT'),),
}

ALL_SCHEMAS = (
    user_schema,
    deck_schema,
    card_schema,
    card_index,
    study_history_schema,
    profile_schema,
    achievement_schema,
)
