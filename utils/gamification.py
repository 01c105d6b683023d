"""
Streaks, levels and achievements. Pure functions over store data.
"""

import math
from datetime import date, timedelta

from utils.dates import parse_date, utc_today

XP_PER_LEVEL_BASE = 150

XP_NEW_CARD = 2
XP_PER_REVIEW = 1
XP_STREAK_BONUS_PER_DAY = 10

# achievement_id -> (name, icon, description)
ACHIEVEMENTS = {
    'first_card': ("First Steps", "\U0001f331", "Add your first card"),
    'collector_50': ("Collector", "\U0001f4da", "Have 50 cards"),
    'collector_250': ("Librarian", "\U0001f3db", "Have 250 cards"),
    'deck_builder': ("Deck Builder", "\U0001f5c2", "Create 3 decks"),
    'first_review': ("First Review", "\U0001f9e0", "Finish your first review"),
    'reviews_100': ("Centurion", "\U0001f4af", "Log 100 reviews"),
    'streak_3': ("On Fire", "\U0001f525", "Study 3 days in a row"),
    'streak_7': ("Week Warrior", "\U0001f4c5", "Study 7 days in a row"),
    'streak_30': ("Unstoppable", "\U0001f680", "Study 30 days in a row"),
    'level_5': ("Rising Star", "⭐", "Reach level 5"),
    'level_10': ("Scholar", "\U0001f393", "Reach level 10"),
}


def compute_level(xp: int | float) -> dict:
    """
    Level, progress and XP thresholds for a total XP amount.

    Level L starts at (L-1)^2 * XP_PER_LEVEL_BASE xp.
    """
    xp = max(0, int(xp or 0))

    level = math.isqrt(xp // XP_PER_LEVEL_BASE) + 1

    current_level_xp = (level - 1) ** 2 * XP_PER_LEVEL_BASE
    xp_for_next_level = level ** 2 * XP_PER_LEVEL_BASE
    band = xp_for_next_level - current_level_xp

    progress = (xp - current_level_xp) / band * 100 if band > 0 else 100
    progress = max(0, min(100, math.floor(progress + 0.5)))

    return {
        'level': level,
        'progress': progress,
        'current_level_xp': current_level_xp,
        'xp_for_next_level': xp_for_next_level,
        'xp': xp,
    }


def compute_streak(logs: list[dict], today: date | None = None) -> int:
    """
    Number of consecutive study days ending today or yesterday.

    Yesterday still counts so a review done late in another timezone doesn't
    break the streak before the user had a chance to study today.
    """
    days = {d for d in (parse_date(log.get('date')) for log in logs) if d is not None}
    if not days:
        return 0

    today = today or utc_today()
    latest = max(days)
    if latest != today and latest != today - timedelta(days=1):
        return 0

    streak = 0
    current = latest
    while current in days:
        streak += 1
        current -= timedelta(days=1)
    return streak


def check_achievements(
    cards: list[dict],
    decks: list[dict],
    logs: list[dict],
    profile: dict | None,
    earned: list[dict],
    today: date | None = None,
) -> list[dict]:
    """Achievements the user qualifies for but doesn't have yet."""
    today = today or utc_today()
    have = {a['achievement_id'] for a in earned}

    card_count = sum(1 for c in cards if not c.get('is_deleted'))
    deck_count = sum(1 for d in decks if not d.get('is_deleted'))
    review_count = len(logs)
    streak = compute_streak(logs, today)
    level = compute_level((profile or {}).get('xp', 0))['level']

    reached = {
        'first_card': card_count >= 1,
        'collector_50': card_count >= 50,
        'collector_250': card_count >= 250,
        'deck_builder': deck_count >= 3,
        'first_review': review_count >= 1,
        'reviews_100': review_count >= 100,
        'streak_3': streak >= 3,
        'streak_7': streak >= 7,
        'streak_30': streak >= 30,
        'level_5': level >= 5,
        'level_10': level >= 10,
    }

    return [
        {'achievement_id': achievement_id, 'date_earned': today.isoformat()}
        for achievement_id in ACHIEVEMENTS
        if reached[achievement_id] and achievement_id not in have
    ]
