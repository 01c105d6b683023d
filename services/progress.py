"""
Study progress: reviews, XP, streak bonus, daily goals, achievements and
profile edits.
"""

import logging
from datetime import date, datetime

import database.database as db
from utils.dates import to_iso, utc_now, utc_today
from utils.gamification import XP_PER_REVIEW, XP_STREAK_BONUS_PER_DAY, check_achievements, compute_level, compute_streak
from utils.goals import STREAK, apply_goal_progress, generate_daily_goals, goals_are_current
from utils.srs import RATINGS, schedule

logger = logging.getLogger(__name__)

PROFILE_TEXT_FIELDS = ('first_name', 'last_name', 'bio')


def record_review(user_id: int, card: dict, rating: str, now: datetime | None = None) -> dict | None:
    """
    Apply a rating: reschedule the card, log the review, award XP.

    The card is read again from the store first, since a sync may have edited
    or deleted it after the session loaded it. Returns the updated card, or
    None when the card (or its deck) is gone and nothing was recorded.
    """
    now = now or utc_now()
    if rating not in RATINGS:
        raise ValueError(f"Unknown rating: {rating!r}")

    fresh = db.get_card(user_id, card['card_id'])
    deck = db.get_deck(user_id, fresh['deck_id']) if fresh else None
    if fresh is None or fresh['is_deleted'] or (deck is not None and deck['is_deleted']):
        logger.info(f"User {user_id} rated card {card['card_id']}, but it was deleted meanwhile")
        return None

    updated = schedule(fresh, rating, now)
    db.save_review(user_id, updated, rating, now.date())
    award_xp(user_id, XP_PER_REVIEW)

    logger.info(
        f"User {user_id} rated card {card['card_id']} {rating}: next in {updated['interval']}d"
    )
    return updated


def award_xp(user_id: int, points: int) -> tuple[dict, bool]:
    """Add XP and recompute the level. Returns (profile, leveled_up)."""
    profile = db.get_profile(user_id)
    old_level = profile.get('level') or 1

    profile['xp'] = (profile.get('xp') or 0) + points
    profile['level'] = compute_level(profile['xp'])['level']
    db.save_profile(user_id, profile)

    leveled_up = profile['level'] > old_level
    if leveled_up:
        logger.info(f"User {user_id} reached level {profile['level']}")
    return profile, leveled_up


def check_streak_bonus(user_id: int, today: date | None = None) -> int:
    """
    Pay streak × XP_STREAK_BONUS_PER_DAY the first time today's study extends
    the streak. Runs at most once per day; returns the XP awarded.
    """
    today = today or utc_today()
    profile = db.get_profile(user_id)
    if profile.get('last_streak_check') == today.isoformat():
        return 0

    logs = db.get_study_logs(user_id)
    streak = compute_streak(logs, today)
    # Streak as it stood before anything was studied today
    before = compute_streak([l for l in logs if l['date'][:10] < today.isoformat()], today)

    # Nothing studied today yet: leave the check open
    if streak <= before:
        return 0

    bonus = streak * XP_STREAK_BONUS_PER_DAY
    profile, _ = award_xp(user_id, bonus)
    logger.info(f"User {user_id} streak bonus: {streak} days, +{bonus} XP")

    profile['last_streak_check'] = today.isoformat()
    db.save_profile(user_id, profile)

    update_goal_progress(user_id, STREAK, streak, today)
    return bonus


def refresh_achievements(user_id: int, today: date | None = None) -> list[dict]:
    """Store and return achievements earned since the last check."""
    new = check_achievements(
        cards=db.get_all_cards(user_id),
        decks=db.get_all_decks(user_id),
        logs=db.get_study_logs(user_id),
        profile=db.get_profile(user_id),
        earned=db.get_achievements(user_id),
        today=today,
    )
    if new:
        db.add_achievements(user_id, new)
        logger.info(f"User {user_id} earned {[a['achievement_id'] for a in new]}")
    return new


def update_profile_fields(user_id: int, now: datetime | None = None, **fields) -> dict:
    unknown = set(fields) - set(PROFILE_TEXT_FIELDS)
    if unknown:
        raise ValueError(f"Not a profile text field: {', '.join(sorted(unknown))}")

    profile = db.get_profile(user_id)
    profile.update({k: (v or '').strip() for k, v in fields.items()})
    profile['profile_last_updated'] = to_iso(now or utc_now())
    db.save_profile(user_id, profile)
    return profile


def refresh_daily_goals(user_id: int, today: date | None = None) -> dict:
    """Today's goals, generated the first time they're asked for each day."""
    today = today or utc_today()
    profile = db.get_profile(user_id)
    if goals_are_current(profile.get('daily_goals'), today):
        return profile['daily_goals']

    # Streak as of yesterday, so today's study is what extends it
    logs = [l for l in db.get_study_logs(user_id) if l['date'][:10] < today.isoformat()]
    profile['daily_goals'] = generate_daily_goals(compute_streak(logs, today), today)
    db.save_profile(user_id, profile)
    logger.info(f"User {user_id} got new daily goals for {today.isoformat()}")
    return profile['daily_goals']


def update_goal_progress(
    user_id: int,
    goal_type: str,
    value: int,
    today: date | None = None,
    now: datetime | None = None,
) -> tuple[int, list[dict], bool]:
    """
    Advance today's goals of one type and pay their XP.
    Returns (xp_gained, newly_completed_goals, all_goals_bonus_paid).
    """
    today = today or utc_today()
    refresh_daily_goals(user_id, today)
    profile = db.get_profile(user_id)

    before = profile['daily_goals']
    after, xp_gained, completed = apply_goal_progress(before, goal_type, value)
    if after == before:
        return 0, [], False

    profile['daily_goals'] = after
    profile['profile_last_updated'] = to_iso(now or utc_now())
    db.save_profile(user_id, profile)
    if xp_gained:
        award_xp(user_id, xp_gained)

    bonus_paid = after['allCompleteAwarded'] and not before.get('allCompleteAwarded')
    for goal in completed:
        logger.info(f"User {user_id} completed goal {goal['id']} (+{goal['xp']} XP)")
    return xp_gained, completed, bonus_paid
