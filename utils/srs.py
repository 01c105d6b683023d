"""
Spaced repetition scheduler (SM-2 variant).

Card SRS fields: repetition, easiness_factor, interval (days), due_date.

Ratings: 'AGAIN' -> relearn tomorrow, repetition reset, ease drops
         'GOOD'  -> 1d, 6d, then interval * ease
         'EASY'  -> same ladder with a 1.3x bonus, ease grows
"""

from datetime import datetime, timedelta

from utils.dates import to_iso, utc_now

# Rating constants
AGAIN = 'AGAIN'
GOOD = 'GOOD'
EASY = 'EASY'

RATINGS = (AGAIN, GOOD, EASY)

# Easiness factor bounds / adjustments
MIN_EASINESS = 1.3
INITIAL_EASINESS = 2.5
AGAIN_PENALTY = 0.2
EASY_BONUS = 0.15
EASY_INTERVAL_MULTIPLIER = 1.3

# Fixed steps for the first two successful reviews
FIRST_INTERVAL = 1
SECOND_INTERVAL = 6
RELEARN_INTERVAL = 1


def new_card_srs(now: datetime | None = None) -> dict:
    """SRS fields for a card that was never reviewed: due right away."""
    now = now or utc_now()
    return {
        'repetition': 0,
        'easiness_factor': INITIAL_EASINESS,
        'interval': 0,
        'due_date': to_iso(now),
    }


def schedule(card: dict, rating: str, now: datetime | None = None) -> dict:
    """
    Given a card dict and a rating, returns a copy of the card with updated
    repetition, easiness_factor, interval and due_date.

    The due date is counted from `now` (the moment of rating), never from the
    card's previous due date, so overdue cards don't compound drift.
    """
    if rating not in RATINGS:
        raise ValueError(f"Unknown rating: {rating!r}")

    now = now or utc_now()
    repetition = max(0, int(card.get('repetition') or 0))
    interval = max(0, int(card.get('interval') or 0))
    ease = card.get('easiness_factor')
    ease = max(MIN_EASINESS, float(INITIAL_EASINESS if ease is None else ease))

    if rating == AGAIN:
        repetition = 0
        interval = RELEARN_INTERVAL
        ease = ease - AGAIN_PENALTY
    else:
        repetition += 1
        interval = _next_interval(repetition, interval, ease)
        if rating == EASY:
            interval = round(interval * EASY_INTERVAL_MULTIPLIER)
            ease = ease + EASY_BONUS

    interval = max(1, int(interval))

    return {
        **card,
        'repetition': repetition,
        'easiness_factor': round(max(MIN_EASINESS, ease), 2),
        'interval': interval,
        'due_date': to_iso(now + timedelta(days=interval)),
    }


def schedule_all_ratings(card: dict, now: datetime | None = None) -> dict[str, dict]:
    """Preview what every rating would do, all from the same `now`."""
    now = now or utc_now()
    return {rating: schedule(card, rating, now) for rating in RATINGS}


def _next_interval(repetition: int, previous_interval: int, ease: float) -> int:
    if repetition == 1:
        return FIRST_INTERVAL
    if repetition == 2:
        return SECOND_INTERVAL
    return round(previous_interval * ease)


def format_interval(days: int) -> str:
    """Human-readable label for an interval in days."""
    if days < 30:
        return f"{days}d"
    elif days < 365:
        months = round(days / 30)
        return f"{months}mo"
    else:
        years = round(days / 365, 1)
        return f"{years}y"
