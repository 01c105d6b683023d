"""
Study sessions: which cards to show, and checking typed answers.
"""

import logging
import random
from datetime import datetime

import database.database as db
from utils.dates import to_iso, utc_now

logger = logging.getLogger(__name__)

ALL_DUE = 'all-due'
NEW = 'new'
REVIEW = 'review'
ALL_CARDS = 'all-cards'
FILTERS = (ALL_DUE, NEW, REVIEW, ALL_CARDS)

FLIP = 'flip'
TYPE = 'type'
MODES = (FLIP, TYPE)

# Typed answers within this many edits of the back count as correct
MAX_TYPO_DISTANCE = 2


def build_session(
    user_id: int,
    deck_id: str | None = None,
    card_filter: str = ALL_DUE,
    limit: int = 0,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> list[dict]:
    """
    Cards for one study session, shuffled, at most limit of them (0 = no limit).

    all-due: every due card. new: never-reviewed cards, due or not.
    review: reviewed cards that are due. all-cards: everything.
    """
    if card_filter not in FILTERS:
        raise ValueError(f"Unknown study filter: {card_filter!r}")
    if limit < 0:
        raise ValueError(f"Session limit can't be negative: {limit}")

    now_iso = to_iso(now or utc_now())
    cards = db.get_study_cards(user_id, deck_id)

    if card_filter == NEW:
        cards = [c for c in cards if c['repetition'] == 0]
    elif card_filter == REVIEW:
        cards = [c for c in cards if c['repetition'] > 0 and c['due_date'] <= now_iso]
    elif card_filter == ALL_DUE:
        cards = [c for c in cards if c['due_date'] <= now_iso]

    (rng or random).shuffle(cards)
    if limit > 0:
        cards = cards[:limit]

    logger.info(f"User {user_id} session: {card_filter}, limit {limit or 'none'}, {len(cards)} cards")
    return cards


def levenshtein_distance(s1: str, s2: str) -> int:
    if len(s1) < len(s2):
        return levenshtein_distance(s2, s1)
    if len(s2) == 0:
        return len(s1)

    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row
    return previous_row[-1]


def check_typed_answer(expected: str, typed: str) -> bool:
    """Case and surrounding whitespace are ignored; small typos are forgiven."""
    a = (typed or '').strip().lower()
    b = (expected or '').strip().lower()
    if not a:
        return False
    return levenshtein_distance(a, b) <= MAX_TYPO_DISTANCE
