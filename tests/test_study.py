"""
Tests for services/study.py: session building and typed-answer checks.
"""
import random
from datetime import datetime, timedelta, timezone

import pytest

import database.database as db
from services.study import (
    ALL_CARDS, ALL_DUE, NEW, REVIEW,
    build_session, check_typed_answer, levenshtein_distance,
)

NOW = datetime(2024, 5, 10, 9, 0, tzinfo=timezone.utc)
USER = 1


@pytest.fixture()
def cards(tdb):
    """Four cards: new+due, new+later, reviewed+due, reviewed+later."""
    deck_id = db.create_deck(USER, 'Verbs')
    ids = {}
    for name, created, repetition in (
        ('new_due', NOW - timedelta(hours=1), 0),
        ('new_later', NOW + timedelta(days=2), 0),
        ('old_due', NOW - timedelta(days=1), 3),
        ('old_later', NOW + timedelta(days=4), 3),
    ):
        card_id = db.create_card(USER, deck_id, {'front': name, 'back': name}, now=created)
        if repetition:
            db.upsert_card(USER, {**db.get_card(USER, card_id), 'repetition': repetition, 'interval': 6})
        ids[name] = card_id
    return ids


def _fronts(session):
    return sorted(c['front'] for c in session)


# ── Session filters ───────────────────────────────────────────

class TestBuildSession:
    @pytest.mark.parametrize('card_filter, expected', [
        (ALL_DUE, ['new_due', 'old_due']),
        (NEW, ['new_due', 'new_later']),
        (REVIEW, ['old_due']),
        (ALL_CARDS, ['new_due', 'new_later', 'old_due', 'old_later']),
    ])
    def test_filters(self, cards, card_filter, expected):
        assert _fronts(build_session(USER, card_filter=card_filter, now=NOW)) == expected

    def test_limit(self, cards):
        session = build_session(USER, card_filter=ALL_CARDS, limit=3, now=NOW, rng=random.Random(1))
        assert len(session) == 3

    def test_zero_limit_means_everything(self, cards):
        assert len(build_session(USER, card_filter=ALL_CARDS, limit=0, now=NOW)) == 4

    def test_shuffled_with_given_rng(self, cards):
        a = build_session(USER, card_filter=ALL_CARDS, now=NOW, rng=random.Random(7))
        b = build_session(USER, card_filter=ALL_CARDS, now=NOW, rng=random.Random(7))
        assert [c['card_id'] for c in a] == [c['card_id'] for c in b]

    def test_deleted_cards_skipped(self, cards):
        db.delete_card(USER, cards['new_due'])
        assert _fronts(build_session(USER, card_filter=NEW, now=NOW)) == ['new_later']

    def test_deck_filter(self, cards):
        other = db.create_deck(USER, 'Nouns')
        db.create_card(USER, other, {'front': 'casa', 'back': 'house'}, now=NOW)
        assert _fronts(build_session(USER, deck_id=other, card_filter=ALL_CARDS, now=NOW)) == ['casa']

    def test_bad_options(self, tdb):
        with pytest.raises(ValueError):
            build_session(USER, card_filter='favourites')
        with pytest.raises(ValueError):
            build_session(USER, limit=-1)


# ── Typed answers ─────────────────────────────────────────────

class TestTypedAnswer:
    @pytest.mark.parametrize('a, b, distance', [
        ('', '', 0),
        ('kitten', 'sitting', 3),
        ('speak', 'speak', 0),
        ('', 'abc', 3),
        ('flaw', 'lawn', 2),
    ])
    def test_levenshtein(self, a, b, distance):
        assert levenshtein_distance(a, b) == distance
        assert levenshtein_distance(b, a) == distance

    @pytest.mark.parametrize('typed', ['to speak', '  To Speak ', 'to speek', 'tospeak', 'to spek'])
    def test_close_enough(self, typed):
        assert check_typed_answer('to speak', typed) is True

    @pytest.mark.parametrize('typed', ['to sleep', 'speak', '', '   '])
    def test_wrong(self, typed):
        assert check_typed_answer('to speak', typed) is False
