"""
Tests for utils/gamification.py: levels, streaks, achievements.
"""
from datetime import date, timedelta

import pytest

from utils.gamification import ACHIEVEMENTS, XP_PER_LEVEL_BASE, check_achievements, compute_level, compute_streak

TODAY = date(2024, 5, 10)


def logs_on(*days_ago):
    return [
        {'card_id': 'c1', 'date': (TODAY - timedelta(days=d)).isoformat(), 'rating': 'GOOD'}
        for d in days_ago
    ]


# ── Level ─────────────────────────────────────────────────────

class TestComputeLevel:
    def test_zero_xp(self):
        lvl = compute_level(0)
        assert lvl['level'] == 1
        assert lvl['progress'] == 0
        assert lvl['current_level_xp'] == 0
        assert lvl['xp_for_next_level'] == 150

    def test_just_below_level_two(self):
        lvl = compute_level(149)
        assert lvl['level'] == 1
        assert lvl['progress'] == 99

    def test_level_two_threshold(self):
        lvl = compute_level(150)
        assert lvl['level'] == 2
        assert lvl['current_level_xp'] == 150
        assert lvl['xp_for_next_level'] == 600
        assert lvl['progress'] == 0

    def test_halfway(self):
        assert compute_level(375)['progress'] == 50

    def test_negative_and_missing_xp(self):
        assert compute_level(-50)['level'] == 1
        assert compute_level(None)['level'] == 1

    @pytest.mark.parametrize('level', range(1, 25))
    def test_thresholds(self, level):
        threshold = (level - 1) ** 2 * XP_PER_LEVEL_BASE
        assert compute_level(threshold)['level'] == level
        if threshold > 0:
            assert compute_level(threshold - 1)['level'] == level - 1

    def test_progress_bounds(self):
        for xp in (0, 1, 149, 150, 599, 600, 10_000, 123_457):
            assert 0 <= compute_level(xp)['progress'] <= 100


# ── Streak ────────────────────────────────────────────────────

class TestComputeStreak:
    def test_no_logs(self):
        assert compute_streak([], TODAY) == 0

    def test_studied_today(self):
        assert compute_streak(logs_on(0), TODAY) == 1

    def test_yesterday_still_counts(self):
        assert compute_streak(logs_on(1), TODAY) == 1

    def test_two_days_ago_breaks(self):
        assert compute_streak(logs_on(2), TODAY) == 0

    def test_consecutive_days(self):
        assert compute_streak(logs_on(0, 1, 2, 3), TODAY) == 4

    def test_gap_ends_streak(self):
        assert compute_streak(logs_on(0, 1, 3, 4), TODAY) == 2

    def test_several_reviews_same_day_count_once(self):
        assert compute_streak(logs_on(0, 0, 0, 1), TODAY) == 2

    def test_full_timestamps_accepted(self):
        logs = [{'card_id': 'c1', 'date': '2024-05-10T23:59:00.000Z', 'rating': 'GOOD'}]
        assert compute_streak(logs, TODAY) == 1

    def test_garbage_dates_ignored(self):
        logs = logs_on(0) + [{'card_id': 'c1', 'date': 'not a date', 'rating': 'GOOD'}, {'card_id': 'c2'}]
        assert compute_streak(logs, TODAY) == 1


# ── Achievements ──────────────────────────────────────────────

class TestCheckAchievements:
    def test_nothing_for_empty_account(self):
        assert check_achievements([], [], [], None, [], TODAY) == []

    def test_first_card(self):
        new = check_achievements([{'card_id': 'c1'}], [], [], None, [], TODAY)
        assert [a['achievement_id'] for a in new] == ['first_card']
        assert new[0]['date_earned'] == '2024-05-10'

    def test_deleted_cards_dont_count(self):
        assert check_achievements([{'card_id': 'c1', 'is_deleted': True}], [], [], None, [], TODAY) == []

    def test_already_earned_skipped(self):
        earned = [{'achievement_id': 'first_card', 'date_earned': '2024-01-01'}]
        assert check_achievements([{'card_id': 'c1'}], [], [], None, earned, TODAY) == []

    def test_streak_and_reviews(self):
        ids = {a['achievement_id'] for a in check_achievements([], [], logs_on(0, 1, 2), None, [], TODAY)}
        assert ids == {'first_review', 'streak_3'}

    def test_level_from_profile_xp(self):
        profile = {'xp': 16 * XP_PER_LEVEL_BASE}
        ids = {a['achievement_id'] for a in check_achievements([], [], [], profile, [], TODAY)}
        assert ids == {'level_5'}

    def test_all_ids_known(self):
        cards = [{'card_id': str(i)} for i in range(300)]
        decks = [{'deck_id': str(i)} for i in range(3)]
        logs = [{'card_id': 'c', 'date': (TODAY - timedelta(days=i % 30)).isoformat(), 'rating': 'GOOD'} for i in range(120)]
        new = check_achievements(cards, decks, logs, {'xp': 100_000}, [], TODAY)
        assert {a['achievement_id'] for a in new} == set(ACHIEVEMENTS)
