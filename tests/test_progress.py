"""
Tests for services/progress.py against a real temp DB.
"""
import sqlite3
from datetime import date, datetime, timedelta, timezone

import pytest

import database.database as db
from services.progress import (
    award_xp,
    check_streak_bonus,
    record_review,
    refresh_achievements,
    refresh_daily_goals,
    update_goal_progress,
    update_profile_fields,
)
from utils.gamification import XP_PER_LEVEL_BASE, XP_PER_REVIEW, XP_STREAK_BONUS_PER_DAY
from utils.goals import ALL_GOALS_BONUS, STREAK, STREAK_XP, STUDY, STUDY_TARGET, STUDY_XP

NOW = datetime(2024, 5, 10, 9, 0, tzinfo=timezone.utc)
TODAY = NOW.date()
USER = 1


@pytest.fixture()
def card(tdb):
    deck_id = db.create_deck(USER, 'Verbs')
    card_id = db.create_card(USER, deck_id, {'front': 'hablar', 'back': 'to speak'}, now=NOW)
    return db.get_card(USER, card_id)


# ── Reviews ───────────────────────────────────────────────────

class TestRecordReview:
    def test_good_on_new_card(self, card):
        updated = record_review(USER, card, 'GOOD', now=NOW)
        assert updated['repetition'] == 1
        assert updated['interval'] == 1

        stored = db.get_card(USER, card['card_id'])
        assert stored['due_date'] == '2024-05-11T09:00:00.000Z'
        assert db.get_study_logs(USER) == [{'card_id': card['card_id'], 'date': '2024-05-10', 'rating': 'GOOD'}]
        assert db.get_profile(USER)['xp'] == XP_PER_REVIEW

    def test_again_keeps_card_due_tomorrow(self, card):
        record_review(USER, card, 'GOOD', now=NOW)
        again = record_review(USER, db.get_card(USER, card['card_id']), 'AGAIN', now=NOW)
        assert again['repetition'] == 0
        assert again['interval'] == 1
        assert len(db.get_study_logs(USER)) == 2

    def test_invalid_rating_changes_nothing(self, card):
        with pytest.raises(ValueError):
            record_review(USER, card, 'HARD', now=NOW)
        assert db.get_study_logs(USER) == []
        assert db.get_card(USER, card['card_id']) == card

    def test_stale_copy_keeps_newer_edit_and_tombstone(self, card):
        stale = dict(card)
        db.update_card_content(USER, card['card_id'], 'new', 'to speak')
        db.delete_card(USER, card['card_id'])

        assert record_review(USER, stale, 'GOOD', now=NOW) is None

        stored = db.get_card(USER, card['card_id'])
        assert stored['front'] == 'new'
        assert stored['is_deleted'] is True
        assert stored['repetition'] == 0
        assert db.get_study_logs(USER) == []
        assert db.get_profile(USER)['xp'] == 0

    def test_edit_after_load_is_kept(self, card):
        stale = dict(card)
        db.update_card_content(USER, card['card_id'], 'hablar (v.)', 'to talk')

        updated = record_review(USER, stale, 'GOOD', now=NOW)
        assert updated['front'] == 'hablar (v.)'

        stored = db.get_card(USER, card['card_id'])
        assert stored['front'] == 'hablar (v.)'
        assert stored['back'] == 'to talk'
        assert stored['repetition'] == 1

    def test_card_in_deleted_deck_is_skipped(self, card):
        db.delete_deck(USER, card['deck_id'])
        assert record_review(USER, card, 'GOOD', now=NOW) is None
        assert db.get_study_logs(USER) == []

    def test_missing_card_is_skipped(self, tdb):
        ghost = {'card_id': 'gone', 'deck_id': 'd', 'repetition': 0, 'easiness_factor': 2.5, 'interval': 0}
        assert record_review(USER, ghost, 'GOOD', now=NOW) is None

    def test_card_and_log_written_together(self, card, tdb):
        conn = sqlite3.connect(tdb)
        conn.execute('DROP TABLE study_history')
        conn.commit()
        conn.close()

        with pytest.raises(sqlite3.OperationalError):
            record_review(USER, card, 'GOOD', now=NOW)
        assert db.get_card(USER, card['card_id']) == card
        assert db.get_profile(USER)['xp'] == 0


# ── XP & level ────────────────────────────────────────────────

class TestAwardXp:
    def test_accumulates(self, tdb):
        award_xp(USER, 5)
        profile, leveled_up = award_xp(USER, 7)
        assert profile['xp'] == 12
        assert leveled_up is False
        assert db.get_profile(USER)['xp'] == 12

    def test_level_up(self, tdb):
        award_xp(USER, XP_PER_LEVEL_BASE - 1)
        profile, leveled_up = award_xp(USER, 1)
        assert leveled_up is True
        assert profile['level'] == 2
        assert db.get_profile(USER)['level'] == 2


# ── Streak bonus ──────────────────────────────────────────────

class TestStreakBonus:
    def _log(self, card_id, day):
        db.add_study_log(USER, card_id, 'GOOD', day=day)

    def test_extending_streak_pays_once_per_day(self, card):
        self._log(card['card_id'], TODAY - timedelta(days=1))
        self._log(card['card_id'], TODAY)

        assert check_streak_bonus(USER, TODAY) == 2 * XP_STREAK_BONUS_PER_DAY
        assert db.get_profile(USER)['last_streak_check'] == '2024-05-10'

        self._log(card['card_id'], TODAY)
        assert check_streak_bonus(USER, TODAY) == 0
        # Extending the streak also completes today's streak goal
        assert db.get_profile(USER)['xp'] == 2 * XP_STREAK_BONUS_PER_DAY + STREAK_XP

    def test_first_day(self, card):
        self._log(card['card_id'], TODAY)
        assert check_streak_bonus(USER, TODAY) == XP_STREAK_BONUS_PER_DAY

    def test_nothing_studied_today(self, card):
        self._log(card['card_id'], TODAY - timedelta(days=1))
        assert check_streak_bonus(USER, TODAY) == 0
        # Still open for when today's first review comes in
        assert db.get_profile(USER)['last_streak_check'] == ''
        self._log(card['card_id'], TODAY)
        assert check_streak_bonus(USER, TODAY) == 2 * XP_STREAK_BONUS_PER_DAY

    def test_next_day_pays_again(self, card):
        self._log(card['card_id'], TODAY)
        check_streak_bonus(USER, TODAY)
        tomorrow = TODAY + timedelta(days=1)
        self._log(card['card_id'], tomorrow)
        assert check_streak_bonus(USER, tomorrow) == 2 * XP_STREAK_BONUS_PER_DAY


# ── Achievements ──────────────────────────────────────────────

class TestRefreshAchievements:
    def test_earned_once(self, card):
        new = refresh_achievements(USER, TODAY)
        assert [a['achievement_id'] for a in new] == ['first_card']
        assert refresh_achievements(USER, TODAY) == []
        assert db.get_achievements(USER) == [{'achievement_id': 'first_card', 'date_earned': '2024-05-10'}]

    def test_review_unlocks_first_review(self, card):
        refresh_achievements(USER, TODAY)
        record_review(USER, card, 'GOOD', now=NOW)
        assert [a['achievement_id'] for a in refresh_achievements(USER, TODAY)] == ['first_review']


# ── Profile edits ─────────────────────────────────────────────

class TestUpdateProfileFields:
    def test_updates_and_stamps(self, tdb):
        profile = update_profile_fields(USER, now=NOW, first_name='  Ana ', bio='Learning Spanish')
        assert profile['first_name'] == 'Ana'
        assert profile['profile_last_updated'] == '2024-05-10T09:00:00.000Z'
        stored = db.get_profile(USER)
        assert stored['bio'] == 'Learning Spanish'
        assert stored['last_name'] == ''

    def test_none_clears(self, tdb):
        update_profile_fields(USER, bio='x')
        assert update_profile_fields(USER, bio=None)['bio'] == ''

    def test_unknown_field_rejected(self, tdb):
        with pytest.raises(ValueError):
            update_profile_fields(USER, xp=1_000_000)
        assert db.get_profile(USER)['xp'] == 0

    def test_xp_untouched(self, tdb):
        award_xp(USER, 40)
        update_profile_fields(USER, first_name='Ana')
        assert db.get_profile(USER)['xp'] == 40


# ── Daily goals ───────────────────────────────────────────────

class TestDailyGoals:
    def test_generated_once_per_day(self, card):
        db.add_study_log(USER, card['card_id'], 'GOOD', day=TODAY - timedelta(days=1))
        goals = refresh_daily_goals(USER, TODAY)
        assert goals['date'] == '2024-05-10'
        assert [g['type'] for g in goals['goals']] == [STUDY, STREAK]
        assert goals['goals'][1]['target'] == 2
        assert refresh_daily_goals(USER, TODAY) == goals
        assert db.get_profile(USER)['daily_goals'] == goals

    def test_new_day_replaces_goals(self, tdb):
        refresh_daily_goals(USER, TODAY)
        update_goal_progress(USER, STUDY, 5, today=TODAY, now=NOW)
        goals = refresh_daily_goals(USER, TODAY + timedelta(days=1))
        assert goals['date'] == '2024-05-11'
        assert goals['goals'][0]['progress'] == 0

    def test_study_progress_stamps_profile(self, tdb):
        xp, completed, bonus = update_goal_progress(USER, STUDY, 3, today=TODAY, now=NOW)
        assert (xp, completed, bonus) == (0, [], False)
        profile = db.get_profile(USER)
        assert profile['daily_goals']['goals'][0]['progress'] == 3
        assert profile['profile_last_updated'] == '2024-05-10T09:00:00.000Z'

    def test_completing_goal_pays_xp_once(self, tdb):
        xp, completed, _ = update_goal_progress(USER, STUDY, STUDY_TARGET, today=TODAY, now=NOW)
        assert xp == STUDY_XP
        assert [g['type'] for g in completed] == [STUDY]
        assert update_goal_progress(USER, STUDY, 1, today=TODAY, now=NOW) == (0, [], False)
        assert db.get_profile(USER)['xp'] == STUDY_XP

    def test_all_goals_bonus(self, tdb):
        update_goal_progress(USER, STUDY, STUDY_TARGET, today=TODAY, now=NOW)
        xp, _, bonus = update_goal_progress(USER, STREAK, 1, today=TODAY, now=NOW)
        assert bonus is True
        assert xp == STREAK_XP + ALL_GOALS_BONUS
        assert db.get_profile(USER)['xp'] == STUDY_XP + STREAK_XP + ALL_GOALS_BONUS

    def test_streak_bonus_advances_streak_goal(self, card):
        db.add_study_log(USER, card['card_id'], 'GOOD', day=TODAY)
        check_streak_bonus(USER, TODAY)
        streak_goal = db.get_profile(USER)['daily_goals']['goals'][1]
        assert streak_goal['completed'] is True
        assert streak_goal['progress'] == 1
