"""
Tests for utils/goals.py: generating and advancing daily goals.
"""
from datetime import date

import pytest

from utils.goals import (
    ALL_GOALS_BONUS, STREAK, STREAK_XP, STUDY, STUDY_TARGET, STUDY_XP,
    apply_goal_progress, format_goals, generate_daily_goals, goals_are_current,
)

TODAY = date(2024, 5, 10)


class TestGenerate:
    def test_shape(self):
        daily = generate_daily_goals(4, TODAY)
        assert daily['date'] == '2024-05-10'
        assert daily['allCompleteAwarded'] is False
        study, streak = daily['goals']
        assert (study['type'], study['target'], study['progress']) == (STUDY, STUDY_TARGET, 0)
        assert (streak['type'], streak['target'], streak['progress']) == (STREAK, 5, 4)

    def test_current_only_for_today(self):
        daily = generate_daily_goals(0, TODAY)
        assert goals_are_current(daily, TODAY)
        assert not goals_are_current(daily, date(2024, 5, 11))
        assert not goals_are_current(None, TODAY)


class TestApplyProgress:
    def test_study_counts_up(self):
        daily, xp, done = apply_goal_progress(generate_daily_goals(0, TODAY), STUDY, 3)
        daily, xp, done = apply_goal_progress(daily, STUDY, 4)
        assert daily['goals'][0]['progress'] == 7
        assert (xp, done) == (0, [])

    def test_completion_caps_progress(self):
        daily, xp, done = apply_goal_progress(generate_daily_goals(0, TODAY), STUDY, STUDY_TARGET + 5)
        assert daily['goals'][0]['progress'] == STUDY_TARGET
        assert daily['goals'][0]['completed'] is True
        assert xp == STUDY_XP
        assert [g['type'] for g in done] == [STUDY]

    def test_streak_takes_highest_value(self):
        daily, _, _ = apply_goal_progress(generate_daily_goals(3, TODAY), STREAK, 2)
        assert daily['goals'][1]['progress'] == 3
        daily, xp, _ = apply_goal_progress(daily, STREAK, 4)
        assert daily['goals'][1]['completed'] is True
        assert xp == STREAK_XP

    def test_bonus_paid_once(self):
        daily, _, _ = apply_goal_progress(generate_daily_goals(0, TODAY), STREAK, 1)
        daily, xp, _ = apply_goal_progress(daily, STUDY, STUDY_TARGET)
        assert daily['allCompleteAwarded'] is True
        assert xp == STUDY_XP + ALL_GOALS_BONUS

        again, xp, done = apply_goal_progress(daily, STUDY, 1)
        assert (xp, done) == (0, [])
        assert again == daily

    def test_input_not_mutated(self):
        daily = generate_daily_goals(0, TODAY)
        apply_goal_progress(daily, STUDY, 1)
        assert daily['goals'][0]['progress'] == 0

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            apply_goal_progress(generate_daily_goals(0, TODAY), 'QUIZ', 1)


class TestFormatGoals:
    def test_lines(self):
        daily, _, _ = apply_goal_progress(generate_daily_goals(0, TODAY), STREAK, 1)
        text = format_goals(daily)
        assert f"▫️ Review {STUDY_TARGET} cards (0/{STUDY_TARGET})" in text
        assert "✅ Reach a 1 day streak (1/1)" in text

    def test_no_goals(self):
        assert format_goals(None) == ''
