"""
Daily goals. Pure functions: a day's goals are a plain dict stored on the
profile,

    {'date': 'YYYY-MM-DD', 'goals': [goal, ...], 'allCompleteAwarded': bool}

and every update returns a new dict instead of mutating the old one.
"""

import copy
import html
from datetime import date

STUDY = 'STUDY'
STREAK = 'STREAK'
GOAL_TYPES = (STUDY, STREAK)

STUDY_TARGET = 20
STUDY_XP = 20
STREAK_XP = 15
ALL_GOALS_BONUS = 50


def generate_daily_goals(current_streak: int, today: date) -> dict:
    """Fresh goals for today. The streak goal asks for one more day than the streak has now."""
    return {
        'date': today.isoformat(),
        'goals': [
            {
                'id': f'study-{today.isoformat()}',
                'type': STUDY,
                'description': f"Review {STUDY_TARGET} cards",
                'target': STUDY_TARGET,
                'progress': 0,
                'xp': STUDY_XP,
                'completed': False,
            },
            {
                'id': f'streak-{today.isoformat()}',
                'type': STREAK,
                'description': f"Reach a {current_streak + 1} day streak",
                'target': current_streak + 1,
                'progress': current_streak,
                'xp': STREAK_XP,
                'completed': False,
            },
        ],
        'allCompleteAwarded': False,
    }


def goals_are_current(daily_goals: dict | None, today: date) -> bool:
    return bool(daily_goals) and daily_goals.get('date') == today.isoformat()


def apply_goal_progress(daily_goals: dict, goal_type: str, value: int) -> tuple[dict, int, list[dict]]:
    """
    Advance every open goal of goal_type.

    STUDY goals count up by value; STREAK goals take value as the current
    streak. Returns (new_daily_goals, xp_gained, newly_completed). The
    all-goals bonus is paid once per day.
    """
    if goal_type not in GOAL_TYPES:
        raise ValueError(f"Unknown goal type: {goal_type!r}")

    updated = copy.deepcopy(daily_goals)
    xp_gained = 0
    newly_completed = []

    for goal in updated.get('goals', []):
        if goal.get('type') != goal_type or goal.get('completed'):
            continue
        if goal_type == STUDY:
            goal['progress'] = goal.get('progress', 0) + value
        else:
            goal['progress'] = max(goal.get('progress', 0), value)

        if goal['progress'] >= goal['target']:
            goal['progress'] = goal['target']
            goal['completed'] = True
            xp_gained += goal.get('xp', 0)
            newly_completed.append(goal)

    goals = updated.get('goals', [])
    if goals and all(g.get('completed') for g in goals) and not updated.get('allCompleteAwarded'):
        updated['allCompleteAwarded'] = True
        xp_gained += ALL_GOALS_BONUS

    return updated, xp_gained, newly_completed


def format_goals(daily_goals: dict | None) -> str:
    """One line per goal, e.g. '  ✅ Review 20 cards (20/20)'. HTML-escaped."""
    if not daily_goals or not daily_goals.get('goals'):
        return ''
    lines = []
    for goal in daily_goals['goals']:
        mark = '✅' if goal.get('completed') else '▫️'
        description = html.escape(str(goal.get('description', '')))
        lines.append(f"  {mark} {description} ({goal.get('progress', 0)}/{goal.get('target', 0)})")
    return '\n'.join(lines)
