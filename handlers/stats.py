import html
from datetime import date
from typing import Any

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ContextTypes

import database.database as db
from services.progress import refresh_daily_goals
from utils.gamification import ACHIEVEMENTS, compute_level, compute_streak
from utils.goals import format_goals
from utils.telegram_helpers import safe_edit_text, safe_send_text
from utils.utils import progress_bar


def _forecast_lines(forecast: list[dict[str, Any]]) -> str:
    if not any(entry['count'] for entry in forecast):
        return "  No cards due in the next 7 days"

    lines = []
    for entry in forecast:
        day = date.fromisoformat(entry['day'])
        day_label = day.strftime('%b %d')  # "Feb 18"
        count = entry['count']
        lines.append(f"  {day_label}  ·  {count} card{'s' if count != 1 else ''}")
    return '\n'.join(lines)


def _achievement_lines(earned: list[dict[str, Any]]) -> str:
    if not earned:
        return "  <i>None yet. Keep going!</i>"
    lines = []
    for a in earned:
        if a['achievement_id'] not in ACHIEVEMENTS:
            continue
        name, icon, desc = ACHIEVEMENTS[a['achievement_id']]
        lines.append(f"  {icon} <b>{name}</b> · <i>{desc}</i>")
    return '\n'.join(lines)


def _build_stats_text(user_id: int) -> str:
    stats = db.get_card_stats(user_id)
    forecast = db.get_forecast(user_id, days=7)
    level = compute_level(db.get_profile(user_id)['xp'])
    streak = compute_streak(db.get_study_logs(user_id))
    difficult = db.get_difficult_cards(user_id)

    text = (
        f"\U0001f4ca Stats\n\n"
        f"⭐ Level {level['level']} · {level['xp']} XP\n"
        f"{progress_bar(level['progress'])} {level['progress']}% "
        f"<i>({level['xp_for_next_level'] - level['xp']} XP to level {level['level'] + 1})</i>\n"
        f"\U0001f525 Streak: {streak} day{'s' if streak != 1 else ''}\n\n"
        f"\U0001f4da Total: {stats['total']}\n"
        f"\U0001f195 New: {stats['new']}\n"
        f"\U0001f4d6 Learning: {stats['learning']}\n"
        f"✅ Mature: {stats['mature']}\n\n"
        f"\U0001f514 Due today: {stats['due_today']}\n\n"
        f"\U0001f4c5 Next 7 days\n"
        f"{_forecast_lines(forecast)}\n\n"
        f"\U0001f3af Today's goals\n"
        f"{format_goals(refresh_daily_goals(user_id))}\n\n"
        f"\U0001f3c6 Achievements\n"
        f"{_achievement_lines(db.get_achievements(user_id))}"
    )
    if difficult:
        lines = '\n'.join(
            f"  {html.escape(c['front'])} · {c['again_count']}×" for c in difficult
        )
        text += f"\n\n\U0001f9e9 Trickiest cards\n{lines}"
    return text


def progress_notes(user_id: int, leveled_up: bool, earned: list[dict[str, Any]]) -> str:
    """Extra lines for level-ups and new achievements, to append to a confirmation."""
    notes = ''
    if leveled_up:
        level = db.get_profile(user_id)['level']
        notes += f"\n\n\U0001f389 <b>Level up!</b> You're now level {level}"
    for a in earned:
        if a['achievement_id'] in ACHIEVEMENTS:
            name, icon, _ = ACHIEVEMENTS[a['achievement_id']]
            notes += f"\n{icon} Achievement unlocked: <b>{name}</b>"
    return notes


async def stats_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    text = _build_stats_text(update.effective_user.id)
    buttons = [[InlineKeyboardButton('\U0001f3e0 Menu', callback_data='main_menu')]]
    await safe_edit_text(query, text, reply_markup=InlineKeyboardMarkup(buttons))


async def stats_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/stats slash command: send a fresh stats message."""
    text = _build_stats_text(update.effective_user.id)
    buttons = [[InlineKeyboardButton('\U0001f3e0 Menu', callback_data='main_menu')]]
    await safe_send_text(update.message, text, reply_markup=InlineKeyboardMarkup(buttons))
