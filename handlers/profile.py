import html

from telegram import Update
from telegram.ext import ContextTypes

import database.database as db
from handlers.sync import notify_change
from services.progress import update_profile_fields
from utils.gamification import compute_level, compute_streak
from utils.telegram_helpers import safe_send_text

NAME_MAX = 50
BIO_MAX = 300


def _profile_text(user_id: int) -> str:
    profile = db.get_profile(user_id)
    level = compute_level(profile['xp'])
    name = ' '.join(p for p in (profile['first_name'], profile['last_name']) if p) or '<i>no name set</i>'
    if profile['first_name'] or profile['last_name']:
        name = html.escape(name)
    bio = html.escape(profile['bio']) if profile['bio'] else '<i>no bio yet</i>'
    return (
        f"\U0001f464 <b>{name}</b>\n"
        f"{bio}\n\n"
        f"⭐ Level {level['level']} · {level['xp']} XP\n"
        f"\U0001f525 {compute_streak(db.get_study_logs(user_id))} day streak"
    )


async def profile_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await safe_send_text(
        update.message,
        f"{_profile_text(update.effective_user.id)}\n\n"
        f"<i>/name First [Last] · /bio text</i>",
    )


async def name_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/name First [Last]"""
    if not context.args:
        await safe_send_text(update.message, "Usage: <code>/name First [Last]</code>")
        return

    first_name = context.args[0][:NAME_MAX]
    last_name = ' '.join(context.args[1:])[:NAME_MAX]
    user_id = update.effective_user.id

    update_profile_fields(user_id, first_name=first_name, last_name=last_name)
    notify_change(context, user_id)
    await safe_send_text(update.message, f"✔️ Saved\n\n{_profile_text(user_id)}")


async def bio_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/bio <text>; /bio alone clears it."""
    bio = update.message.text.partition(' ')[2].strip()[:BIO_MAX]
    user_id = update.effective_user.id

    update_profile_fields(user_id, bio=bio)
    notify_change(context, user_id)
    await safe_send_text(update.message, f"✔️ Saved\n\n{_profile_text(user_id)}")
