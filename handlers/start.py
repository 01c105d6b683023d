import html
import logging

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ContextTypes, ConversationHandler

import database.database as db
from handlers.sync import sync_status_line
from utils.gamification import compute_level, compute_streak
from utils.telegram_helpers import safe_edit_text, safe_send_text
from utils.utils import progress_bar


def build_main_menu(user_id: int, sync_line: str | None = None) -> tuple[str, InlineKeyboardMarkup]:
    """
    Returns (message_text, markup) for the main menu: due count, level,
    streak and, for synced accounts, the sync status.
    """
    stats = db.get_card_stats(user_id)
    total = stats['total']
    due = stats['due_today']

    if total == 0:
        text = "\U0001f4da <b>Lingua Cards</b>\n\n<i>No cards yet. Add your first one!</i>"
    elif due == 0:
        text = f"✅ <b>All caught up!</b>\n\n<i>{total} cards in your collection</i>"
    elif due == 1:
        text = f"\U0001f9e0 <b>1 card to review</b>\n\n<i>{total} cards total</i>"
    else:
        text = f"\U0001f9e0 <b>{due} cards to review</b>\n\n<i>{total} cards total</i>"

    level = compute_level(db.get_profile(user_id)['xp'])
    streak = compute_streak(db.get_study_logs(user_id))
    text += (
        f"\n\n⭐ Level {level['level']}  {progress_bar(level['progress'])} {level['progress']}%"
        f"\n\U0001f525 {streak} day streak"
    )
    if sync_line:
        text += f"\n{sync_line}"

    review_label = f'\U0001f9e0 Review · {due} due' if due > 0 else '\U0001f9e0 Review'
    markup = InlineKeyboardMarkup([
        [
            InlineKeyboardButton('\U0001f4dd New Card', callback_data='add_card'),
            InlineKeyboardButton(review_label, callback_data='review'),
        ],
        [
            InlineKeyboardButton('\U0001f4da My Decks', callback_data='my_decks'),
            InlineKeyboardButton('\U0001f4ca Stats', callback_data='stats'),
        ],
        [InlineKeyboardButton('❓ How it works', callback_data='help')],
    ])

    return text, markup


def menu_for(context: ContextTypes.DEFAULT_TYPE, user_id: int) -> tuple[str, InlineKeyboardMarkup]:
    return build_main_menu(user_id, sync_status_line(context, user_id))


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    logging.info("Started /start")

    user_id = update.effective_user.id
    user = db.get_user(user_id)
    name = update.effective_user.first_name

    if user:
        text, markup = menu_for(context, user_id)
        await safe_send_text(
            update.message,
            f"Hey {html.escape(name)} \U0001f44b\n\n{text}",
            reply_markup=markup,
        )

    else:
        db.create_user(user_id, update.effective_user.username, name)
        db.get_profile(user_id)

        await safe_send_text(
            update.message,
            f"Hey {html.escape(name)}, welcome to Lingua Cards \U0001f9e0\n\n"
            "Send me words with their meaning, or a whole list with /bulk, "
            "and I'll quiz you right before you'd forget them.\n\n"
            "<i>Studying on more than one device? Use /connect to sync.</i>",
            reply_markup=InlineKeyboardMarkup([
                [InlineKeyboardButton("Let's go", callback_data='add_card')],
            ])
        )


_CONV_KEYS = (
    # add-card flow
    'cur_card', 'cur_deck_id',
    # review flow
    'review_queue', 'review_index', 'review_correct', 'review_total', 'review_cards',
    'review_start_level', 'review_bonus', 'review_earned', 'review_options', 'review_skipped',
    'review_goals_awarded',
    # bulk import
    'bulk_deck_name',
    # manage flow
    'editing_card_id', 'edit_card_parsed', 'renaming_deck_id', 'manage_deck_id', 'manage_deck_page',
)


async def _reset_and_send_menu(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Clear all in-progress conversation state and send a fresh main menu."""
    for key in _CONV_KEYS:
        context.user_data.pop(key, None)
    text, markup = menu_for(context, update.effective_user.id)
    await safe_send_text(update.message, text, reply_markup=markup)


async def force_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """ConversationHandler fallback: abort the current flow and show the main menu."""
    await _reset_and_send_menu(update, context)
    return ConversationHandler.END


async def clear_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/clear: reset any stuck state and show a fresh main menu."""
    await _reset_and_send_menu(update, context)


async def main_menu(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Callback handler for the 'Menu' button (outside conversation)."""
    query = update.callback_query
    await query.answer()

    text, markup = menu_for(context, update.effective_user.id)
    await safe_edit_text(query, text, reply_markup=markup)
