from typing import Any

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ContextTypes

import database.database as db
from utils.telegram_helpers import safe_edit_text, safe_send_text
from utils.utils import callback_arg

DECKS_PER_PAGE = 5

_EMPTY_TEXT = "\U0001f4da No decks yet\n\nSave your first card or import a word list with /bulk."
_EMPTY_MARKUP = InlineKeyboardMarkup([
    [InlineKeyboardButton("\U0001f4dd New Card", callback_data='add_card')],
    [InlineKeyboardButton("\U0001f3e0 Menu", callback_data='main_menu')],
])


async def my_decks_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Entry point from main menu: show the first page of decks."""
    query = update.callback_query
    await query.answer()

    text, markup = build_decks_page(update.effective_user.id, 0)
    await safe_edit_text(query, text, reply_markup=markup)


async def decks_page(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    page = int(callback_arg(query.data, 'decks_page_'))
    text, markup = build_decks_page(update.effective_user.id, page)
    await safe_edit_text(query, text, reply_markup=markup)


async def decks_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/decks slash command: send a fresh My Decks list."""
    text, markup = build_decks_page(update.effective_user.id, 0)
    await safe_send_text(update.message, text, reply_markup=markup)


def build_decks_page(user_id: int, page: int) -> tuple[str, InlineKeyboardMarkup]:
    """
    Text and buttons for one page of the deck list. Counts are read fresh
    every time, so a sync that lands between pages shows up right away.
    """
    decks = db.get_decks_with_stats(user_id)
    if not decks:
        return _EMPTY_TEXT, _EMPTY_MARKUP

    total_pages = max(1, (len(decks) + DECKS_PER_PAGE - 1) // DECKS_PER_PAGE)
    page = max(0, min(page, total_pages - 1))
    start = page * DECKS_PER_PAGE

    header = "\U0001f4da My Decks"
    if total_pages > 1:
        header += f" ({page + 1}/{total_pages})"

    buttons = [[_deck_button(d)] for d in decks[start:start + DECKS_PER_PAGE]]

    nav: list[InlineKeyboardButton] = []
    if page > 0:
        nav.append(InlineKeyboardButton("←", callback_data=f'decks_page_{page - 1}'))
    if page < total_pages - 1:
        nav.append(InlineKeyboardButton("→", callback_data=f'decks_page_{page + 1}'))
    if nav:
        buttons.append(nav)

    buttons.append([InlineKeyboardButton("\U0001f3e0 Menu", callback_data='main_menu')])
    return header, InlineKeyboardMarkup(buttons)


def _deck_button(deck: dict[str, Any]) -> InlineKeyboardButton:
    due = deck['due_count']
    due_part = f"  ❗ {due} due" if due else ""
    return InlineKeyboardButton(
        f"\U0001f4da {deck['name']} · {deck['card_count']} cards{due_part}",
        callback_data=f"deck_open_{deck['deck_id']}",
    )
