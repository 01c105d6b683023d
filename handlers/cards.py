import html
import logging

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ContextTypes, ConversationHandler

import database.database as db
import utils.utils as utils
from handlers.stats import progress_notes
from handlers.sync import notify_change
from services.progress import award_xp, refresh_achievements
from utils.constants import AddCardState
from utils.gamification import XP_NEW_CARD
from utils.telegram_helpers import safe_edit_text


async def add_card_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    user_id = update.effective_user.id
    deck_id = context.user_data.get('last_deck_id')
    deck = db.get_deck(user_id, deck_id) if deck_id else None

    if deck_id and (deck is None or deck['is_deleted']):
        logging.info(f"Last used deck {deck_id} is gone")
        context.user_data.pop('last_deck_id', None)
        deck = None

    hint = (
        "<i>Use <code>front | back</code> or two lines.\n"
        "Send a single word and I'll look it up in the dictionary.</i>"
    )
    if deck:
        await safe_edit_text(
            query,
            f"\U0001f4dd Send me a card\n\n{hint}\n\n<i>\U0001f4c1 {html.escape(deck['name'])}</i>",
            reply_markup=InlineKeyboardMarkup([[
                InlineKeyboardButton("Change deck", callback_data='change_deck')
            ]])
        )
    else:
        await safe_edit_text(query, f"\U0001f4dd Send me a card\n\n{hint}")

    return AddCardState.AWAITING_CONTENT


async def save_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    cur_card = context.user_data.get('cur_card')
    deck_id = context.user_data.get('cur_deck_id')
    user_id = update.effective_user.id

    if not cur_card or not deck_id:
        await safe_edit_text(
            query,
            "⚠️ Session expired. Please start over.",
            reply_markup=InlineKeyboardMarkup([[InlineKeyboardButton('Menu', callback_data='main_menu')]])
        )
        return ConversationHandler.END

    logging.info("Saving card...")
    db.create_card(user_id, deck_id, cur_card)

    _, leveled_up = award_xp(user_id, XP_NEW_CARD)
    earned = refresh_achievements(user_id)
    notify_change(context, user_id)

    context.user_data['last_deck_id'] = deck_id
    context.user_data.pop('cur_card', None)

    notes = progress_notes(user_id, leveled_up, earned)
    await safe_edit_text(
        query,
        f"✔️ Saved! Send me another one{notes}",
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton("Menu", callback_data='main_menu')]
        ])
    )

    return AddCardState.AWAITING_CONTENT


async def change_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    decks = db.get_all_decks(update.effective_user.id)

    buttons = utils.get_buttons(decks, 'pick_deck')
    buttons.append([InlineKeyboardButton("➕ New deck", callback_data='new_deck')])
    buttons.append([InlineKeyboardButton("← Back", callback_data='back')])

    await safe_edit_text(
        query,
        "\U0001f4c1 Pick a deck",
        reply_markup=InlineKeyboardMarkup(buttons)
    )

    return AddCardState.AWAITING_DECK


async def edit_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    await safe_edit_text(query, "✏️ Send the new content")

    return AddCardState.AWAITING_CONTENT
