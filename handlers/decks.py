import html

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ContextTypes

import database.database as db
import handlers.flow_handlers as hand_flow
from handlers.sync import notify_change
from utils.constants import AddCardState, DECK_NAME_MAX
from utils.telegram_helpers import safe_edit_text, safe_send_text
from utils.utils import callback_arg


async def create_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    deck_name = (update.message.text or '').strip()
    user_id = update.effective_user.id

    if not deck_name:
        await safe_send_text(update.message, "⚠️ Deck name can't be empty. Try again:")
        return AddCardState.CREATING_DECK

    if len(deck_name) > DECK_NAME_MAX:
        await safe_send_text(update.message, f"⚠️ Too long: {DECK_NAME_MAX} characters max. Try again:")
        return AddCardState.CREATING_DECK

    try:
        deck_id = db.create_deck(user_id, deck_name)
    except ValueError:
        await safe_send_text(
            update.message,
            f"⚠️ \"{html.escape(deck_name)}\" already exists. Pick a different name:"
        )
        return AddCardState.CREATING_DECK

    notify_change(context, user_id)
    context.user_data['cur_deck_id'] = deck_id

    # Content first, deck second: go straight to the preview
    if context.user_data.get('cur_card'):
        await hand_flow.preview(update.message, context)
        return AddCardState.CONFIRMATION_PREVIEW

    await safe_send_text(
        update.message,
        f"✅ Deck \"{html.escape(deck_name)}\" created!\n\n"
        f"\U0001f4dd Now send me the card content",
        reply_markup=InlineKeyboardMarkup([[
            InlineKeyboardButton("⚙️ Change deck", callback_data='change_deck')
        ]]),
    )
    return AddCardState.AWAITING_CONTENT


async def selected_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    context.user_data['cur_deck_id'] = callback_arg(query.data, 'pick_deck_')

    if not context.user_data.get('cur_card'):
        await safe_edit_text(query, "\U0001f4dd Send me the card content")
        return AddCardState.AWAITING_CONTENT

    await hand_flow.preview(query, context)
    return AddCardState.CONFIRMATION_PREVIEW


async def create_new_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    await safe_edit_text(query, "✏️ Name for the new deck:")
    return AddCardState.CREATING_DECK
