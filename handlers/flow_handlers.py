import asyncio
import html
import logging

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ContextTypes, ConversationHandler

import database.database as db
import utils.utils as utils
from config import DICT_TIMEOUT
from services.dictionary import DictionaryError, lookup_word
from utils.constants import AddCardState, PREVIEW_BUTTONS
from utils.telegram_helpers import safe_edit_text, safe_send_text


async def get_content(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    logging.info("Got content")

    parsed = utils.parse_text(update.message.text)

    if not parsed['front']:
        await safe_send_text(update.message, "⚠️ Card can't be empty. Send some text:")
        return AddCardState.AWAITING_CONTENT

    if not parsed['back']:
        # A single word: let the dictionary fill in the back side
        content = await _lookup(parsed['front'])
        if content is None:
            front_hint = html.escape(parsed['front'][:20])
            await safe_send_text(
                update.message,
                f"⚠️ I couldn't find <b>{front_hint}</b> in the dictionary.\n\n"
                f"Use <code>|</code> to separate front from back:\n"
                f"<code>{front_hint} | meaning here</code>\n\n"
                f"Or send two lines:\n"
                f"<code>{front_hint}\nmeaning here</code>"
            )
            return AddCardState.AWAITING_CONTENT
        parsed = content

    context.user_data['cur_card'] = parsed

    deck_id = context.user_data.get('cur_deck_id') or context.user_data.get('last_deck_id')
    deck = db.get_deck(update.effective_user.id, deck_id) if deck_id else None
    if deck and not deck['is_deleted']:
        context.user_data['cur_deck_id'] = deck_id
        await preview(update.message, context)
        return AddCardState.CONFIRMATION_PREVIEW

    context.user_data.pop('cur_deck_id', None)
    return await show_deck_selection(update.message, context)


async def _lookup(word: str) -> dict | None:
    try:
        return await asyncio.wait_for(asyncio.to_thread(lookup_word, word), timeout=DICT_TIMEOUT * 2)
    except (DictionaryError, asyncio.TimeoutError) as e:
        logging.info(f"Dictionary lookup for {word!r} failed: {e}")
        return None


async def show_deck_selection(message, context: ContextTypes.DEFAULT_TYPE) -> int:
    user_id = message.chat.id
    decks = db.get_all_decks(user_id)

    if not decks:
        await safe_send_text(
            message,
            "No decks yet \U0001f4ad\nType a name for your first one:"
        )
        return AddCardState.CREATING_DECK

    buttons = utils.get_buttons(decks, 'pick_deck')
    buttons.append([InlineKeyboardButton("➕ New deck", callback_data='new_deck')])
    buttons.append([InlineKeyboardButton("Cancel", callback_data='cancel')])

    await safe_send_text(
        message,
        "\U0001f4c1 Which deck?",
        reply_markup=InlineKeyboardMarkup(buttons)
    )
    return AddCardState.AWAITING_DECK


async def preview(message_or_query, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Works with both Message and CallbackQuery."""
    cur_card = context.user_data.get('cur_card', {})
    deck_id = context.user_data.get('cur_deck_id')

    user_id = message_or_query.chat.id if hasattr(message_or_query, 'reply_text') else message_or_query.from_user.id
    deck = db.get_deck(user_id, deck_id) if deck_id else None
    deck_name = deck['name'] if deck else "no deck"

    preview_text = (
        f"<b>\U0001f4cb Preview</b>\n\n"
        f"{utils.format_card({'front': '[empty]', **cur_card})}\n\n"
        f"<i>\U0001f4c1 {html.escape(deck_name)}</i>"
    )
    markup = InlineKeyboardMarkup(PREVIEW_BUTTONS)

    if hasattr(message_or_query, 'reply_text'):
        await safe_send_text(message_or_query, preview_text, reply_markup=markup)
    else:
        await safe_edit_text(message_or_query, preview_text, reply_markup=markup)


async def back_to_content(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    await safe_edit_text(query, "✏️ Send me the card again")
    return AddCardState.AWAITING_CONTENT


async def menu_exit(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    _clear_flow(context)

    from handlers.start import menu_for
    text, markup = menu_for(context, update.effective_user.id)
    await safe_edit_text(query, text, reply_markup=markup)
    return ConversationHandler.END


async def cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    _clear_flow(context)

    from handlers.start import menu_for
    text, markup = menu_for(context, update.effective_user.id)

    if update.callback_query:
        await update.callback_query.answer()
        await safe_edit_text(update.callback_query, text, reply_markup=markup)
    else:
        await safe_send_text(update.message, text, reply_markup=markup)

    return ConversationHandler.END


def _clear_flow(context: ContextTypes.DEFAULT_TYPE) -> None:
    context.user_data.pop('cur_card', None)
    context.user_data.pop('cur_deck_id', None)
