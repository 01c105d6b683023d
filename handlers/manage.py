import html
import logging

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, CallbackQuery
from telegram.ext import (
    ContextTypes, ConversationHandler,
    MessageHandler, CommandHandler, CallbackQueryHandler, filters,
)

import database.database as db
from handlers.decks_menu import build_decks_page
from handlers.start import force_start, menu_for
from handlers.sync import notify_change
from utils.constants import ManageState, DECK_NAME_MAX
from utils.dates import parse_timestamp, utc_now
from utils.srs import format_interval
from utils.telegram_helpers import safe_edit_text, safe_send_text
from utils.utils import callback_arg, format_card, parse_text

CARDS_PER_PAGE = 5
FRONT_MAX = 30


def _truncate(text: str, max_len: int) -> str:
    return text if len(text) <= max_len else text[:max_len - 1] + '…'


async def _show_deck_detail(
    query: CallbackQuery,
    context: ContextTypes.DEFAULT_TYPE,
    deck_id: str,
    page: int = 0,
) -> None:
    user_id = query.from_user.id

    deck = db.get_deck(user_id, deck_id)
    if not deck or deck['is_deleted']:
        await safe_edit_text(
            query,
            "Deck not found. It may have been deleted on another device.",
            reply_markup=InlineKeyboardMarkup([
                [InlineKeyboardButton('My Decks', callback_data='my_decks')]
            ]),
        )
        return

    cards = db.get_cards_in_deck(user_id, deck_id)
    total = len(cards)
    total_pages = max(1, (total + CARDS_PER_PAGE - 1) // CARDS_PER_PAGE)
    page = max(0, min(page, total_pages - 1))

    context.user_data['manage_deck_id'] = deck_id
    context.user_data['manage_deck_page'] = page

    start = page * CARDS_PER_PAGE
    page_cards = cards[start:start + CARDS_PER_PAGE]

    header = f"<b>\U0001f4da {html.escape(deck['name'])}</b> · {total} cards"
    if total_pages > 1:
        header += f"  ({page + 1}/{total_pages})"
    text = header if page_cards else f"{header}\n\n<i>No cards yet</i>"

    buttons: list[list[InlineKeyboardButton]] = [
        [InlineKeyboardButton(_truncate(c['front'], FRONT_MAX), callback_data=f"card_info_{c['card_id']}")]
        for c in page_cards
    ]

    nav: list[InlineKeyboardButton] = []
    if page > 0:
        nav.append(InlineKeyboardButton('←', callback_data=f'deck_page_{page - 1}'))
    if page < total_pages - 1:
        nav.append(InlineKeyboardButton('→', callback_data=f'deck_page_{page + 1}'))
    if nav:
        buttons.append(nav)

    buttons.append([
        InlineKeyboardButton('✏️ Rename', callback_data=f'deck_rename_{deck_id}'),
        InlineKeyboardButton('\U0001f5d1️ Delete deck', callback_data=f'deck_delete_{deck_id}'),
    ])
    buttons.append([InlineKeyboardButton('My Decks', callback_data='my_decks')])

    await safe_edit_text(query, text, reply_markup=InlineKeyboardMarkup(buttons))


async def _back_to_deck(query: CallbackQuery, context: ContextTypes.DEFAULT_TYPE) -> None:
    deck_id = context.user_data.get('manage_deck_id')
    if deck_id is None:
        text, markup = build_decks_page(query.from_user.id, 0)
        await safe_edit_text(query, text, reply_markup=markup)
        return
    await _show_deck_detail(query, context, deck_id, context.user_data.get('manage_deck_page', 0))


# ── Standalone callbacks ──────────────────────────────────────

async def deck_open(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    await _show_deck_detail(query, context, callback_arg(query.data, 'deck_open_'))


async def deck_cards_page(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    context.user_data['manage_deck_page'] = int(callback_arg(query.data, 'deck_page_'))
    await _back_to_deck(query, context)


async def card_info(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    card = db.get_card(update.effective_user.id, callback_arg(query.data, 'card_info_'))
    if not card or card['is_deleted']:
        await _back_to_deck(query, context)
        return

    if card['repetition'] == 0:
        schedule_line = "\U0001f195 New card"
    else:
        due = parse_timestamp(card['due_date'])
        days = (due.date() - utc_now().date()).days
        when = "today" if days <= 0 else f"in {format_interval(days)}"
        schedule_line = f"\U0001f4c5 Due {when} · every {format_interval(card['interval'])} · ease {card['easiness_factor']:.2f}"

    await safe_edit_text(
        query,
        f"{format_card(card)}\n\n<i>{schedule_line}</i>",
        reply_markup=InlineKeyboardMarkup([
            [
                InlineKeyboardButton('✏️ Edit', callback_data=f"card_edit_{card['card_id']}"),
                InlineKeyboardButton('\U0001f5d1️ Delete', callback_data=f"card_delete_{card['card_id']}"),
            ],
            [InlineKeyboardButton('← Back', callback_data=f"deck_open_{card['deck_id']}")],
        ]),
    )


async def card_delete_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    card_id = callback_arg(query.data, 'card_delete_')
    card = db.get_card(update.effective_user.id, card_id)
    if not card:
        await _back_to_deck(query, context)
        return

    await safe_edit_text(
        query,
        f"\U0001f5d1️ Delete <b>{html.escape(_truncate(card['front'], FRONT_MAX))}</b>?",
        reply_markup=InlineKeyboardMarkup([
            [
                InlineKeyboardButton('Yes, delete', callback_data=f'confirm_card_delete_{card_id}'),
                InlineKeyboardButton('Cancel', callback_data=f'card_info_{card_id}'),
            ]
        ]),
    )


async def card_delete_yes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    user_id = update.effective_user.id

    db.delete_card(user_id, callback_arg(query.data, 'confirm_card_delete_'))
    notify_change(context, user_id)

    await _back_to_deck(query, context)


async def deck_delete_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    deck_id = callback_arg(query.data, 'deck_delete_')
    deck = db.get_deck(update.effective_user.id, deck_id)
    deck_name = deck['name'] if deck else 'this deck'
    await safe_edit_text(
        query,
        f"\U0001f5d1️ Delete deck <b>{html.escape(deck_name)}</b> and all its cards?",
        reply_markup=InlineKeyboardMarkup([
            [
                InlineKeyboardButton('Yes, delete', callback_data=f'confirm_deck_delete_{deck_id}'),
                InlineKeyboardButton('Cancel', callback_data=f'deck_open_{deck_id}'),
            ]
        ]),
    )


async def deck_delete_yes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    user_id = update.effective_user.id

    db.delete_deck(user_id, callback_arg(query.data, 'confirm_deck_delete_'))
    notify_change(context, user_id)
    context.user_data.pop('manage_deck_id', None)
    context.user_data.pop('manage_deck_page', None)

    text, markup = build_decks_page(user_id, 0)
    await safe_edit_text(query, text, reply_markup=markup)


# ── Edit card conversation ────────────────────────────────────

async def start_edit_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    card_id = callback_arg(query.data, 'card_edit_')

    card = db.get_card(update.effective_user.id, card_id)
    if not card:
        await safe_edit_text(query, "Card not found.")
        return ConversationHandler.END

    context.user_data['editing_card_id'] = card_id
    context.user_data['manage_deck_id'] = card['deck_id']

    copyable = f"{card['front']} | {card['back']}" if card['back'] else card['front']
    await safe_edit_text(
        query,
        f"✏️ <b>Edit card</b>\n\n"
        f"<code>{html.escape(copyable)}</code>\n\n"
        f"<i>Tap the text above to copy, edit and send.\n/cancel to abort</i>",
    )
    return ManageState.EDIT_CARD_CONTENT


async def receive_edit_content(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    parsed = parse_text(update.message.text)
    if not parsed['front'] or not parsed['back']:
        await safe_send_text(update.message, "⚠️ Cards need both sides: <code>front | back</code>. Try again:")
        return ManageState.EDIT_CARD_CONTENT

    context.user_data['edit_card_parsed'] = parsed

    await safe_send_text(
        update.message,
        f"<b>\U0001f4cb Preview</b>\n\n"
        f"Front: {html.escape(parsed['front'])}\nBack: {html.escape(parsed['back'])}",
        reply_markup=InlineKeyboardMarkup([[
            InlineKeyboardButton('✔ Save', callback_data='save_edit'),
            InlineKeyboardButton('✖ Cancel', callback_data='cancel_edit'),
        ]]),
    )
    return ManageState.EDIT_CARD_PREVIEW


async def save_edit_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    card_id = context.user_data.pop('editing_card_id', None)
    parsed = context.user_data.pop('edit_card_parsed', None)
    user_id = update.effective_user.id

    if card_id and parsed:
        db.update_card_content(user_id, card_id, parsed['front'], parsed['back'])
        notify_change(context, user_id)
        logging.info(f"Edited card {card_id} for user {user_id}")

    await _back_to_deck(query, context)
    return ConversationHandler.END


async def cancel_edit_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    context.user_data.pop('editing_card_id', None)
    context.user_data.pop('edit_card_parsed', None)

    await _back_to_deck(query, context)
    return ConversationHandler.END


# ── Rename deck conversation ──────────────────────────────────

async def start_rename_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    deck_id = callback_arg(query.data, 'deck_rename_')

    deck = db.get_deck(update.effective_user.id, deck_id)
    context.user_data['renaming_deck_id'] = deck_id

    await safe_edit_text(
        query,
        f"✏️ Rename <b>{html.escape(deck['name'] if deck else 'this deck')}</b>\n\n"
        f"<i>Send the new name:\n/cancel to abort</i>",
    )
    return ManageState.RENAME_DECK


async def receive_rename(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    new_name = update.message.text.strip()
    user_id = update.effective_user.id
    deck_id = context.user_data.get('renaming_deck_id')

    if not new_name:
        await safe_send_text(update.message, "Name can't be empty. Try again:")
        return ManageState.RENAME_DECK

    if len(new_name) > DECK_NAME_MAX:
        await safe_send_text(update.message, f"Name too long (max {DECK_NAME_MAX} chars). Try again:")
        return ManageState.RENAME_DECK

    if deck_id:
        try:
            db.rename_deck(user_id, deck_id, new_name)
        except ValueError:
            await safe_send_text(
                update.message,
                f"⚠️ \"{html.escape(new_name)}\" already exists. Pick a different name:"
            )
            return ManageState.RENAME_DECK
        notify_change(context, user_id)
        context.user_data.pop('renaming_deck_id', None)

    await safe_send_text(
        update.message,
        f"✔️ Renamed to <b>{html.escape(new_name)}</b>",
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton('My Decks', callback_data='my_decks')]
        ]),
    )
    return ConversationHandler.END


async def cancel_manage(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    for key in ('editing_card_id', 'edit_card_parsed', 'renaming_deck_id'):
        context.user_data.pop(key, None)

    text, markup = menu_for(context, update.effective_user.id)

    if update.callback_query:
        await update.callback_query.answer()
        await safe_edit_text(update.callback_query, text, reply_markup=markup)
    else:
        await safe_send_text(update.message, text, reply_markup=markup)

    return ConversationHandler.END


# ── ConversationHandlers ──────────────────────────────────────

edit_card_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(start_edit_card, pattern=r'^card_edit_.+$')],
    per_message=False,
    states={
        ManageState.EDIT_CARD_CONTENT: [
            MessageHandler(filters.TEXT & ~filters.COMMAND, receive_edit_content),
        ],
        ManageState.EDIT_CARD_PREVIEW: [
            CallbackQueryHandler(save_edit_card, pattern='^save_edit$'),
            CallbackQueryHandler(cancel_edit_card, pattern='^cancel_edit$'),
        ],
    },
    fallbacks=[CommandHandler('cancel', cancel_manage), CommandHandler('start', force_start)],
)

rename_deck_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(start_rename_deck, pattern=r'^deck_rename_.+$')],
    per_message=False,
    states={
        ManageState.RENAME_DECK: [
            MessageHandler(filters.TEXT & ~filters.COMMAND, receive_rename),
        ],
    },
    fallbacks=[CommandHandler('cancel', cancel_manage), CommandHandler('start', force_start)],
)
