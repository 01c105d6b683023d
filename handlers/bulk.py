import html
import logging

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, Message
from telegram.ext import ContextTypes, ConversationHandler

import database.database as db
from handlers.stats import progress_notes
from handlers.sync import notify_change
from services.bulk_import import DONE, TIMEOUT, process_words
from services.dictionary import lookup_word
from services.progress import award_xp, refresh_achievements
from utils.constants import BulkState, DECK_NAME_MAX, DEFAULT_DECK_NAME
from utils.gamification import XP_NEW_CARD
from utils.telegram_helpers import safe_send_text
from utils.utils import parse_word_list

MAX_WORDS = 100

USAGE = (
    "\U0001f4e5 <b>Bulk import</b>\n\n"
    "<code>/bulk Deck name</code>\n"
    "<code>word one</code>\n"
    "<code>word two</code>\n\n"
    "<i>One word per line. I'll look each one up in the dictionary and make a card.</i>"
)


async def bulk_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """/bulk <deck> with the words on the following lines, or in the next message."""
    first_line, _, rest = update.message.text.partition('\n')
    deck_name = first_line.partition(' ')[2].strip() or DEFAULT_DECK_NAME

    if len(deck_name) > DECK_NAME_MAX:
        await safe_send_text(update.message, f"⚠️ Deck name too long: {DECK_NAME_MAX} characters max.")
        return ConversationHandler.END

    context.user_data['bulk_deck_name'] = deck_name
    words = parse_word_list(rest)
    if words:
        return await _start_import(update.message, context, words)

    await safe_send_text(
        update.message,
        f"{USAGE}\n\n\U0001f4c1 Deck: <b>{html.escape(deck_name)}</b>\nSend the words now, or /cancel.",
    )
    return BulkState.AWAITING_WORDS


async def receive_words(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    words = parse_word_list(update.message.text)
    if not words:
        await safe_send_text(update.message, "⚠️ No words found. One word per line, please:")
        return BulkState.AWAITING_WORDS
    return await _start_import(update.message, context, words)


async def cancel_bulk(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    context.user_data.pop('bulk_deck_name', None)
    await safe_send_text(update.message, "✖ Import cancelled.")
    return ConversationHandler.END


async def _start_import(message: Message, context: ContextTypes.DEFAULT_TYPE, words: list[str]) -> int:
    deck_name = context.user_data.pop('bulk_deck_name', DEFAULT_DECK_NAME)

    if len(words) > MAX_WORDS:
        await safe_send_text(message, f"⚠️ That's {len(words)} words. Up to {MAX_WORDS} per import, please.")
        return ConversationHandler.END

    await safe_send_text(
        message,
        f"\U0001f50e Looking up {len(words)} word{'s' if len(words) != 1 else ''}…\n"
        f"<i>I'll message you when it's done. You can keep studying meanwhile.</i>",
    )
    # The lookups can take a while; don't hold up the user's other updates
    context.application.create_task(_run_import(message, context, deck_name, words))
    return ConversationHandler.END


async def _run_import(message: Message, context: ContextTypes.DEFAULT_TYPE, deck_name: str, words: list[str]) -> None:
    user_id = message.chat.id
    results = await process_words(words, lookup_word)

    contents = [r['content'] for r in results if r['status'] == DONE]
    failed = [r for r in results if r['status'] != DONE]

    leveled_up, earned = False, []
    if contents:
        deck_id = db.get_or_create_deck(user_id, deck_name)
        db.create_cards(user_id, deck_id, contents)
        _, leveled_up = award_xp(user_id, XP_NEW_CARD * len(contents))
        earned = refresh_achievements(user_id)
        notify_change(context, user_id)

    logging.info(f"Bulk import for user {user_id}: {len(contents)} added, {len(failed)} failed")

    text = f"\U0001f4e5 Added <b>{len(contents)}</b> card{'s' if len(contents) != 1 else ''} to <b>{html.escape(deck_name)}</b>"
    if failed:
        lines = '\n'.join(
            f"  • {html.escape(r['word'])}: {'timed out' if r['status'] == TIMEOUT else 'not found'}"
            for r in failed
        )
        text += f"\n\n⚠️ Skipped {len(failed)}:\n{lines}"
    text += progress_notes(user_id, leveled_up, earned)

    await safe_send_text(
        message,
        text,
        reply_markup=InlineKeyboardMarkup([[InlineKeyboardButton("\U0001f3e0 Menu", callback_data='main_menu')]]),
    )
