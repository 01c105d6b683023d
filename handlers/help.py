from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ContextTypes

from utils.telegram_helpers import safe_edit_text, safe_send_text


HELP_TEXT = (
    "<b>❓ How it works</b>\n\n"
    "1. Send <code>word | meaning</code>, or just a word and I'll look it up\n"
    "2. <code>/bulk Deck</code> + one word per line imports a whole list\n"
    "3. Hit Review, pick which cards and whether to flip or type the answer, "
    "then rate each one:\n"
    "   \U0001f534 Again · \U0001f7e2 Good · \U0001f535 Easy\n\n"
    "Cards you know well come back less often; misses come back tomorrow. "
    "Reviews earn XP, daily study builds your streak \U0001f525 "
    "and daily goals \U0001f3af pay a bonus.\n\n"
    "<b>Commands</b>\n"
    "/review · /decks · /stats · /profile\n"
    "/name · /bio · /bulk\n"
    "/connect <i>key</i> · /sync · /restore · /disconnect\n"
    "/clear resets a stuck menu"
)

_MARKUP = InlineKeyboardMarkup([
    [InlineKeyboardButton("Menu", callback_data='main_menu')]
])


async def help_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    await safe_edit_text(query, HELP_TEXT, reply_markup=_MARKUP)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await safe_send_text(update.message, HELP_TEXT, reply_markup=_MARKUP)
