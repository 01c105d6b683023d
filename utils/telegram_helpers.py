"""
Safe wrappers for Telegram API calls.

Handlers go through these instead of raw query.edit_message_text /
bot.send_message, so a failed API call never breaks a review or an edit.

Text is sent with parse_mode='HTML'. Anything that came from the user or the
database (card sides, deck names, profile fields, dictionary content) must be
html.escape()d before it goes into the message:

    await safe_edit_text(query, f"Deck: <b>{html.escape(deck['name'])}</b>")
"""

import logging
from typing import Any

from telegram import CallbackQuery, InlineKeyboardMarkup, Message
from telegram.error import BadRequest, Forbidden, NetworkError, TimedOut

logger = logging.getLogger(__name__)


async def safe_edit_text(
    query: CallbackQuery,
    text: str,
    reply_markup: InlineKeyboardMarkup | None = None,
    parse_mode: str = 'HTML',
) -> bool:
    """Edit a callback query's message. Falls back to a new message if editing fails."""
    try:
        await query.edit_message_text(text, reply_markup=reply_markup, parse_mode=parse_mode)
        return True
    except BadRequest as e:
        if "message is not modified" in str(e).lower():
            return True
        logger.warning(f"safe_edit_text BadRequest: {e}")
        return await _fallback_reply(query, text, reply_markup, parse_mode)
    except (TimedOut, NetworkError) as e:
        logger.warning(f"safe_edit_text network error: {e}")
        return False


async def safe_send_text(
    target: Message | tuple[int, Any],
    text: str,
    reply_markup: InlineKeyboardMarkup | None = None,
    parse_mode: str = 'HTML',
) -> Message | None:
    """
    Send a text message. target is a Message (reply) or a (chat_id, bot) tuple.
    Returns the sent message, or None if sending failed.
    """
    try:
        if hasattr(target, 'reply_text'):
            return await target.reply_text(text, reply_markup=reply_markup, parse_mode=parse_mode)  # type: ignore[union-attr]
        chat_id, bot = target
        return await bot.send_message(chat_id=chat_id, text=text, reply_markup=reply_markup, parse_mode=parse_mode)
    except Forbidden:
        logger.warning("Bot was blocked by user")
    except BadRequest as e:
        logger.warning(f"safe_send_text BadRequest: {e}")
    except (TimedOut, NetworkError) as e:
        logger.warning(f"safe_send_text network error: {e}")
    return None


async def safe_send_audio(message: Message, url: str, title: str | None = None) -> bool:
    """Send a pronunciation clip by URL. Missing or broken audio is not an error."""
    try:
        await message.reply_audio(audio=url, title=title)
        return True
    except Forbidden:
        logger.warning("Bot was blocked by user")
        return False
    except (BadRequest, TimedOut, NetworkError) as e:
        logger.warning(f"safe_send_audio failed for {url}: {e}")
        return False


async def _fallback_reply(
    query: CallbackQuery,
    text: str,
    reply_markup: InlineKeyboardMarkup | None,
    parse_mode: str = 'HTML',
) -> bool:
    try:
        await query.message.reply_text(text, reply_markup=reply_markup, parse_mode=parse_mode)
        return True
    except Exception as e:
        logger.warning(f"_fallback_reply also failed: {e}")
        return False
