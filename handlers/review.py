import html
import logging
from collections import defaultdict
from typing import Any

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, CallbackQuery
from telegram.ext import ContextTypes, ConversationHandler

import database.database as db
from handlers.stats import progress_notes
from handlers.sync import notify_change
from services.progress import (
    check_streak_bonus, record_review, refresh_achievements, refresh_daily_goals, update_goal_progress,
)
from services.study import (
    ALL_CARDS, ALL_DUE, FLIP, NEW, REVIEW, TYPE, build_session, check_typed_answer,
)
from utils.constants import ReviewState
from utils.dates import to_iso, utc_now
from utils.goals import ALL_GOALS_BONUS, STUDY, format_goals
from utils.srs import AGAIN, EASY, GOOD, format_interval, schedule_all_ratings
from utils.telegram_helpers import safe_edit_text, safe_send_audio, safe_send_text
from utils.utils import callback_arg, format_card

# A card rated AGAIN comes back this many positions later in the same session
AGAIN_REQUEUE_OFFSET = 5

FILTER_LABELS = {ALL_DUE: "All due", NEW: "New", REVIEW: "Review", ALL_CARDS: "All cards"}
LIMIT_CHOICES = (0, 10, 20, 50)
MODE_LABELS = {FLIP: "\U0001f504 Flip", TYPE: "⌨️ Type"}

DEFAULT_OPTIONS = {'filter': ALL_DUE, 'limit': 0, 'mode': FLIP}

_REVIEW_KEYS = (
    'review_queue', 'review_index', 'review_correct', 'review_total',
    'review_cards', 'review_start_level', 'review_bonus', 'review_earned',
    'review_options', 'review_skipped', 'review_goals_awarded',
)


async def review_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Entry point: user clicks 'Review'. Shows the session setup."""
    query = update.callback_query
    await query.answer()

    if not db.get_study_cards(update.effective_user.id):
        await safe_edit_text(
            query,
            "\U0001f4ed No cards yet. Add a few first!",
            reply_markup=InlineKeyboardMarkup([
                [InlineKeyboardButton("\U0001f4dd New Card", callback_data='add_card'),
                 InlineKeyboardButton("\U0001f3e0 Menu", callback_data='main_menu')]
            ])
        )
        return ConversationHandler.END

    context.user_data.setdefault('review_options', dict(DEFAULT_OPTIONS))
    await _show_setup(query, context)
    return ReviewState.SETUP


async def review_option(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Setup screen: change the filter, the limit or the mode."""
    query = update.callback_query
    await query.answer()

    options = context.user_data.setdefault('review_options', dict(DEFAULT_OPTIONS))
    if query.data.startswith('review_filter_'):
        value = callback_arg(query.data, 'review_filter_')
        if value in FILTER_LABELS:
            options['filter'] = value
    elif query.data.startswith('review_limit_'):
        value = callback_arg(query.data, 'review_limit_')
        if value.isdigit() and int(value) in LIMIT_CHOICES:
            options['limit'] = int(value)
    elif query.data.startswith('review_mode_'):
        value = callback_arg(query.data, 'review_mode_')
        if value in MODE_LABELS:
            options['mode'] = value

    await _show_setup(query, context)
    return ReviewState.SETUP


async def review_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Build the session from the chosen options; ask for a deck when it spans several."""
    query = update.callback_query
    await query.answer()

    user_id = update.effective_user.id
    options = context.user_data.setdefault('review_options', dict(DEFAULT_OPTIONS))
    cards = build_session(user_id, card_filter=options['filter'])

    if not cards:
        await _show_setup(query, context, note="No cards match these options.")
        return ReviewState.SETUP

    deck_counts: dict[str, int] = defaultdict(int)
    for card in cards:
        deck_counts[card['deck_id']] += 1

    if len(deck_counts) > 1:
        # Keep every matching card; the picker filters
        context.user_data['review_cards'] = cards
        names = {d['deck_id']: d['name'] for d in db.get_all_decks(user_id)}

        picker_buttons: list[list[InlineKeyboardButton]] = []
        for deck_id, count in deck_counts.items():
            picker_buttons.append([InlineKeyboardButton(
                f"\U0001f4da {names.get(deck_id, 'Unsorted')}  ·  {count}",
                callback_data=f'review_deck_{deck_id}',
            )])
        picker_buttons.append([InlineKeyboardButton(
            f"▶ All decks · {len(cards)}",
            callback_data='review_all',
        )])

        total = len(cards)
        await safe_edit_text(
            query,
            f"\U0001f9e0 {total} card{'s' if total != 1 else ''} to study\n\nChoose a deck:",
            reply_markup=InlineKeyboardMarkup(picker_buttons),
        )
        return ReviewState.DECK_PICKER

    return await _start_review(query, _limited(cards, options), context)


async def review_deck_selected(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """User picked a specific deck from the picker."""
    query = update.callback_query
    await query.answer()

    deck_id = callback_arg(query.data, 'review_deck_')
    all_cards = context.user_data.get('review_cards', [])
    filtered = [c for c in all_cards if c['deck_id'] == deck_id]

    return await _start_review(query, _limited(filtered, context.user_data.get('review_options')), context)


async def review_all_decks(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """User picked 'All decks' from the picker."""
    query = update.callback_query
    await query.answer()

    cards = context.user_data.get('review_cards', [])
    return await _start_review(query, _limited(cards, context.user_data.get('review_options')), context)


async def review_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/review slash command: sends a message with a Review button."""
    count = len(db.get_due_cards(update.effective_user.id))

    if count == 0:
        text = "✨ Nothing due. You're all caught up!"
        label = '\U0001f4da Study anyway'
    else:
        text = f"\U0001f9e0 {count} card{'s' if count != 1 else ''} due"
        label = '▶ Review'

    await safe_send_text(
        update.message,
        text,
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton(label, callback_data='review')]
        ]),
    )


async def show_answer(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """User taps 'Show answer': reveal the back and the rating buttons."""
    query = update.callback_query
    await query.answer()

    queue = context.user_data.get('review_queue', [])
    index = context.user_data.get('review_index', 0)

    if index >= len(queue):
        return await _finish_review(query, context)

    card = queue[index]
    text = f"{format_card(card)}\n\n{_progress_label(index, len(queue))}"
    await safe_edit_text(query, text, reply_markup=InlineKeyboardMarkup(_build_rating_buttons(card)))

    return ReviewState.RATING


async def type_answer(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Type mode: check the typed answer, then reveal the card for rating."""
    queue = context.user_data.get('review_queue', [])
    index = context.user_data.get('review_index', 0)
    if index >= len(queue):
        return ReviewState.SHOWING_FRONT

    options = context.user_data.get('review_options') or DEFAULT_OPTIONS
    if options.get('mode') != TYPE:
        await safe_send_text(update.message, "<i>Tap \U0001f440 Show answer to flip the card.</i>")
        return ReviewState.SHOWING_FRONT

    card = queue[index]
    typed = update.message.text or ''
    if check_typed_answer(card.get('back') or '', typed):
        verdict = "✅ <b>Correct!</b>"
    else:
        verdict = f"❌ <b>Not quite.</b> You wrote: <i>{html.escape(typed.strip()[:200])}</i>"

    await safe_send_text(
        update.message,
        f"{verdict}\n\n{format_card(card)}\n\n{_progress_label(index, len(queue))}",
        reply_markup=InlineKeyboardMarkup(_build_rating_buttons(card)),
    )
    return ReviewState.RATING


async def play_audio(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    queue = context.user_data.get('review_queue', [])
    index = context.user_data.get('review_index', 0)
    if index < len(queue) and queue[index].get('audio_src'):
        await safe_send_audio(query.message, queue[index]['audio_src'], title=queue[index]['front'])

    return ReviewState.RATING


async def rate_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """User rates a card: update SRS, log the review, move to the next card."""
    query = update.callback_query
    await query.answer()

    rating = callback_arg(query.data, 'rate_')
    user_id = update.effective_user.id

    queue = context.user_data.get('review_queue', [])
    index = context.user_data.get('review_index', 0)

    if index >= len(queue):
        return await _finish_review(query, context)

    card_id = queue[index]['card_id']
    updated = record_review(user_id, queue[index], rating)

    if updated is None:
        # Deleted or moved to a deleted deck since the session started
        queue[index:] = [c for c in queue[index:] if c['card_id'] != card_id]
        context.user_data['review_skipped'] = context.user_data.get('review_skipped', 0) + 1
        if index >= len(queue):
            return await _finish_review(query, context)
        await _show_front(query, context)
        return ReviewState.SHOWING_FRONT

    update_goal_progress(user_id, STUDY, 1)
    context.user_data['review_bonus'] = context.user_data.get('review_bonus', 0) + check_streak_bonus(user_id)
    context.user_data.setdefault('review_earned', []).extend(refresh_achievements(user_id))
    notify_change(context, user_id)

    if rating == AGAIN:
        queue.insert(min(index + AGAIN_REQUEUE_OFFSET, len(queue)), updated)
    else:
        context.user_data['review_correct'] = context.user_data.get('review_correct', 0) + 1

    logging.info(f"Card {updated['card_id']}: rated {rating}, next due {updated['due_date']}")

    context.user_data['review_index'] = index + 1

    if index + 1 >= len(queue):
        return await _finish_review(query, context)

    await _show_front(query, context)
    return ReviewState.SHOWING_FRONT


async def cancel_review(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """User cancels mid-review. Works for both callback button and /cancel command."""
    reviewed = context.user_data.get('review_index', 0)
    _cleanup_review_data(context)

    text = f"⏹ Stopped after {reviewed} card{'s' if reviewed != 1 else ''}"
    markup = InlineKeyboardMarkup([
        [InlineKeyboardButton("\U0001f3e0 Menu", callback_data='main_menu')]
    ])

    if update.callback_query:
        await update.callback_query.answer()
        await safe_edit_text(update.callback_query, text, reply_markup=markup)
    else:
        await safe_send_text(update.message, text, reply_markup=markup)

    return ConversationHandler.END


# ============================================================
# Private helpers
# ============================================================

def _limited(cards: list[dict[str, Any]], options: dict | None) -> list[dict[str, Any]]:
    limit = (options or DEFAULT_OPTIONS).get('limit') or 0
    return cards[:limit] if limit > 0 else cards


def _choice_row(prefix: str, labels: dict, selected) -> list[InlineKeyboardButton]:
    return [
        InlineKeyboardButton(f"• {label}" if value == selected else label, callback_data=f'{prefix}{value}')
        for value, label in labels.items()
    ]


async def _show_setup(query: CallbackQuery, context: ContextTypes.DEFAULT_TYPE, note: str = '') -> None:
    """Session options: which cards, how many, flip or type."""
    options = context.user_data['review_options']
    cards = db.get_study_cards(query.from_user.id)
    now_iso = to_iso(utc_now())
    due = sum(1 for c in cards if c['due_date'] <= now_iso)
    new = sum(1 for c in cards if c['repetition'] == 0)

    text = (
        f"\U0001f9e0 <b>Study session</b>\n\n"
        f"{due} due · {new} new · {len(cards)} cards\n\n"
        f"<i>Pick what to study, how many and how, then start.</i>"
    )
    if note:
        text += f"\n\n⚠️ {note}"

    limit_labels = {n: (str(n) if n else "No limit") for n in LIMIT_CHOICES}
    markup = InlineKeyboardMarkup([
        _choice_row('review_filter_', FILTER_LABELS, options['filter']),
        _choice_row('review_limit_', limit_labels, options['limit']),
        _choice_row('review_mode_', MODE_LABELS, options['mode']),
        [
            InlineKeyboardButton("▶ Start", callback_data='review_start'),
            InlineKeyboardButton("✖ Cancel", callback_data='cancel_review'),
        ],
    ])
    await safe_edit_text(query, text, reply_markup=markup)


async def _start_review(
    query: CallbackQuery,
    cards: list[dict[str, Any]],
    context: ContextTypes.DEFAULT_TYPE,
) -> int:
    """Set up review state and show the first card."""
    user_id = query.from_user.id
    context.user_data.pop('review_cards', None)
    context.user_data['review_queue'] = list(cards)
    context.user_data['review_index'] = 0
    context.user_data['review_correct'] = 0
    context.user_data['review_total'] = len(cards)
    context.user_data['review_skipped'] = 0
    context.user_data['review_start_level'] = db.get_profile(user_id)['level']
    context.user_data['review_goals_awarded'] = refresh_daily_goals(user_id)['allCompleteAwarded']
    context.user_data['review_bonus'] = 0
    context.user_data['review_earned'] = []

    await _show_front(query, context)
    return ReviewState.SHOWING_FRONT


def _progress_label(index: int, total: int) -> str:
    return f"<i>{index + 1}/{total}</i>"


async def _show_front(query: CallbackQuery, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Show the front of the current card, editing the message in place."""
    queue = context.user_data.get('review_queue', [])
    index = context.user_data.get('review_index', 0)
    card = queue[index]
    options = context.user_data.get('review_options') or DEFAULT_OPTIONS

    buttons = InlineKeyboardMarkup([
        [InlineKeyboardButton("\U0001f440 Show answer", callback_data='show_answer')],
        [InlineKeyboardButton("⏹ Stop", callback_data='cancel_review')]
    ])

    text = f"{format_card(card, show_back=False)}\n\n{_progress_label(index, len(queue))}"
    if options.get('mode') == TYPE:
        text += "\n⌨️ <i>Type the answer</i>"
    await safe_edit_text(query, text, reply_markup=buttons)


def _build_rating_buttons(card: dict[str, Any]) -> list[list[InlineKeyboardButton]]:
    """Rating buttons with interval previews (single schedule pass)."""
    results = schedule_all_ratings(card)
    buttons = [[
        InlineKeyboardButton(
            f"\U0001f534 Again {format_interval(results[AGAIN]['interval'])}",
            callback_data=f'rate_{AGAIN}'
        ),
        InlineKeyboardButton(
            f"\U0001f7e2 Good {format_interval(results[GOOD]['interval'])}",
            callback_data=f'rate_{GOOD}'
        ),
        InlineKeyboardButton(
            f"\U0001f535 Easy {format_interval(results[EASY]['interval'])}",
            callback_data=f'rate_{EASY}'
        ),
    ]]
    if card.get('audio_src'):
        buttons.append([InlineKeyboardButton("\U0001f50a Listen", callback_data='review_audio')])
    return buttons


async def _finish_review(query: CallbackQuery, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Show review summary and end conversation."""
    user_id = query.from_user.id
    total = context.user_data.get('review_total', 0)
    correct = context.user_data.get('review_correct', 0)
    skipped = context.user_data.get('review_skipped', 0)
    bonus = context.user_data.get('review_bonus', 0)
    start_level = context.user_data.get('review_start_level', 1)
    goals_awarded = context.user_data.get('review_goals_awarded', False)
    earned = context.user_data.get('review_earned', [])

    _cleanup_review_data(context)

    text = f"\U0001f389 Done! {correct}/{total - skipped} recalled"
    if skipped:
        text += f"\n<i>{skipped} card{'s' if skipped != 1 else ''} skipped: deleted on another device</i>"
    if bonus:
        text += f"\n\U0001f525 Streak bonus: +{bonus} XP"

    goals = refresh_daily_goals(user_id)
    text += f"\n\n\U0001f3af Today's goals\n{format_goals(goals)}"
    if goals['allCompleteAwarded'] and not goals_awarded:
        text += f"\n✨ All goals complete! +{ALL_GOALS_BONUS} XP"
    text += progress_notes(user_id, db.get_profile(user_id)['level'] > start_level, earned)

    markup = InlineKeyboardMarkup([
        [InlineKeyboardButton("\U0001f4dd New Card", callback_data='add_card'),
         InlineKeyboardButton("\U0001f3e0 Menu", callback_data='main_menu')]
    ])

    await safe_edit_text(query, text, reply_markup=markup)

    return ConversationHandler.END


def _cleanup_review_data(context: ContextTypes.DEFAULT_TYPE) -> None:
    for key in _REVIEW_KEYS:
        context.user_data.pop(key, None)
