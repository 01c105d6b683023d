import logging

from telegram import BotCommand, Update
from telegram.error import BadRequest, Forbidden, TimedOut, NetworkError
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    MessageHandler,
    ConversationHandler,
    CallbackQueryHandler,
    ContextTypes,
    filters,
)

from config import TG_BOT_TOKEN, PROXY_URL, KV_REST_API_URL, KV_REST_API_TOKEN
from database.database import init_db
import handlers.bulk as hand_bulk
import handlers.cards as hand_card
import handlers.start as hand_start
import handlers.flow_handlers as hand_flow
import handlers.decks as hand_deck
import handlers.review as hand_review
import handlers.stats as hand_stats
import handlers.decks_menu as hand_decks_menu
import handlers.help as hand_help
import handlers.manage as hand_manage
import handlers.profile as hand_profile
import handlers.sync as hand_sync
from sync.orchestrator import SyncRegistry
from sync.remote import KVStore
from utils.constants import AddCardState, BulkState, ReviewState

COMMANDS = [
    BotCommand('start', 'Main menu'),
    BotCommand('review', 'Review due cards'),
    BotCommand('decks', 'My decks'),
    BotCommand('bulk', 'Import a word list'),
    BotCommand('stats', 'Progress and forecast'),
    BotCommand('profile', 'Your profile'),
    BotCommand('sync', 'Sync now'),
    BotCommand('help', 'How it works'),
]


async def post_init(application: Application) -> None:
    if KV_REST_API_URL and KV_REST_API_TOKEN:
        store = KVStore(KV_REST_API_URL, KV_REST_API_TOKEN)
        logging.info(f"Cloud sync enabled ({KV_REST_API_URL})")
    else:
        store = None
        logging.info("Cloud sync disabled: KV_REST_API_URL / KV_REST_API_TOKEN not set")
    application.bot_data['sync'] = SyncRegistry(store)

    await application.bot.set_my_commands(COMMANDS)


async def post_shutdown(application: Application) -> None:
    registry = application.bot_data.get('sync')
    if registry:
        await registry.close()


def main() -> None:
    logging.info("Running main")

    builder = ApplicationBuilder().token(TG_BOT_TOKEN).post_init(post_init).post_shutdown(post_shutdown)
    if PROXY_URL:
        builder = builder.proxy(PROXY_URL).get_updates_proxy(PROXY_URL)
    application = builder.build()

    # Add Card conversation
    add_card_handler = ConversationHandler(
        entry_points=[
            CallbackQueryHandler(hand_card.add_card_entry, pattern='^add_card$')
        ],
        per_message=False,

        states={
            AddCardState.AWAITING_CONTENT: [
                CallbackQueryHandler(hand_flow.menu_exit, pattern='^main_menu$'),
                CallbackQueryHandler(hand_card.change_deck, pattern='^change_deck$'),
                MessageHandler(filters.TEXT & ~filters.COMMAND, hand_flow.get_content),
            ],

            AddCardState.AWAITING_DECK: [
                CallbackQueryHandler(hand_deck.selected_deck, pattern=r'^pick_deck_.+$'),
                CallbackQueryHandler(hand_deck.create_new_deck, pattern='^new_deck$'),
                CallbackQueryHandler(hand_flow.back_to_content, pattern='^back$'),
                CallbackQueryHandler(hand_flow.cancel, pattern='^cancel$'),
            ],

            AddCardState.CREATING_DECK: [
                MessageHandler(filters.TEXT & ~filters.COMMAND, hand_deck.create_deck)
            ],

            AddCardState.CONFIRMATION_PREVIEW: [
                CallbackQueryHandler(hand_card.save_card, pattern='^save_card$'),
                CallbackQueryHandler(hand_card.edit_card, pattern='^edit_card$'),
                CallbackQueryHandler(hand_card.change_deck, pattern='^change_deck$'),
                CallbackQueryHandler(hand_flow.cancel, pattern='^cancel$'),
            ]
        },

        fallbacks=[CommandHandler('cancel', hand_flow.cancel), CommandHandler('start', hand_start.force_start)]
    )

    # Review conversation
    review_handler = ConversationHandler(
        entry_points=[
            CallbackQueryHandler(hand_review.review_entry, pattern='^review$')
        ],
        per_message=False,

        states={
            ReviewState.SETUP: [
                CallbackQueryHandler(hand_review.review_option, pattern=r'^review_(filter|limit|mode)_.+$'),
                CallbackQueryHandler(hand_review.review_start, pattern='^review_start$'),
                CallbackQueryHandler(hand_review.cancel_review, pattern='^cancel_review$'),
            ],

            ReviewState.DECK_PICKER: [
                CallbackQueryHandler(hand_review.review_deck_selected, pattern=r'^review_deck_.+$'),
                CallbackQueryHandler(hand_review.review_all_decks, pattern='^review_all$'),
            ],

            ReviewState.SHOWING_FRONT: [
                CallbackQueryHandler(hand_review.show_answer, pattern='^show_answer$'),
                CallbackQueryHandler(hand_review.cancel_review, pattern='^cancel_review$'),
                MessageHandler(filters.TEXT & ~filters.COMMAND, hand_review.type_answer),
            ],

            ReviewState.RATING: [
                CallbackQueryHandler(hand_review.rate_card, pattern='^rate_(AGAIN|GOOD|EASY)$'),
                CallbackQueryHandler(hand_review.play_audio, pattern='^review_audio$'),
                CallbackQueryHandler(hand_review.cancel_review, pattern='^cancel_review$'),
            ],
        },

        fallbacks=[CommandHandler('cancel', hand_review.cancel_review), CommandHandler('start', hand_start.force_start)]
    )

    # Bulk import conversation
    bulk_handler = ConversationHandler(
        entry_points=[CommandHandler('bulk', hand_bulk.bulk_command)],
        per_message=False,
        states={
            BulkState.AWAITING_WORDS: [
                MessageHandler(filters.TEXT & ~filters.COMMAND, hand_bulk.receive_words),
            ],
        },
        fallbacks=[CommandHandler('cancel', hand_bulk.cancel_bulk), CommandHandler('start', hand_start.force_start)],
    )

    application.add_handler(CommandHandler('start', hand_start.start))
    application.add_handler(add_card_handler)
    application.add_handler(review_handler)
    application.add_handler(bulk_handler)
    application.add_handler(hand_manage.edit_card_handler)
    application.add_handler(hand_manage.rename_deck_handler)

    # Slash commands
    application.add_handler(CommandHandler('review', hand_review.review_command))
    application.add_handler(CommandHandler('stats', hand_stats.stats_command))
    application.add_handler(CommandHandler('decks', hand_decks_menu.decks_command))
    application.add_handler(CommandHandler('help', hand_help.help_command))
    application.add_handler(CommandHandler('clear', hand_start.clear_command))
    application.add_handler(CommandHandler('profile', hand_profile.profile_command))
    application.add_handler(CommandHandler('name', hand_profile.name_command))
    application.add_handler(CommandHandler('bio', hand_profile.bio_command))

    # Cloud sync
    application.add_handler(CommandHandler('connect', hand_sync.connect_command))
    application.add_handler(CommandHandler('disconnect', hand_sync.disconnect_command))
    application.add_handler(CommandHandler('sync', hand_sync.sync_command))
    application.add_handler(CommandHandler('restore', hand_sync.restore_command))

    # Standalone callback handlers
    application.add_handler(CallbackQueryHandler(hand_start.main_menu, pattern='^main_menu$'))
    application.add_handler(CallbackQueryHandler(hand_stats.stats_entry, pattern='^stats$'))
    application.add_handler(CallbackQueryHandler(hand_help.help_entry, pattern='^help$'))

    # My Decks
    application.add_handler(CallbackQueryHandler(hand_decks_menu.my_decks_entry, pattern='^my_decks$'))
    application.add_handler(CallbackQueryHandler(hand_decks_menu.decks_page, pattern=r'^decks_page_\d+$'))

    # Manage: deck detail & card actions
    application.add_handler(CallbackQueryHandler(hand_manage.deck_open, pattern=r'^deck_open_.+$'))
    application.add_handler(CallbackQueryHandler(hand_manage.deck_cards_page, pattern=r'^deck_page_\d+$'))
    application.add_handler(CallbackQueryHandler(hand_manage.card_info, pattern=r'^card_info_.+$'))
    application.add_handler(CallbackQueryHandler(hand_manage.card_delete_confirm, pattern=r'^card_delete_.+$'))
    application.add_handler(CallbackQueryHandler(hand_manage.card_delete_yes, pattern=r'^confirm_card_delete_.+$'))
    application.add_handler(CallbackQueryHandler(hand_manage.deck_delete_confirm, pattern=r'^deck_delete_.+$'))
    application.add_handler(CallbackQueryHandler(hand_manage.deck_delete_yes, pattern=r'^confirm_deck_delete_.+$'))

    application.add_error_handler(error_handler)
    application.run_polling()


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
    """Global error handler: logs the error and tries to notify the user."""
    error = context.error
    logging.error(f"Update {update} caused error: {error}", exc_info=error)

    if isinstance(error, Forbidden):
        logging.warning(f"Bot was blocked by user: {error}")
        return

    if isinstance(error, (TimedOut, NetworkError)):
        logging.warning(f"Network issue: {error}")
        return

    if isinstance(error, BadRequest):
        msg = str(error).lower()
        if "message is not modified" in msg:
            # Same button tapped twice
            return
        if "message to edit not found" in msg or "message to delete not found" in msg:
            return
        logging.warning(f"Bad request: {error}")

    if isinstance(update, Update) and update.effective_chat:
        try:
            await context.bot.send_message(
                chat_id=update.effective_chat.id,
                text="⚠️ Something went wrong. Try /start to reset."
            )
        except Exception as e:
            logging.warning(f"Couldn't notify user about the error: {e}")


if __name__ == '__main__':
    logging.info("Init db...")
    init_db()

    logging.info("Starting app")
    main()
