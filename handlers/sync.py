import html
import logging
import re

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ContextTypes

import database.database as db
from sync.orchestrator import SyncStatus
from sync.remote import SyncError
from utils.telegram_helpers import safe_send_text

SYNC_KEY_PATTERN = re.compile(r'^[A-Za-z0-9_.:-]{4,64}$')

SYNC_STATUS_LABELS = {
    SyncStatus.IDLE: "☁️ Sync: idle",
    SyncStatus.PENDING: "⏳ Sync: pending",
    SyncStatus.SYNCING: "\U0001f504 Sync: syncing…",
    SyncStatus.SYNCED: "✅ Sync: up to date",
    SyncStatus.ERROR: "⚠️ Sync: failed",
}

_MENU = InlineKeyboardMarkup([[InlineKeyboardButton("\U0001f3e0 Menu", callback_data='main_menu')]])


def _registry(context: ContextTypes.DEFAULT_TYPE):
    return context.application.bot_data.get('sync')


def notify_change(context: ContextTypes.DEFAULT_TYPE, user_id: int) -> None:
    """Call after every local mutation; schedules a debounced sync if the account syncs."""
    registry = _registry(context)
    if registry:
        registry.notify_change(user_id)


def sync_status_line(context: ContextTypes.DEFAULT_TYPE, user_id: int) -> str | None:
    """One-line sync status for menus, or None when the account doesn't sync."""
    registry = _registry(context)
    orchestrator = registry.get(user_id) if registry else None
    if orchestrator is None:
        return None
    line = SYNC_STATUS_LABELS[orchestrator.status]
    if orchestrator.status is SyncStatus.ERROR and orchestrator.last_error:
        line += f" <i>({html.escape(orchestrator.last_error[:80])})</i>"
    return line


async def connect_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/connect <key>: turn on sync and merge local data with the cloud copy right away."""
    user_id = update.effective_user.id
    registry = _registry(context)

    if not registry or registry.store is None:
        await safe_send_text(update.message, "☁️ Cloud sync isn't configured on this bot.")
        return

    if not context.args or not SYNC_KEY_PATTERN.match(context.args[0]):
        await safe_send_text(
            update.message,
            "Usage: <code>/connect your-sync-key</code>\n\n"
            "<i>4–64 characters: letters, digits and <code>_ . : -</code>\n"
            "Use the same key on every device.</i>"
        )
        return

    sync_key = context.args[0]
    if db.get_user(user_id) is None:
        user = update.effective_user
        db.create_user(user_id, user.username, user.first_name)
    db.set_sync_key(user_id, sync_key)
    logging.info(f"User {user_id} connected sync")

    applied = await registry.get(user_id).sync_now()
    await safe_send_text(
        update.message,
        _result_text(context, user_id, applied, prefix=f"\U0001f517 Connected as <code>{html.escape(sync_key)}</code>\n\n"),
        reply_markup=_MENU,
    )


async def disconnect_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user_id = update.effective_user.id
    db.set_sync_key(user_id, None)
    registry = _registry(context)
    if registry:
        # Stops an upload still waiting on the old key
        await registry.drop(user_id)
    logging.info(f"User {user_id} disconnected sync")
    await safe_send_text(
        update.message,
        "\U0001f50c Sync turned off. Your cards stay on this device.",
        reply_markup=_MENU,
    )


async def sync_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/sync: push and pull now instead of waiting for the debounce."""
    user_id = update.effective_user.id
    registry = _registry(context)
    orchestrator = registry.get(user_id) if registry else None

    if orchestrator is None:
        await safe_send_text(
            update.message,
            "☁️ Sync is off. Turn it on with <code>/connect your-sync-key</code>"
        )
        return

    applied = await orchestrator.sync_now()
    await safe_send_text(update.message, _result_text(context, user_id, applied), reply_markup=_MENU)


async def restore_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/restore: replace everything on this device with the cloud copy."""
    user_id = update.effective_user.id
    registry = _registry(context)
    orchestrator = registry.get(user_id) if registry else None

    if orchestrator is None:
        await safe_send_text(
            update.message,
            "☁️ Sync is off. Turn it on with <code>/connect your-sync-key</code>"
        )
        return

    try:
        found = await orchestrator.load_from_cloud()
    except SyncError as e:
        await safe_send_text(
            update.message,
            f"⚠️ Couldn't load from the cloud: {html.escape(str(e))}\n<i>Nothing was changed here.</i>",
            reply_markup=_MENU,
        )
        return

    if not found:
        text = "☁️ Nothing stored in the cloud under this key yet."
    else:
        stats = db.get_card_stats(user_id)
        text = f"⬇️ Restored from the cloud: {stats['total']} cards"
    await safe_send_text(update.message, text, reply_markup=_MENU)


def _result_text(context, user_id: int, applied: bool, prefix: str = '') -> str:
    line = sync_status_line(context, user_id) or ''
    if _registry(context).status(user_id) is SyncStatus.ERROR:
        return f"{prefix}{line}\n\n<i>Your local data is untouched. Try /sync again later.</i>"
    detail = "Pulled changes from other devices." if applied else "Everything was already in sync."
    return f"{prefix}{line}\n\n<i>{detail}</i>"
