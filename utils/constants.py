from enum import auto, IntEnum
from telegram import InlineKeyboardButton

DECK_NAME_MAX = 50
CARD_SIDE_MAX = 1000
DEFAULT_DECK_NAME = 'Default Deck'


class AddCardState(IntEnum):
    AWAITING_CONTENT = auto()
    AWAITING_DECK = auto()
    CREATING_DECK = auto()
    CONFIRMATION_PREVIEW = auto()


class ReviewState(IntEnum):
    SETUP = auto()
    SHOWING_FRONT = auto()
    RATING = auto()
    DECK_PICKER = auto()


class ManageState(IntEnum):
    EDIT_CARD_CONTENT = auto()
    EDIT_CARD_PREVIEW = auto()
    RENAME_DECK = auto()


class BulkState(IntEnum):
    AWAITING_WORDS = auto()


PREVIEW_BUTTONS = [
    [InlineKeyboardButton("✅ Save", callback_data='save_card')],
    [
        InlineKeyboardButton("✏️ Edit", callback_data='edit_card'),
        InlineKeyboardButton("\U0001f4c1 Deck", callback_data='change_deck'),
    ],
    [InlineKeyboardButton("✖ Cancel", callback_data='cancel')],
]
