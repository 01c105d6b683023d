import html

from telegram import InlineKeyboardButton

from utils.constants import CARD_SIDE_MAX


def parse_text(content: str) -> dict[str, str]:
    """
    "front | back", or front on the first line and back on the rest.
    returns: {'front': str, 'back': str}
    """
    text = content.strip()

    if '|' in text:
        parts = text.split('|', 1)
        return {'front': parts[0].strip()[:CARD_SIDE_MAX], 'back': parts[1].strip()[:CARD_SIDE_MAX]}

    if '\n' in text:
        lines = [l.strip() for l in text.split('\n') if l.strip()]
        if len(lines) >= 2:
            return {'front': lines[0][:CARD_SIDE_MAX], 'back': '\n'.join(lines[1:])[:CARD_SIDE_MAX]}

    return {'front': text[:CARD_SIDE_MAX], 'back': ''}


def parse_word_list(content: str) -> list[str]:
    """One word per line (commas work too). Duplicates dropped, order kept."""
    words = []
    seen = set()
    for line in content.replace(',', '\n').split('\n'):
        word = line.strip()
        if word and word.lower() not in seen:
            seen.add(word.lower())
            words.append(word)
    return words


def get_buttons(items: list[dict], prefix: str, id_key: str = 'deck_id') -> list[list[InlineKeyboardButton]]:
    buttons: list[list[InlineKeyboardButton]] = []
    for item in items:
        buttons.append([
            InlineKeyboardButton(
                item['name'],
                callback_data=f"{prefix}_{item[id_key]}"
            )
        ])
    return buttons


def callback_arg(data: str, prefix: str) -> str:
    """'deck_open_ab12' with prefix 'deck_open_' -> 'ab12'. Ids may contain underscores."""
    if not data.startswith(prefix):
        raise ValueError(f"{data!r} doesn't start with {prefix!r}")
    return data[len(prefix):]


def progress_bar(percent: int, width: int = 10) -> str:
    filled = round(max(0, min(100, percent)) / 100 * width)
    return '█' * filled + '░' * (width - filled)


def format_card(card: dict, show_back: bool = True) -> str:
    """HTML for a card. All user content is escaped."""
    lines = [f"<b>{html.escape(card['front'])}</b>"]
    if card.get('pronunciation'):
        lines[0] += f"  <i>{html.escape(card['pronunciation'])}</i>"
    if card.get('part_of_speech'):
        lines.append(f"<i>{html.escape(card['part_of_speech'])}</i>")
    if not show_back:
        return '\n'.join(lines)

    lines.append('')
    lines.append(html.escape(card.get('back') or ''))

    extra = [d for d in (card.get('definition') or []) if d != card.get('back')]
    for d in extra:
        lines.append(f"• {html.escape(d)}")
    for example in card.get('example_sentence_target') or []:
        lines.append(f"\U0001f4ac <i>{html.escape(example)}</i>")
    if card.get('notes'):
        lines.append(f"\U0001f4dd {html.escape(card['notes'])}")
    return '\n'.join(lines)
