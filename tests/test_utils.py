"""
Tests for utils/utils.py: text parsing, callback ids and card rendering (no Telegram I/O).
"""
import pytest

from utils.constants import CARD_SIDE_MAX
from utils.utils import callback_arg, format_card, get_buttons, parse_text, parse_word_list, progress_bar


class TestParseText:
    # ── Pipe separator ────────────────────────────────────────

    def test_pipe_basic(self):
        r = parse_text("hablar | to speak")
        assert r['front'] == 'hablar'
        assert r['back'] == 'to speak'

    def test_pipe_strips_whitespace(self):
        r = parse_text("  hablar  |  to speak  ")
        assert r['front'] == 'hablar'
        assert r['back'] == 'to speak'

    def test_pipe_splits_on_first_only(self):
        r = parse_text("a | b | c")
        assert r['front'] == 'a'
        assert r['back'] == 'b | c'

    def test_pipe_empty_back(self):
        r = parse_text("front |")
        assert r['front'] == 'front'
        assert r['back'] == ''

    # ── Newline separator ─────────────────────────────────────

    def test_two_lines(self):
        r = parse_text("casa\nhouse")
        assert r == {'front': 'casa', 'back': 'house'}

    def test_multiline_back_kept(self):
        r = parse_text("casa\n\nhouse\nhome")
        assert r['front'] == 'casa'
        assert r['back'] == 'house\nhome'

    # ── Single value ──────────────────────────────────────────

    def test_single_word_has_empty_back(self):
        assert parse_text("  serendipity ") == {'front': 'serendipity', 'back': ''}

    def test_sides_truncated(self):
        r = parse_text('a' * (CARD_SIDE_MAX + 10) + '|' + 'b' * (CARD_SIDE_MAX + 10))
        assert len(r['front']) == CARD_SIDE_MAX
        assert len(r['back']) == CARD_SIDE_MAX


class TestParseWordList:
    def test_lines_and_commas(self):
        assert parse_word_list("apple\nbanana, cherry\n\n") == ['apple', 'banana', 'cherry']

    def test_duplicates_dropped_case_insensitive(self):
        assert parse_word_list("Apple\napple\nAPPLE\npear") == ['Apple', 'pear']

    def test_empty(self):
        assert parse_word_list("  \n , ") == []


class TestCallbacks:
    def test_callback_arg(self):
        assert callback_arg('deck_open_ab12', 'deck_open_') == 'ab12'

    def test_id_with_underscores(self):
        assert callback_arg('card_info_a_b_c', 'card_info_') == 'a_b_c'

    def test_wrong_prefix(self):
        with pytest.raises(ValueError):
            callback_arg('deck_open_ab12', 'card_info_')

    def test_get_buttons(self):
        rows = get_buttons([{'deck_id': 'd1', 'name': 'Verbs'}, {'deck_id': 'd2', 'name': 'Nouns'}], 'pick_deck')
        assert [r[0].text for r in rows] == ['Verbs', 'Nouns']
        assert rows[0][0].callback_data == 'pick_deck_d1'
        assert callback_arg(rows[1][0].callback_data, 'pick_deck_') == 'd2'


class TestProgressBar:
    @pytest.mark.parametrize('percent, filled', [(0, 0), (50, 5), (100, 10), (-5, 0), (250, 10)])
    def test_fill(self, percent, filled):
        bar = progress_bar(percent)
        assert len(bar) == 10
        assert bar.count('█') == filled


class TestFormatCard:
    CARD = {
        'front': 'casa',
        'back': 'house',
        'pronunciation': 'ˈkasa',
        'part_of_speech': 'noun',
        'definition': ['house', 'home'],
        'example_sentence_target': ['Mi casa es su casa.'],
        'notes': None,
    }

    def test_front_only(self):
        text = format_card(self.CARD, show_back=False)
        assert '<b>casa</b>' in text
        assert 'noun' in text
        assert 'house' not in text

    def test_full_card(self):
        text = format_card(self.CARD)
        assert 'house' in text
        assert '• home' in text
        assert '• house' not in text
        assert 'Mi casa es su casa.' in text

    def test_user_content_escaped(self):
        text = format_card({'front': '<script>', 'back': 'a & b', 'notes': '<b>'})
        assert '&lt;script&gt;' in text
        assert 'a &amp; b' in text
        assert '<script>' not in text
