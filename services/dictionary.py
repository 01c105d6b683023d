"""
Word lookups against public dictionary APIs.

Free Dictionary (dictionaryapi.dev) is tried first; Merriam-Webster's
collegiate API is the fallback when MW_API_KEY is configured.
"""

import logging
from urllib.parse import quote

import requests

from config import DICT_TIMEOUT, MW_API_KEY

logger = logging.getLogger(__name__)

FREE_DICT_API = "https://api.dictionaryapi.dev/api/v2/entries/en/{}"
MW_API = "https://www.dictionaryapi.com/api/v3/references/collegiate/json/{}"
MW_AUDIO = "https://media.merriam-webster.com/audio/prons/en/us/mp3/{}/{}.mp3"

MAX_DEFINITIONS = 3
MAX_EXAMPLES = 2


class DictionaryError(Exception):
    """Lookup failed: service down, bad response."""


class WordNotFound(DictionaryError):
    """The service answered, but doesn't know the word."""


def lookup_word(word: str, timeout: float = DICT_TIMEOUT) -> dict:
    """
    Card content for `word`: front, back, pronunciation, part_of_speech,
    definition, example_sentence_target, audio_src.
    """
    try:
        return fetch_free_dictionary(word, timeout)
    except DictionaryError as e:
        if not MW_API_KEY:
            raise
        logger.info(f"Free Dictionary failed for {word!r} ({e}), trying Merriam-Webster")
        return fetch_merriam_webster(word, timeout)


def fetch_free_dictionary(word: str, timeout: float = DICT_TIMEOUT) -> dict:
    data = _get_json(FREE_DICT_API.format(quote(word)), timeout=timeout)

    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        raise WordNotFound(f"{word!r} not found in Free Dictionary")

    entry = data[0]
    phonetics = entry.get('phonetics') or []

    pronunciation = entry.get('phonetic') or ''
    audio = ''
    for ph in phonetics:
        if ph.get('audio'):
            audio = ph['audio']
            if not pronunciation:
                pronunciation = ph.get('text', '')
            break

    part_of_speech = ''
    definitions: list[str] = []
    examples: list[str] = []
    for meaning in entry.get('meanings') or []:
        if not part_of_speech:
            part_of_speech = meaning.get('partOfSpeech') or ''
        for d in meaning.get('definitions') or []:
            if d.get('definition') and len(definitions) < MAX_DEFINITIONS:
                definitions.append(d['definition'])
            if d.get('example') and len(examples) < MAX_EXAMPLES:
                examples.append(d['example'])

    if not definitions:
        raise WordNotFound(f"No definitions for {word!r} in Free Dictionary")

    return _card_content(word, pronunciation, part_of_speech, definitions, examples, audio)


def fetch_merriam_webster(word: str, timeout: float = DICT_TIMEOUT) -> dict:
    data = _get_json(MW_API.format(quote(word)), params={'key': MW_API_KEY}, timeout=timeout)

    # Unknown words come back as a list of spelling suggestions (strings)
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        raise WordNotFound(f"{word!r} not found in Merriam-Webster")

    entry = data[0]
    prs = (entry.get('hwi') or {}).get('prs') or [{}]
    pronunciation = prs[0].get('mw', '')
    audio = _mw_audio_url((prs[0].get('sound') or {}).get('audio', ''))
    definitions = (entry.get('shortdef') or [])[:MAX_DEFINITIONS]

    if not definitions:
        raise WordNotFound(f"No definitions for {word!r} in Merriam-Webster")

    return _card_content(word, pronunciation, entry.get('fl', ''), definitions, [], audio)


def _mw_audio_url(audio: str) -> str:
    if not audio:
        return ''
    if audio.startswith('bix'):
        subdir = 'bix'
    elif audio.startswith('gg'):
        subdir = 'gg'
    elif audio[0].isdigit() or audio[0] == '_':
        subdir = 'number'
    else:
        subdir = audio[0]
    return MW_AUDIO.format(subdir, audio)


def _get_json(url: str, timeout: float, params: dict | None = None):
    try:
        r = requests.get(url, params=params, timeout=timeout)
    except requests.RequestException as e:
        raise DictionaryError(f"Dictionary request failed: {e}") from e

    if r.status_code == 404:
        raise WordNotFound("Word not found")
    if r.status_code != 200:
        raise DictionaryError(f"Dictionary returned HTTP {r.status_code}")

    try:
        return r.json()
    except ValueError as e:
        raise DictionaryError(f"Dictionary sent invalid JSON: {e}") from e


def _card_content(word, pronunciation, part_of_speech, definitions, examples, audio) -> dict:
    return {
        'front': word,
        'back': definitions[0],
        'pronunciation': pronunciation,
        'part_of_speech': part_of_speech,
        'definition': definitions,
        'example_sentence_target': examples,
        'audio_src': audio or None,
    }
