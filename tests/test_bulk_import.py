"""
Tests for services/bulk_import.py. Lookups are plain functions, the pool runs under asyncio.run.
"""
import asyncio
import threading
import time

import pytest

import services.bulk_import as bulk_import
from services.bulk_import import DONE, ERROR, TIMEOUT, process_words
from services.dictionary import DictionaryError, WordNotFound


@pytest.fixture(autouse=True)
def no_retry_delay(monkeypatch):
    monkeypatch.setattr(bulk_import, 'RETRY_DELAY', 0)


def fake_lookup(word):
    return {'front': word, 'back': f'definition of {word}'}


def run(words, lookup=fake_lookup, **kwargs):
    return asyncio.run(process_words(words, lookup, **kwargs))


class TestProcessWords:
    def test_all_done_in_input_order(self):
        words = [f'word{i}' for i in range(10)]
        results = run(words, concurrency=3)
        assert [r['word'] for r in results] == words
        assert all(r['status'] == DONE for r in results)
        assert results[4]['content'] == {'front': 'word4', 'back': 'definition of word4'}

    def test_empty_input(self):
        assert run([]) == []

    def test_concurrency_is_bounded(self):
        active = 0
        peak = 0
        lock = threading.Lock()

        def slow_lookup(word):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.05)
            with lock:
                active -= 1
            return fake_lookup(word)

        run([str(i) for i in range(8)], slow_lookup, concurrency=2)
        assert peak <= 2

    def test_not_found_is_not_retried(self):
        calls = []

        def lookup(word):
            calls.append(word)
            raise WordNotFound(f'{word} not found')

        [result] = run(['qwzx'], lookup, retries=3)
        assert result['status'] == ERROR
        assert 'not found' in result['error']
        assert result['content'] is None
        assert calls == ['qwzx']

    def test_transient_error_retried(self):
        attempts = {'n': 0}

        def flaky(word):
            attempts['n'] += 1
            if attempts['n'] == 1:
                raise DictionaryError('HTTP 503')
            return fake_lookup(word)

        [result] = run(['casa'], flaky, retries=1)
        assert result['status'] == DONE
        assert attempts['n'] == 2

    def test_gives_up_after_retries(self):
        def broken(word):
            raise DictionaryError('HTTP 503')

        [result] = run(['casa'], broken, retries=2)
        assert result['status'] == ERROR
        assert result['error'] == 'HTTP 503'

    def test_timeout_only_costs_that_word(self):
        def lookup(word):
            if word == 'slow':
                time.sleep(0.5)
            return fake_lookup(word)

        results = run(['fast', 'slow', 'quick'], lookup, timeout=0.1, retries=0)
        assert [r['status'] for r in results] == [DONE, TIMEOUT, DONE]
        assert 'timed out' in results[1]['error']

    def test_on_result_called_per_word(self):
        seen = []
        run(['a', 'b', 'c'], on_result=seen.append)
        assert sorted(r['word'] for r in seen) == ['a', 'b', 'c']
