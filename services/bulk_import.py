"""
Dictionary-backed bulk import.

A fixed number of workers pull words from one shared queue. Each lookup runs
in a thread under its own timeout and is retried on its own, so a word that
hangs or fails only costs that word.
"""

import asyncio
import logging
from typing import Callable

from config import BULK_CONCURRENCY, BULK_ITEM_TIMEOUT
from services.dictionary import WordNotFound

logger = logging.getLogger(__name__)

DONE = 'done'
ERROR = 'error'
TIMEOUT = 'timeout'

DEFAULT_RETRIES = 1
RETRY_DELAY = 0.5


async def process_words(
    words: list[str],
    lookup: Callable[[str], dict],
    concurrency: int = BULK_CONCURRENCY,
    timeout: float = BULK_ITEM_TIMEOUT,
    retries: int = DEFAULT_RETRIES,
    on_result: Callable[[dict], None] | None = None,
) -> list[dict]:
    """
    Look up every word. Returns one result per word, in input order:
    {'word', 'status', 'content', 'error'}.
    """
    results: list[dict | None] = [None] * len(words)
    queue: asyncio.Queue = asyncio.Queue()
    for index, word in enumerate(words):
        queue.put_nowait((index, word))

    async def worker(worker_id: int):
        while True:
            try:
                index, word = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            result = await _process_one(word, lookup, timeout, retries)
            results[index] = result
            logger.info(f"[worker {worker_id}] {word!r}: {result['status']}")
            if on_result:
                on_result(result)
            queue.task_done()

    workers = max(1, min(concurrency, len(words)))
    await asyncio.gather(*(worker(i) for i in range(workers)))
    return results


async def _process_one(word: str, lookup, timeout: float, retries: int) -> dict:
    attempt = 0
    while True:
        try:
            content = await asyncio.wait_for(asyncio.to_thread(lookup, word), timeout=timeout)
            return {'word': word, 'status': DONE, 'content': content, 'error': None}
        except WordNotFound as e:
            return {'word': word, 'status': ERROR, 'content': None, 'error': str(e)}
        except asyncio.TimeoutError:
            status, error = TIMEOUT, f"timed out after {timeout:g}s"
        except Exception as e:
            status, error = ERROR, str(e)

        if attempt >= retries:
            logger.warning(f"Giving up on {word!r} after {attempt + 1} attempt(s): {error}")
            return {'word': word, 'status': status, 'content': None, 'error': error}
        attempt += 1
        await asyncio.sleep(RETRY_DELAY * attempt)
