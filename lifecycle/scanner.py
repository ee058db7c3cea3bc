import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional

import nextcord

from lifecycle.errors import PageFetchError

logger = logging.getLogger("history_scanner")

# Discord returns at most 100 messages per history request.
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = MAX_PAGE_SIZE

FetchPage = Callable[[Any, Optional[int], int], Awaitable[List[Any]]]
MessagePredicate = Callable[[Any], bool]


@dataclass(frozen=True)
class StopCondition:
    """When a scan should stop early. Both fields unset means "read until exhausted"."""
    time_cutoff: Optional[datetime] = None
    count_limit: Optional[int] = None

    def crossed_cutoff(self, created_at: datetime) -> bool:
        return self.time_cutoff is not None and created_at < self.time_cutoff

    def limit_reached(self, yielded: int) -> bool:
        return self.count_limit is not None and yielded >= self.count_limit


@dataclass
class ScanCursor:
    container_id: int
    before_message_id: Optional[int] = None
    page_size: int = DEFAULT_PAGE_SIZE


async def fetch_history_page(container, before_message_id: Optional[int], limit: int) -> List[nextcord.Message]:
    """Fetches one page of history, newest first, strictly before the given message id."""
    before = nextcord.Object(id=before_message_id) if before_message_id else None
    return [message async for message in container.history(limit=limit, before=before)]


class HistoryScanner:
    """Walks a channel or thread history backwards, one page at a time.

    The scanner holds a single page in memory and yields messages newest-first.
    A failed page fetch is never retried: it surfaces as PageFetchError so the
    caller can move on to its next container.
    """

    def __init__(self, fetch_page: FetchPage = fetch_history_page):
        self._fetch_page = fetch_page

    async def scan(self, container, stop: Optional[StopCondition] = None,
                   page_size: int = DEFAULT_PAGE_SIZE,
                   match: Optional[MessagePredicate] = None) -> AsyncIterator[Any]:
        """Yields messages of `container` newest-first until a stop condition holds.

        `match` filters what is yielded (and what counts toward `count_limit`);
        every scanned message is still checked against `time_cutoff`.
        """
        if not 0 < page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")
        stop = stop or StopCondition()
        if stop.limit_reached(0):
            return

        cursor = ScanCursor(container_id=container.id, page_size=page_size)
        yielded = 0
        pages = 0
        while True:
            try:
                page = await self._fetch_page(container, cursor.before_message_id, cursor.page_size)
            except nextcord.HTTPException as e:
                raise PageFetchError(cursor.container_id, cursor.before_message_id, e) from e
            pages += 1

            if not page:
                logger.debug(f"History of {cursor.container_id} exhausted after {pages} page(s).")
                return

            for message in page:
                if stop.crossed_cutoff(message.created_at):
                    logger.debug(f"Scan of {cursor.container_id} reached time cutoff at message {message.id}.")
                    return
                if match is not None and not match(message):
                    continue
                yield message
                yielded += 1
                if stop.limit_reached(yielded):
                    logger.debug(f"Scan of {cursor.container_id} reached count limit of {stop.count_limit}.")
                    return

            # A short page means there is nothing older left to request.
            if len(page) < cursor.page_size:
                logger.debug(f"History of {cursor.container_id} exhausted after {pages} page(s) (short page).")
                return
            cursor.before_message_id = page[-1].id
