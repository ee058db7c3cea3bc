import datetime
from types import SimpleNamespace
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import nextcord

NOW = datetime.datetime(2024, 5, 1, 15, 0, tzinfo=datetime.timezone.utc)


def days_ago(days: float, now: datetime.datetime = NOW) -> datetime.datetime:
    return now - datetime.timedelta(days=days)


def http_error(cls=nextcord.HTTPException, status: int = 500, text: str = "error"):
    response = MagicMock(status=status, reason=text)
    return cls(response, text)


def make_message(message_id: int, created_at: datetime.datetime, author_id: int = 1, bot: bool = False):
    return SimpleNamespace(
        id=message_id,
        created_at=created_at,
        author=SimpleNamespace(id=author_id, bot=bot),
        delete=AsyncMock(),
    )


class FakeHistory:
    """Stands in for the history fetch: serves newest-first pages and records each request."""

    def __init__(self, messages: Optional[Dict[int, List]] = None, failures: Optional[Dict[int, Exception]] = None):
        self.messages = messages or {}
        self.failures = failures or {}
        self.calls = []

    async def __call__(self, container, before_message_id, limit):
        self.calls.append((container.id, before_message_id, limit))
        if container.id in self.failures:
            raise self.failures[container.id]
        newest_first = sorted(self.messages.get(container.id, []), key=lambda m: m.id, reverse=True)
        if before_message_id is not None:
            newest_first = [m for m in newest_first if m.id < before_message_id]
        return newest_first[:limit]

    def calls_for(self, container_id: int):
        return [call for call in self.calls if call[0] == container_id]
