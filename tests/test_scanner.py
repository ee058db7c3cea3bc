from types import SimpleNamespace

import nextcord
import pytest

from lifecycle.errors import PageFetchError
from lifecycle.scanner import HistoryScanner, StopCondition, fetch_history_page
from tests.fakes import NOW, FakeHistory, days_ago, http_error, make_message

CHANNEL_A = SimpleNamespace(id=100)
CHANNEL_B = SimpleNamespace(id=200)


def numbered_messages(count, author_id=1):
    # Higher id == newer, one hour apart.
    return [make_message(i, days_ago((count - i) / 24), author_id=author_id) for i in range(1, count + 1)]


async def collect(iterator):
    return [item async for item in iterator]


@pytest.mark.asyncio
async def test_pages_backwards_using_oldest_id_as_cursor():
    history = FakeHistory({CHANNEL_A.id: numbered_messages(250)})
    scanner = HistoryScanner(fetch_page=history)

    items = await collect(scanner.scan(CHANNEL_A))

    assert [m.id for m in items] == list(range(250, 0, -1))
    # The third page is short (50 < 100), so no fourth request is made.
    assert history.calls == [(100, None, 100), (100, 151, 100), (100, 51, 100)]


@pytest.mark.asyncio
async def test_stops_on_empty_page_when_history_is_an_exact_multiple():
    history = FakeHistory({CHANNEL_A.id: numbered_messages(200)})
    scanner = HistoryScanner(fetch_page=history)

    items = await collect(scanner.scan(CHANNEL_A))

    assert len(items) == 200
    assert len({m.id for m in items}) == 200
    assert history.calls[-1] == (100, 1, 100)
    assert len(history.calls) == 3


@pytest.mark.asyncio
async def test_count_limit_counts_only_matching_items():
    messages = [make_message(i, days_ago(10 - i), author_id=7 if i % 2 else 8) for i in range(1, 10)]
    history = FakeHistory({CHANNEL_A.id: messages})
    scanner = HistoryScanner(fetch_page=history)

    items = await collect(scanner.scan(CHANNEL_A, stop=StopCondition(count_limit=2), page_size=3,
                                       match=lambda m: m.author.id == 7))

    assert [m.id for m in items] == [9, 7]
    assert all(m.author.id == 7 for m in items)
    # Both matches were on the first page, so scanning stopped there.
    assert len(history.calls) == 1


@pytest.mark.asyncio
async def test_time_cutoff_stops_before_older_items_and_fetching():
    messages = [make_message(i, days_ago(age)) for i, age in zip(range(10, 0, -1), range(0, 10))]
    history = FakeHistory({CHANNEL_A.id: messages})
    scanner = HistoryScanner(fetch_page=history)

    items = await collect(scanner.scan(CHANNEL_A, stop=StopCondition(time_cutoff=days_ago(3.5)), page_size=2))

    cutoff = days_ago(3.5)
    assert [m.id for m in items] == [10, 9, 8, 7]
    assert all(m.created_at >= cutoff for m in items)
    assert len(history.calls) == 3


@pytest.mark.asyncio
async def test_non_matching_items_still_trigger_time_cutoff():
    messages = [
        make_message(3, days_ago(1), author_id=7),
        make_message(2, days_ago(40), author_id=8),
        make_message(1, days_ago(50), author_id=7),
    ]
    scanner = HistoryScanner(fetch_page=FakeHistory({CHANNEL_A.id: messages}))

    items = await collect(scanner.scan(CHANNEL_A, stop=StopCondition(time_cutoff=days_ago(30)),
                                       match=lambda m: m.author.id == 7))

    assert [m.id for m in items] == [3]


@pytest.mark.asyncio
async def test_fetch_failure_is_isolated_to_its_container():
    history = FakeHistory(
        {CHANNEL_B.id: numbered_messages(3)},
        failures={CHANNEL_A.id: http_error(nextcord.Forbidden, 403, "Missing Access")},
    )
    scanner = HistoryScanner(fetch_page=history)

    with pytest.raises(PageFetchError) as excinfo:
        await collect(scanner.scan(CHANNEL_A))
    assert excinfo.value.container_id == CHANNEL_A.id
    assert isinstance(excinfo.value.cause, nextcord.Forbidden)

    assert [m.id for m in await collect(scanner.scan(CHANNEL_B))] == [3, 2, 1]


@pytest.mark.asyncio
async def test_zero_count_limit_fetches_nothing():
    history = FakeHistory({CHANNEL_A.id: numbered_messages(5)})
    scanner = HistoryScanner(fetch_page=history)

    assert await collect(scanner.scan(CHANNEL_A, stop=StopCondition(count_limit=0))) == []
    assert history.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("page_size", [0, 101])
async def test_rejects_page_sizes_discord_cannot_serve(page_size):
    scanner = HistoryScanner(fetch_page=FakeHistory())
    with pytest.raises(ValueError):
        await collect(scanner.scan(CHANNEL_A, page_size=page_size))


@pytest.mark.asyncio
async def test_default_fetch_passes_cursor_to_channel_history():
    requests = []

    class FakeChannel:
        id = 300

        def history(self, limit, before):
            requests.append((limit, before))

            async def pages():
                for message in [make_message(5, NOW), make_message(4, NOW)]:
                    yield message
            return pages()

    channel = FakeChannel()
    first = await fetch_history_page(channel, None, 100)
    await fetch_history_page(channel, first[-1].id, 100)

    assert [m.id for m in first] == [5, 4]
    assert requests[0] == (100, None)
    assert isinstance(requests[1][1], nextcord.Object)
    assert requests[1][1].id == 4
