import asyncio

import pytest

from ratings_pipeline.common.constants import Category
from ratings_pipeline.data_collection.scrapers.base import FetchTimeout
from ratings_pipeline.data_collection.scrapers.ratings_scraper import PlayerDetailCrawler, TeamListCrawler
from ratings_pipeline.data_collection.scrapers.scraping_orchestrator import (
    BoundedWorkerPool,
    CrawlIncomplete,
    CrawlOrchestrator,
)
from ratings_pipeline.domain.contracts import PartialRecord, PlayerDetail, RosterEntry

BASE = "https://www.2kratings.com"


@pytest.mark.asyncio
async def test_team_list_crawler_uses_category_path(fetch_client_factory, team_list_html):
    client = fetch_client_factory({f"{BASE}/classic-teams": team_list_html})
    crawler = TeamListCrawler(client, BASE + "/")

    teams = [t async for t in crawler.crawl("class")]

    assert client.calls == [f"{BASE}/classic-teams"]
    assert [t.category for t in teams] == [Category.CLASSIC, Category.CLASSIC]


@pytest.mark.asyncio
async def test_detail_crawler_degrades_to_partial_records(fetch_client_factory):
    client = fetch_client_factory({f"{BASE}/slow": FetchTimeout(f"{BASE}/slow", "30s")}, attempts=2)
    crawler = PlayerDetailCrawler(client, BASE)

    timed_out = await crawler.crawl(
        RosterEntry(name="Slow", rating=70, team="X", category=Category.CURRENT, url=f"{BASE}/slow", positions=("C",))
    )
    no_link = await crawler.crawl(RosterEntry(name="Nobody", rating=60, team="X", category=Category.CURRENT))

    assert isinstance(timed_out, PartialRecord)
    assert timed_out.reason == "fetch_timeout"
    assert timed_out.positions == ["C"]
    assert client.calls == [f"{BASE}/slow", f"{BASE}/slow"]
    assert no_link.reason == "no_detail_url"


@pytest.mark.asyncio
async def test_crawl_category_pairs_entries_with_details(fetch_client_factory, scraping_config, current_site):
    client = fetch_client_factory(current_site)
    orchestrator = CrawlOrchestrator(client, scraping_config)

    result = await orchestrator.crawl_category(Category.CURRENT)

    assert [t.name for t in result.teams] == ["Los Angeles Lakers", "Boston Celtics"]
    # source order, independent of worker completion order
    assert [e.name for e in result.entries] == [
        "LeBron James",
        "Anthony Davis",
        "Austin Reaves",
        "Jayson Tatum",
        "Jaylen Brown",
    ]
    assert len(result.details) == len(result.entries)
    assert isinstance(result.details[0], PlayerDetail)
    assert result.details[0].attributes["passAccuracy"] == 94
    assert isinstance(result.details[4], PartialRecord)
    assert result.partial_count == 1
    assert result.errors == []


@pytest.mark.asyncio
async def test_crawl_without_details(fetch_client_factory, scraping_config, current_site):
    client = fetch_client_factory(current_site)

    result = await CrawlOrchestrator(client, scraping_config).crawl_category("current", with_details=False)

    assert result.details == [None] * 5
    assert result.partial_count == 5
    assert not any("lebron-james" in url for url in client.calls)


@pytest.mark.asyncio
async def test_team_filter_is_case_insensitive(fetch_client_factory, scraping_config, current_site):
    client = fetch_client_factory(current_site)

    result = await CrawlOrchestrator(client, scraping_config).crawl_category(
        Category.CURRENT, with_details=False, team_filter=["boston celtics"]
    )

    assert [t.name for t in result.teams] == ["Boston Celtics"]
    assert [e.team for e in result.entries] == ["Boston Celtics", "Boston Celtics"]
    assert f"{BASE}/teams/los-angeles-lakers" not in client.calls


@pytest.mark.asyncio
async def test_team_list_failure_yields_zero_records(fetch_client_factory, scraping_config):
    client = fetch_client_factory({})

    result = await CrawlOrchestrator(client, scraping_config).crawl_category(Category.ALL_TIME)

    assert result.teams == []
    assert result.entries == []
    assert len(result.errors) == 1
    assert "all-time-teams" in result.errors[0]
    # every attempt of the retry policy was spent
    assert client.calls == [f"{BASE}/all-time-teams"] * 3


@pytest.mark.asyncio
async def test_roster_failure_aborts_crawl(fetch_client_factory, scraping_config, current_site):
    pages = dict(current_site)
    del pages[f"{BASE}/teams/boston-celtics"]
    client = fetch_client_factory(pages)

    with pytest.raises(CrawlIncomplete) as exc:
        await CrawlOrchestrator(client, scraping_config).crawl_category(Category.CURRENT)

    assert exc.value.category is Category.CURRENT
    assert "Boston Celtics" in str(exc.value)


# -------------------- BoundedWorkerPool -------------------- #


@pytest.mark.asyncio
async def test_pool_keeps_input_order():
    async def work(n):
        await asyncio.sleep(0.001 * (5 - n))
        return n * 10

    results = await BoundedWorkerPool(concurrency=3, politeness_delay=0).map(work, range(5))

    assert results == [0, 10, 20, 30, 40]


@pytest.mark.asyncio
async def test_pool_limits_concurrency():
    running = 0
    peak = 0

    async def work(n):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.001)
        running -= 1
        return n

    await BoundedWorkerPool(concurrency=2, politeness_delay=0).map(work, range(6))

    assert peak == 2


@pytest.mark.asyncio
async def test_pool_spaces_requests_of_one_worker():
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    async def work(n):
        return n

    pool = BoundedWorkerPool(concurrency=1, politeness_delay=1.5, clock=lambda: 100.0, sleep=fake_sleep)
    await pool.map(work, ["a", "b", "c"])

    assert sleeps == [1.5, 1.5]


@pytest.mark.asyncio
async def test_pool_failure_cancels_remaining_workers():
    cancelled = []

    async def work(n):
        if n == 0:
            raise RuntimeError("boom")
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.append(n)
            raise
        return n

    with pytest.raises(RuntimeError, match="boom"):
        await BoundedWorkerPool(concurrency=3, politeness_delay=0).map(work, range(3))

    assert sorted(cancelled) == [1, 2]


def test_pool_rejects_zero_concurrency():
    with pytest.raises(ValueError):
        BoundedWorkerPool(concurrency=0)
