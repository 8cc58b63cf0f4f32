import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from ratings_pipeline.common.constants import Category
from ratings_pipeline.database import create_store
from ratings_pipeline.database.manager import DatabaseManager
from ratings_pipeline.database.sql_store import SqlStore
from ratings_pipeline.database.store import MemoryStore
from ratings_pipeline.domain.models import ApiKey, JobStatus, RequestLog, ScrapeJob, Team


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path, test_settings):
    if request.param == "memory":
        yield MemoryStore()
        return
    db = DatabaseManager(database_url=f"sqlite:///{tmp_path / 'ratings.db'}", settings=test_settings)
    db.initialize()
    sql_store = SqlStore(db)
    yield sql_store
    sql_store.close()


@pytest.fixture
def roster(make_player):
    return [
        make_player("LeBron James", overall=96, team="Los Angeles Lakers", positions=["SF", "PF"],
                    attributes={"closeShot": 91, "passAccuracy": 94}),
        make_player("Anthony Davis", overall=94, team="Los Angeles Lakers", positions=["PF", "C"],
                    attributes={"closeShot": 88}),
        make_player("Jayson Tatum", overall=95, team="Boston Celtics", positions=["SF"],
                    attributes={"passAccuracy": 80}),
    ]


def _teams(category=Category.CURRENT):
    return [Team(name="Boston Celtics", category=category), Team(name="Los Angeles Lakers", category=category)]


def test_replace_category_and_lookups(store, roster):
    store.replace_category(Category.CURRENT, roster, _teams())

    assert [p.name for p in store.players_by_category(Category.CURRENT)] == [
        "LeBron James",
        "Jayson Tatum",
        "Anthony Davis",
    ]
    assert store.get_player("  lebron JAMES", "current").overall == 96
    assert store.get_player("LeBron James", Category.CLASSIC) is None
    assert [p.name for p in store.players_by_team("los angeles lakers")] == ["LeBron James", "Anthony Davis"]
    assert [p.name for p in store.players_by_position("sf")] == ["LeBron James", "Jayson Tatum"]
    assert [p.name for p in store.search_players("TAT")] == ["Jayson Tatum"]
    assert store.search_players("   ") == []
    assert [t.name for t in store.teams(Category.CURRENT)] == ["Boston Celtics", "Los Angeles Lakers"]


def test_replace_category_only_touches_that_category(store, roster, make_player):
    store.replace_category(Category.CURRENT, roster, _teams())
    store.replace_category(
        Category.CLASSIC,
        [make_player("Michael Jordan", Category.CLASSIC, overall=99, team="1995-96 Chicago Bulls")],
        [],
    )

    store.replace_category(Category.CURRENT, roster[:1], _teams()[1:])

    assert [p.name for p in store.all_players()] == ["Michael Jordan", "LeBron James"]
    assert [t.name for t in store.teams()] == ["Los Angeles Lakers"]


def test_upsert_and_delete(store, make_player):
    store.upsert_player(make_player("Stephen Curry", overall=93, positions=["PG"]))
    store.upsert_player(make_player("stephen curry", overall=94, positions=["PG"]))

    assert store.get_player("Stephen Curry", Category.CURRENT).overall == 94
    assert len(store.players_by_position("PG")) == 1
    assert store.delete_player("STEPHEN CURRY", Category.CURRENT) is True
    assert store.delete_player("Stephen Curry", Category.CURRENT) is False


def test_list_players_filters(store, roster):
    store.replace_category(Category.CURRENT, roster, _teams())

    assert [p.name for p in store.list_players(min_rating=95)] == ["LeBron James", "Jayson Tatum"]
    assert [p.name for p in store.list_players(team="Los Angeles Lakers", position="C")] == ["Anthony Davis"]
    assert store.list_players(category=Category.CLASSIC) == []
    assert [p.name for p in store.list_players(max_rating=94)] == ["Anthony Davis"]


def test_position_averages_use_per_attribute_denominators(store, roster):
    store.replace_category(Category.CURRENT, roster, _teams())

    averages = store.position_averages("SF", Category.CURRENT)

    assert averages.player_count == 2
    assert averages.overall == pytest.approx(95.5)
    # Tatum has no closeShot: mean over LeBron only
    assert averages.attributes["closeShot"] == pytest.approx(91.0)
    assert averages.attribute_counts == {"closeShot": 1, "passAccuracy": 2}
    assert averages.attributes["passAccuracy"] == pytest.approx(87.0)


def test_position_averages_scope(store, roster, make_player):
    store.replace_category(Category.CURRENT, roster, _teams())
    store.replace_category(
        Category.CLASSIC, [make_player("Larry Bird", Category.CLASSIC, overall=97, positions=["SF"])], []
    )

    assert store.position_averages("SF").player_count == 2
    assert store.position_averages("SF", None).player_count == 3
    assert store.position_averages("PG").overall is None


def test_team_summaries_and_stats(store, roster):
    store.replace_category(Category.CURRENT, roster, _teams())

    summaries = store.team_summaries(Category.CURRENT)
    stats = store.stats()

    assert [(s.name, s.player_count, s.avg_rating) for s in summaries] == [
        ("Boston Celtics", 1, 95.0),
        ("Los Angeles Lakers", 2, 95.0),
    ]
    assert stats.total_players == 3
    assert stats.by_category == {"current": 3, "classic": 0, "all-time": 0}
    assert stats.unique_teams == 2
    assert stats.avg_overall == 95.0


def test_player_by_slug(store, make_player):
    store.replace_category(
        Category.CLASSIC, [make_player("Michael Jordan", Category.CLASSIC, overall=99, slug="michael-jordan")], []
    )
    store.replace_category(
        Category.ALL_TIME, [make_player("Michael Jordan", Category.ALL_TIME, overall=98, slug="michael-jordan")], []
    )

    assert store.get_player_by_slug("michael-jordan").category is Category.CLASSIC
    assert store.get_player_by_slug("michael-jordan", Category.ALL_TIME).overall == 98
    assert store.get_player_by_slug("michael-jordan", Category.CURRENT) is None

    store.replace_category(Category.CLASSIC, [], [])
    assert store.get_player_by_slug("michael-jordan").category is Category.ALL_TIME


def test_team_stats(store, roster):
    store.replace_category(Category.CURRENT, roster, _teams())

    stats = store.team_stats("los angeles lakers")

    assert stats.name == "Los Angeles Lakers"
    assert (stats.player_count, stats.avg_rating) == (2, 95.0)
    assert stats.top_player["name"] == "LeBron James"
    assert stats.position_distribution == {"C": 1, "PF": 2, "SF": 1}
    assert stats.attribute_averages == {"closeShot": 89.5, "passAccuracy": 94.0}
    assert stats.attribute_counts == {"closeShot": 2, "passAccuracy": 1}
    assert store.team_stats("Los Angeles Lakers", Category.CLASSIC) is None
    assert store.team_stats("Seattle SuperSonics") is None


def test_request_logs_window_and_purge(store, fixed_now):
    for days in (31, 29, 0):
        store.append_request_log(
            RequestLog(timestamp=fixed_now - timedelta(days=days), caller="k1", endpoint="/api/v1/players",
                       status_code=200)
        )
    store.append_request_log(RequestLog(timestamp=fixed_now, caller="k2", endpoint="/api/v1/stats", status_code=429,
                                        outcome="rate_limit_exceeded"))

    between = store.request_logs_between(fixed_now - timedelta(days=30), fixed_now)
    assert [log.timestamp for log in between] == [fixed_now - timedelta(days=29)]
    assert [log.caller for log in store.request_logs_for_caller("k2")] == ["k2"]
    assert store.request_logs_for_caller("k1", limit=1)[0].timestamp == fixed_now

    assert store.delete_request_logs_before(fixed_now - timedelta(days=30)) == 1
    remaining = store.request_logs_between(fixed_now - timedelta(days=365), fixed_now + timedelta(seconds=1))
    assert len(remaining) == 3
    assert all(log.timestamp.tzinfo is not None for log in remaining)
    assert all(log.id is not None for log in remaining)


def test_rate_windows_count_atomically(store):
    assert [store.increment_rate_window("k1", 100) for _ in range(3)] == [1, 2, 3]
    assert store.increment_rate_window("k1", 101) == 1
    assert store.increment_rate_window("k2", 100) == 1
    assert store.get_rate_window("k1", 100).count == 3
    assert store.get_rate_window("k3", 100) is None

    assert store.delete_rate_windows_before(101) == 2
    assert store.get_rate_window("k1", 101).count == 1


def test_rate_window_increments_are_atomic_across_threads(store):
    workers = 20
    barrier = threading.Barrier(workers)

    def hit(_):
        barrier.wait()
        return store.increment_rate_window("k1", 200)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        counts = list(pool.map(hit, range(workers)))

    assert sorted(counts) == list(range(1, workers + 1))
    assert store.get_rate_window("k1", 200).count == workers


def test_api_keys(store, fixed_now):
    store.save_api_key(ApiKey(key="2k_abc", name="Tester", rate_limit=5, created_at=fixed_now))

    store.touch_api_key("2k_abc", fixed_now)
    store.touch_api_key("2k_missing", fixed_now)

    key = store.get_api_key("2k_abc")
    assert key.request_count == 1
    assert key.last_request == fixed_now
    assert store.get_api_key("2k_missing") is None

    key.is_active = False
    store.save_api_key(key)
    assert store.get_api_key("2k_abc").is_active is False


def test_scrape_jobs(store, fixed_now):
    old = ScrapeJob(job_id="a" * 32, category=Category.CURRENT, started_at=fixed_now - timedelta(days=1))
    new = ScrapeJob(job_id="b" * 32, category=Category.CLASSIC, started_at=fixed_now)
    store.save_scrape_job(old)
    store.save_scrape_job(new)

    new.status = JobStatus.ABORTED
    new.errors.append("Empty crawl for classic")
    new.finished_at = fixed_now + timedelta(minutes=5)
    store.save_scrape_job(new)

    assert [j.job_id for j in store.recent_scrape_jobs()] == ["b" * 32, "a" * 32]
    saved = store.get_scrape_job("b" * 32)
    assert saved.status is JobStatus.ABORTED
    assert saved.errors == ["Empty crawl for classic"]
    assert store.get_scrape_job("missing") is None


def test_recent_scrape_jobs_break_ties_by_insertion(store, fixed_now):
    first = ScrapeJob(job_id="c" * 32, category=Category.CURRENT, started_at=fixed_now)
    second = ScrapeJob(job_id="d" * 32, category=Category.CURRENT, started_at=fixed_now)
    store.save_scrape_job(first)
    store.save_scrape_job(second)

    # finishing the earlier job must not move it ahead
    first.status = JobStatus.COMPLETED
    store.save_scrape_job(first)

    assert [j.job_id for j in store.recent_scrape_jobs()] == ["d" * 32, "c" * 32]
    assert store.recent_scrape_jobs(1)[0].job_id == "d" * 32
    assert store.get_scrape_job("c" * 32).status is JobStatus.COMPLETED


def test_health_check(store):
    assert store.health_check() is True


def test_create_store_memory_backend(test_settings):
    assert isinstance(create_store(test_settings), MemoryStore)


def test_create_store_sql_backend(tmp_path, test_settings):
    cfg = test_settings.model_copy(update={"store_backend": "sql"})

    store = create_store(cfg, database_url=f"sqlite:///{tmp_path / 'x.db'}")

    assert isinstance(store, SqlStore)
    assert store.health_check()
    store.close()
