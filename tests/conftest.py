"""Global pytest fixtures.

Centralizes:
 - Reusable HTML snippets of the source site (team list, roster, player page, challenge)
 - A scripted FetchClient standing in for the browser
 - Store / settings / player factories
"""

from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Optional, Sequence, Union

import pytest

from ratings_pipeline.common.constants import Category
from ratings_pipeline.core.config import Settings
from ratings_pipeline.data_collection.scrapers.base import FetchClient, RetryPolicy, ScrapingConfig
from ratings_pipeline.database.store import MemoryStore
from ratings_pipeline.domain.models import Player

BASE_URL = "https://www.2kratings.com"


# -------------------- Fakes -------------------- #


class ScriptedFetchClient(FetchClient):
    """FetchClient serving canned pages; a page may be an exception (raised per attempt)
    or a list of outcomes consumed one attempt at a time."""

    def __init__(self, pages: dict, attempts: int = 3):
        super().__init__(retry=RetryPolicy(attempts=attempts, jitter=0), sleep=self._no_sleep)
        self.pages = dict(pages)
        self.calls: list[str] = []
        self.sleeps: list[float] = []
        self.started = False
        self.closed = False

    async def _no_sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)

    async def _fetch_once(self, url: str, wait_selectors: Optional[Sequence[str]] = None) -> str:
        self.calls.append(url)
        if url not in self.pages:
            from ratings_pipeline.data_collection.scrapers.base import FetchNetworkError

            raise FetchNetworkError(url, "HTTP 404")
        outcome = self.pages[url]
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self.closed = True


# -------------------- HTML Fixtures -------------------- #


def team_list_page(*teams: tuple[str, str]) -> str:
    rows = "\n".join(
        f'<tr><td><a href="{href}"><img data-src="/img/{href.strip("/")}.png" alt="{name}">{name}</a></td>'
        f"<td>{90 - i}</td></tr>"
        for i, (name, href) in enumerate(teams)
    )
    return f"""
        <html><body>
        <table class="table">
          <thead><tr><th>Team</th><th>Rating</th></tr></thead>
          <tbody>{rows}</tbody>
        </table>
        </body></html>
    """


def roster_row(name: str, rating: Union[int, str], href: Optional[str] = None, positions: Sequence[str] = ()) -> str:
    pos_links = "".join(f'<a href="/lists/{p.lower()}">{p}</a>' for p in positions)
    link = f'<a class="entry-font" href="{href}">{name}</a>' if href else f'<span class="entry-font">{name}</span>'
    return f"""
        <tr>
          <td>{link}
            <span class="entry-subtext-font crop-subtext-font">{pos_links}</span>
          </td>
          <td><span class="attribute-box rating-updated">{rating}</span></td>
        </tr>
    """


def roster_page(*rows: str) -> str:
    return f"""
        <html><body>
        <table class="table">
          <tr><th>Player</th><th>OVR</th></tr>
          {''.join(rows)}
        </table>
        </body></html>
    """


def player_page(attributes: dict[str, int], positions: Sequence[str] = ("SF", "PF"), badges: Sequence[int] = (5, 7)) -> str:
    items = "".join(
        f'<li class="mb-1"><span class="attribute-box">{v}</span> {label}</li>' for label, v in attributes.items()
    )
    pos_links = " / ".join(f'<a href="/lists/{p.lower()}">{p}</a>' for p in positions)
    badge_html = "".join(f'<span class="badge-count">{b}</span>' for b in badges)
    return f"""
        <html><head><title>Player Ratings</title></head><body>
        <a data-lightbox="player" href="/img/full.png"><img src="/img/player.png"></a>
        <p>Position: {pos_links}</p>
        <p>He is 6 feet 9 inches tall and weighs 250 pounds. He has a wingspan of 7 feet 0 inches.</p>
        <p>Archetype:</p><p>Slashing Playmaker Build</p>
        <div class="badges">{badge_html}</div>
        <ul>{items}</ul>
        </body></html>
    """


CHALLENGE_HTML = """
    <html><head><title>Just a moment...</title></head>
    <body><div id="cf-browser-verification">Checking your browser before accessing.</div></body></html>
"""


@pytest.fixture
def team_list_html():
    return team_list_page(
        ("Los Angeles Lakers", "/teams/los-angeles-lakers"),
        ("Boston Celtics", "/teams/boston-celtics"),
        # same team linked twice, first occurrence wins
        ("Los Angeles Lakers", "/teams/los-angeles-lakers"),
    )


@pytest.fixture
def lakers_roster_html():
    return roster_page(
        roster_row("LeBron James", 96, "/lebron-james", ["SF", "PF"]),
        roster_row("Anthony  Davis", 94, "/anthony-davis", ["PF", "C"]),
        # no rating -> skipped
        roster_row("Injured Reserve", ""),
        roster_row("Austin Reaves", 80, "/austin-reaves", ["SG"]),
    )


@pytest.fixture
def celtics_roster_html():
    return roster_page(
        roster_row("Jayson Tatum", 95, "/jayson-tatum", ["SF"]),
        roster_row("Jaylen Brown", 89, "/jaylen-brown", ["SG", "SF"]),
    )


@pytest.fixture
def lebron_html():
    return player_page(
        {
            "Close Shot": 91,
            "Mid-Range Shot": 80,
            "Three-Point Shot": 78,
            "Layup": 97,
            "Shot IQ": 95,
            "Overall Durability": 90,
            "Pass Accuracy": 94,
            "Defensive Rebound": 75,
        }
    )


@pytest.fixture
def challenge_html():
    return CHALLENGE_HTML


@pytest.fixture
def current_site(team_list_html, lakers_roster_html, celtics_roster_html, lebron_html):
    """URL -> page mapping of a small 'current' category"""
    return {
        f"{BASE_URL}/current-teams": team_list_html,
        f"{BASE_URL}/teams/los-angeles-lakers": lakers_roster_html,
        f"{BASE_URL}/teams/boston-celtics": celtics_roster_html,
        f"{BASE_URL}/lebron-james": lebron_html,
        f"{BASE_URL}/anthony-davis": player_page({"Standing Dunk": 90, "Block": 88}, positions=("PF", "C")),
        f"{BASE_URL}/austin-reaves": player_page({"Three-Point Shot": 82}, positions=("SG",)),
        f"{BASE_URL}/jayson-tatum": player_page({"Three-Point Shot": 86, "Pass Accuracy": 80}, positions=("SF",)),
        # layout without attribute list -> partial record
        f"{BASE_URL}/jaylen-brown": "<html><body><p>Under maintenance</p></body></html>",
    }


# -------------------- Object Fixtures -------------------- #


@pytest.fixture
def fetch_client_factory():
    def _make(pages: dict, attempts: int = 3) -> ScriptedFetchClient:
        return ScriptedFetchClient(pages, attempts=attempts)

    return _make


@pytest.fixture
def scraping_config():
    return ScrapingConfig(base_url=BASE_URL, concurrency=3, politeness_delay=0.0, retry_jitter=0.0)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        store_backend="memory",
        enable_metrics=True,
        enable_scheduled_cleanup=False,
        admin_api_key="admin-secret",
        api_keys=[],
        rate_limit_requests=100,
        rate_limit_window_seconds=3600,
    )


@pytest.fixture
def fixed_now():
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_player():
    def _make(name: str, category: Union[str, Category] = Category.CURRENT, overall: int = 80, **fields) -> Player:
        return Player(name=name, category=category, overall=overall, **fields)

    return _make


@pytest.fixture
def html():
    """Page builders for tests that assemble their own site"""
    return SimpleNamespace(
        team_list_page=team_list_page,
        roster_page=roster_page,
        roster_row=roster_row,
        player_page=player_page,
    )
