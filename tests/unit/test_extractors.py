import pytest

from ratings_pipeline.common.constants import Category
from ratings_pipeline.data_collection.scrapers.extractors import (
    ExtractionError,
    PlayerDetailExtractor,
    RosterExtractor,
    TeamListExtractor,
)
from ratings_pipeline.domain.contracts import PartialRecord, PlayerDetail, RosterEntry, TeamRef

BASE = "https://www.2kratings.com"


def _lakers():
    return TeamRef(
        name="Los Angeles Lakers",
        url=f"{BASE}/teams/los-angeles-lakers",
        category=Category.CURRENT,
        logo=f"{BASE}/img/teams/los-angeles-lakers.png",
    )


def test_team_list_extracts_unique_teams(team_list_html):
    teams = TeamListExtractor(BASE).extract(team_list_html, Category.CURRENT)

    assert [t.name for t in teams] == ["Los Angeles Lakers", "Boston Celtics"]
    assert teams[0].url == f"{BASE}/teams/los-angeles-lakers"
    assert teams[0].logo == f"{BASE}/img/teams/los-angeles-lakers.png"
    assert all(t.category is Category.CURRENT for t in teams)


def test_team_list_without_table_raises():
    with pytest.raises(ExtractionError):
        TeamListExtractor(BASE).extract("<html><body><p>Moved</p></body></html>", Category.CLASSIC)


def test_roster_skips_rows_without_rating(lakers_roster_html):
    entries = RosterExtractor(BASE).extract(lakers_roster_html, _lakers())

    assert [e.name for e in entries] == ["LeBron James", "Anthony Davis", "Austin Reaves"]
    lebron = entries[0]
    assert lebron.rating == 96
    assert lebron.team == "Los Angeles Lakers"
    assert lebron.url == f"{BASE}/lebron-james"
    assert lebron.positions == ("SF", "PF")
    assert lebron.team_logo == _lakers().logo


def test_roster_without_rows_raises():
    with pytest.raises(ExtractionError):
        RosterExtractor(BASE).extract("<html><body></body></html>", _lakers())


def test_player_detail_extracts_attributes(lebron_html):
    entry = RosterEntry(name="LeBron James", rating=96, team="Los Angeles Lakers", category=Category.CURRENT,
                        url=f"{BASE}/lebron-james")
    detail = PlayerDetailExtractor(BASE).extract(lebron_html, entry)

    assert isinstance(detail, PlayerDetail)
    assert not isinstance(detail, PartialRecord)
    assert detail.url == f"{BASE}/lebron-james"
    assert detail.height == "6'9\""
    assert detail.weight == "250 lbs"
    assert detail.wingspan == "7'0\""
    assert detail.build == "Slashing Playmaker"
    assert detail.positions == ["SF", "PF"]
    assert detail.badge_count == 12
    assert detail.image == f"{BASE}/img/player.png"
    assert detail.attributes["closeShot"] == 91
    assert detail.attributes["midRangeShot"] == 80
    assert detail.attributes["shotIQ"] == 95
    # legacy labels map onto canonical keys
    assert detail.attributes["drivingLayup"] == 97
    assert detail.attributes["durability"] == 90
    assert "layup" not in detail.attributes


def test_player_detail_without_attributes_is_partial():
    entry = RosterEntry(name="Jaylen Brown", rating=89, team="Boston Celtics", category=Category.CURRENT,
                        url=f"{BASE}/jaylen-brown")
    detail = PlayerDetailExtractor(BASE).extract("<html><body><p>Under maintenance</p></body></html>", entry)

    assert isinstance(detail, PartialRecord)
    assert detail.reason == "layout_unmatched"
    assert detail.attributes == {}
    assert detail.url == f"{BASE}/jaylen-brown"
