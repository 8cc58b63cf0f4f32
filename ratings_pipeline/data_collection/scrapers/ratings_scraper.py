"""
Crawler für 2kratings.com: Teamlisten, Kader und Spielerseiten.
"""

import logging
from typing import AsyncIterator, Optional

from ratings_pipeline.common.constants import CATEGORY_PATHS, Category, normalize_category
from ratings_pipeline.data_collection.scrapers.base import FetchClient, FetchError
from ratings_pipeline.data_collection.scrapers.extractors import (
    ExtractionError,
    PlayerDetailExtractor,
    RosterExtractor,
    TeamListExtractor,
)
from ratings_pipeline.domain.contracts import DetailResult, PartialRecord, RosterEntry, TeamRef


class TeamListCrawler:
    """Ermittelt die Team-Seiten einer Kategorie (bei jedem Lauf neu von der Quelle)"""

    def __init__(self, fetch_client: FetchClient, base_url: str, extractor: Optional[TeamListExtractor] = None):
        self.fetch_client = fetch_client
        self.base_url = base_url.rstrip("/")
        self.extractor = extractor or TeamListExtractor(base_url)
        self.logger = logging.getLogger("crawler.team_list")

    def category_url(self, category: Category) -> str:
        return self.base_url + CATEGORY_PATHS[normalize_category(category).value]

    async def crawl(self, category: Category) -> AsyncIterator[TeamRef]:
        category = normalize_category(category)
        url = self.category_url(category)
        html = await self.fetch_client.fetch(
            url, wait_selectors=self.extractor.wait_selectors, page_type=self.extractor.page_type
        )
        teams = self.extractor.extract(html, category, url)
        self.logger.info(f"Found {len(teams)} {category.value} teams")
        for team in teams:
            yield team


class RosterCrawler:
    """Liest (Name, Rating)-Paare aus einer Team-Seite"""

    def __init__(self, fetch_client: FetchClient, base_url: str, extractor: Optional[RosterExtractor] = None):
        self.fetch_client = fetch_client
        self.extractor = extractor or RosterExtractor(base_url)
        self.logger = logging.getLogger("crawler.roster")

    async def crawl(self, team: TeamRef) -> list[RosterEntry]:
        html = await self.fetch_client.fetch(
            team.url, wait_selectors=self.extractor.wait_selectors, page_type=self.extractor.page_type
        )
        entries = self.extractor.extract(html, team, team.url)
        self.logger.debug(f"{team.name}: {len(entries)} players")
        return entries


class PlayerDetailCrawler:
    """Liest die Attribute einer Spielerseite; liefert PartialRecord statt Fehler"""

    def __init__(self, fetch_client: FetchClient, base_url: str, extractor: Optional[PlayerDetailExtractor] = None):
        self.fetch_client = fetch_client
        self.extractor = extractor or PlayerDetailExtractor(base_url)
        self.logger = logging.getLogger("crawler.player_detail")

    async def crawl(self, entry: RosterEntry) -> DetailResult:
        if not entry.url:
            return PartialRecord(url=None, positions=list(entry.positions), reason="no_detail_url")
        try:
            html = await self.fetch_client.fetch(
                entry.url, wait_selectors=self.extractor.wait_selectors, page_type=self.extractor.page_type
            )
            detail = self.extractor.extract(html, entry, entry.url)
        except FetchError as e:
            self.logger.warning(f"Detail page for {entry.name} unavailable: {e}")
            return PartialRecord(url=entry.url, positions=list(entry.positions), reason=f"fetch_{e.kind}")
        except ExtractionError as e:
            self.logger.warning(str(e))
            return PartialRecord(url=entry.url, positions=list(entry.positions), reason="layout_unmatched")
        if isinstance(detail, PartialRecord):
            self.logger.warning(f"Partial record for {entry.name}: {detail.reason}")
        return detail
