"""
PageExtractor - one parser per source page type.

Extractors are pure (HTML in, DTOs out) so markup changes on the source only
touch this module. A page whose structure cannot be recognised at all raises
ExtractionError; the player-detail extractor degrades to a PartialRecord instead.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

from bs4 import BeautifulSoup, Tag

from ratings_pipeline.common.constants import ATTRIBUTE_ALIASES, Category
from ratings_pipeline.common.constants import normalize_position
from ratings_pipeline.common.parsing import (
    absolute_url,
    camel_case_label,
    clean_text,
    extract_build,
    format_height,
    format_weight,
    format_wingspan,
    parse_int,
    parse_rating,
    soup_from_html,
)
from ratings_pipeline.domain.contracts import DetailResult, PartialRecord, PlayerDetail, RosterEntry, TeamRef

S = TypeVar("S")
T = TypeVar("T")


class ExtractionError(ValueError):
    def __init__(self, page_type: str, url: Optional[str], message: str):
        super().__init__(f"{page_type} extraction failed for {url}: {message}")
        self.page_type = page_type
        self.url = url


class PageExtractor(ABC, Generic[S, T]):
    """Abstrakte Basisklasse für Seiten-Parser"""

    page_type: str = "page"
    # Selectors the browser should wait for before the HTML is taken
    wait_selectors: tuple[str, ...] = ()

    def __init__(self, base_url: str):
        self.base_url = base_url

    def parse_html(self, html: str) -> BeautifulSoup:
        """Parst HTML mit BeautifulSoup"""
        return soup_from_html(html)

    @abstractmethod
    def extract(self, html: str, source: S, url: Optional[str] = None) -> T:
        """Extrahiert das strukturierte Ergebnis einer Seite"""

    def _image_src(self, img: Optional[Tag]) -> Optional[str]:
        if img is None:
            return None
        # lazy-loaded images keep the real URL in data-src
        return absolute_url(self.base_url, img.get("data-src") or img.get("src"))


class TeamListExtractor(PageExtractor[Category, list[TeamRef]]):
    page_type = "team_list"
    wait_selectors = ("td:first-child a",)

    def extract(self, html: str, source: Category, url: Optional[str] = None) -> list[TeamRef]:
        soup = self.parse_html(html)
        if soup.find("td") is None:
            raise ExtractionError(self.page_type, url, "no team table found")
        teams: list[TeamRef] = []
        seen: set[str] = set()
        for link in soup.select("td:first-child a"):
            href = absolute_url(self.base_url, link.get("href"))
            img = link.find("img")
            name = clean_text(link.get_text()) or clean_text(img.get("alt") if img else None)
            if not href or not name or href in seen:
                continue
            seen.add(href)
            teams.append(TeamRef(name=name, url=href, category=source, logo=self._image_src(img)))
        return teams


class RosterExtractor(PageExtractor[TeamRef, list[RosterEntry]]):
    page_type = "roster"
    wait_selectors = (".entry-font", ".rating-updated")

    def extract(self, html: str, source: TeamRef, url: Optional[str] = None) -> list[RosterEntry]:
        soup = self.parse_html(html)
        rows = soup.select("tr")
        if not rows:
            raise ExtractionError(self.page_type, url or source.url, "no roster rows found")
        entries: list[RosterEntry] = []
        for row in rows:
            name_el = row.select_one(".entry-font")
            rating_el = row.select_one(".rating-updated")
            name = clean_text(name_el.get_text()) if name_el else None
            rating = parse_rating(rating_el.get_text()) if rating_el else None
            # rows without both fields are headers, ads or placeholders
            if not name or rating is None:
                continue
            link = name_el if name_el.name == "a" else name_el.find("a")
            positions: list[str] = []
            for misc in row.select(".entry-subtext-font.crop-subtext-font a"):
                pos = normalize_position(clean_text(misc.get_text()))
                if pos and pos not in positions:
                    positions.append(pos)
            entries.append(
                RosterEntry(
                    name=name,
                    rating=rating,
                    team=source.name,
                    category=source.category,
                    url=absolute_url(self.base_url, link.get("href")) if link else None,
                    positions=tuple(positions),
                    team_logo=source.logo,
                )
            )
        return entries


class PlayerDetailExtractor(PageExtractor[RosterEntry, DetailResult]):
    page_type = "player_detail"
    wait_selectors = ("li.mb-1 .attribute-box",)

    def extract(self, html: str, source: RosterEntry, url: Optional[str] = None) -> DetailResult:
        soup = self.parse_html(html)
        text = soup.get_text(" ")
        fields = dict(
            url=url or source.url,
            height=format_height(text),
            weight=format_weight(text),
            wingspan=format_wingspan(text),
            build=extract_build(text),
            positions=self._positions(soup),
            badge_count=self._badge_count(soup),
            image=self._image_src(soup.select_one('a[data-lightbox="player"] img')),
        )
        attributes = self._attributes(soup)
        if not attributes:
            return PartialRecord(**fields, reason="layout_unmatched")
        return PlayerDetail(**fields, attributes=attributes)

    def _positions(self, soup: BeautifulSoup) -> list[str]:
        out: list[str] = []
        for a in soup.select('a[href*="/lists/"]'):
            pos = normalize_position(clean_text(a.get_text()))
            if pos and pos not in out:
                out.append(pos)
        return out

    def _attributes(self, soup: BeautifulSoup) -> dict[str, int]:
        attributes: dict[str, int] = {}
        for li in soup.select("li.mb-1"):
            box = li.select_one(".attribute-box")
            if box is None:
                continue
            value = parse_rating(box.get_text())
            value_text = box.get_text(" ", strip=True)
            label = li.get_text(" ", strip=True).replace(value_text, "", 1)
            key = camel_case_label(label)
            key = ATTRIBUTE_ALIASES.get(key, key)
            if key and value is not None and key not in attributes:
                attributes[key] = value
        return attributes

    def _badge_count(self, soup: BeautifulSoup) -> Optional[int]:
        counts = [parse_int(el.get_text()) for el in soup.select(".badge-count")]
        counts = [c for c in counts if c is not None]
        return sum(counts) if counts else None
