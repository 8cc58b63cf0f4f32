"""
Data Collection Scrapers Package

FetchClient, Seiten-Extractoren, Crawler und der Crawl-Orchestrator.

Note: avoid importing scraper modules at package import time; Playwright is only
needed by the fetch client. Import concrete classes from their modules directly, e.g.:

    from ratings_pipeline.data_collection.scrapers.ratings_scraper import RosterCrawler
"""

__all__ = []
