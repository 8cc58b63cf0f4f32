"""Domain-Modelle und Crawl-Verträge"""
