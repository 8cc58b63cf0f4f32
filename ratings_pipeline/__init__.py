"""
Ratings Pipeline
Ingestion, Abgleich und Auslieferung von NBA-2K-Spielerratings
"""

__version__ = "1.0.0"
__author__ = "Ratings Data Team"

# NOTE:
# Avoid importing heavy modules (like configuration) at package import time to
# keep "import ratings_pipeline" lightweight and side-effect free, particularly
# for unit tests that only need parsing helpers or extractors.

__all__ = []
