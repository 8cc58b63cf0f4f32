"""
Applications Package für die Ratings Pipeline

Enthält die Anwendungsklasse, den Scheduler und die CLI.
"""

from .ratings_app import RatingsDataApp
from .scheduler import TaskRegistry, TaskScheduler, get_registry, init_scheduler

__all__ = ["RatingsDataApp", "TaskRegistry", "TaskScheduler", "init_scheduler", "get_registry"]
