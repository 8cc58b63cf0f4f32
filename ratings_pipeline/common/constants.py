from __future__ import annotations
from enum import Enum

class Category(str, Enum):
    CURRENT = "current"
    CLASSIC = "classic"
    ALL_TIME = "all-time"

ALL_CATEGORIES: tuple[str, ...] = tuple(c.value for c in Category)

ALIASES: dict[str, str] = {
    # source site short-hands (teamType)
    "curr": Category.CURRENT.value,
    "class": Category.CLASSIC.value,
    "allt": Category.ALL_TIME.value,
    "all_time": Category.ALL_TIME.value,
    "alltime": Category.ALL_TIME.value,
}

# Index page per category on the source site
CATEGORY_PATHS: dict[str, str] = {
    Category.CURRENT.value: "/current-teams",
    Category.CLASSIC.value: "/classic-teams",
    Category.ALL_TIME.value: "/all-time-teams",
}

POSITIONS: tuple[str, ...] = ("PG", "SG", "SF", "PF", "C")

POSITION_NAMES: dict[str, str] = {
    "point guard": "PG",
    "shooting guard": "SG",
    "small forward": "SF",
    "power forward": "PF",
    "center": "C",
    "centre": "C",
}

# Attribute groups as shown on player pages
ATTRIBUTE_CATEGORIES: dict[str, tuple[str, ...]] = {
    "outsideScoring": ("closeShot", "midRangeShot", "threePointShot", "freeThrow", "shotIQ", "offensiveConsistency"),
    "insideScoring": ("drivingLayup", "postHook", "postFade", "postControl", "drawFoul", "hands", "standingDunk", "drivingDunk"),
    "playmaking": ("passAccuracy", "ballHandle", "speedWithBall", "passIQ", "passVision"),
    "athleticism": ("speed", "acceleration", "strength", "vertical", "stamina", "hustle", "durability"),
    "defending": ("interiorDefense", "perimeterDefense", "steal", "block", "helpDefenseIQ", "passPerception", "defensiveConsistency", "lateralQuickness"),
    "rebounding": ("offensiveRebound", "defensiveRebound"),
}

# Legacy/alternate attribute labels -> canonical key
ATTRIBUTE_ALIASES: dict[str, str] = {
    "layup": "drivingLayup",
    "overallDurability": "durability",
    "threePointShooting": "threePointShot",
    "midRange": "midRangeShot",
    "helpDefenseIq": "helpDefenseIQ",
    "shotIq": "shotIQ",
    "passIq": "passIQ",
}

def normalize_category(value: str | Category) -> Category:
    """
    Normalize a category identifier (also the source's teamType short-hands).
    Raises ValueError for unknown categories.
    """
    if isinstance(value, Category):
        return value
    v = (value or "").strip().lower()
    v = ALIASES.get(v, v)
    if v not in ALL_CATEGORIES:
        allowed = ", ".join(ALL_CATEGORIES)
        raise ValueError(f"Unknown category '{value}'. Allowed: {allowed}")
    return Category(v)

def normalize_position(value: str | None) -> str | None:
    """Map 'Point Guard', 'pg', ' PG ' to 'PG'; None for unknown tokens."""
    v = (value or "").strip()
    if not v:
        return None
    upper = v.upper()
    if upper in POSITIONS:
        return upper
    return POSITION_NAMES.get(v.lower())
