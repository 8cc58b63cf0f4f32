"""
Canonical export artifact: a single JSON document ``{"players": [...]}``.

The merge utility treats the artifact as replaceable-by-category input: the
chosen categories of the base document are swapped wholesale for the ones of a
newer document, everything else is kept.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from pathlib import Path
from typing import Any, Iterable, Union

from ratings_pipeline.common.constants import Category, normalize_category
from ratings_pipeline.database.store import Store
from ratings_pipeline.domain.models import Player

logger = logging.getLogger("export")

PathLike = Union[str, Path]


def _ordered(players: Iterable[Player]) -> list[Player]:
    return sorted(players, key=lambda p: (p.category.value, p.name_key))


def export_document(players: Iterable[Player]) -> dict[str, Any]:
    return {"players": [p.model_dump(mode="json") for p in _ordered(players)]}


def dumps(document: dict[str, Any]) -> str:
    return json.dumps(document, ensure_ascii=False, indent=2, sort_keys=True)


def write_export(store: Store, path: PathLike) -> int:
    players = store.all_players()
    Path(path).write_text(dumps(export_document(players)) + "\n", encoding="utf-8")
    logger.info(f"Exported {len(players)} players to {path}")
    return len(players)


def parse_document(document: dict[str, Any]) -> list[Player]:
    if not isinstance(document, dict) or not isinstance(document.get("players"), list):
        raise ValueError("export artifact must be an object with a 'players' list")
    return [Player.model_validate(item) for item in document["players"]]


def read_export(path: PathLike) -> list[Player]:
    with open(path, encoding="utf-8") as fh:
        return parse_document(json.load(fh))


def group_by_category(players: Iterable[Player]) -> dict[Category, list[Player]]:
    groups: dict[Category, list[Player]] = defaultdict(list)
    for p in players:
        groups[p.category].append(p)
    return dict(groups)


def merge_documents(
    base: dict[str, Any],
    newer: dict[str, Any],
    categories: Iterable[Union[str, Category]] = (Category.CLASSIC, Category.ALL_TIME),
) -> dict[str, Any]:
    """Replace ``categories`` of ``base`` with the players ``newer`` has for them."""
    replaced = {normalize_category(c) for c in categories}
    kept = [p for p in parse_document(base) if p.category not in replaced]
    incoming = [p for p in parse_document(newer) if p.category in replaced]
    logger.info(
        f"Merging export: kept {len(kept)} players, replaced {sorted(c.value for c in replaced)} "
        f"with {len(incoming)} players"
    )
    return export_document(kept + incoming)
