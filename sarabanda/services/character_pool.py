"""
Service: character_pool.py
Role:
- Identify characters with a stable fingerprint (dedup key across games).
- Filter the pool with multi-valued tag selections.
- Report what is left to play (per category) and explain empty selections.

Matching rule:
- AND across tag keys that carry a non-empty selection,
- OR within one key (any of the character's values is accepted),
- a character without any value for a filtered key never matches it,
- keys absent from the selection (or with an empty list) impose nothing.

Everything here is a pure function of (pool, used ids, filters).
"""
from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional

from sarabanda.models.character import CATEGORY_TAG, CategoryInfo, Character, TagFilterSelection
from sarabanda.models.game import GameConfig

_WHITESPACE = re.compile(r"\s+")


def fingerprint(character: Character) -> str:
    """Sorted prop values + sorted category values, case-folded, spaces -> '_'."""
    props = sorted(str(v) for v in character.props.values())
    categories = sorted(character.categories)
    raw = "_".join(props + categories)
    return _WHITESPACE.sub("_", raw.strip()).casefold()


def active_keys(filters: TagFilterSelection) -> Dict[str, set]:
    """Filter keys that actually constrain the pool."""
    return {key: set(values) for key, values in (filters or {}).items() if values}


def matches(character: Character, filters: TagFilterSelection) -> bool:
    for key, accepted in active_keys(filters).items():
        values = character.tags.get(key) or []
        if not any(v in accepted for v in values):
            return False
    return True


def is_used(character: Character, used_ids: Iterable[str]) -> bool:
    return fingerprint(character) in set(used_ids)


def available(
    pool: List[Character],
    used_ids: Iterable[str],
    filters: TagFilterSelection,
) -> List[Character]:
    """Pool entries not used yet and accepted by `filters` (pool order kept)."""
    used = set(used_ids)
    return [c for c in pool if fingerprint(c) not in used and matches(c, filters)]


def category_counts(
    pool: List[Character],
    used_ids: Iterable[str],
    filters: TagFilterSelection,
) -> List[CategoryInfo]:
    """
    Remaining vs total per category value among characters accepted by `filters`.
    A character listed under several categories counts in each of them.
    """
    used = set(used_ids)
    counts: Dict[str, CategoryInfo] = {}
    for character in pool:
        if not matches(character, filters):
            continue
        still_free = fingerprint(character) not in used
        for name in character.categories:
            info = counts.setdefault(name, CategoryInfo(name=name))
            info.total += 1
            if still_free:
                info.remaining += 1
    return [counts[name] for name in sorted(counts)]


def tag_values(pool: List[Character]) -> Dict[str, List[str]]:
    """Distinct values found under each tag key (sorted), for the filter selectors."""
    values: Dict[str, set] = {}
    for character in pool:
        for key, items in character.tags.items():
            values.setdefault(key, set()).update(items)
    return {key: sorted(items) for key, items in sorted(values.items())}


def prop_keys(pool: List[Character]) -> List[str]:
    keys = set()
    for character in pool:
        keys.update(character.props.keys())
    return sorted(keys)


def find_by_fingerprint(pool: List[Character], fp: str) -> Optional[Character]:
    for character in pool:
        if fingerprint(character) == fp:
            return character
    return None


def effective_filters(config: GameConfig) -> TagFilterSelection:
    """The constraining part of the configured selection ({} = whole pool)."""
    return {k: list(v) for k, v in config.tag_filters.items() if v}


def has_selection(config: GameConfig) -> bool:
    """True when something is selected, or the "all" default is explicitly enabled."""
    return bool(effective_filters(config)) or config.select_all_by_default


def describe_no_match(
    pool: List[Character],
    filters: TagFilterSelection,
    used_ids: Iterable[str] = (),
) -> str:
    """Operator-facing explanation of why `available()` came back empty."""
    present = tag_values(pool)
    selected = active_keys(filters)
    lines = ["No characters match the selected filters."]
    for key in sorted(selected):
        lines.append(
            f"Selected {key}: {', '.join(sorted(selected[key]))} "
            f"(available {key}: {', '.join(present.get(key, [])) or 'none'})"
        )
    used = set(used_ids)
    matching = [c for c in pool if matches(c, filters)]
    if matching and all(fingerprint(c) in used for c in matching):
        lines.append(f"All {len(matching)} matching characters were already played; reset the game to reuse them.")
    else:
        lines.append("Adjust the selection in the configuration.")
    return "\n".join(lines)
