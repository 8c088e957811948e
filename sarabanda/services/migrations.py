"""
Service: migrations.py
Role:
- Upgrade persisted payloads written by older versions before validation.
- Plugged into the state channels as their `upgrade` hook, so the reducers only
  ever see current shapes (missing newer fields then take model defaults).

Legacy shapes handled:
- Flat characters (`family_names`, `given_names`, `category`, `difficulty`,
  `image_url`) -> `props` / `tags` / `imageRef`.
- Config `nthTurnDurations` / `nthTurnScores` / `googleSheetUrl` and the
  `selectedCategories` / `selectedDifficulties` pair -> `tagFilters`.
- Status `usedCharacters`, `gameHistory`, `timerEndsAt`, `currentTurn` and the
  old `setup` / `ready` phases.
"""
from typing import Any, Dict, List

_LEGACY_PROP_KEYS = ("family_names", "given_names")
_LEGACY_TAG_KEYS = ("category", "difficulty")
_LEGACY_PHASES = {"setup": "prepping", "ready": "prepping"}


def _rename(data: Dict[str, Any], old: str, new: str) -> None:
    if old in data and new not in data:
        data[new] = data.pop(old)
    else:
        data.pop(old, None)


def upgrade_character(raw: Any) -> Any:
    if not isinstance(raw, dict):
        return raw
    data = dict(raw)
    props = dict(data.get("props") or {})
    for key in _LEGACY_PROP_KEYS:
        if key in data:
            props.setdefault(key, data.pop(key))
    if props:
        data["props"] = props

    tags = dict(data.get("tags") or {})
    for key in _LEGACY_TAG_KEYS:
        if key in data:
            value = data.pop(key)
            if key not in tags and value not in (None, ""):
                tags[key] = value if isinstance(value, list) else [value]
    if tags:
        data["tags"] = tags

    _rename(data, "image_url", "imageRef")
    _rename(data, "image_ref", "imageRef")
    data.pop("hints", None)
    return data


def upgrade_people(raw: Any) -> Any:
    if not isinstance(raw, list):
        return raw
    return [upgrade_character(item) for item in raw]


def upgrade_config(raw: Any) -> Any:
    if not isinstance(raw, dict):
        return raw
    data = dict(raw)
    _rename(data, "nthTurnDurations", "turnDurations")
    _rename(data, "nthTurnScores", "turnScores")
    _rename(data, "googleSheetUrl", "sheetUrl")

    legacy_filters: Dict[str, List[str]] = {}
    if "selectedCategories" in data:
        legacy_filters["category"] = list(data.pop("selectedCategories") or [])
    if "selectedDifficulties" in data:
        legacy_filters["difficulty"] = [str(v) for v in data.pop("selectedDifficulties") or []]
    if legacy_filters and "tagFilters" not in data:
        data["tagFilters"] = legacy_filters
    return data


def upgrade_status(raw: Any) -> Any:
    if not isinstance(raw, dict):
        return raw
    data = dict(raw)
    _rename(data, "usedCharacters", "usedCharacterIds")
    _rename(data, "gameHistory", "roundHistory")
    _rename(data, "timerEndsAt", "timerEndsAtEpochMs")
    _rename(data, "currentTurn", "currentTurnIndex")
    for obsolete in ("timeRemaining", "hintsRevealed", "gameCharacters"):
        data.pop(obsolete, None)

    if data.get("phase") in _LEGACY_PHASES:
        data["phase"] = _LEGACY_PHASES[data["phase"]]
    if "config" in data:
        data["config"] = upgrade_config(data["config"])
    if "characters" in data:
        data["characters"] = upgrade_people(data["characters"])
    if data.get("currentCharacter") is not None:
        data["currentCharacter"] = upgrade_character(data["currentCharacter"])
    history = data.get("roundHistory")
    if isinstance(history, list):
        upgraded = []
        for entry in history:
            if isinstance(entry, dict):
                entry = dict(entry)
                entry.pop("hintsUsed", None)
                if "character" in entry:
                    entry["character"] = upgrade_character(entry["character"])
            upgraded.append(entry)
        data["roundHistory"] = upgraded
    return data


def merge_legacy_used(used_ids: List[str], legacy: List[str]) -> List[str]:
    """Append legacy used fingerprints that the status does not know yet."""
    merged = list(used_ids)
    for fp in legacy:
        if fp not in merged:
            merged.append(fp)
    return merged
