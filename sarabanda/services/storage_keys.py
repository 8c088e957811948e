"""
Persisted slot names (one JSON file per name inside `settings.DATA_DIR`).

- CONFIG: operator game configuration (`GameConfig`).
- STATUS: the aggregate `GameStatus`.
- PEOPLE: raw character pool handed over by the ingestion layer.
- USED_CHARACTERS: legacy list of used fingerprints, only read for migration.
"""
CONFIG = "sarabanda_config"
STATUS = "sarabanda_status"
PEOPLE = "sarabanda_people"
USED_CHARACTERS = "sarabanda_used_characters"

ALL_KEYS = (CONFIG, STATUS, PEOPLE, USED_CHARACTERS)
