"""
Models / character.py
Role:
- Define the immutable character record handed over by the ingestion layer.
- Define the small reporting structures derived from the pool (category counts).

Fields:
- props: display-only key -> string (names, nicknames, ...).
- tags: filterable key -> ordered unique values (a key may hold several values,
  e.g. a character listed under two categories).
- image_ref: opaque image locator, required.
"""
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Tag key used for category reporting and for the fingerprint
CATEGORY_TAG = "category"

# Tag key -> accepted values. An empty list means "no constraint for that key".
TagFilterSelection = Dict[str, List[str]]


class Character(BaseModel):
    """One guessable character (read-only once loaded)."""
    props: Dict[str, str] = Field(default_factory=dict)
    tags: Dict[str, List[str]] = Field(default_factory=dict)
    image_ref: str = Field(..., min_length=1)

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("props", mode="before")
    @classmethod
    def _stringify_props(cls, value):
        if not isinstance(value, dict):
            return value
        return {str(k): "" if v is None else str(v) for k, v in value.items()}

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value):
        # a bare string becomes a one-value list; duplicates are dropped, order kept
        if not isinstance(value, dict):
            return value
        normalized: Dict[str, List[str]] = {}
        for key, raw in value.items():
            items = [raw] if isinstance(raw, (str, int, float)) else list(raw or [])
            seen: List[str] = []
            for item in items:
                text = str(item).strip()
                if text and text not in seen:
                    seen.append(text)
            normalized[str(key)] = seen
        return normalized

    def tag_values(self, key: str) -> List[str]:
        return list(self.tags.get(key, []))

    @property
    def categories(self) -> List[str]:
        return self.tag_values(CATEGORY_TAG)

    @property
    def display_name(self) -> str:
        """Prop values joined in key order (used in log lines and messages)."""
        parts = [self.props[k] for k in sorted(self.props) if self.props[k]]
        return " ".join(parts) or self.image_ref


class CategoryInfo(BaseModel):
    """Remaining vs total characters for one category value."""
    name: str
    remaining: int = 0
    total: int = 0
