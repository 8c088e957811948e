from itertools import combinations

import pytest

from sarabanda.models.character import Character
from sarabanda.services.character_pool import (
    available,
    category_counts,
    describe_no_match,
    find_by_fingerprint,
    is_used,
    fingerprint,
    matches,
    prop_keys,
    tag_values,
)


def test_fingerprint_is_stable_under_reordering():
    first = Character(
        props={"given_names": "Ada", "family_names": "Lovelace"},
        tags={"category": ["Science", "History"]},
        image_ref="a.png",
    )
    second = Character(
        props={"family_names": "Lovelace", "given_names": "Ada"},
        tags={"category": ["History", "Science"]},
        image_ref="b.png",
    )
    assert fingerprint(first) == fingerprint(second) == "ada_lovelace_history_science"


def test_fingerprint_normalizes_case_and_whitespace():
    character = Character(props={"name": "Ada   BYRON"}, tags={"category": ["Old  Times"]}, image_ref="x")
    assert fingerprint(character) == "ada_byron_old_times"


def test_fingerprint_ignores_non_category_tags():
    base = Character(props={"name": "Ada"}, tags={"category": ["A"], "difficulty": ["1"]}, image_ref="x")
    other = Character(props={"name": "Ada"}, tags={"category": ["A"], "difficulty": ["3"]}, image_ref="y")
    assert fingerprint(base) == fingerprint(other)


def test_available_scenario_multi_category(pool):
    picked = available(pool, [], {"category": ["A"]})
    assert [c.props["given_names"] for c in picked] == ["Ada", "Alan", "Grace"]


def test_available_excludes_used(pool):
    used = [fingerprint(pool[0])]
    picked = available(pool, used, {"category": ["A"]})
    assert [c.props["given_names"] for c in picked] == ["Alan", "Grace"]


def test_matches_and_across_keys_or_within_key(pool):
    filters = {"category": ["B"], "difficulty": ["1", "2"]}
    assert [c.props["given_names"] for c in pool if matches(c, filters)] == ["Alan", "Linus", "Margaret"]


def test_empty_selection_imposes_nothing(pool):
    assert all(matches(c, {"category": []}) for c in pool)
    assert all(matches(c, {}) for c in pool)


def test_missing_tag_never_matches_filtered_key():
    untagged = Character(props={"name": "Nobody"}, tags={}, image_ref="x")
    assert not matches(untagged, {"category": ["A"]})
    assert matches(untagged, {"category": []})


def test_matches_is_monotonic_when_widening(pool):
    values = ["A", "B", "C"]
    for size in range(1, len(values) + 1):
        for narrow in combinations(values, size):
            for extra in values:
                wide = set(narrow) | {extra}
                for character in pool:
                    if matches(character, {"category": list(narrow)}):
                        assert matches(character, {"category": sorted(wide)})


def test_category_counts_remaining_vs_total(pool):
    used = [fingerprint(pool[1])]  # Alan: A and B
    counts = {c.name: (c.remaining, c.total) for c in category_counts(pool, used, {})}
    assert counts == {"A": (2, 3), "B": (2, 3)}


def test_category_counts_respect_filters(pool):
    counts = category_counts(pool, [], {"difficulty": ["1"]})
    assert [(c.name, c.total) for c in counts] == [("A", 1), ("B", 1)]


def test_tag_values_and_prop_keys(pool):
    assert tag_values(pool) == {"category": ["A", "B"], "difficulty": ["1", "2", "3"]}
    assert prop_keys(pool) == ["family_names", "given_names"]


def test_find_by_fingerprint(pool):
    assert find_by_fingerprint(pool, fingerprint(pool[3])) is pool[3]
    assert find_by_fingerprint(pool, "nope") is None
    assert is_used(pool[3], [fingerprint(pool[3])])
    assert not is_used(pool[0], [fingerprint(pool[3])])


def test_describe_no_match_names_the_selection(pool):
    message = describe_no_match(pool, {"category": ["Z"]})
    assert "Selected category: Z" in message
    assert "available category: A, B" in message


def test_describe_no_match_mentions_exhausted_pool(pool):
    used = [fingerprint(c) for c in pool]
    message = describe_no_match(pool, {"category": ["A"]}, used)
    assert "already played" in message


@pytest.mark.parametrize("raw", [["A", "A", " B "], "A"])
def test_tags_are_deduplicated(raw):
    character = Character(props={}, tags={"category": raw}, image_ref="x")
    assert character.categories[0] == "A"
    assert len(character.categories) == len(set(character.categories))
