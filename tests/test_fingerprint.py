"""Unit tests for request fingerprints."""

from cafe_api.utils.fingerprint import (
    cafe_city_fingerprint,
    candidates_fingerprint,
    enabled_vibes,
    image_fingerprint,
    search_context_fingerprint,
)


def test_enabled_vibes_from_toggles_and_lists():
    assert enabled_vibes({"cozy": True, "nightOwl": False, "roastery": True}) == ["cozy", "roastery"]
    assert enabled_vibes(["roastery", "cozy", "cozy"]) == ["cozy", "roastery"]
    assert enabled_vibes(None) == []


def test_cafe_city_fingerprint_normalizes_case_and_spaces():
    assert cafe_city_fingerprint("Blue  Bottle", "Tokyo ") == cafe_city_fingerprint(
        "blue bottle", "tokyo"
    )


def test_candidates_fingerprint_keeps_candidate_order():
    assert candidates_fingerprint("Src", ["A", "B"]) == "src:a,b"
    assert candidates_fingerprint("Src", ["B", "A"]) != candidates_fingerprint("Src", ["A", "B"])


def test_image_fingerprint_strips_whitespace():
    assert image_fingerprint(" https://img/1.jpg ") == "https://img/1.jpg"


def test_search_context_fingerprint_ignores_ordering():
    first = search_context_fingerprint(
        "Lisbon", {"cozy": True, "roastery": True}, "Quiet  spot", ["p2", "p1"]
    )
    second = search_context_fingerprint(
        " lisbon", ["roastery", "cozy"], "quiet spot", ["p1", "p2"]
    )
    assert first == second
    assert len(first) == 24


def test_search_context_fingerprint_distinguishes_contexts():
    base = search_context_fingerprint("Lisbon", ["cozy"], None, ["p1"])
    assert base != search_context_fingerprint("Porto", ["cozy"], None, ["p1"])
    assert base != search_context_fingerprint("Lisbon", ["roastery"], None, ["p1"])
    assert base != search_context_fingerprint("Lisbon", ["cozy"], "late", ["p1"])
    assert base != search_context_fingerprint("Lisbon", ["cozy"], None, ["p9"])
