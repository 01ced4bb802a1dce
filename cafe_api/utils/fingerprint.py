"""Stable keys built from the semantically relevant fields of a request."""

from __future__ import annotations

import hashlib
from typing import Any, Iterable, Mapping


def _norm(text: str | None) -> str:
    return " ".join((text or "").split()).lower()


def enabled_vibes(vibes: Mapping[str, Any] | Iterable[str] | None) -> list[str]:
    """Return the sorted names of enabled vibes.

    Accepts either a toggle mapping (``{"cozy": True, "nightOwl": False}``)
    or a plain list of vibe names.
    """
    if not vibes:
        return []
    if isinstance(vibes, Mapping):
        return sorted(str(name) for name, enabled in vibes.items() if enabled)
    return sorted({str(name) for name in vibes})


def image_fingerprint(image_url: str) -> str:
    return image_url.strip()


def cafe_city_fingerprint(cafe_name: str, city: str) -> str:
    return f"{_norm(cafe_name)}:{_norm(city)}"


def candidates_fingerprint(source_name: str, candidate_names: Iterable[str]) -> str:
    return f"{_norm(source_name)}:{','.join(_norm(name) for name in candidate_names)}"


def search_context_fingerprint(
    destination: str,
    vibes: Mapping[str, Any] | Iterable[str] | None,
    free_text: str | None,
    origin_place_ids: Iterable[str],
) -> str:
    """Fingerprint of the search context that produced a place view.

    Equivalent contexts (vibe order, origin order, whitespace/case of the
    text fields) map to the same value.
    """
    raw = "|".join(
        [
            _norm(destination),
            ",".join(enabled_vibes(vibes)),
            _norm(free_text),
            ",".join(sorted(set(origin_place_ids))),
        ]
    )
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:24]
