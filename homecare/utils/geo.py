"""
Distance and city-name helpers used by provider matching.
"""

import math
import re

EARTH_RADIUS_KM = 6371.0

# Arabic harakat: fathatan through sukun (U+064B..U+0652)
_DIACRITICS = re.compile("[\u064B-\u0652]")
_TOKEN_SPLIT = re.compile(r"[\s,\-/()،]+")

# Administrative regions and the spellings seen in booking forms
CITY_ALIASES: dict[str, tuple[str, ...]] = {
    "amman": ("عمان", "amman", "عمّان"),
    "irbid": ("اربد", "إربد", "irbid"),
    "zarqa": ("الزرقاء", "zarqa", "الزرقا"),
    "aqaba": ("العقبة", "aqaba"),
    "salt": ("السلط", "salt"),
    "madaba": ("مادبا", "madaba"),
    "jerash": ("جرش", "jerash"),
    "ajloun": ("عجلون", "ajloun"),
    "karak": ("الكرك", "karak"),
    "tafilah": ("الطفيلة", "tafilah"),
    "maan": ("معان", "maan"),
    "mafraq": ("المفرق", "mafraq"),
}


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance in km using Haversine formula"""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2) * math.sin(dlat / 2) + math.cos(
        math.radians(lat1)
    ) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) * math.sin(dlon / 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def normalize_city(city: str | None) -> str:
    """Lowercase, trim and strip Arabic diacritics."""
    if not city:
        return ""
    return _DIACRITICS.sub("", city.strip().lower())


def _build_alias_index(aliases: dict[str, tuple[str, ...]]) -> dict[str, str]:
    index: dict[str, str] = {}
    for group, spellings in aliases.items():
        index[normalize_city(group)] = group
        for spelling in spellings:
            index[normalize_city(spelling)] = group
    return index


CITY_ALIAS_INDEX = _build_alias_index(CITY_ALIASES)


def city_group(city: str | None) -> str | None:
    """
    Canonical region for a city name, or None when it is not in the alias table.
    Free-text names like "Amman - Khalda" resolve through their tokens.
    """
    normalized = normalize_city(city)
    if not normalized:
        return None
    group = CITY_ALIAS_INDEX.get(normalized)
    if group:
        return group
    for token in _TOKEN_SPLIT.split(normalized):
        if token and token in CITY_ALIAS_INDEX:
            return CITY_ALIAS_INDEX[token]
    return None


def cities_match(city1: str | None, city2: str | None) -> bool:
    """
    Two city names match when one normalized form contains the other, or when
    both resolve to the same region in the alias table.
    """
    n1 = normalize_city(city1)
    n2 = normalize_city(city2)
    if not n1 or not n2:
        return False
    if n1 in n2 or n2 in n1:
        return True
    g1 = city_group(n1)
    return g1 is not None and g1 == city_group(n2)
