"""
Normalization helpers for recipe data: ingredient lines, durations,
yields and cuisine tags.
"""

import re
from typing import Any, Iterable, List, Optional, Tuple

from models.schema import Ingredient

UNICODE_FRACTIONS = {
    "½": "1/2",
    "¼": "1/4",
    "¾": "3/4",
    "⅓": "1/3",
    "⅔": "2/3",
    "⅛": "1/8",
    "⅜": "3/8",
    "⅝": "5/8",
    "⅞": "7/8",
}

ISO_DURATION = re.compile(
    r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$",
    re.IGNORECASE,
)

TEXT_DURATION = re.compile(
    r"(\d+)\s*(hours?|hrs?|h\b|minutes?|mins?|m\b)", re.IGNORECASE
)


def normalize_text(value: Optional[str]) -> str:
    """Collapse whitespace and trim."""
    return " ".join((value or "").split())


def parse_iso_duration(value: Any) -> Optional[int]:
    """
    Convert an ISO-8601 duration ("PT1H30M", "P0DT45M") to whole minutes.

    Returns None for anything that is not a duration.
    """
    if not isinstance(value, str):
        return None
    m = ISO_DURATION.match(value.strip())
    if not m or not any(m.groups()):
        return None
    days, hours, minutes, seconds = (float(g) if g else 0.0 for g in m.groups())
    return int(days * 1440 + hours * 60 + minutes + seconds // 60)


def parse_time_minutes(value: Any) -> Optional[int]:
    """Minutes from a number, an ISO duration, or text like "1 hr 20 mins"."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value >= 0 else None
    if not isinstance(value, str) or not value.strip():
        return None

    iso = parse_iso_duration(value)
    if iso is not None:
        return iso

    total = 0
    for amount, unit in TEXT_DURATION.findall(value):
        if unit.lower().startswith("h"):
            total += int(amount) * 60
        else:
            total += int(amount)
    if total:
        return total
    if value.strip().isdigit():
        return int(value.strip())
    return None


def parse_servings(value: Any) -> Optional[int]:
    """
    Servings from a recipeYield-style value.

    Accepts numbers, "4 servings", "Serves 6", or a list (first usable entry).
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value >= 1 else None
    if isinstance(value, (list, tuple)):
        for item in value:
            servings = parse_servings(item)
            if servings:
                return servings
        return None
    if isinstance(value, str):
        m = re.search(r"(\d+)", value)
        if m and int(m.group(1)) >= 1:
            return int(m.group(1))
    return None


class IngredientParser:
    """Split an ingredient line into quantity, unit and name."""

    # canonical unit -> spellings
    UNITS = {
        "tbsp": ["tbsp", "tbs", "tbl", "tablespoon", "tablespoons", "T"],
        "tsp": ["tsp", "teaspoon", "teaspoons", "t"],
        "cup": ["cup", "cups", "c"],
        "g": ["g", "gram", "grams", "gr"],
        "kg": ["kg", "kilogram", "kilograms"],
        "ml": ["ml", "milliliter", "milliliters", "millilitre", "millilitres"],
        "l": ["l", "liter", "liters", "litre", "litres"],
        "oz": ["oz", "ounce", "ounces"],
        "lb": ["lb", "lbs", "pound", "pounds"],
        "pinch": ["pinch", "pinches"],
        "clove": ["clove", "cloves"],
        "can": ["can", "cans"],
        "slice": ["slice", "slices"],
        "bunch": ["bunch", "bunches"],
        "package": ["package", "packages", "pkg"],
    }

    _QUANTITY = re.compile(
        r"^(?P<qty>\d+\s+\d+/\d+|\d+/\d+|\d+(?:\.\d+)?)"
        r"(?:\s*(?:-|to)\s*(?:\d+/\d+|\d+(?:\.\d+)?))?\s*(?P<rest>.*)$"
    )

    def __init__(self):
        self._unit_lookup = {}
        for canonical, spellings in self.UNITS.items():
            for spelling in spellings:
                self._unit_lookup[spelling] = canonical

    def parse(self, line: str) -> Optional[Ingredient]:
        """Parse one line; returns None for blank lines."""
        original = normalize_text(line)
        text = re.sub(r"^[-•*]\s*", "", original)
        if not text:
            return None
        text = self._expand_fractions(text)

        m = self._QUANTITY.match(text)
        if not m:
            return Ingredient(name=text, original=original)

        quantity = self._to_number(m.group("qty"))
        unit, name = self._split_unit(m.group("rest"))
        if not name:
            return Ingredient(name=text, original=original)
        return Ingredient(name=name, quantity=quantity, unit=unit, original=original)

    def parse_all(self, lines: Iterable[Any]) -> List[Ingredient]:
        ingredients: List[Ingredient] = []
        for line in lines:
            if isinstance(line, dict):
                line = line.get("text") or line.get("name") or ""
            if not isinstance(line, str):
                continue
            parsed = self.parse(line)
            if parsed is not None:
                ingredients.append(parsed)
        return ingredients

    def normalize_unit(self, unit: str) -> Optional[str]:
        """Canonical unit for a spelling, or None if unknown."""
        cleaned = unit.rstrip(".")
        if cleaned in self._unit_lookup:
            return self._unit_lookup[cleaned]
        return self._unit_lookup.get(cleaned.lower())

    # ------------------------------------------------------------------

    @staticmethod
    def _expand_fractions(text: str) -> str:
        for char, frac in UNICODE_FRACTIONS.items():
            # "1½" -> "1 1/2"
            text = re.sub(rf"(\d){char}", rf"\1 {frac}", text)
            text = text.replace(char, frac)
        return text

    @staticmethod
    def _to_number(raw: str) -> Optional[float]:
        raw = raw.strip()
        try:
            if " " in raw:
                whole, frac = raw.split(None, 1)
                num, den = frac.split("/")
                return int(whole) + float(num) / float(den)
            if "/" in raw:
                num, den = raw.split("/")
                return float(num) / float(den)
            return float(raw)
        except (ValueError, ZeroDivisionError):
            return None

    def _split_unit(self, rest: str) -> Tuple[Optional[str], str]:
        rest = rest.strip()
        if not rest:
            return None, ""
        first, _, remainder = rest.partition(" ")
        unit = self.normalize_unit(first)
        if unit and remainder.strip():
            name = re.sub(r"^of\s+", "", remainder.strip())
            return unit, name
        return None, rest


class CuisineNormalizer:
    """Maps cuisine spellings onto canonical lower-case tags."""

    ALIASES = {
        "tex-mex": "mexican",
        "mexicana": "mexican",
        "italiana": "italian",
        "middle eastern": "middle-eastern",
        "mediterranean": "mediterranean",
        "asian": "asian",
        "american": "american",
        "southern": "american",
        "indian": "indian",
        "south indian": "indian",
        "north indian": "indian",
        "thai": "thai",
        "japanese": "japanese",
        "korean": "korean",
        "chinese": "chinese",
        "cantonese": "chinese",
        "szechuan": "chinese",
        "sichuan": "chinese",
    }

    @classmethod
    def normalize(cls, cuisine: str) -> str:
        tag = normalize_text(cuisine).lower()
        return cls.ALIASES.get(tag, tag)

    @classmethod
    def normalize_all(cls, values: Any) -> List[str]:
        """Canonical tags from a string ("Mexican, Tex-Mex") or a list."""
        if isinstance(values, str):
            values = values.split(",")
        if not isinstance(values, (list, tuple)):
            return []
        out: List[str] = []
        for value in values:
            if not isinstance(value, str):
                continue
            tag = cls.normalize(value)
            if tag and tag not in out:
                out.append(tag)
        return out


def tokenize(text: str) -> List[str]:
    """Lower-case word tokens of length > 2."""
    return [t for t in re.findall(r"[a-z0-9]+", (text or "").lower()) if len(t) > 2]
