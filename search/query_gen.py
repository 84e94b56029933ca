"""
Query Generator: builds provider query strings from a SearchRequest.

Every query carries:
  - a literal intent marker ("recipe" + "ingredients instructions") so
    providers favour single-recipe pages over aggregators
  - a negative clause against collection / gallery / roundup pages
  - dietary tags expanded into exclusion terms (raw tags under-constrain
    free-text search)

Pure: no network, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from models.enums import Difficulty
from models.schema import SearchRequest


@dataclass
class SearchQuery:
    """A generated query string with metadata."""

    query: str
    purpose: str  # human-readable intent
    broadness: str = "primary"  # primary | broader | narrower


@dataclass
class QueryPlan:
    """Primary query plus alternates for retry use."""

    primary: SearchQuery
    alternates: List[SearchQuery] = field(default_factory=list)

    @property
    def all_queries(self) -> List[SearchQuery]:
        return [self.primary] + self.alternates


# ------------------------------------------------------------------
# Static tables
# ------------------------------------------------------------------

INTENT_TERMS = ["ingredients", "instructions"]

COLLECTION_EXCLUSIONS = [
    "-gallery", "-collection", "-roundup", '-"best recipes"', '-"top recipes"',
]

# dietary tag -> (inclusion label, excluded terms)
DIETARY_SYNONYMS: Dict[str, Tuple[str, List[str]]] = {
    "vegan": ("vegan", [
        "chicken", "beef", "pork", "fish", "egg", "dairy", "cheese",
        "butter", "honey",
    ]),
    "vegetarian": ("vegetarian", ["chicken", "beef", "pork", "fish", "bacon"]),
    "pescatarian": ("pescatarian", ["chicken", "beef", "pork", "bacon"]),
    "gluten-free": ("gluten-free", ["wheat", "flour", "barley", "rye"]),
    "dairy-free": ("dairy-free", ["milk", "cheese", "butter", "cream", "yogurt"]),
    "nut-free": ("nut-free", ["peanut", "almond", "cashew", "walnut", "pecan"]),
    "keto": ("keto low-carb", ["sugar", "rice", "pasta", "bread"]),
    "halal": ("halal", ["pork", "bacon", "ham", "wine"]),
    "kosher": ("kosher", ["pork", "shellfish", "bacon"]),
}

DIETARY_ALIASES: Dict[str, str] = {
    "plant-based": "vegan",
    "plant based": "vegan",
    "veggie": "vegetarian",
    "gluten free": "gluten-free",
    "glutenfree": "gluten-free",
    "dairy free": "dairy-free",
    "lactose-free": "dairy-free",
    "nut free": "nut-free",
    "ketogenic": "keto",
    "low-carb": "keto",
}

CUISINE_AUTHENTICITY: Dict[str, str] = {
    "mexican": "authentic traditional mexican cocina mexicana",
    "italian": "authentic traditional italian cucina italiana",
    "chinese": "authentic traditional chinese",
    "indian": "authentic traditional indian",
    "japanese": "authentic traditional japanese washoku",
    "thai": "authentic traditional thai",
    "french": "authentic traditional french",
    "korean": "authentic traditional korean hansik",
    "vietnamese": "authentic traditional vietnamese",
    "greek": "authentic traditional greek",
    "spanish": "authentic traditional spanish cocina española",
    "middle-eastern": "authentic traditional middle eastern",
    "ethiopian": "authentic traditional ethiopian",
    "caribbean": "authentic traditional caribbean",
    "peruvian": "authentic traditional peruvian",
}

DIFFICULTY_TERMS: Dict[Difficulty, str] = {
    Difficulty.EASY: "easy",
    Difficulty.MODERATE: "",
    Difficulty.ADVANCED: "advanced",
}


def canonical_dietary_tag(tag: str) -> str:
    """Map an alias ("plant-based") onto its canonical tag ("vegan")."""
    tag = tag.strip().lower()
    return DIETARY_ALIASES.get(tag, tag)


class QueryGenerator:
    """Generate search queries from a structured request."""

    def build(self, request: SearchRequest) -> QueryPlan:
        """Primary query plus a broader and (with a cuisine) a narrower one."""
        primary = SearchQuery(
            query=self._compose(request, detailed=True),
            purpose="primary recipe discovery",
        )

        alternates: List[SearchQuery] = []
        broader = self._compose(request, detailed=False)
        if broader != primary.query:
            alternates.append(
                SearchQuery(query=broader, purpose="broader retry", broadness="broader")
            )

        if request.cuisine:
            alternates.append(
                SearchQuery(
                    query=self._compose(request, detailed=True, authentic=True),
                    purpose=f"authentic {request.cuisine} recipes",
                    broadness="narrower",
                )
            )

        return QueryPlan(primary=primary, alternates=alternates)

    def primary_query(self, request: SearchRequest) -> str:
        return self.build(request).primary.query

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def _compose(
        self,
        request: SearchRequest,
        detailed: bool,
        authentic: bool = False,
    ) -> str:
        include: List[str] = []
        exclude: List[str] = []

        if detailed and request.difficulty:
            include.append(DIFFICULTY_TERMS.get(request.difficulty, ""))

        if authentic and request.cuisine:
            include.append(
                CUISINE_AUTHENTICITY.get(
                    request.cuisine, f"authentic traditional {request.cuisine}"
                )
            )
        elif request.cuisine:
            include.append(request.cuisine)

        if request.country and (detailed or authentic):
            include.append(request.country)

        for tag in sorted(request.dietary_restrictions):
            label, banned = self._expand_dietary(tag)
            include.append(label)
            exclude.extend(banned)

        include.append(request.topic)
        if "recipe" not in " ".join(include).lower():
            include.append("recipe")

        if detailed and request.include_ingredients:
            include.append("with " + " ".join(sorted(request.include_ingredients)))

        if detailed and request.max_time_minutes:
            include.append(f"under {request.max_time_minutes} minutes")

        include.extend(INTENT_TERMS)
        exclude.extend(sorted(request.exclude_ingredients))

        parts = _dedupe_words(" ".join(p for p in include if p))
        negatives = _dedupe([_negate(term) for term in exclude])
        return " ".join(parts + negatives + COLLECTION_EXCLUSIONS).strip()

    @staticmethod
    def _expand_dietary(tag: str) -> Tuple[str, List[str]]:
        canonical = canonical_dietary_tag(tag)
        if canonical in DIETARY_SYNONYMS:
            label, banned = DIETARY_SYNONYMS[canonical]
            return label, list(banned)
        return canonical, []


def _negate(term: str) -> str:
    return f'-"{term}"' if " " in term else f"-{term}"


def _dedupe(items: List[str]) -> List[str]:
    seen = set()
    out = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def _dedupe_words(text: str) -> List[str]:
    """Split into words, keeping the first occurrence of each (case-insensitive)."""
    seen = set()
    out = []
    for word in text.split():
        key = word.lower()
        if key not in seen:
            seen.add(key)
            out.append(word)
    return out
