"""
Last-resort recipe sources: a small curated dataset bundled with the
package, and placeholder records synthesized from the request.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from models.enums import ExtractionMethod
from models.schema import ExtractedRecord, Ingredient, SearchRequest
from normalizer.engine import IngredientParser

from .query_gen import DIETARY_SYNONYMS, canonical_dietary_tag

logger = logging.getLogger(__name__)

_parser = IngredientParser()


def _record(
    slug: str,
    title: str,
    cuisine: str,
    tags: List[str],
    minutes: int,
    servings: int,
    ingredients: List[str],
    steps: List[str],
    description: str = "",
) -> ExtractedRecord:
    return ExtractedRecord(
        title=title,
        description=description,
        ingredients=_parser.parse_all(ingredients),
        instructions=steps,
        servings=servings,
        total_time_minutes=minutes,
        cuisines=[cuisine],
        source_url=f"static://curated/{slug}",
        extraction_method=ExtractionMethod.STATIC_DATASET,
        dietary_tags=tags,
    )


CURATED_RECIPES: List[ExtractedRecord] = [
    _record(
        "black-bean-tacos",
        "Black Bean and Roasted Corn Tacos",
        "mexican",
        ["vegan", "vegetarian", "dairy-free"],
        25,
        4,
        [
            "2 cups cooked black beans",
            "1 cup corn kernels",
            "1 tsp ground cumin",
            "1 tsp chili powder",
            "8 corn tortillas",
            "1 avocado, sliced",
            "1 lime",
            "1/4 cup chopped cilantro",
        ],
        [
            "Roast the corn in a dry skillet until charred in spots.",
            "Warm the beans with cumin, chili powder and a splash of water.",
            "Heat the tortillas and fill with beans, corn and avocado.",
            "Finish with cilantro and a squeeze of lime.",
        ],
        "Smoky beans and charred corn in warm corn tortillas.",
    ),
    _record(
        "calabacitas",
        "Calabacitas con Elote",
        "mexican",
        ["vegan", "vegetarian", "gluten-free", "dairy-free"],
        30,
        4,
        [
            "3 zucchini, diced",
            "1 cup corn kernels",
            "2 tomatoes, chopped",
            "1 poblano pepper, diced",
            "1/2 onion, diced",
            "2 cloves garlic, minced",
            "1 tbsp olive oil",
        ],
        [
            "Soften the onion, garlic and poblano in olive oil.",
            "Add zucchini and corn and cook until just tender.",
            "Stir in the tomatoes and simmer for five minutes.",
            "Season with salt and serve warm.",
        ],
        "Sauteed Mexican squash with corn, tomato and poblano.",
    ),
    _record(
        "vegan-pozole-verde",
        "Pozole Verde with Hominy and Mushrooms",
        "mexican",
        ["vegan", "vegetarian", "gluten-free", "dairy-free"],
        50,
        6,
        [
            "2 cans hominy, drained",
            "1 lb tomatillos, husked",
            "2 jalapenos",
            "8 oz mushrooms, sliced",
            "1 onion, quartered",
            "6 cups vegetable broth",
            "1 tsp dried oregano",
        ],
        [
            "Boil the tomatillos, jalapenos and onion until soft.",
            "Blend them into a smooth green sauce.",
            "Brown the mushrooms in a large pot.",
            "Add the sauce, hominy, broth and oregano and simmer 30 minutes.",
        ],
    ),
    _record(
        "chicken-tinga",
        "Chicken Tinga Tostadas",
        "mexican",
        ["gluten-free"],
        40,
        4,
        [
            "1 lb chicken breast",
            "2 chipotle peppers in adobo",
            "1 can crushed tomatoes",
            "1 onion, sliced",
            "8 tostadas",
            "1/2 cup crema",
        ],
        [
            "Poach the chicken until cooked through, then shred.",
            "Blend the tomatoes with the chipotles.",
            "Cook the onion, add the sauce and shredded chicken, simmer 10 minutes.",
            "Pile onto tostadas and top with crema.",
        ],
    ),
    _record(
        "pasta-e-fagioli",
        "Pasta e Fagioli",
        "italian",
        ["vegan", "vegetarian", "dairy-free"],
        35,
        4,
        [
            "1 can cannellini beans",
            "1 cup ditalini pasta",
            "1 carrot, diced",
            "1 celery stalk, diced",
            "1 can diced tomatoes",
            "4 cups vegetable broth",
            "2 tbsp olive oil",
        ],
        [
            "Cook the carrot and celery in olive oil until soft.",
            "Add tomatoes, beans and broth and bring to a simmer.",
            "Stir in the pasta and cook until tender.",
        ],
    ),
    _record(
        "margherita-pizza",
        "Pizza Margherita",
        "italian",
        ["vegetarian"],
        90,
        2,
        [
            "250 g pizza dough",
            "1/2 cup passata",
            "125 g fresh mozzarella",
            "6 basil leaves",
            "1 tbsp olive oil",
        ],
        [
            "Heat the oven as hot as it goes with a pizza stone inside.",
            "Stretch the dough and spread with passata.",
            "Top with torn mozzarella and bake until blistered.",
            "Finish with basil and olive oil.",
        ],
    ),
    _record(
        "chana-masala",
        "Chana Masala",
        "indian",
        ["vegan", "vegetarian", "gluten-free", "dairy-free"],
        40,
        4,
        [
            "2 cans chickpeas, drained",
            "1 onion, finely chopped",
            "1 tbsp grated ginger",
            "3 cloves garlic, minced",
            "1 can crushed tomatoes",
            "2 tsp garam masala",
            "1 tsp ground turmeric",
        ],
        [
            "Fry the onion until deep golden.",
            "Add ginger, garlic and spices and cook one minute.",
            "Add tomatoes and chickpeas and simmer 20 minutes.",
        ],
    ),
    _record(
        "thai-green-curry",
        "Thai Green Curry with Tofu",
        "thai",
        ["vegan", "vegetarian", "gluten-free", "dairy-free"],
        30,
        4,
        [
            "400 ml coconut milk",
            "3 tbsp green curry paste",
            "400 g firm tofu, cubed",
            "1 red bell pepper, sliced",
            "1 cup green beans",
            "1 tbsp soy sauce",
            "1 handful thai basil",
        ],
        [
            "Fry the curry paste in a little coconut milk until fragrant.",
            "Add the remaining coconut milk, tofu and vegetables.",
            "Simmer until the vegetables are tender and season with soy sauce.",
            "Stir through the basil and serve with rice.",
        ],
    ),
    _record(
        "bibimbap",
        "Vegetable Bibimbap",
        "korean",
        ["vegetarian"],
        45,
        2,
        [
            "2 cups cooked rice",
            "1 carrot, julienned",
            "1 cup spinach",
            "1 cup bean sprouts",
            "2 eggs",
            "2 tbsp gochujang",
            "1 tsp sesame oil",
        ],
        [
            "Blanch or saute each vegetable separately.",
            "Fry the eggs sunny side up.",
            "Arrange the vegetables over rice, top with the egg and gochujang.",
        ],
    ),
]


class StaticDataset:
    """Curated records filtered by the request's hard constraints."""

    def __init__(self, records: Optional[List[ExtractedRecord]] = None):
        self._records = list(records if records is not None else CURATED_RECIPES)

    def __len__(self) -> int:
        return len(self._records)

    def find(self, request: SearchRequest, limit: Optional[int] = None) -> List[ExtractedRecord]:
        wanted_diet = {canonical_dietary_tag(t) for t in request.dietary_restrictions}
        matches: List[ExtractedRecord] = []

        for record in self._records:
            if request.cuisine and request.cuisine not in record.cuisines:
                continue
            if not wanted_diet <= set(record.dietary_tags):
                continue
            if request.max_time_minutes and (
                record.total_time_minutes is None
                or record.total_time_minutes > request.max_time_minutes
            ):
                continue
            names = " ".join(i.name.lower() for i in record.ingredients)
            if any(term in names for term in request.exclude_ingredients):
                continue
            matches.append(record)

        logger.info("Static dataset matched %d records", len(matches))
        return matches[:limit] if limit else matches


# ------------------------------------------------------------------
# Synthesized placeholders
# ------------------------------------------------------------------

DISH_FORMATS = ["Bowl", "Skillet", "Soup", "Salad", "Wrap"]

CUISINE_SEASONINGS: Dict[str, List[str]] = {
    "mexican": ["1 tsp ground cumin", "1 tsp chili powder", "1 lime"],
    "italian": ["2 cloves garlic", "1 tsp dried oregano", "6 basil leaves"],
    "indian": ["1 tsp garam masala", "1 tsp ground turmeric", "1 tbsp grated ginger"],
    "thai": ["1 tbsp red curry paste", "1 stalk lemongrass", "1 lime"],
    "japanese": ["2 tbsp soy sauce", "1 tbsp mirin", "1 tsp grated ginger"],
    "chinese": ["2 tbsp soy sauce", "1 tsp grated ginger", "2 cloves garlic"],
    "korean": ["1 tbsp gochujang", "1 tsp sesame oil", "2 cloves garlic"],
}
DEFAULT_SEASONINGS = ["2 cloves garlic", "1 tsp black pepper", "1 lemon"]

BASE_INGREDIENTS = [
    "1 cup rice",
    "1 can chickpeas, drained",
    "2 cups mixed vegetables",
    "1 onion, diced",
    "2 tbsp olive oil",
]
PROTEIN_INGREDIENTS = ["1 lb chicken thighs"]

PLANT_BASED_TAGS = {"vegan", "vegetarian"}


def synthesize_records(request: SearchRequest, count: int) -> List[ExtractedRecord]:
    """
    Minimal placeholder recipes built from the request.

    They honour dietary and exclusion constraints, carry
    ``low_confidence=True`` and are never cached.
    """
    diet = {canonical_dietary_tag(t) for t in request.dietary_restrictions}
    banned = set(request.exclude_ingredients)
    for tag in diet:
        banned.update(DIETARY_SYNONYMS.get(tag, ("", []))[1])

    lines = list(BASE_INGREDIENTS)
    if not diet & PLANT_BASED_TAGS:
        lines = PROTEIN_INGREDIENTS + lines
    lines += CUISINE_SEASONINGS.get(request.cuisine or "", DEFAULT_SEASONINGS)
    lines = [line for line in lines if not _mentions_any(line, banned)]
    ingredients: List[Ingredient] = _parser.parse_all(lines)
    if not ingredients:
        ingredients = _parser.parse_all(["2 cups mixed vegetables"])

    subject = " ".join(
        w.capitalize() for w in (request.cuisine or request.topic or "").split()
    )
    diet_label = " ".join(t.replace("-", " ").title() for t in sorted(diet))

    records: List[ExtractedRecord] = []
    for i in range(count):
        dish = DISH_FORMATS[i % len(DISH_FORMATS)]
        title = " ".join(p for p in ["Simple", subject, diet_label, dish] if p)
        title = f"{title} (suggested)"
        slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
        records.append(
            ExtractedRecord(
                title=title,
                description="A basic suggestion assembled when no sourced recipe was available.",
                ingredients=ingredients,
                instructions=[
                    "Prepare and chop all ingredients.",
                    "Cook the aromatics and seasonings in a little oil until fragrant.",
                    "Add the remaining ingredients and cook until tender.",
                    "Taste, adjust seasoning and serve.",
                ],
                cuisines=[request.cuisine] if request.cuisine else [],
                source_url=f"synthesized://{slug}-{i + 1}",
                extraction_method=ExtractionMethod.GENERATED_FALLBACK,
                dietary_tags=sorted(diet),
                low_confidence=True,
            )
        )
    return records


def _mentions_any(line: str, terms) -> bool:
    text = line.lower()
    return any(re.search(rf"\b{re.escape(t)}", text) for t in terms)
