"""
schema.org Recipe parsing.

JSON-LD is read first (selectolax finds the script blocks); microdata
(``itemtype=".../Recipe"``) is a secondary parse through BeautifulSoup.
"""

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from bs4 import BeautifulSoup
from selectolax.parser import HTMLParser

from models.schema import PartialRecord
from normalizer.engine import (
    CuisineNormalizer,
    IngredientParser,
    normalize_text,
    parse_servings,
    parse_time_minutes,
)
from utils.urls import resolve_url

logger = logging.getLogger(__name__)

_ingredients = IngredientParser()


def parse_recipe_markup(html: str, url: str) -> Optional[PartialRecord]:
    """
    Extract a recipe from embedded schema.org markup.

    Returns None when the page carries no Recipe object.
    """
    if not html:
        return None

    recipe = _find_json_ld_recipe(html)
    if recipe is not None:
        return _recipe_from_json_ld(recipe, url)

    return _recipe_from_microdata(html, url)


# ------------------------------------------------------------------
# JSON-LD
# ------------------------------------------------------------------

def _find_json_ld_recipe(html: str) -> Optional[Dict[str, Any]]:
    tree = HTMLParser(html)
    for node in tree.css('script[type="application/ld+json"]'):
        raw = (node.text(deep=True) or "").strip()
        if not raw:
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            # some sites leave trailing commas
            try:
                data = json.loads(re.sub(r",(\s*[}\]])", r"\1", raw))
            except json.JSONDecodeError:
                logger.debug("Skipping unparsable JSON-LD block")
                continue
        recipe = _search_recipe(data)
        if recipe is not None:
            return recipe
    return None


def _search_recipe(data: Any) -> Optional[Dict[str, Any]]:
    """Depth-first search through arrays and @graph for a Recipe object."""
    if isinstance(data, list):
        for item in data:
            found = _search_recipe(item)
            if found is not None:
                return found
        return None
    if not isinstance(data, dict):
        return None

    if _is_recipe_type(data.get("@type")):
        return data
    if "@graph" in data:
        return _search_recipe(data["@graph"])
    main = data.get("mainEntity") or data.get("mainEntityOfPage")
    if isinstance(main, (dict, list)):
        return _search_recipe(main)
    return None


def _is_recipe_type(value: Any) -> bool:
    if isinstance(value, str):
        return value.rsplit("/", 1)[-1].lower() == "recipe"
    if isinstance(value, list):
        return any(_is_recipe_type(v) for v in value)
    return False


def _recipe_from_json_ld(recipe: Dict[str, Any], url: str) -> PartialRecord:
    ingredients_raw = recipe.get("recipeIngredient") or recipe.get("ingredients") or []
    if isinstance(ingredients_raw, str):
        ingredients_raw = [ingredients_raw]

    return PartialRecord(
        title=_text(recipe.get("name") or recipe.get("headline")) or None,
        description=_text(recipe.get("description")) or None,
        ingredients=_ingredients.parse_all(ingredients_raw),
        instructions=_instructions(recipe.get("recipeInstructions")),
        servings=parse_servings(recipe.get("recipeYield")),
        total_time_minutes=parse_time_minutes(recipe.get("totalTime")),
        prep_time_minutes=parse_time_minutes(recipe.get("prepTime")),
        cook_time_minutes=parse_time_minutes(recipe.get("cookTime")),
        cuisines=CuisineNormalizer.normalize_all(recipe.get("recipeCuisine") or []),
        image_url=_image(recipe.get("image"), url),
        source_url=url,
    )


def _instructions(value: Any) -> List[str]:
    """Flatten text, HowToStep and HowToSection forms into ordered steps."""
    steps: List[str] = []
    if value is None:
        return steps
    if isinstance(value, str):
        # a single block; split on line breaks or numbered steps
        parts = re.split(r"\n+|(?:^|\s)\d+[.)]\s+", _strip_tags(value))
        return [normalize_text(p) for p in parts if normalize_text(p)]
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, list):
        return steps

    for item in value:
        if isinstance(item, str):
            text = normalize_text(_strip_tags(item))
            if text:
                steps.append(text)
        elif isinstance(item, dict):
            kind = item.get("@type")
            if _type_is(kind, "HowToSection"):
                steps.extend(_instructions(item.get("itemListElement")))
            else:
                text = normalize_text(_strip_tags(str(item.get("text") or item.get("name") or "")))
                if text:
                    steps.append(text)
    return steps


def _type_is(value: Any, name: str) -> bool:
    if isinstance(value, list):
        return name in value
    return value == name


def _image(value: Any, base_url: str) -> Optional[str]:
    """Image may be a string, a list, or an ImageObject."""
    if isinstance(value, list):
        for item in value:
            found = _image(item, base_url)
            if found:
                return found
        return None
    if isinstance(value, dict):
        return _image(value.get("url") or value.get("contentUrl"), base_url)
    if isinstance(value, str):
        return resolve_url(value, base_url)
    return None


def _text(value: Any) -> str:
    if isinstance(value, list):
        value = value[0] if value else ""
    if not isinstance(value, str):
        return ""
    return normalize_text(_strip_tags(value))


def _strip_tags(value: str) -> str:
    return re.sub(r"<[^>]+>", " ", value)


# ------------------------------------------------------------------
# Microdata
# ------------------------------------------------------------------

def _recipe_from_microdata(html: str, url: str) -> Optional[PartialRecord]:
    soup = BeautifulSoup(html, "html.parser")
    scope = soup.find(
        attrs={"itemtype": re.compile(r"schema\.org/Recipe$", re.IGNORECASE)}
    )
    if scope is None:
        return None

    def props(name: str) -> List[Any]:
        return scope.find_all(attrs={"itemprop": name})

    def first_text(name: str) -> Optional[str]:
        for node in props(name):
            text = _prop_value(node)
            if text:
                return text
        return None

    ingredient_lines = [_prop_value(n) for n in props("recipeIngredient")]
    if not any(ingredient_lines):
        ingredient_lines = [_prop_value(n) for n in props("ingredients")]

    steps: List[str] = []
    for node in props("recipeInstructions"):
        items = node.find_all("li")
        if items:
            steps.extend(normalize_text(li.get_text(" ", strip=True)) for li in items)
        else:
            steps.append(_prop_value(node))

    image = None
    for node in props("image"):
        image = resolve_url(node.get("src") or node.get("content") or node.get("href") or "", url)
        if image:
            break

    return PartialRecord(
        title=first_text("name"),
        description=first_text("description"),
        ingredients=_ingredients.parse_all(_non_empty(ingredient_lines)),
        instructions=_non_empty(steps),
        servings=parse_servings(first_text("recipeYield")),
        total_time_minutes=parse_time_minutes(first_text("totalTime")),
        prep_time_minutes=parse_time_minutes(first_text("prepTime")),
        cook_time_minutes=parse_time_minutes(first_text("cookTime")),
        cuisines=CuisineNormalizer.normalize_all(first_text("recipeCuisine") or []),
        image_url=image,
        source_url=url,
    )


def _prop_value(node) -> str:
    """itemprop value: ``content``/``datetime`` attributes win over text."""
    for attr in ("content", "datetime"):
        if node.get(attr):
            return normalize_text(node[attr])
    return normalize_text(node.get_text(" ", strip=True))


def _non_empty(items: Iterable[str]) -> List[str]:
    return [i for i in items if i]
