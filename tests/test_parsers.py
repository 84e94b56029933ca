"""
Tests for schema.org recipe markup and meta-tag image parsing.
"""

import json

import pytest

from parsers.meta_tags import MetaTagImageResolver, parse_meta_image
from parsers.recipe_markup import parse_recipe_markup

PAGE_URL = "https://example.com/recipes/tacos"


def ld_page(*blocks):
    scripts = "".join(
        f'<script type="application/ld+json">{b if isinstance(b, str) else json.dumps(b)}</script>'
        for b in blocks
    )
    return f"<html><head>{scripts}</head><body><p>Hello</p></body></html>"


# ===================================================================
# JSON-LD
# ===================================================================


class TestJsonLd:

    def test_full_recipe(self):
        html = ld_page({
            "@context": "https://schema.org",
            "@type": "Recipe",
            "name": "Vegan Black Bean Tacos",
            "description": "Quick weeknight tacos.",
            "recipeIngredient": ["2 cups black beans", "8 corn tortillas", "1 avocado"],
            "recipeInstructions": [
                {"@type": "HowToStep", "text": "Warm the beans."},
                {"@type": "HowToStep", "text": "Fill the tortillas."},
            ],
            "recipeYield": "4 servings",
            "prepTime": "PT10M",
            "cookTime": "PT15M",
            "totalTime": "PT25M",
            "recipeCuisine": "Mexican",
            "image": {"@type": "ImageObject", "url": "/images/tacos.jpg"},
        })
        rec = parse_recipe_markup(html, PAGE_URL)

        assert rec.title == "Vegan Black Bean Tacos"
        assert len(rec.ingredients) == 3
        assert rec.instructions == ["Warm the beans.", "Fill the tortillas."]
        assert rec.servings == 4
        assert rec.total_time_minutes == 25
        assert rec.prep_time_minutes == 10
        assert rec.cuisines == ["mexican"]
        assert rec.image_url == "https://example.com/images/tacos.jpg"
        assert rec.source_url == PAGE_URL

    def test_graph_and_type_list(self):
        html = ld_page({
            "@context": "https://schema.org",
            "@graph": [
                {"@type": "WebPage", "name": "Pozole page"},
                {
                    "@type": ["Recipe", "NewsArticle"],
                    "name": "Pozole Verde",
                    "recipeIngredient": ["2 cans hominy"],
                    "recipeInstructions": "1. Boil hominy. 2. Add the sauce.",
                    "image": ["https://cdn.example.com/pozole.jpg"],
                },
            ],
        })
        rec = parse_recipe_markup(html, PAGE_URL)

        assert rec.title == "Pozole Verde"
        assert rec.instructions == ["Boil hominy.", "Add the sauce."]
        assert rec.image_url == "https://cdn.example.com/pozole.jpg"

    def test_how_to_sections_flattened(self):
        html = ld_page({
            "@type": "Recipe",
            "name": "Pozole",
            "recipeIngredient": ["1 lb tomatillos"],
            "recipeInstructions": [
                {"@type": "HowToSection", "name": "Sauce", "itemListElement": [
                    {"@type": "HowToStep", "text": "Blend the tomatillos."},
                ]},
                {"@type": "HowToSection", "name": "Soup", "itemListElement": [
                    {"@type": "HowToStep", "text": "Simmer everything."},
                ]},
            ],
        })
        rec = parse_recipe_markup(html, PAGE_URL)
        assert rec.instructions == ["Blend the tomatillos.", "Simmer everything."]

    def test_trailing_commas_tolerated(self):
        html = ld_page('{"@type": "Recipe", "name": "Lime Tacos", "recipeIngredient": ["1 lime",],}')
        rec = parse_recipe_markup(html, PAGE_URL)
        assert rec.title == "Lime Tacos"
        assert rec.ingredients[0].name == "lime"

    def test_broken_block_skipped(self):
        html = ld_page(
            "{not json",
            {"@type": "Recipe", "name": "Second Block", "recipeIngredient": ["1 lime"]},
        )
        assert parse_recipe_markup(html, PAGE_URL).title == "Second Block"

    def test_no_recipe(self):
        html = ld_page({"@type": "Organization", "name": "Example Foods"})
        assert parse_recipe_markup(html, PAGE_URL) is None
        assert parse_recipe_markup("", PAGE_URL) is None


# ===================================================================
# Microdata
# ===================================================================


MICRODATA_PAGE = """
<html><body>
<div itemscope itemtype="https://schema.org/Recipe">
  <h1 itemprop="name">Calabacitas</h1>
  <meta itemprop="totalTime" content="PT30M">
  <img itemprop="image" src="/img/calabacitas.jpg">
  <span itemprop="recipeYield">Serves 4</span>
  <ul>
    <li itemprop="recipeIngredient">3 zucchini, diced</li>
    <li itemprop="recipeIngredient">1 cup corn kernels</li>
  </ul>
  <ol itemprop="recipeInstructions">
    <li>Soften the onion.</li>
    <li>Add the squash and corn.</li>
  </ol>
</div>
</body></html>
"""


def test_microdata_fallback():
    rec = parse_recipe_markup(MICRODATA_PAGE, PAGE_URL)

    assert rec.title == "Calabacitas"
    assert rec.total_time_minutes == 30
    assert rec.servings == 4
    assert rec.image_url == "https://example.com/img/calabacitas.jpg"
    assert [i.name for i in rec.ingredients] == ["zucchini, diced", "corn kernels"]
    assert rec.instructions == ["Soften the onion.", "Add the squash and corn."]


# ===================================================================
# Meta-tag images
# ===================================================================


class TestMetaImage:

    def test_og_image(self):
        html = '<head><meta property="og:image" content="https://cdn.example.com/a.jpg"></head>'
        assert parse_meta_image(html, PAGE_URL) == "https://cdn.example.com/a.jpg"

    def test_twitter_image_relative(self):
        html = '<head><meta name="twitter:image" content="/b.jpg"></head>'
        assert parse_meta_image(html, PAGE_URL) == "https://example.com/b.jpg"

    def test_link_image_src(self):
        html = '<head><link rel="image_src" href="//cdn.example.com/c.jpg"></head>'
        assert parse_meta_image(html, PAGE_URL) == "https://cdn.example.com/c.jpg"

    def test_none(self):
        assert parse_meta_image("<html><head></head></html>", PAGE_URL) is None

    @pytest.mark.asyncio
    async def test_resolver_swallows_fetch_errors(self):
        async def failing_fetch(url):
            raise RuntimeError("connection reset")

        assert await MetaTagImageResolver(failing_fetch).resolve_image(PAGE_URL) is None

    @pytest.mark.asyncio
    async def test_resolver_reads_fetched_page(self):
        async def fetch(url):
            return '<meta property="og:image" content="/hero.jpg">'

        resolver = MetaTagImageResolver(fetch)
        assert await resolver.resolve_image(PAGE_URL) == "https://example.com/hero.jpg"
