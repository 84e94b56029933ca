"""
HTML parsers for recipe pages.
"""

from .meta_tags import MetaTagImageResolver, parse_meta_image
from .recipe_markup import parse_recipe_markup

__all__ = ["MetaTagImageResolver", "parse_meta_image", "parse_recipe_markup"]
