import json
import logging
from typing import Any

from catalog.domain.delivery import ContentStoreClient, DeliveredEntry
from catalog.domain.errors import ParseError
from catalog.domain.management import Entry
from catalog.domain.models import Ingredient, Recipe, number_ingredients


logger = logging.getLogger(__name__)


def decode_ingredients(raw: Any) -> list[Ingredient]:
    """Ingredients are stored either as a list or as JSON text of one."""
    if not raw:
        return []

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ParseError(f"Ingredients are not valid JSON: {e}") from e

    if not isinstance(raw, list):
        raise ParseError(f"Ingredients should be a list, got {type(raw).__name__}")

    rows: list[tuple[str, str]] = []
    for item in raw:
        if not isinstance(item, dict):
            raise ParseError(f"Ingredient should be an object, got {item!r}")
        rows.append((str(item.get("name") or ""), str(item.get("quantity") or "")))
    return number_ingredients(rows)


def parse_ingredients(raw: Any) -> list[Ingredient]:
    try:
        return decode_ingredients(raw)
    except ParseError as e:
        logger.warning("Error parsing ingredients: %s", e)
        return []


def to_recipe(entry: DeliveredEntry) -> Recipe:
    return Recipe.from_fields(
        entry.id,
        entry.fields,
        ingredients=parse_ingredients(entry.fields.get("ingredients")),
        image_url=entry.image_url,
    )


def entry_to_recipe(entry: Entry, locale: str) -> Recipe:
    """A management api entry, read in a single locale."""
    fields = {name: values.get(locale) for name, values in entry.fields.items()}
    return Recipe.from_fields(
        entry.id,
        fields,
        ingredients=parse_ingredients(fields.get("ingredients")),
    )


def filter_recipes(recipes: list[Recipe], term: str | None) -> list[Recipe]:
    if not term:
        return list(recipes)
    return [r for r in recipes if r.matches(term)]


async def list_recipes(
    store: ContentStoreClient,
    term: str | None = None,
) -> list[Recipe]:
    """Fetch every recipe and keep those whose title contains `term`."""
    entries = await store.list_entries()
    return filter_recipes([to_recipe(e) for e in entries], term)


class RecipeList:
    """The last listing fetched. Replaced as a whole, never patched."""

    def __init__(self, store: ContentStoreClient) -> None:
        self.store = store
        self.recipes: tuple[Recipe, ...] = ()
        self.term = ""

    async def refresh(self, term: str | None = None) -> tuple[Recipe, ...]:
        recipes = await list_recipes(self.store, term)
        self.recipes = tuple(recipes)
        self.term = term or ""
        return self.recipes
