"""Pre-flight checks for recipe forms.

Checks run in order and the first one violated is raised, the way a form
shows one problem at a time.
"""
from typing import Callable, Iterable, TypeAlias

from catalog.domain.errors import Reason, ValidationError
from catalog.domain.models import Ingredient


MIN_DESCRIPTION = 20
MAX_DESCRIPTION = 600


Check: TypeAlias = Callable[[str, str, list[Ingredient]], Reason | None]


def _title(title: str, description: str, ingredients: list[Ingredient]) -> Reason | None:
    return None if title.strip() else Reason.TITLE_REQUIRED


def _short(title: str, description: str, ingredients: list[Ingredient]) -> Reason | None:
    return Reason.DESCRIPTION_TOO_SHORT if len(description) < MIN_DESCRIPTION else None


def _long(title: str, description: str, ingredients: list[Ingredient]) -> Reason | None:
    return Reason.DESCRIPTION_TOO_LONG if len(description) > MAX_DESCRIPTION else None


def _ingredient(
    title: str, description: str, ingredients: list[Ingredient]
) -> Reason | None:
    if any(i.is_complete for i in ingredients):
        return None
    return Reason.INGREDIENT_REQUIRED


CHECKS: tuple[Check, ...] = (_title, _short, _long, _ingredient)


def first_violation(
    title: str,
    description: str,
    ingredients: Iterable[Ingredient],
) -> Reason | None:
    ingredients = list(ingredients)
    for check in CHECKS:
        reason = check(title, description, ingredients)
        if reason is not None:
            return reason
    return None


def validate_recipe(
    title: str,
    description: str,
    ingredients: Iterable[Ingredient],
) -> None:
    reason = first_violation(title, description, ingredients)
    if reason is not None:
        raise ValidationError(reason)
