from typing import Self

from jinja2 import Environment
from markdown2 import (  # pyright: ignore[reportMissingTypeStubs]
    markdown,  # pyright: ignore[reportUnknownVariableType]
)
from markupsafe import Markup
from starlette.datastructures import FormData

from catalog.domain.models import Ingredient, Recipe, number_ingredients


class RecipeCard:
    def __init__(self, recipe: Recipe) -> None:
        self.recipe = recipe

    @property
    def id(self) -> str:
        return self.recipe.id

    @property
    def title(self) -> str:
        return self.recipe.title

    @property
    def description(self) -> str:
        # Descriptions are user input: raw HTML in them is shown, not rendered.
        return Markup(markdown(self.recipe.description, safe_mode="escape"))

    @property
    def ingredients(self) -> list[Ingredient]:
        return [i for i in self.recipe.ingredients if i.name or i.quantity]

    @property
    def image_url(self) -> str | None:
        return self.recipe.image_url


class RecipeForm:
    """Add/edit form state, including the ingredient rows being edited."""

    def __init__(
        self,
        *,
        action: str,
        heading: str,
        title: str = "",
        description: str = "",
        ingredients: list[Ingredient] | None = None,
        image_url: str | None = None,
        has_image: bool = False,
        error: str | None = None,
        template_name: str = "recipe-form.html",
    ) -> None:
        self.action = action
        self.heading = heading
        self.title = title
        self.description = description
        self.ingredients = (
            [Ingredient(id=0)] if ingredients is None else ingredients
        )
        self.image_url = image_url
        self.has_image = has_image
        self.error = error
        self.name = template_name

    @classmethod
    def blank(cls) -> Self:
        return cls(action="/recipes/new", heading="Enter a Recipe")

    @classmethod
    def from_recipe(cls, recipe: Recipe) -> Self:
        return cls(
            action=f"/recipes/{recipe.id}/edit",
            heading="Edit Recipe",
            title=recipe.title,
            description=recipe.description,
            ingredients=number_ingredients(
                (i.name, i.quantity) for i in recipe.ingredients
            ),
            image_url=recipe.image_url,
            has_image=recipe.image_id is not None,
        )

    @classmethod
    def from_form(cls, form: FormData, *, action: str, heading: str) -> Self:
        ids = form.getlist("ingredient-id")
        names = form.getlist("ingredient-name")
        quantities = form.getlist("ingredient-quantity")
        ingredients = [
            Ingredient(id=int(str(i)), name=str(n), quantity=str(q))
            for i, n, q in zip(ids, names, quantities)
            if str(i).isdigit()
        ]
        return cls(
            action=action,
            heading=heading,
            title=str(form.get("title", "")),
            description=str(form.get("description", "")),
            ingredients=ingredients,
            image_url=str(form.get("image-url", "")) or None,
            has_image=form.get("has-image") == "1",
        )

    @property
    def next_id(self) -> int:
        return max((i.id for i in self.ingredients), default=-1) + 1

    def add_ingredient(self) -> None:
        self.ingredients.append(Ingredient(id=self.next_id))

    def remove_ingredient(self, id: int) -> None:
        if len(self.ingredients) > 1:
            self.ingredients = [i for i in self.ingredients if i.id != id]

    def render(self, environment: Environment) -> str:
        return environment.get_template(self.name).render(form=self)
