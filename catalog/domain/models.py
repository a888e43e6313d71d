from typing import Any, Iterable, Self


class Ingredient:
    """A recipe line. `id` only keys rows within one form session."""

    def __init__(self, *, id: int, name: str = "", quantity: str = "") -> None:
        self.id = id
        self.name = name
        self.quantity = quantity

    def __repr__(self) -> str:
        return f"<Ingredient(id={self.id}, name={self.name}, quantity={self.quantity})>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Ingredient):
            return NotImplemented
        return (self.id, self.name, self.quantity) == (
            other.id,
            other.name,
            other.quantity,
        )

    @property
    def is_complete(self) -> bool:
        return bool(self.name.strip() and self.quantity.strip())

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "quantity": self.quantity}


def number_ingredients(rows: Iterable[tuple[str, str]]) -> list[Ingredient]:
    """Fresh local ids, counting from 0."""
    return [
        Ingredient(id=i, name=name, quantity=quantity)
        for i, (name, quantity) in enumerate(rows)
    ]


class ImageFile:
    def __init__(self, *, filename: str, content_type: str, data: bytes) -> None:
        self.filename = filename
        self.content_type = content_type
        self.data = data

    def __repr__(self) -> str:
        return f"<ImageFile(filename={self.filename}, size={len(self.data)})>"


class Recipe:
    def __init__(
        self,
        *,
        id: str,
        title: str,
        description: str,
        ingredients: list[Ingredient],
        image_id: str | None = None,
        image_url: str | None = None,
    ) -> None:
        self.id = id
        self.title = title
        self.description = description
        self.ingredients = ingredients
        self.image_id = image_id
        self.image_url = image_url

    def __repr__(self) -> str:
        return f"<Recipe(id={self.id}, title={self.title})>"

    def matches(self, term: str) -> bool:
        return term.lower() in self.title.lower()

    @classmethod
    def from_fields(
        cls,
        id: str,
        fields: dict[str, Any],
        *,
        ingredients: list[Ingredient],
        image_url: str | None = None,
    ) -> Self:
        """From already localised fields, as the delivery API returns them."""
        image = fields.get("image") or {}
        return cls(
            id=id,
            title=fields.get("title") or "",
            description=fields.get("description") or "",
            ingredients=ingredients,
            image_id=image.get("sys", {}).get("id"),
            image_url=image_url,
        )


class CreateResult:
    def __init__(self, *, recipe_id: str, image_id: str | None = None) -> None:
        self.recipe_id = recipe_id
        self.image_id = image_id

    def __repr__(self) -> str:
        return f"<CreateResult(recipe_id={self.recipe_id}, image_id={self.image_id})>"
