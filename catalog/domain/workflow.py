"""Create, update and delete recipes in the content store.

Order of the remote calls:

- create: upload image -> process -> publish image -> create entry -> publish entry
- update: validate -> fetch entry -> resolve image -> update entry -> publish entry
- delete: fetch entry -> unpublish entry -> delete image -> delete entry

Nothing is rolled back. A failure raises a single `RemoteOperationError`
naming the step, and an image uploaded before the failure is reported as
orphaned.
"""
import contextlib
import logging
from typing import AsyncIterator, Iterable

from catalog.config import Config
from catalog.domain.errors import (
    ContentStoreError,
    NotFoundError,
    RemoteOperationError,
    Step,
)
from catalog.domain.management import (
    Asset,
    ContentManagementClient,
    Entry,
    asset_link,
)
from catalog.domain.models import CreateResult, ImageFile, Ingredient
from catalog.domain.validation import validate_recipe


logger = logging.getLogger(__name__)


class OperationState:
    """What the workflow is doing, and the last failure to show the user."""

    def __init__(self) -> None:
        self.pending: str | None = None
        self.error: str | None = None

    def __repr__(self) -> str:
        return f"<OperationState(pending={self.pending}, error={self.error})>"

    @property
    def submitting(self) -> bool:
        return self.pending is not None


class _Tracker:
    """Remembers the step in progress and any asset uploaded so far."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        self.step: Step | None = None
        self.asset_id: str | None = None
        self.linked = False

    def at(self, step: Step) -> None:
        logger.info("%s: %s", self.operation, step.value)
        self.step = step


class RecipeSyncWorkflow:
    def __init__(
        self,
        management: ContentManagementClient,
        *,
        config: Config | None = None,
    ) -> None:
        self.management = management
        self.config = management.config if config is None else config
        self.state = OperationState()

    @property
    def locale(self) -> str:
        return self.config.contentful_locale

    @contextlib.asynccontextmanager
    async def _settle(self, operation: str) -> AsyncIterator[_Tracker]:
        tracker = _Tracker(operation)
        self.state.pending = operation
        try:
            yield tracker
        except ContentStoreError as e:
            logger.exception("Recipe %s failed at %s", operation, tracker.step)
            err = RemoteOperationError(
                operation,
                step=tracker.step,
                cause=e,
                orphaned_asset_id=None if tracker.linked else tracker.asset_id,
            )
            self.state.error = str(err)
            raise err from e
        else:
            self.state.error = None
        finally:
            self.state.pending = None

    def _fields(
        self,
        title: str,
        description: str,
        ingredients: list[Ingredient],
    ) -> dict[str, dict[str, object]]:
        return {
            "title": {self.locale: title},
            "description": {self.locale: description},
            "ingredients": {self.locale: [i.to_dict() for i in ingredients]},
        }

    async def _upload_image(
        self, image: ImageFile, title: str, tracker: _Tracker
    ) -> Asset:
        tracker.at(Step.UPLOAD_ASSET)
        asset = await self.management.create_asset_from_files(
            {
                "title": {self.locale: f"Image for {title}"},
                "file": {
                    self.locale: {
                        "contentType": image.content_type,
                        "fileName": image.filename,
                        "file": image.data,
                    }
                },
            }
        )
        tracker.asset_id = asset.id

        tracker.at(Step.PROCESS_ASSET)
        asset = await asset.process_for_all_locales()

        tracker.at(Step.PUBLISH_ASSET)
        return await asset.publish()

    async def _find_or_upload_image(
        self, image: ImageFile, title: str, tracker: _Tracker
    ) -> Asset:
        tracker.at(Step.FIND_ASSET)
        assets = await self.management.get_assets(
            {"fields.file.fileName": image.filename, "limit": 1}
        )
        if not assets:
            return await self._upload_image(image, title, tracker)

        asset = assets[0]
        logger.info("Reusing asset %s for %s", asset.id, image.filename)
        if asset.is_published():
            return asset
        # A draft, e.g. left behind by a failed create. Only link it published.
        if not asset.is_processed:
            tracker.at(Step.PROCESS_ASSET)
            asset = await asset.process_for_all_locales()
        tracker.at(Step.PUBLISH_ASSET)
        return await asset.publish()

    async def create(
        self,
        *,
        title: str,
        description: str,
        ingredients: Iterable[Ingredient],
        image: ImageFile | None = None,
    ) -> CreateResult:
        ingredients = list(ingredients)
        validate_recipe(title, description, ingredients)

        async with self._settle("create") as tracker:
            fields = self._fields(title, description, ingredients)
            asset = None
            if image is not None:
                asset = await self._upload_image(image, title, tracker)
                fields["image"] = {self.locale: asset_link(asset.id)}

            tracker.at(Step.CREATE_ENTRY)
            entry = await self.management.create_entry(
                self.config.recipe_content_type, fields
            )
            tracker.linked = True

            tracker.at(Step.PUBLISH_ENTRY)
            await entry.publish()

        logger.info("Created recipe %s", entry.id)
        return CreateResult(recipe_id=entry.id, image_id=asset.id if asset else None)

    async def update(
        self,
        id: str,
        *,
        title: str,
        description: str,
        ingredients: Iterable[Ingredient],
        image: ImageFile | None = None,
        keep_image: bool = True,
    ) -> str:
        """Apply the new values to the latest stored version of the entry."""
        ingredients = list(ingredients)
        validate_recipe(title, description, ingredients)

        async with self._settle("update") as tracker:
            tracker.at(Step.FETCH_ENTRY)
            entry: Entry = await self.management.get_entry(id)

            entry.set_field("title", title, self.locale)
            entry.set_field("description", description, self.locale)
            entry.set_field(
                "ingredients", [i.to_dict() for i in ingredients], self.locale
            )

            if image is not None:
                asset = await self._find_or_upload_image(image, title, tracker)
                entry.set_field("image", asset_link(asset.id), self.locale)
            elif not keep_image:
                entry.clear_field("image")

            tracker.at(Step.UPDATE_ENTRY)
            entry = await entry.update()
            tracker.linked = True

            tracker.at(Step.PUBLISH_ENTRY)
            await entry.publish()

        logger.info("Updated recipe %s", id)
        return id

    async def delete(self, id: str) -> None:
        async with self._settle("delete") as tracker:
            tracker.at(Step.FETCH_ENTRY)
            entry = await self.management.get_entry(id)

            if entry.is_published():
                tracker.at(Step.UNPUBLISH_ENTRY)
                entry = await entry.unpublish()

            image_id = entry.image_id(self.locale)
            if image_id:
                tracker.at(Step.DELETE_ASSET)
                try:
                    await self.management.delete_asset(image_id)
                except NotFoundError:
                    # Gone already, from an earlier delete that failed later on.
                    logger.warning(
                        "Image %s of recipe %s already deleted", image_id, id
                    )

            tracker.at(Step.DELETE_ENTRY)
            await entry.delete()

        logger.info("Deleted recipe %s", id)
