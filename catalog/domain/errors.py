from enum import Enum


class CatalogError(Exception):
    pass


class ConfigError(CatalogError):
    pass


class ParseError(CatalogError):
    pass


class Reason(Enum):
    TITLE_REQUIRED = "Title is required"
    DESCRIPTION_TOO_SHORT = "Description must be at least 20 characters"
    DESCRIPTION_TOO_LONG = "Description must not exceed 600 characters"
    INGREDIENT_REQUIRED = (
        "At least one complete ingredient (with both name and quantity) is required"
    )


class ValidationError(CatalogError):
    def __init__(self, reason: Reason) -> None:
        super().__init__(reason.value)
        self.reason = reason


class ContentStoreError(CatalogError):
    """A failed exchange with the content store."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(ContentStoreError):
    pass


class ProcessingError(ContentStoreError):
    pass


class Step(Enum):
    UPLOAD_ASSET = "upload asset"
    PROCESS_ASSET = "process asset"
    PUBLISH_ASSET = "publish asset"
    FIND_ASSET = "find asset"
    FETCH_ENTRY = "fetch entry"
    CREATE_ENTRY = "create entry"
    UPDATE_ENTRY = "update entry"
    PUBLISH_ENTRY = "publish entry"
    UNPUBLISH_ENTRY = "unpublish entry"
    DELETE_ASSET = "delete asset"
    DELETE_ENTRY = "delete entry"


class RemoteOperationError(CatalogError):
    """Any remote failure during create, update or delete.

    `orphaned_asset_id` is set when an asset was uploaded before the failure
    and may now exist without an entry linking to it.
    """

    def __init__(
        self,
        operation: str,
        *,
        step: Step | None,
        cause: Exception,
        orphaned_asset_id: str | None = None,
    ) -> None:
        self.operation = operation
        self.step = step
        self.cause = cause
        self.orphaned_asset_id = orphaned_asset_id
        super().__init__(f"{self.failure} failed: {cause}")

    @property
    def failure(self) -> str:
        match self.operation:
            case "create":
                return "creation"
            case "update":
                return "update"
            case "delete":
                return "deletion"
            case _:
                return self.operation
