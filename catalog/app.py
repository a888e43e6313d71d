import contextlib
import functools
import logging
from typing import Any, Awaitable, Callable

from jinja2 import Environment, FileSystemLoader, select_autoescape
from starlette.applications import Starlette
from starlette.datastructures import FormData, UploadFile
from starlette.requests import Request
from starlette.responses import HTMLResponse, RedirectResponse
from starlette.routing import Mount, Route
from starlette.staticfiles import StaticFiles

from catalog import config
from catalog.domain.delivery import ContentStoreClient
from catalog.domain.errors import (
    ConfigError,
    ContentStoreError,
    RemoteOperationError,
    ValidationError,
)
from catalog.domain.listing import RecipeList, entry_to_recipe
from catalog.domain.management import ContentManagementClient
from catalog.domain.models import ImageFile
from catalog.domain.workflow import RecipeSyncWorkflow
from catalog.html.views import RecipeCard, RecipeForm
from catalog.logs import configure_logging


logger = logging.getLogger(__name__)


def aHTMLResponse(route: Callable[..., Awaitable[str | tuple[str, int]]]):
    @functools.wraps(route)
    async def wrapper(*args: Any, **kwargs: Any) -> HTMLResponse:
        resp = await route(*args, **kwargs)
        if not isinstance(resp, tuple):
            html, code = resp, 200
        else:
            html, code = resp
        return HTMLResponse(html, status_code=code)

    return wrapper


def not_configured() -> HTMLResponse:
    return HTMLResponse("Editing is not configured.", status_code=503)


@contextlib.asynccontextmanager
async def lifespan(app: Starlette):
    configure_logging(app.state.config.log_level)
    yield
    if app.state.listing is not None:
        await app.state.listing.store.close()
    if app.state.workflow is not None:
        await app.state.workflow.management.close()


@aHTMLResponse
async def homepage(request: Request) -> str | tuple[str, int]:
    templates: Environment = request.app.state.templates
    listing: RecipeList | None = request.app.state.listing
    workflow: RecipeSyncWorkflow | None = request.app.state.workflow
    term = request.query_params.get("q", "")
    context: dict[str, Any] = {
        "term": term,
        "can_edit": workflow is not None,
        "workflow_error": workflow.state.error if workflow else None,
        "recipes": [],
        "error": None,
    }

    if listing is None:
        context["error"] = "Recipe listing is not configured."
        return templates.get_template("index.html").render(**context), 503

    try:
        recipes = await listing.refresh(term)
    except ContentStoreError as e:
        logger.exception("Error fetching data")
        context["error"] = f"Error loading data: {e}"
        return templates.get_template("index.html").render(**context), 502

    context["recipes"] = [RecipeCard(r) for r in recipes]
    return templates.get_template("index.html").render(**context)


async def read_image(form: FormData) -> ImageFile | None:
    image = form.get("image")
    if not isinstance(image, UploadFile) or not image.size:
        return None
    return ImageFile(
        filename=image.filename or "image",
        content_type=image.content_type or "application/octet-stream",
        data=await image.read(),
    )


def edit_rows(form: RecipeForm, action: str) -> bool:
    """Apply an add/remove ingredient button. True when one was pressed."""
    if action == "add-ingredient":
        form.add_ingredient()
        return True
    if action.startswith("remove-"):
        id = action.removeprefix("remove-")
        if id.isdigit():
            form.remove_ingredient(int(id))
        return True
    return False


async def submit(
    form: RecipeForm,
    templates: Environment,
    operation: Callable[[], Awaitable[object]],
) -> HTMLResponse | RedirectResponse:
    try:
        await operation()
    except ValidationError as e:
        form.error = str(e)
        return HTMLResponse(form.render(templates), status_code=400)
    except RemoteOperationError as e:
        form.error = str(e)
        return HTMLResponse(form.render(templates), status_code=502)
    return RedirectResponse("/", status_code=303)


async def create(request: Request) -> HTMLResponse | RedirectResponse:
    templates: Environment = request.app.state.templates
    workflow: RecipeSyncWorkflow | None = request.app.state.workflow
    if workflow is None:
        return not_configured()

    match request.method.lower():
        case "get":
            return HTMLResponse(RecipeForm.blank().render(templates))
        case "post":
            async with request.form() as data:
                form = RecipeForm.from_form(
                    data, action="/recipes/new", heading="Enter a Recipe"
                )
                action = str(data.get("action", "submit"))
                image = await read_image(data)
            if edit_rows(form, action):
                return HTMLResponse(form.render(templates))
            return await submit(
                form,
                templates,
                lambda: workflow.create(
                    title=form.title,
                    description=form.description,
                    ingredients=form.ingredients,
                    image=image,
                ),
            )
        case _:
            raise ValueError("Unsupported method.")


async def edit(request: Request) -> HTMLResponse | RedirectResponse:
    templates: Environment = request.app.state.templates
    workflow: RecipeSyncWorkflow | None = request.app.state.workflow
    if workflow is None:
        return not_configured()
    id = request.path_params["id"]

    match request.method.lower():
        case "get":
            try:
                entry = await workflow.management.get_entry(id)
            except ContentStoreError as e:
                logger.exception("Error loading recipe %s", id)
                return HTMLResponse(f"Error loading recipe: {e}", status_code=404)
            form = RecipeForm.from_recipe(entry_to_recipe(entry, workflow.locale))
            return HTMLResponse(form.render(templates))
        case "post":
            async with request.form() as data:
                form = RecipeForm.from_form(
                    data, action=f"/recipes/{id}/edit", heading="Edit Recipe"
                )
                action = str(data.get("action", "submit"))
                remove_image = data.get("remove-image") == "on"
                image = await read_image(data)
            if edit_rows(form, action):
                return HTMLResponse(form.render(templates))
            return await submit(
                form,
                templates,
                lambda: workflow.update(
                    id,
                    title=form.title,
                    description=form.description,
                    ingredients=form.ingredients,
                    image=image,
                    keep_image=not remove_image,
                ),
            )
        case _:
            raise ValueError("Unsupported method.")


async def delete(request: Request) -> HTMLResponse | RedirectResponse:
    workflow: RecipeSyncWorkflow | None = request.app.state.workflow
    if workflow is None:
        return not_configured()
    try:
        await workflow.delete(request.path_params["id"])
    except RemoteOperationError:
        # Shown on the list page through the workflow state.
        pass
    return RedirectResponse("/", status_code=303)


def create_app(
    cfg: config.Config | None = None,
    *,
    store: ContentStoreClient | None = None,
    management: ContentManagementClient | None = None,
) -> Starlette:
    cfg = config.Config() if cfg is None else cfg

    if store is None:
        try:
            store = ContentStoreClient(cfg)
        except ConfigError as e:
            logger.warning("Listing disabled. %s", e)
    if management is None:
        try:
            management = ContentManagementClient(cfg)
        except ConfigError as e:
            logger.warning("Editing disabled. %s", e)

    app = Starlette(
        debug=True if cfg.env == config.Env.local else False,
        routes=[
            Route("/", homepage),
            Route("/recipes/new", create, methods=["GET", "POST"]),
            Route("/recipes/{id}/edit", edit, methods=["GET", "POST"]),
            Route("/recipes/{id}/delete", delete, methods=["POST"]),
            Mount(
                "/assets",
                StaticFiles(directory=cfg.assets_dir, check_dir=False),
                name="assets",
            ),
        ],
        lifespan=lifespan,
    )

    app.state.config = cfg
    app.state.templates = Environment(
        loader=FileSystemLoader(cfg.html_dir),
        autoescape=select_autoescape(),
    )
    app.state.listing = None if store is None else RecipeList(store)
    app.state.workflow = (
        None if management is None else RecipeSyncWorkflow(management, config=cfg)
    )
    return app


app = create_app()
