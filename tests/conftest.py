import itertools
import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from catalog.config import Config
from catalog.domain.delivery import ContentStoreClient, delivery_client_factory
from catalog.domain.management import (
    ContentManagementClient,
    management_client_factory,
    upload_client_factory,
)
from catalog.domain.workflow import RecipeSyncWorkflow


ROOT = Path(__file__).resolve().parent.parent
SPACE = "space1"
LOCALE = "en-US"
ENV_PREFIX = f"/spaces/{SPACE}/environments/master/"


def not_found(kind: str, id: str) -> httpx.Response:
    return httpx.Response(
        404,
        json={
            "sys": {"type": "Error", "id": "NotFound"},
            "message": f"The resource could not be found: {kind}/{id}",
        },
    )


class FakeContentStore:
    """In-memory stand-in for the delivery, management and upload apis.

    Every call is recorded in `calls` as e.g. "PUT entries/entry-1/published".
    """

    def __init__(self) -> None:
        self.entries: dict[str, dict[str, Any]] = {}
        self.assets: dict[str, dict[str, Any]] = {}
        self.uploads: dict[str, bytes] = {}
        self.calls: list[str] = []
        self.failures: dict[str, int] = {}
        # Number of GETs after processing starts before an asset has its url.
        self.processing_polls = 1
        self._processing: dict[str, int] = {}
        self._ids = itertools.count(1)

    # Seeding

    def add_asset(self, filename: str = "soup.jpg", *, published: bool = True) -> str:
        id = f"asset-{next(self._ids)}"
        self.assets[id] = {
            "sys": {"id": id, "type": "Asset", "version": 3},
            "fields": {
                "title": {LOCALE: f"Image for {filename}"},
                "file": {
                    LOCALE: {
                        "contentType": "image/jpeg",
                        "fileName": filename,
                        "url": f"//images.ctfassets.net/{SPACE}/{id}/{filename}",
                    }
                },
            },
        }
        if published:
            self.assets[id]["sys"]["publishedVersion"] = 3
            self.assets[id]["sys"]["version"] = 4
        return id

    def add_entry(
        self,
        title: str,
        *,
        description: str = "A perfectly ordinary recipe for testing.",
        ingredients: Any = None,
        image_id: str | None = None,
        published: bool = True,
    ) -> str:
        id = f"entry-{next(self._ids)}"
        ingredients = (
            [{"id": 0, "name": "Water", "quantity": "1L"}]
            if ingredients is None
            else ingredients
        )
        fields: dict[str, Any] = {
            "title": {LOCALE: title},
            "description": {LOCALE: description},
            "ingredients": {LOCALE: ingredients},
        }
        if image_id:
            fields["image"] = {
                LOCALE: {"sys": {"type": "Link", "linkType": "Asset", "id": image_id}}
            }
        self.entries[id] = {
            "sys": {
                "id": id,
                "type": "Entry",
                "version": 1,
                "contentType": {"sys": {"id": "recipes"}},
            },
            "fields": fields,
        }
        if published:
            self.entries[id]["sys"]["publishedVersion"] = 1
            self.entries[id]["sys"]["version"] = 2
        return id

    def fail(self, call: str, status: int = 500) -> None:
        self.failures[call] = status

    def index(self, call: str) -> int:
        return self.calls.index(call)

    # Transport

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        match request.url.host:
            case "upload.contentful.com":
                call = f"{request.method} uploads"
            case "cdn.contentful.com":
                call = f"{request.method} delivery entries"
            case _:
                call = f"{request.method} {path.removeprefix(ENV_PREFIX)}"
        self.calls.append(call)

        if call in self.failures:
            return httpx.Response(
                self.failures[call], json={"message": "Something went wrong"}
            )
        if not request.headers.get("authorization", "").startswith("Bearer "):
            return httpx.Response(401, json={"message": "Unauthorized"})

        match request.url.host:
            case "upload.contentful.com":
                return self._upload(request)
            case "cdn.contentful.com":
                return self._deliver(request)
        return self._manage(request, path.removeprefix(ENV_PREFIX).split("/"))

    def _upload(self, request: httpx.Request) -> httpx.Response:
        id = f"upload-{next(self._ids)}"
        self.uploads[id] = request.content
        return httpx.Response(201, json={"sys": {"id": id, "type": "Upload"}})

    def _deliver(self, request: httpx.Request) -> httpx.Response:
        content_type = request.url.params.get("content_type")
        items: list[dict[str, Any]] = []
        linked: set[str] = set()
        for entry in self.entries.values():
            if not entry["sys"].get("publishedVersion"):
                continue
            if content_type and entry["sys"]["contentType"]["sys"]["id"] != content_type:
                continue
            fields = {k: v.get(LOCALE) for k, v in entry["fields"].items()}
            if fields.get("image"):
                linked.add(fields["image"]["sys"]["id"])
            items.append({"sys": {"id": entry["sys"]["id"]}, "fields": fields})
        includes = [
            {
                "sys": {"id": id},
                "fields": {k: v.get(LOCALE) for k, v in self.assets[id]["fields"].items()},
            }
            for id in sorted(linked)
            if id in self.assets and self.assets[id]["sys"].get("publishedVersion")
        ]
        return httpx.Response(
            200,
            json={"items": items, "total": len(items), "includes": {"Asset": includes}},
        )

    def _check_version(self, request: httpx.Request, item: dict[str, Any]) -> bool:
        version = request.headers.get("x-contentful-version")
        return version is None or int(version) == item["sys"]["version"]

    def _manage(self, request: httpx.Request, parts: list[str]) -> httpx.Response:
        kind, rest = parts[0], parts[1:]
        store = self.entries if kind == "entries" else self.assets
        method = request.method

        if not rest:
            if method == "GET":
                return self._query_assets(request)
            return self._create(kind, request)

        id = rest[0]
        if id not in store:
            return not_found(kind, id)
        item = store[id]
        if not self._check_version(request, item):
            return httpx.Response(409, json={"message": "Version mismatch"})

        match method, rest[1:]:
            case "GET", []:
                if kind == "assets":
                    self._tick_processing(id)
                return httpx.Response(200, json=item)
            case "PUT", []:
                item["fields"] = json.loads(request.content)["fields"]
                item["sys"]["version"] += 1
                return httpx.Response(200, json=item)
            case "DELETE", []:
                if item["sys"].get("publishedVersion"):
                    return httpx.Response(
                        400, json={"message": f"Cannot delete published {kind}"}
                    )
                del store[id]
                return httpx.Response(204)
            case "PUT", ["published"]:
                if kind == "assets" and not self._processed(item):
                    return httpx.Response(422, json={"message": "Asset not processed"})
                item["sys"]["publishedVersion"] = item["sys"]["version"]
                item["sys"]["version"] += 1
                return httpx.Response(200, json=item)
            case "DELETE", ["published"]:
                item["sys"].pop("publishedVersion", None)
                item["sys"]["version"] += 1
                return httpx.Response(200, json=item)
            case "PUT", ["files", _, "process"]:
                self._processing[id] = self.processing_polls
                return httpx.Response(204)
        return httpx.Response(400, json={"message": f"Unsupported {method} {parts}"})

    def _create(self, kind: str, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if kind == "entries":
            id = f"entry-{next(self._ids)}"
            content_type = request.headers["x-contentful-content-type"]
            item = {
                "sys": {
                    "id": id,
                    "type": "Entry",
                    "version": 1,
                    "contentType": {"sys": {"id": content_type}},
                },
                "fields": body["fields"],
            }
            self.entries[id] = item
            return httpx.Response(201, json=item)

        id = f"asset-{next(self._ids)}"
        for file in body["fields"]["file"].values():
            if file["uploadFrom"]["sys"]["id"] not in self.uploads:
                return httpx.Response(422, json={"message": "Unknown upload"})
        item = {"sys": {"id": id, "type": "Asset", "version": 1}, "fields": body["fields"]}
        self.assets[id] = item
        return httpx.Response(201, json=item)

    def _query_assets(self, request: httpx.Request) -> httpx.Response:
        filename = request.url.params.get("fields.file.fileName")
        limit = int(request.url.params.get("limit", 100))
        items = [
            a
            for a in self.assets.values()
            if filename is None
            or any(f.get("fileName") == filename for f in a["fields"]["file"].values())
        ]
        return httpx.Response(200, json={"items": items[:limit], "total": len(items)})

    def _processed(self, item: dict[str, Any]) -> bool:
        return all(f.get("url") for f in item["fields"]["file"].values())

    def _tick_processing(self, id: str) -> None:
        if id not in self._processing:
            return
        self._processing[id] -= 1
        if self._processing[id] > 0:
            return
        del self._processing[id]
        asset = self.assets[id]
        for file in asset["fields"]["file"].values():
            file.pop("uploadFrom", None)
            file["url"] = f"//images.ctfassets.net/{SPACE}/{id}/{file['fileName']}"
        asset["sys"]["version"] += 1


@pytest.fixture
def config() -> Config:
    return Config(
        contentful_space_id=SPACE,
        contentful_delivery_token="delivery-token",
        contentful_management_token="management-token",
        html_dir=ROOT / "assets" / "html",
        assets_dir=ROOT / "assets",
        processing_check_wait=0,
    )


@pytest.fixture
def fake_store() -> FakeContentStore:
    return FakeContentStore()


@pytest.fixture
def transport(fake_store: FakeContentStore) -> httpx.MockTransport:
    return httpx.MockTransport(lambda request: fake_store.handle(request))


@pytest.fixture
def store(config: Config, transport: httpx.MockTransport) -> ContentStoreClient:
    return ContentStoreClient(
        config, client=delivery_client_factory(config, transport=transport)
    )


@pytest.fixture
def management(
    config: Config, transport: httpx.MockTransport
) -> ContentManagementClient:
    return ContentManagementClient(
        config,
        client=management_client_factory(config, transport=transport),
        upload_client=upload_client_factory(config, transport=transport),
    )


@pytest.fixture
def workflow(management: ContentManagementClient) -> RecipeSyncWorkflow:
    return RecipeSyncWorkflow(management)
