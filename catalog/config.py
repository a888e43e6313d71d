from enum import Enum
from pathlib import Path

from pydantic_settings import BaseSettings

from catalog.domain.errors import ConfigError


class Env(Enum):
    local = "local"
    dev = "dev"
    prod = "prod"


class Config(BaseSettings):
    env: Env = Env.local
    html_dir: Path = Path("assets/html")
    assets_dir: Path = Path("assets")
    log_level: str = "INFO"

    contentful_space_id: str | None = None
    contentful_delivery_token: str | None = None
    contentful_management_token: str | None = None
    contentful_environment: str = "master"
    contentful_locale: str = "en-US"
    recipe_content_type: str = "recipes"

    delivery_url: str = "https://cdn.contentful.com"
    management_url: str = "https://api.contentful.com"
    upload_url: str = "https://upload.contentful.com"
    http_timeout: float | None = None

    processing_check_wait: float = 0.5
    processing_check_retries: int = 5

    @property
    def environment_path(self) -> str:
        return (
            f"/spaces/{self.contentful_space_id}"
            f"/environments/{self.contentful_environment}"
        )

    def _require(self, *names: str) -> None:
        missing = [n.upper() for n in names if not getattr(self, n)]
        if missing:
            raise ConfigError(f"Missing configuration: {', '.join(missing)}")

    def require_delivery(self) -> None:
        self._require("contentful_space_id", "contentful_delivery_token")

    def require_management(self) -> None:
        self._require("contentful_space_id", "contentful_management_token")
