"""Configuration and environment loading."""

import sys
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

load_dotenv()

LOADER_FEED_URL = "https://api.github.com/repos/geode-sdk/loader/releases/latest"
API_FEED_URL = "https://api.github.com/repos/geode-sdk/api/releases/latest"

PlatformName = Literal["windows", "macos", "linux"]


def detect_platform() -> PlatformName:
    """Map sys.platform onto one of the supported platform names."""
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "macos"
    return "linux"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Release feeds
    loader_feed_url: str = Field(default=LOADER_FEED_URL, alias="GEODE_LOADER_FEED")
    api_feed_url: str = Field(default=API_FEED_URL, alias="GEODE_API_FEED")
    github_token: str | None = Field(default=None, alias="GITHUB_TOKEN")
    request_timeout: float = Field(default=60.0, gt=0, alias="GEODE_REQUEST_TIMEOUT")

    # Paths (None means use the platform default)
    data_dir: Path | None = Field(default=None, alias="GEODE_DATA_DIR")
    sdk_dir: Path | None = Field(default=None, alias="GEODE_SDK_DIR")
    download_dir: Path | None = Field(default=None, alias="GEODE_DOWNLOAD_DIR")

    platform: PlatformName = Field(default_factory=detect_platform, alias="GEODE_PLATFORM")

    model_config = {"env_file": ".env", "extra": "ignore", "populate_by_name": True}

    @property
    def request_headers(self) -> dict[str, str]:
        """Headers sent with every release-feed request."""
        from geode_installer import __version__

        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": f"geode-installer/{__version__}",
        }
        if self.github_token:
            headers["Authorization"] = f"Bearer {self.github_token}"
        return headers


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get application settings singleton."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
