"""Configuration management using Pydantic Settings."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

HOME_URL = "https://vahan.parivahan.gov.in/vahan/vahan/home.xhtml"
CONFIG_ENV = "VAHAN_CONFIG"  # YAML file the server process loads its settings from


class BrowserConfig(BaseModel):
    """Browser session settings."""

    headless: bool = True
    home_url: str = HOME_URL
    navigation_timeout: int = 15  # Seconds for page.goto during recovery/warm-up
    launch_args: list[str] = Field(
        default_factory=lambda: [
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-dev-shm-usage",
            "--disable-gpu",
            "--single-process",
            "--no-zygote",
        ]
    )


class AuthConfig(BaseModel):
    """Authentication gate settings."""

    poll_interval: float = 2.0
    max_wait: float = 600  # 10 minutes for a human to complete the portal login


class ExtractionConfig(BaseModel):
    """Per-item extraction settings."""

    max_retries: int = 2
    retry_delay: float = 1.0
    retry_jitter: float = 0.5
    item_timeout: float = 180.0  # Upper bound for one extraction attempt
    item_delay: float = 0.4  # Pacing between items
    operation_timeout: int = 35  # Playwright timeout for waits inside one attempt


class StorageConfig(BaseModel):
    """File storage locations."""

    data_dir: str = "data"
    upload_dir: str = "data/uploads"
    results_dir: str = "data/results"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file: Optional[str] = None
    max_size: int = 10  # MB
    backup_count: int = 5
    json_format: bool = False


class Settings(BaseSettings):
    """Main settings container."""

    model_config = SettingsConfigDict(
        env_prefix="VAHAN_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    frontend_url: str = "http://localhost:3000"

    # Database settings
    database_url: Optional[str] = None  # Default: sqlite+aiosqlite:///<data_dir>/vahan.db
    database_echo: bool = False

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> "Settings":
        """Load settings from a YAML file."""
        import yaml

        with open(path) as f:
            data = yaml.safe_load(f)

        return cls(**data) if data else cls()

    def ensure_dirs(self) -> None:
        """Create the storage directories if missing."""
        for directory in (
            self.storage.data_dir,
            self.storage.upload_dir,
            self.storage.results_dir,
        ):
            Path(directory).mkdir(parents=True, exist_ok=True)


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """Load settings from a YAML file, falling back to the environment.

    The file is taken from ``config_path``, then the ``VAHAN_CONFIG`` environment
    variable, then the default locations.
    """
    if config_path is None and os.environ.get(CONFIG_ENV):
        config_path = Path(os.environ[CONFIG_ENV])

    if config_path and config_path.exists():
        return Settings.from_yaml(config_path)

    default_paths = [
        Path("config/config.yaml"),
        Path("config.yaml"),
    ]

    for path in default_paths:
        if path.exists():
            return Settings.from_yaml(path)

    return Settings()


settings = load_settings()
