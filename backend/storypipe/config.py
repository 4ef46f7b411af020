"""Configuration management with YAML and environment variable support."""

from pathlib import Path
from typing import ClassVar, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads configuration from YAML file."""

    def get_field_value(self, field, field_name: str):
        # Not used with prepare method
        pass

    def prepare_field_value(self, field_name: str, field, value, value_is_complex: bool):
        return value

    def __call__(self):
        # Load from config.yaml in current directory
        yaml_path = Path("config.yaml")
        if not yaml_path.exists():
            return {}

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return data


class GoogleCloudConfig(BaseModel):
    """Google Cloud configuration.

    project_id is only needed when a gemini-* provider is used.
    """

    project_id: Optional[str] = None
    location: str = "us-central1"


class OllamaConfig(BaseModel):
    """Ollama endpoint configuration for ollama/* providers."""

    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    use_cloud: bool = False


class ModelsConfig(BaseModel):
    """Provider identifiers."""

    default_provider: str = "gemini-2.5-flash"


class PipelineConfig(BaseModel):
    """Pipeline execution parameters."""

    default_scene_duration: float = 5.0
    max_scenes: int = Field(default=12, ge=1)
    scene_concurrency: int = Field(default=4, ge=1)
    generation_timeout_seconds: float = 300.0
    retry_backoff_seconds: float = 1.0
    decomposition_max_retries: int = Field(default=3, ge=1)
    content_marker: str = "<svg"


class StorageConfig(BaseModel):
    """Checkpoint database configuration."""

    database_url: str = "sqlite+aiosqlite:///storypipe.db"


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = ["http://localhost:5173"]


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v):
        """Accept lower-case level names."""
        if isinstance(v, str):
            return v.upper()
        return v


class Settings(BaseSettings):
    """Main application settings with YAML and environment variable support.

    Configuration sources (in priority order):
    1. Environment variables (prefix: STORYPIPE_, delimiter: __)
    2. YAML file (config.yaml)
    3. Field defaults
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="STORYPIPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    google_cloud: GoogleCloudConfig = GoogleCloudConfig()
    ollama: OllamaConfig = OllamaConfig()
    models: ModelsConfig = ModelsConfig()
    pipeline: PipelineConfig = PipelineConfig()
    storage: StorageConfig = StorageConfig()
    server: ServerConfig = ServerConfig()
    logging: LoggingConfig = LoggingConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ):
        """Customize settings sources to include YAML configuration.

        Priority order (highest to lowest):
        1. Environment variables
        2. YAML file
        3. Init settings (programmatic defaults)
        """
        return (
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            init_settings,
        )


# Singleton instance
settings = Settings()
