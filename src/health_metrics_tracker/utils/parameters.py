"""
Application configuration.

Settings for the import pipeline, local storage locations, timestamps and
logging are read from a YAML file and validated with Pydantic. Values can
be overridden through HMT_-prefixed environment variables, with "__"
between section and key (HMT_IMPORTER__CHUNK_SIZE=100).
"""

from pathlib import Path
from typing import Any

import pytz
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from health_metrics_tracker.utils.exceptions import ConfigurationError


class ImporterConfig(BaseModel):
    """CSV import pipeline configuration."""

    chunk_size: int = Field(500, gt=0, description="Record store writes per chunk")
    similarity_threshold: float = Field(0.7, ge=0.0, le=1.0)
    default_insert_mode: str = Field("merge", pattern="^(merge|overwrite|new)$")
    max_error_samples: int = Field(10, ge=0)


class StorageConfig(BaseModel):
    """Local file locations."""

    mappings_file: str
    records_file: str
    import_log: str | None = None


class ProcessingConfig(BaseModel):
    """Timestamp settings."""

    timezone: str = "UTC"

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"unknown timezone '{value}'")
        return value


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: str | None = None
    console: bool = True


class AppConfig(BaseSettings):
    """Top-level configuration, one attribute per YAML section."""

    importer: ImporterConfig = Field(default_factory=ImporterConfig)
    storage: StorageConfig
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="HMT_", env_nested_delimiter="__", case_sensitive=False
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML sections arrive as init kwargs; environment variables win over them
        return env_settings, init_settings


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


class ParameterLoader:
    """
    Loads the YAML configuration once and hands out its sections.

    Args:
        config_path: Path to the YAML configuration file.

    Raises:
        ConfigurationError: If the file is missing, is not valid YAML or
            fails validation.
    """

    def __init__(self, config_path: str = "config/config.yaml") -> None:
        self.config_path = Path(config_path)
        sections = self._read_sections()
        try:
            self.config = AppConfig(**sections)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration in {self.config_path}: {_describe_validation_error(e)}"
            ) from e

    def _read_sections(self) -> dict[str, Any]:
        if not self.config_path.is_file():
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, encoding="utf-8") as f:
                sections = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to read {self.config_path}: {e}") from e

        if not isinstance(sections, dict):
            raise ConfigurationError(f"Expected a mapping of sections in {self.config_path}")
        return sections

    def get_importer_config(self) -> ImporterConfig:
        """Get CSV import pipeline configuration."""
        return self.config.importer

    def get_storage_config(self) -> StorageConfig:
        """Get local storage configuration."""
        return self.config.storage

    def get_processing_config(self) -> ProcessingConfig:
        """Get timestamp configuration."""
        return self.config.processing

    def get_logging_config(self) -> LoggingConfig:
        """Get logging configuration."""
        return self.config.logging
