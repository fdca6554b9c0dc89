"""Configuration management with YAML and environment variable support."""

import os
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
        # CLIPCHAIN_CONFIG overrides the default config.yaml in the current directory
        yaml_path = Path(os.environ.get("CLIPCHAIN_CONFIG", "config.yaml"))
        if not yaml_path.exists():
            return {}

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return data


class PollingConfig(BaseModel):
    """Backoff schedule and wall-clock budget for job status polling (seconds)."""

    initial_delay: float = 3.0
    backoff_factor: float = 1.3
    max_delay: float = 10.0
    timeout_seconds: float = 300.0


class ClientConfig(BaseModel):
    """How the generation client reaches the gateway."""

    gateway_url: str = "http://127.0.0.1:8787"
    api_key: Optional[str] = None
    request_timeout: float = 120.0


class GatewayConfig(BaseModel):
    """Gateway server configuration.

    When api_key is set every request must carry a matching X-API-Key header.
    """

    host: str = "0.0.0.0"
    port: int = 8787
    api_key: Optional[str] = None
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class KlingConfig(BaseModel):
    """Kling image-to-video provider.

    Both access_key and secret_key must be set for the gateway to use the
    live provider; otherwise it serves simulated jobs.
    """

    base_url: str = "https://api.klingai.com"
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    model_name: str = "kling-v2-6"
    duration: str = "5"
    mode: str = "std"
    cfg_scale: float = 0.5
    token_ttl_seconds: int = 1800


class SimulationConfig(BaseModel):
    """Stateless simulated provider used when no live credentials exist."""

    generation_delay_seconds: float = 20.0
    sample_video_url: str = (
        "https://storage.googleapis.com/gtv-videos-bucket/sample/ForBiggerBlazes.mp4"
    )


class StorageConfig(BaseModel):
    """Local storage for downloaded clips and extracted frames."""

    tmp_dir: Path = Path("tmp/clipchain")
    frame_offset_seconds: float = 4.9

    @field_validator("tmp_dir", mode="before")
    @classmethod
    def convert_tmp_dir_to_path(cls, v):
        """Convert string to Path object."""
        if isinstance(v, str):
            return Path(v)
        return v


class Settings(BaseSettings):
    """Main application settings with YAML and environment variable support.

    Configuration sources (in priority order):
    1. Environment variables (prefix: CLIPCHAIN_, delimiter: __)
    2. .env file
    3. YAML file (config.yaml, or the path in CLIPCHAIN_CONFIG)
    4. Field defaults
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="CLIPCHAIN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    polling: PollingConfig = Field(default_factory=PollingConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    kling: KlingConfig = Field(default_factory=KlingConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

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
        1. Init settings (explicit keyword arguments)
        2. Environment variables
        3. .env file
        4. YAML file
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
        )


# Singleton instance
settings = Settings()
