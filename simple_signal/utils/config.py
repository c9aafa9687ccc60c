"""Configuration management utilities."""

from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from simple_signal.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("configs/default.yaml")


class RelayConfig(BaseModel):
    """Relay (server) configuration."""
    host: str = Field("0.0.0.0", description="Relay bind host")
    port: int = Field(8765, description="Relay bind port")


class ClientConfig(BaseModel):
    """Session engine configuration."""
    signaling_url: str = Field("ws://localhost:8765", description="Relay URL")
    connection_timeout: Optional[float] = Field(
        10.0,
        description="Seconds before a pending connect/accept fails; null or negative disables"
    )


class RTCConfig(BaseModel):
    """Peer connection configuration."""
    ice_servers: List[str] = Field(
        default_factory=lambda: ["stun:stun.l.google.com:19302"],
        description="STUN/TURN server URLs"
    )
    channel_label: str = Field("simple-signal", description="Data channel label")


class Config(BaseModel):
    """Main application configuration."""
    relay: RelayConfig = Field(default_factory=RelayConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    rtc: RTCConfig = Field(default_factory=RTCConfig)


class Settings(BaseSettings):
    """Environment-based settings."""
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field("simple-signal", alias="APP_NAME")
    environment: str = Field("development", alias="ENVIRONMENT")

    signaling_host: str = Field("0.0.0.0", alias="SIGNALING_HOST")
    signaling_port: int = Field(8765, alias="SIGNALING_PORT")
    signaling_url: str = Field("ws://localhost:8765", alias="SIGNALING_URL")

    connection_timeout: Optional[float] = Field(10.0, alias="CONNECTION_TIMEOUT")

    config_file: Optional[Path] = Field(None, alias="CONFIG_FILE")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_file: Optional[Path] = Field(None, alias="LOG_FILE")


def load_config(config_path: Optional[Union[Path, str]] = None) -> Config:
    """Load configuration from YAML file.

    Missing sections and keys fall back to their defaults. A missing file
    yields the default configuration.

    Args:
        config_path: Path to configuration file (can be string or Path)

    Returns:
        Configuration object
    """
    config_path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        logger.warning(f"Config file not found: {config_path}, using default config")
        return Config()

    with open(config_path, "r") as f:
        config_dict = yaml.safe_load(f) or {}

    return Config(**config_dict)


def save_config(config: Config, output_path: Union[Path, str]) -> None:
    """Save configuration to YAML file.

    Args:
        config: Configuration object
        output_path: Output file path
    """
    config_dict = config.model_dump()

    with open(output_path, "w") as f:
        yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)


# Global settings instance
settings = Settings()
