"""Configuration management using Pydantic settings."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "CROWDWATCH"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Seed scenario (JSON).  Empty = built-in festival demo.
    scenario_path: Optional[Path] = None

    # Simulation feed
    simulation_enabled: bool = True
    telemetry_interval: float = Field(10.0, gt=0)   # seconds
    event_interval: float = Field(15.0, gt=0)       # seconds
    event_probability: float = Field(1.0, ge=0, le=1)
    alert_probability: float = Field(0.15, ge=0, le=1)
    simulation_seed: Optional[int] = None

    # Messaging
    message_retention: int = Field(50, ge=1)
    operator_id: str = "Command Center"


settings = Settings()
