"""
Central application configuration using pydantic-settings.

This module provides typed access to environment-based configuration for:
- The HTTP / WebSocket server
- Game rules that operators may tune (balances, fees, player limits)

Database configuration lives in `src.data.config.DatabaseSettings`.
"""

from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """
    Configuration for the FastAPI server.

    Environment variables:
        SERVER_HOST      - Bind host (default: 127.0.0.1)
        SERVER_PORT      - Bind port (default: 8000)
        LOG_LEVEL        - Root log level (default: INFO)
        CORS_ORIGINS     - Comma separated list of allowed origins
        WS_HEARTBEAT_SECONDS - Interval between websocket heartbeats
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    server_host: str = Field(default="127.0.0.1", alias="SERVER_HOST")
    server_port: int = Field(default=8000, alias="SERVER_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    cors_origins: str = Field(default="", alias="CORS_ORIGINS")
    ws_heartbeat_seconds: float = Field(default=15.0, gt=0, alias="WS_HEARTBEAT_SECONDS")
    ws_queue_size: int = Field(default=256, ge=1, alias="WS_QUEUE_SIZE")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_level(cls, value: str) -> str:
        value = (value or "INFO").upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported LOG_LEVEL: {value}")
        return value

    @property
    def cors_origin_list(self) -> List[str]:
        """CORS_ORIGINS split on commas."""
        return [item.strip() for item in self.cors_origins.split(",") if item.strip()]


class GameSettings(BaseSettings):
    """
    Tunable game rules.

    Environment variables (prefix: GAME_):
        GAME_DEFAULT_STARTING_BALANCE - Cash each participant starts with (1500)
        GAME_DEFAULT_MAX_PLAYERS      - Seats when the creator does not choose (4)
        GAME_MIN_PLAYERS              - Participants required to start (2)
        GAME_MAX_PLAYERS              - Upper bound for max_players (6)
        GAME_CODE_ATTEMPTS            - Retries when generating a join code (5)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="GAME_",
    )

    default_starting_balance: int = Field(default=1500, gt=0)
    default_max_players: int = Field(default=4, ge=2, le=6)
    min_players: int = Field(default=2, ge=2)
    max_players: int = Field(default=6, ge=2, le=6)
    code_attempts: int = Field(default=5, ge=1, le=50)


@lru_cache
def get_server_settings() -> ServerSettings:
    """Return cached server settings instance."""
    return ServerSettings()


@lru_cache
def get_game_settings() -> GameSettings:
    """Return cached game settings instance."""
    return GameSettings()
