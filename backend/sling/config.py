"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class DatabaseConfig(BaseModel):
    """Backing store connection parameters."""

    url: str = "sqlite+aiosqlite:///./sling.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_recycle_seconds: int = 3600
    lock_timeout_seconds: float = 5.0


class LedgerConfig(BaseModel):
    """Stake placement limits."""

    max_stake: int | None = None  # None = no cap
    allow_creator_stakes: bool = True


class SettlementConfig(BaseModel):
    """How winning stakes are paid out."""

    payout_model: Literal["fixed_odds", "parimutuel"] = "fixed_odds"
    void_one_sided_markets: bool = False
    record_outstanding_balances: bool = True


class RetryConfig(BaseModel):
    """Backoff for store contention (RetryableError only)."""

    max_attempts: int = 3
    backoff_min_seconds: float = 0.1
    backoff_max_seconds: float = 2.0


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    config_dir: Path = Path(".")

    environment: str = "development"
    log_level: str = "INFO"
    logfire_token: str = ""

    # Nested configuration sections
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    settlement: SettlementConfig = Field(default_factory=SettlementConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    model_config = SettingsConfigDict(
        env_prefix="SLING_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("config_dir", mode="after")
    @classmethod
    def resolve_config_dir(cls, v: Path) -> Path:
        """Resolve config directory to absolute path."""
        return v.resolve()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.config_dir / "config.yaml"

        if not config_path.exists():
            logger.debug(f"Config file not found: {config_path}. Using defaults.")
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            for section_name in ["database", "ledger", "settlement", "retry"]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)
                    yaml_section = yaml_config[section_name]

                    section_dict = section.model_dump()
                    section_dict.update(yaml_section)

                    new_section = section.__class__(**section_dict)
                    setattr(self, section_name, new_section)

            logger.info(f"Loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
