"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from matchmaker.exceptions import MatchmakerConfigError

logger = logging.getLogger(__name__)


class SchedulerConfig(BaseModel):
    """Autonomous loop timing and concurrency limits."""

    scan_interval_seconds: float = Field(default=10.0, gt=0)
    match_cooldown_seconds: float = Field(default=30.0, ge=0)
    match_timeout_seconds: float = Field(default=300.0, gt=0)
    min_budget_ratio: float = 2.0  # Informational only, not used in scoring
    max_concurrent_matches: int = 1
    autostart: bool = False

    @field_validator("max_concurrent_matches")
    @classmethod
    def single_match_only(cls, v: int) -> int:
        """Agents play one match at a time; nothing else is supported."""
        if v != 1:
            raise ValueError("only one concurrent match per agent is supported")
        return v


class ScoringConfig(BaseModel):
    """Arena scoring parameters."""

    budget_fraction: float = Field(default=0.5, gt=0, le=1)
    default_risk_tolerance: float = Field(default=50, ge=0, le=100)
    default_aggressiveness: float = Field(default=50, ge=0, le=100)
    default_max_agents: int = Field(default=8, gt=0)


class ArenaConfig(BaseModel):
    """Paper-mode arena manager parameters."""

    countdown_seconds: float = 15.0
    match_duration_seconds: float = 5.0
    replenish: bool = True
    seed_tier_pools: bool = True


class WithdrawConfig(BaseModel):
    """Profit-target auto-withdraw parameters."""

    gas_reserve: float = 0.01


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    data_dir: Path = Path("data")

    # Observability
    logfire_token: str = ""

    # API server
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )

    # Nested configuration sections
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    arena: ArenaConfig = Field(default_factory=ArenaConfig)
    withdraw: WithdrawConfig = Field(default_factory=WithdrawConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def resolve_data_dir(cls, v: Path) -> Path:
        """Resolve data directory to absolute path."""
        return v.resolve()

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.data_dir / "config.yaml"

        if not config_path.exists():
            logger.warning(
                f"Config file not found: {config_path}. "
                "Using defaults. Run 'python -m matchmaker init' to create it."
            )
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            if not isinstance(yaml_config, dict):
                raise MatchmakerConfigError(f"Config file must be a mapping of sections: {config_path}")

            for section_name in ["scheduler", "scoring", "arena", "withdraw"]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)
                    section_dict = section.model_dump()
                    section_dict.update(yaml_config[section_name] or {})
                    setattr(self, section_name, section.__class__(**section_dict))

            logger.info(f"Loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to load config: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
