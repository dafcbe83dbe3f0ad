"""
Configuration management using Pydantic.
"""

from pathlib import Path
from typing import List

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import WorkingHours


class DefaultsConfig(BaseModel):
    """Fallback working hours for providers without their own settings."""
    start_hour: int = 9
    end_hour: int = 17
    slot_duration_minutes: int = 30
    excluded_weekdays: List[int] = Field(default_factory=lambda: [5, 6])  # Saturday, Sunday
    max_range_days: int = 62

    @field_validator("slot_duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure slot duration is positive and divides an hour."""
        if value <= 0:
            raise ValueError("slot_duration_minutes must be greater than zero")
        if 60 % value != 0:
            raise ValueError(f"slot_duration_minutes must evenly divide 60, got {value}")
        return value

    @field_validator("start_hour", "end_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        """Validate hour is between 0 and 23."""
        if not 0 <= v <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {v}")
        return v

    @field_validator("excluded_weekdays")
    @classmethod
    def validate_excluded_weekdays(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"excluded_weekdays must be between 0 and 6, got {invalid_days}")
        return list(dict.fromkeys(value))

    @field_validator("max_range_days")
    @classmethod
    def validate_max_range(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("max_range_days must be greater than zero")
        return value

    @model_validator(mode="after")
    def validate_hours_order(self) -> "DefaultsConfig":
        """Ensure the configured window opens before it closes."""
        if self.end_hour <= self.start_hour:
            raise ValueError("end_hour must be later than start_hour")
        return self


class AppConfig(BaseModel):
    """Application configuration."""
    client_id: str = ""
    tenant_id: str = ""
    scopes: List[str] = Field(default_factory=lambda: ["User.Read"])
    backend_url: str = "http://localhost:3000"
    timezone: str = "UTC"
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)

    def get_authority_url(self) -> str:
        """Get the formatted authority URL."""
        return f"https://login.microsoftonline.com/{self.tenant_id}"

    def to_working_hours(self) -> WorkingHours:
        """Default working hours handed to the availability service."""
        return WorkingHours(
            start=self.defaults.start_hour,
            end=self.defaults.end_hour,
            slot_duration_minutes=self.defaults.slot_duration_minutes,
            excluded_weekdays=frozenset(self.defaults.excluded_weekdays),
            timezone=self.timezone,
        )

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    config_path = Path.cwd() / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        config_path = Path(__file__).parent.parent / "config.yaml"

    return config_path
