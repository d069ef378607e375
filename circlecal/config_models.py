from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

from circlecal import ARGS_DIR

logger = logging.getLogger(__name__)


# =============================================================================
# AvailabilityConfig (args/availability.yaml)
# =============================================================================

class FindTimeConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    slot_step_minutes: int = Field(default=15, ge=1, le=60)
    max_slots: int = Field(default=5, ge=1)
    min_duration_minutes: int = Field(default=15, ge=1)
    max_duration_minutes: int = Field(default=240, ge=1)
    max_concurrency: int = Field(default=8, ge=1)

    @model_validator(mode="after")
    def _check_duration_bounds(self) -> FindTimeConfig:
        if self.min_duration_minutes > self.max_duration_minutes:
            raise ValueError("min_duration_minutes must not exceed max_duration_minutes")
        return self


class RedactionConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    busy_title: str = Field(default="Busy", min_length=1)
    anonymous_attendee_name: str = Field(default="Anonymous attendee", min_length=1)


class InvitesConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    notification_type: str = Field(default="EVENT_INVITE")
    notification_title: str = Field(default="You were invited to an event")
    href_template: str = Field(default="/app/events/{event_id}")


class AvailabilityConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    find_time: FindTimeConfig = Field(default_factory=FindTimeConfig)
    redaction: RedactionConfig = Field(default_factory=RedactionConfig)
    invites: InvitesConfig = Field(default_factory=InvitesConfig)


# =============================================================================
# load_and_validate
# =============================================================================

_CONFIG_MAP: dict[str, type[BaseModel]] = {
    "availability": AvailabilityConfig,
}


def load_and_validate(
    config_name: str,
    model_class: type[BaseModel] | None = None,
    args_dir: Path | None = None,
) -> BaseModel:
    if model_class is None:
        model_class = _CONFIG_MAP.get(config_name)
        if model_class is None:
            raise ValueError(f"Unknown config: {config_name}. Available: {list(_CONFIG_MAP.keys())}")

    yaml_path = (args_dir or ARGS_DIR) / f"{config_name}.yaml"

    try:
        if yaml_path.exists():
            with open(yaml_path) as f:
                raw = yaml.safe_load(f) or {}
        else:
            raw = {}

        return model_class.model_validate(raw)
    except Exception as e:
        logger.warning(f"Config validation failed for {config_name}: {e}, using defaults")
        return model_class()


def load_availability_config(args_dir: Path | None = None) -> AvailabilityConfig:
    """Load args/availability.yaml, falling back to defaults."""
    return load_and_validate("availability", AvailabilityConfig, args_dir=args_dir)
