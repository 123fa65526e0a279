# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Guard settings: defaults, optional YAML file, ``SPENDGUARD_*`` overrides.

Precedence (lowest to highest): model defaults, YAML file, environment.
The CLI applies its own flags on top with ``model_copy(update=...)``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .autonomy import DEFAULT_AUTONOMY_TIMEOUT_S
from .catalog import DASHBOARD_URL, EXCLUDED_HOSTNAMES, EXCLUDED_PORTS, NEUTRAL_DESTINATION
from .errors import SettingsError
from .intervention_policy import InterventionThreshold, threshold_for_preset

logger = logging.getLogger(__name__)

ENV_PREFIX = "SPENDGUARD_"

ThresholdPreset = Literal["low", "medium", "high"]


class GuardSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = True
    intervention_threshold: ThresholdPreset = "medium"
    cooling_off_seconds: int = Field(30, ge=1, description="Reflection countdown length")
    session_update_interval_s: int = Field(5, ge=1, description="SESSION_UPDATE tick period")
    api_url: str | None = Field(None, description="Autonomy service base URL; unset disables the check")
    autonomy_timeout_s: float = Field(DEFAULT_AUTONOMY_TIMEOUT_S, gt=0)
    leave_destination: str = NEUTRAL_DESTINATION
    dashboard_url: str = Field(DASHBOARD_URL, description="Where autonomy redirects and the dashboard button go")
    excluded_hostnames: tuple[str, ...] = EXCLUDED_HOSTNAMES
    excluded_ports: tuple[str, ...] = EXCLUDED_PORTS

    @field_validator("excluded_ports", mode="before")
    @classmethod
    def _ports_as_strings(cls, v):
        # YAML reads 5173 as an int
        if isinstance(v, (list, tuple)):
            return tuple(str(p) for p in v)
        return v

    @property
    def threshold(self) -> InterventionThreshold:
        return threshold_for_preset(self.intervention_threshold)


# env var suffix → field name
_ENV_FIELDS: dict[str, str] = {
    "ENABLED": "enabled",
    "THRESHOLD": "intervention_threshold",
    "API_URL": "api_url",
    "AUTONOMY_TIMEOUT": "autonomy_timeout_s",
}


def _env_overrides(environ: Mapping[str, str]) -> dict[str, str]:
    # Raw strings; pydantic coerces "false"/"0"/"2.5" on validation
    out: dict[str, str] = {}
    for suffix, field_name in _ENV_FIELDS.items():
        value = environ.get(ENV_PREFIX + suffix)
        if value is not None and value != "":
            out[field_name] = value.strip().lower() if field_name == "intervention_threshold" else value.strip()
    return out


def _read_yaml(path: Path) -> dict:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise SettingsError(f"cannot read settings file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise SettingsError(f"invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SettingsError(f"settings file {path} must contain a mapping, got {type(data).__name__}")
    return data


def load_settings(path: str | Path | None = None, *, environ: Mapping[str, str] | None = None) -> GuardSettings:
    """Build settings from an optional YAML file plus environment overrides."""
    values: dict = {}
    if path is not None:
        values.update(_read_yaml(Path(path)))
        logger.debug("Loaded settings from %s", path)
    values.update(_env_overrides(os.environ if environ is None else environ))
    try:
        return GuardSettings.model_validate(values)
    except ValidationError as e:
        raise SettingsError(f"invalid settings: {e}") from e
