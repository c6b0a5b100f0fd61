"""Matching configuration.

Four options are recognized and nothing else:

    allow_partial           opt-in for the Pass 5 group matching (default off)
    date_tolerance_days     Pass 2 date window (default 7)
    amount_tolerance_abs    Pass 4 absolute tolerance (default 1.00)
    amount_tolerance_pct    Pass 4 relative tolerance (default 0.005 = 0.5%)

The config is a frozen value passed once into run_reconciliation; nothing
reads it from module state.
"""

import os
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from reconciliation.errors import ConfigError
from reconciliation.normalize import (
    DEFAULT_AMOUNT_TOLERANCE_ABS,
    DEFAULT_AMOUNT_TOLERANCE_PCT,
    DEFAULT_DATE_TOLERANCE_DAYS,
)


ENV_PREFIX = "SOA_RECON_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


class MatchConfig(BaseModel):
    """Immutable matching configuration for one reconciliation run."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    allow_partial: bool = False
    date_tolerance_days: int = Field(default=DEFAULT_DATE_TOLERANCE_DAYS, ge=0)
    amount_tolerance_abs: Decimal = Field(default=DEFAULT_AMOUNT_TOLERANCE_ABS, ge=0)
    amount_tolerance_pct: Decimal = Field(default=DEFAULT_AMOUNT_TOLERANCE_PCT, ge=0, lt=1)

    @field_validator("allow_partial", mode="before")
    @classmethod
    def _strict_bool(cls, value):
        if isinstance(value, bool):
            return value
        raise ValueError("allow_partial must be a boolean")

    @field_validator("date_tolerance_days", mode="before")
    @classmethod
    def _whole_days(cls, value):
        if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
            raise ValueError("date_tolerance_days must be a whole number of days")
        return value

    @field_validator("amount_tolerance_abs", "amount_tolerance_pct", mode="before")
    @classmethod
    def _decimal_tolerance(cls, value):
        if isinstance(value, bool):
            raise ValueError("tolerance must be numeric")
        if isinstance(value, float):
            return Decimal(str(value))
        return value

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "MatchConfig":
        """Build a config from a plain mapping, raising ConfigError on bad input."""
        if mapping is None:
            return cls()
        if not isinstance(mapping, Mapping):
            raise ConfigError(f"Config must be a mapping, got {type(mapping).__name__}")

        unknown = sorted(set(mapping) - set(cls.model_fields))
        if unknown:
            raise ConfigError(f"Unknown config option(s): {', '.join(map(str, unknown))}", key=str(unknown[0]))

        try:
            return cls(**mapping)
        except ValidationError as exc:
            first = exc.errors()[0]
            key = str(first["loc"][0]) if first.get("loc") else None
            raise ConfigError(f"Invalid config value for {key}: {first['msg']}", key=key) from exc


def resolve_config(config: Union["MatchConfig", Mapping[str, Any], None]) -> MatchConfig:
    """Accept a MatchConfig, a mapping or None (defaults)."""
    if isinstance(config, MatchConfig):
        return config
    return MatchConfig.from_mapping(config)


def _parse_env_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}", key=name)


def load_config_from_env(
    env_file: Optional[Union[str, Path]] = None,
    prefix: str = ENV_PREFIX,
) -> MatchConfig:
    """Build a MatchConfig from environment variables.

    Reads {prefix}ALLOW_PARTIAL, {prefix}DATE_TOLERANCE_DAYS,
    {prefix}AMOUNT_TOLERANCE_ABS and {prefix}AMOUNT_TOLERANCE_PCT.
    Variables already set in the process win over the .env file.

    Args:
        env_file: Optional .env file to load first
        prefix: Environment variable prefix

    Returns:
        MatchConfig with defaults for anything unset

    Raises:
        ConfigError: If a variable holds an invalid value
    """
    if env_file is not None:
        env_path = Path(env_file)
        if env_path.exists():
            load_dotenv(env_path, override=False)

    values = {}
    for option in MatchConfig.model_fields:
        name = f"{prefix}{option.upper()}"
        raw = os.getenv(name)
        if raw is None:
            continue
        if option == "allow_partial":
            values[option] = _parse_env_bool(name, raw)
        elif option == "date_tolerance_days":
            try:
                values[option] = int(raw.strip())
            except ValueError:
                raise ConfigError(f"{name} must be an integer, got {raw!r}", key=name)
        else:
            values[option] = raw.strip()

    return MatchConfig.from_mapping(values)
