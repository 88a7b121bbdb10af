"""
University configuration parameters for SeatBid.

Defines economic parameters, bidding defaults and operational paths.
Values come from (lowest to highest precedence): dataclass defaults, a JSON
config file, then SEATBID_* variables from a .env file in the working
directory, then SEATBID_* environment variables.
"""

import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field

# Tokens minted per unit of credit paid for
TOKENS_PER_UOC = 100

# Peer transfer fee, as a percentage of the transferred tokens' fee value
TRANSFER_FEE_PERCENT = 10

ENV_PREFIX = "SEATBID_"


@dataclass
class UniversityConfig:
    """University-wide configuration parameters"""

    # Economic parameters
    max_uoc: int = 18  # Units of credit a student may pay for per session
    fee_per_uoc: int = 0  # Payment required per unit of credit (0 = not initialised)
    tokens_per_uoc: int = TOKENS_PER_UOC

    # Bidding parameters
    default_round_duration: int = 3600  # Seconds
    discard_on_accept: bool = True  # Accepted students lose their other bids

    # Paths
    data_dir: Path = Path("data")
    log_dir: Path = Path("logs")

    def __post_init__(self):
        """Normalise paths and check bounds"""
        self.data_dir = Path(self.data_dir)
        self.log_dir = Path(self.log_dir)
        if self.max_uoc < 0:
            raise ValueError(f"max_uoc must be non-negative, got {self.max_uoc}")
        if self.fee_per_uoc < 0:
            raise ValueError(f"fee_per_uoc must be non-negative, got {self.fee_per_uoc}")
        if self.tokens_per_uoc <= 0:
            raise ValueError(f"tokens_per_uoc must be positive, got {self.tokens_per_uoc}")
        if self.default_round_duration <= 0:
            raise ValueError("default_round_duration must be positive")

    def to_dict(self) -> dict:
        data = asdict(self)
        data["data_dir"] = str(self.data_dir)
        data["log_dir"] = str(self.log_dir)
        return data


class ConfigFile(BaseModel):
    """Schema for JSON config files. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")

    max_uoc: Optional[int] = Field(None, ge=0)
    fee_per_uoc: Optional[int] = Field(None, ge=0)
    tokens_per_uoc: Optional[int] = Field(None, gt=0)
    default_round_duration: Optional[int] = Field(None, gt=0)
    discard_on_accept: Optional[bool] = None
    data_dir: Optional[str] = None
    log_dir: Optional[str] = None


def _env_overrides(environ: Mapping[str, Optional[str]]) -> dict:
    """Collect SEATBID_* variables matching config fields."""
    overrides = {}
    for name in ConfigFile.model_fields:
        raw = environ.get(ENV_PREFIX + name.upper())
        if raw is None or raw.strip() == "":
            continue
        overrides[name] = raw.strip()
    return overrides


def load_config(config_path: Optional[str] = None, use_env: bool = True) -> UniversityConfig:
    """
    Load configuration from file and environment, falling back to defaults.

    Args:
        config_path: Optional path to a JSON config file
        use_env: Whether to apply SEATBID_* environment overrides

    Returns:
        UniversityConfig instance

    Raises:
        pydantic.ValidationError: if the file or environment holds invalid values
    """
    values = {}

    if config_path:
        raw = json.loads(Path(config_path).read_text(encoding="utf-8"))
        values.update(ConfigFile.model_validate(raw).model_dump(exclude_none=True))

    if use_env:
        # Process environment wins over a .env file in the working directory
        dotenv_path = find_dotenv(usecwd=True)
        environ = {**(dotenv_values(dotenv_path) if dotenv_path else {}), **os.environ}
        env = _env_overrides(environ)
        if env:
            values.update(ConfigFile.model_validate(env).model_dump(exclude_none=True))

    return UniversityConfig(**values)
