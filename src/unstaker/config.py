import tomllib
import logging
from decimal import Decimal
from pathlib import Path

from pydantic import AnyHttpUrl, BaseModel, Field, PositiveFloat, PositiveInt, ValidationError, field_validator, model_validator

import unstaker.constants as C
from unstaker.models import StakeThresholds
from unstaker.serializer import name_to_int

log = logging.getLogger("unstaker.config")

config_file = Path("config.toml")
accounts_file = Path("accounts.txt")

# Anything this short is a blank or garbage line, not an account name
MIN_ACCOUNT_LENGTH = 3


class ConfigError(Exception):
    """Raised when the config or accounts file can't be used."""


class UnstakerConfig(BaseModel):
    pkey: str | None = None
    pkeys: list[str] = Field(default_factory=list)
    account: str = Field(min_length=1, max_length=13)
    wax_node: AnyHttpUrl
    chunk_size: PositiveInt
    cpu_unstake_to: Decimal = Field(ge=0)
    net_unstake_to: Decimal = Field(ge=0)
    permission: str = C.DEFAULT_PERMISSION
    timeout: PositiveFloat = C.RPC_TIMEOUT

    @field_validator("cpu_unstake_to", "net_unstake_to", mode="before")
    @classmethod
    def _float_as_written(cls, v):
        # TOML hands us floats; 0.29 must stay 0.29, not 0.28999999999999998
        if isinstance(v, float):
            return Decimal(str(v))
        return v

    @field_validator("account", "permission")
    @classmethod
    def _chain_name(cls, v: str) -> str:
        name_to_int(v)
        return v

    @model_validator(mode="after")
    def _require_key(self) -> "UnstakerConfig":
        if not self.signing_keys:
            raise ValueError("at least one of 'pkey' or 'pkeys' is required")
        return self

    @property
    def signing_keys(self) -> list[str]:
        keys = [self.pkey] if self.pkey else []
        return keys + [k for k in self.pkeys if k]

    @property
    def node_url(self) -> str:
        return str(self.wax_node).rstrip("/")

    @property
    def thresholds(self) -> StakeThresholds:
        return StakeThresholds.from_decimal(cpu=self.cpu_unstake_to, net=self.net_unstake_to)


def load_config(path: str | Path = config_file) -> UnstakerConfig:
    """Load the ``[config]`` table of a TOML file.

    Raises:
        ConfigError: missing file, invalid TOML, or invalid/missing fields
    """
    path = Path(path)
    try:
        raw = tomllib.loads(path.read_text())
    except FileNotFoundError as e:
        raise ConfigError(f"loading {path}: file not found") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"loading {path}: {e}") from e

    section = raw.get("config")
    if not isinstance(section, dict):
        raise ConfigError(f"loading {path}: missing [config] section")
    try:
        cfg = UnstakerConfig.model_validate(section)
    except ValidationError as e:
        raise ConfigError(f"loading {path}: {e}") from e
    log.debug("Loaded config for %s from %s", cfg.account, path)
    return cfg


def load_allow_set(path: str | Path = accounts_file) -> frozenset[str]:
    """Read newline-delimited account names, dropping blank and garbage lines."""
    path = Path(path)
    try:
        text = path.read_text()
    except FileNotFoundError as e:
        raise ConfigError(f"opening {path}: file not found") from e
    lines = (line.strip() for line in text.splitlines())
    return frozenset(line for line in lines if len(line) >= MIN_ACCOUNT_LENGTH)
