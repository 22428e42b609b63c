"""brickworks.core.config

Two config surfaces only:
1) `config/default.yaml` (or any YAML file passed explicitly)
2) Environment variables, prefixed ``BRICKWORKS_`` (secrets live here)

Everything else is derived.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from brickworks.core.exceptions import ConfigError


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


class FactoryConfig(BaseModel):
    url: str = ""
    email: str = ""
    secret_key: str = ""
    timeout_s: float = 20.0
    max_retries: int = 3

    @field_validator("max_retries")
    @classmethod
    def max_retries_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_retries must be >= 0")
        return v


class PowConfig(BaseModel):
    hash_algorithm: str = "sha256"
    cancel_check_interval: int = 4096

    @field_validator("hash_algorithm")
    @classmethod
    def algorithm_must_exist(cls, v: str) -> str:
        # Accept dashed names ("SHA-256") as well as hashlib names ("sha256", "sha3_256").
        lowered = v.strip().lower()
        for name in (lowered.replace("-", "_"), lowered.replace("-", ""), lowered):
            if name in hashlib.algorithms_available:
                return name
        raise ValueError(f"unknown hash algorithm: {v}")

    @field_validator("cancel_check_interval")
    @classmethod
    def interval_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("cancel_check_interval must be >= 1")
        return v


class OrderingConfig(BaseModel):
    batch_size: int = 50
    restock_quantity: int = 75
    refill_amount: int = 1000
    low_stock_target: int = 75
    funding_margin: int = 500
    poll_interval_s: float = 1.0
    poll_timeout_s: float | None = None

    @field_validator("batch_size", "restock_quantity")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be >= 1")
        return v


class StockConfig(BaseModel):
    low_stock_threshold: int = 50


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False


class Config(BaseSettings):
    """Root configuration. Single source of truth."""

    factory: FactoryConfig = Field(default_factory=FactoryConfig)
    pow: PowConfig = Field(default_factory=PowConfig)
    ordering: OrderingConfig = Field(default_factory=OrderingConfig)
    stock: StockConfig = Field(default_factory=StockConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"env_prefix": "BRICKWORKS_", "env_nested_delimiter": "__"}

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        try:
            raw = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Config file is not valid YAML: {path}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"Config file must contain a mapping: {path}")

        local = path.with_name("local.yaml")
        if local.exists() and local != path:
            local_data = yaml.safe_load(local.read_text()) or {}
            if isinstance(local_data, dict):
                raw = _deep_merge(raw, local_data)

        return cls(**raw)

    @classmethod
    def from_repo_defaults(cls, repo_root: Path | None = None) -> Config:
        root = repo_root or Path.cwd()
        return cls.from_yaml(root / "config" / "default.yaml")

    def require_factory(self) -> FactoryConfig:
        """Return the factory section, or raise if any credential is empty."""

        missing = [
            name
            for name in ("url", "email", "secret_key")
            if not str(getattr(self.factory, name)).strip()
        ]
        if missing:
            env = ", ".join(f"BRICKWORKS_FACTORY__{m.upper()}" for m in missing)
            raise ConfigError(f"Factory credentials missing: {env}")
        return self.factory
