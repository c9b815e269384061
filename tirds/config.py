"""
Configuration settings for the trade relevance decider.

Settings come from a TOML document (``config/tirds.toml`` by default) and
``TIRDS_``-prefixed environment variables, which take precedence over the
file. Nested sections use ``__`` as delimiter, e.g.
``TIRDS_CACHE__SQLITE_PATH=/var/lib/tirds/cache.db``.

Settings are immutable once loaded.
"""

import logging
import math
import tomllib
from pathlib import Path
from typing import List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from .errors import MalformedConfiguration
from .schemas import SpecialistDomain

logger = logging.getLogger("tirds.config")

DEFAULT_CONFIG_PATH = "config/tirds.toml"

DEFAULT_WEIGHTS = {
    SpecialistDomain.TECHNICAL: 0.35,
    SpecialistDomain.MACRO: 0.20,
    SpecialistDomain.SENTIMENT: 0.20,
    SpecialistDomain.SECTOR: 0.25,
}


class SpecialistConfig(BaseModel):
    """Per-specialist settings. ``model`` and ``timeout_seconds`` override the agent defaults."""
    model_config = ConfigDict(frozen=True)

    domain: SpecialistDomain
    name: Optional[str] = None
    enabled: bool = True
    weight: float = Field(ge=0.0, description="Nominal weight before renormalization")
    model: Optional[str] = Field(default=None, description="Model override for this specialist")
    timeout_seconds: Optional[float] = Field(default=None, gt=0)

    @property
    def agent_name(self) -> str:
        return self.name or f"{self.domain.value}_specialist"

    @field_validator("weight")
    @classmethod
    def _finite_weight(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("weight must be finite")
        return v


def _default_specialists() -> List[SpecialistConfig]:
    return [SpecialistConfig(domain=d, weight=w) for d, w in DEFAULT_WEIGHTS.items()]


class CacheConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    sqlite_path: str = Field(default="data/tirds_cache.db", description="Durable cache database")
    memory_max_capacity: int = Field(default=10_000, gt=0)
    memory_ttl_seconds: float = Field(default=60.0, gt=0)
    timeframes: List[str] = Field(default_factory=lambda: ["5m", "1d"])
    indicators: List[str] = Field(default_factory=lambda: [
        "rsi_14", "sma_20", "ema_20", "macd", "bollinger_bands", "atr_14", "stochastic", "obv",
    ])
    reference_symbols: List[str] = Field(default_factory=lambda: [
        "SPY", "VIX", "QQQ", "XLK", "XLF", "XLE", "XLV",
    ])
    sentiment_sources: List[str] = Field(default_factory=lambda: ["news", "social", "analyst"])


class AgentsConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    specialist_timeout_seconds: float = Field(default=45.0, gt=0)
    synthesizer_timeout_seconds: float = Field(default=120.0, gt=0)
    specialist_model: str = Field(default="claude-3-5-haiku-latest")
    synthesizer_model: str = Field(default="claude-sonnet-4-5-20250929")
    cli_command: List[str] = Field(default_factory=lambda: ["claude"], min_length=1)
    specialists: List[SpecialistConfig] = Field(default_factory=_default_specialists)

    @model_validator(mode="after")
    def _unique_domains(self) -> "AgentsConfig":
        seen = set()
        for entry in self.specialists:
            if entry.domain in seen:
                raise ValueError(f"duplicate specialist domain: {entry.domain.value}")
            seen.add(entry.domain)
        return self

    def specialist(self, domain: SpecialistDomain) -> Optional[SpecialistConfig]:
        for entry in self.specialists:
            if entry.domain == domain:
                return entry
        return None

    def timeout_for(self, entry: SpecialistConfig) -> float:
        return entry.timeout_seconds or self.specialist_timeout_seconds

    def model_for(self, entry: SpecialistConfig) -> str:
        return entry.model or self.specialist_model


class ServerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    host: str = "127.0.0.1"
    port: int = 8765


class TirdsSettings(BaseSettings):
    """
    Application settings.

    Attributes:
        cache: durable/hot cache settings and snapshot lookups
        agents: specialist roster, models and timeouts
        server: HTTP bind address for ``tirds --serve``
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    model_config = SettingsConfigDict(
        env_prefix="TIRDS_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    cache: CacheConfig = Field(default_factory=CacheConfig)
    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    log_level: str = Field(default="INFO", description="Logging level")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Environment beats the TOML document, which arrives as init kwargs.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {v}")
        return v


def _read_toml(path: Path) -> dict:
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as e:
        raise MalformedConfiguration(f"{path}: {e}") from e
    except OSError as e:
        raise MalformedConfiguration(f"cannot read {path}: {e}") from e


def load_config(path: Optional[str] = None, required: bool = True) -> TirdsSettings:
    """
    Load settings from a TOML file plus environment overrides.

    Args:
        path: TOML document. None means defaults + environment only.
        required: when False a missing file is tolerated (defaults apply).

    Raises:
        MalformedConfiguration: unreadable file, bad TOML, or invalid values.
    """
    document: dict = {}
    if path is not None:
        p = Path(path)
        if p.exists():
            document = _read_toml(p)
        elif required:
            raise MalformedConfiguration(f"config file not found: {path}")
        else:
            logger.info(f"Config file {path} not found, using defaults")

    try:
        settings = TirdsSettings(**document)
    except ValidationError as e:
        raise MalformedConfiguration(f"invalid configuration: {e}") from e

    enabled = [s for s in settings.agents.specialists if s.enabled]
    total = sum(s.weight for s in enabled)
    if enabled and not math.isclose(total, 1.0, abs_tol=1e-6):
        logger.warning(f"Enabled specialist weights sum to {total:.4f}, not 1.0; they will be renormalized")
    if not enabled:
        logger.warning("No specialists enabled; every evaluation will fail")

    return settings
