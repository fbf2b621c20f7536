"""
Ticker configuration.

Holds the options the ticker recognizes and resolves them from, in order of
increasing precedence:
    1. built-in defaults
    2. an optional JSON settings file
    3. OKX_TICKER_* environment variables
    4. command-line overrides (applied by the caller via with_overrides)

Settings files may use either the snake_case field names or the camelCase
keys of the original editor settings ("displayMode", "carouselInterval").
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

DISPLAY_MODE_ROW = "row"
DISPLAY_MODE_CAROUSEL = "carousel"
DISPLAY_MODES = (DISPLAY_MODE_ROW, DISPLAY_MODE_CAROUSEL)

ABBREVIATION_ENABLE = "enable"
ABBREVIATION_DISABLE = "disable"
ABBREVIATION_MODES = (ABBREVIATION_ENABLE, ABBREVIATION_DISABLE)

DEFAULT_PAIRS: List[str] = ["BTC-USDT-SWAP", "ETH-USDT-SWAP"]
DEFAULT_CAROUSEL_INTERVAL_MS = 5000

# Environment variable -> config field
ENV_PREFIX = "OKX_TICKER_"
ENV_FIELDS = {
    "OKX_TICKER_PAIRS": "pairs",
    "OKX_TICKER_DISPLAY_MODE": "display_mode",
    "OKX_TICKER_CAROUSEL_INTERVAL": "carousel_interval_ms",
    "OKX_TICKER_ABBREVIATION": "abbreviation",
    "OKX_TICKER_SNAPSHOT_REFRESH": "snapshot_refresh_ms",
}

# Settings-file aliases -> config field
KEY_ALIASES = {
    "pairs": "pairs",
    "displayMode": "display_mode",
    "display_mode": "display_mode",
    "carouselInterval": "carousel_interval_ms",
    "carouselIntervalMillis": "carousel_interval_ms",
    "carousel_interval_ms": "carousel_interval_ms",
    "abbreviation": "abbreviation",
    "snapshotRefresh": "snapshot_refresh_ms",
    "snapshot_refresh_ms": "snapshot_refresh_ms",
}

_INT_FIELDS = {"carousel_interval_ms", "snapshot_refresh_ms"}


class ConfigError(ValueError):
    """Raised when a configuration option has an invalid value."""


def parse_pairs(value: Any) -> List[str]:
    """Accept a list of ids or a comma-separated string ("BTC-USDT,ETH-USDT")."""
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        raise ConfigError(f"pairs must be a list or comma-separated string, got {type(value).__name__}")
    pairs = []
    for item in items:
        inst_id = str(item).strip()
        if inst_id and inst_id not in pairs:
            pairs.append(inst_id)
    return pairs


@dataclass
class TickerConfig:
    """Options consumed by the ticker controller."""
    pairs: List[str] = field(default_factory=lambda: list(DEFAULT_PAIRS))
    display_mode: str = DISPLAY_MODE_ROW
    carousel_interval_ms: int = DEFAULT_CAROUSEL_INTERVAL_MS
    abbreviation: str = ABBREVIATION_DISABLE
    snapshot_refresh_ms: int = 0  # 0 disables periodic REST refresh

    def __post_init__(self):
        """Validate and normalize options."""
        self.pairs = parse_pairs(self.pairs)
        if self.display_mode not in DISPLAY_MODES:
            raise ConfigError(
                f"display_mode must be one of {DISPLAY_MODES}, got {self.display_mode!r}"
            )
        if self.abbreviation not in ABBREVIATION_MODES:
            raise ConfigError(
                f"abbreviation must be one of {ABBREVIATION_MODES}, got {self.abbreviation!r}"
            )
        for name in _INT_FIELDS:
            value = getattr(self, name)
            try:
                value = int(value)
            except (TypeError, ValueError):
                raise ConfigError(f"{name} must be an integer, got {value!r}") from None
            setattr(self, name, value)
        if self.carousel_interval_ms <= 0:
            raise ConfigError(
                f"carousel_interval_ms must be positive, got {self.carousel_interval_ms}"
            )
        if self.snapshot_refresh_ms < 0:
            raise ConfigError(
                f"snapshot_refresh_ms must be >= 0, got {self.snapshot_refresh_ms}"
            )

    @property
    def abbreviation_enabled(self) -> bool:
        return self.abbreviation == ABBREVIATION_ENABLE

    @property
    def is_carousel(self) -> bool:
        return self.display_mode == DISPLAY_MODE_CAROUSEL

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TickerConfig":
        """Build a config from a settings mapping, ignoring unknown keys."""
        return cls(**_normalize_keys(data))

    def with_overrides(self, **overrides: Any) -> "TickerConfig":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if not changes:
            return self
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _normalize_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    normalized = {}
    for key, value in data.items():
        name = KEY_ALIASES.get(key)
        if name is None:
            logger.debug("Ignoring unknown config key %r", key)
            continue
        normalized[name] = value
    return normalized


def load_settings_file(path: str) -> Dict[str, Any]:
    """Read a JSON settings file.

    Accepts either a flat object or one nested under "okxTradingview", the
    section name the original editor settings used.
    """
    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: settings file must contain a JSON object")
    section = data.get("okxTradingview")
    if isinstance(section, dict):
        data = section
    return _normalize_keys(data)


def settings_from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Collect OKX_TICKER_* variables into config field values."""
    environ = os.environ if environ is None else environ
    settings = {}
    for var, name in ENV_FIELDS.items():
        value = environ.get(var)
        if value is None or value.strip() == "":
            continue
        settings[name] = value.strip()
    return settings


def load_config(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> TickerConfig:
    """Resolve defaults, settings file and environment into a TickerConfig."""
    settings: Dict[str, Any] = {}
    if path:
        settings.update(load_settings_file(path))
        logger.info("Loaded settings from %s", path)
    settings.update(settings_from_env(environ))
    return TickerConfig(**settings)
