"""
Core Module - Service Configuration.

============================================================
RESPONSIBILITY
============================================================
Holds every process-level setting in one immutable object.

- Loaded from environment variables (and an optional .env file)
- Overridable from the command line
- Validated once at startup
- Passed explicitly to the components that need it

============================================================
ENVIRONMENT VARIABLES
============================================================
COINGECKO_API_KEY            Provider API key (required)
COINGECKO_API_PLAN           "demo" or "pro" (default: demo)
COINGECKO_BASE_URL           Override the provider base URL
HOST / PORT                  HTTP bind address (0.0.0.0:8080)
LOG_LEVEL / LOG_FORMAT       Logging level and "text" or "json"
UPSTREAM_TIMEOUT_SECONDS     Per-call provider timeout (30)
STAKING_DATA_PATH            Alternative staking reference YAML
COLLAPSE_DUPLICATE_FETCHES   Share one fetch per key (false)

============================================================
"""

import os
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from dotenv import load_dotenv


SUPPORTED_PLANS = ("demo", "pro")
SUPPORTED_LOG_FORMATS = ("text", "json")


class ConfigError(ValueError):
    """An environment variable could not be parsed."""


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_number(name: str, default: str, cast: Callable[[str], Any]) -> Any:
    raw = os.getenv(name, default)
    try:
        return cast(raw.strip())
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True)
class PricingConfig:
    """Configuration for the pricing service."""
    
    # Upstream provider
    coingecko_api_key: str = ""
    """API key sent in the provider's auth header."""
    
    coingecko_plan: str = "demo"
    """Provider plan; selects base URL and auth header."""
    
    coingecko_base_url: Optional[str] = None
    """Explicit base URL (defaults to the plan's URL)."""
    
    upstream_timeout_seconds: float = 30.0
    """Call-level timeout for one upstream request."""
    
    # HTTP server
    host: str = "0.0.0.0"
    port: int = 8080
    
    # Logging
    log_level: str = "INFO"
    log_format: str = "text"
    
    # Reference data
    staking_data_path: Optional[str] = None
    """YAML file replacing the bundled staking reference table."""
    
    # Resolver
    collapse_duplicate_fetches: bool = False
    """Let concurrent lookups of one expired key share a single fetch."""
    
    @classmethod
    def from_env(cls) -> "PricingConfig":
        """
        Load configuration from environment variables.
        
        Raises:
            ConfigError: If a numeric variable cannot be parsed
        """
        load_dotenv()
        return cls(
            coingecko_api_key=os.getenv("COINGECKO_API_KEY", ""),
            coingecko_plan=os.getenv("COINGECKO_API_PLAN", "demo").lower(),
            coingecko_base_url=os.getenv("COINGECKO_BASE_URL") or None,
            upstream_timeout_seconds=_env_number("UPSTREAM_TIMEOUT_SECONDS", "30", float),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_env_number("PORT", "8080", int),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("LOG_FORMAT", "text").lower(),
            staking_data_path=os.getenv("STAKING_DATA_PATH") or None,
            collapse_duplicate_fetches=_env_bool("COLLAPSE_DUPLICATE_FETCHES"),
        )
    
    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []
        
        if not self.coingecko_api_key:
            errors.append("COINGECKO_API_KEY environment variable is required")
        
        if self.coingecko_plan not in SUPPORTED_PLANS:
            errors.append(
                f"coingecko_plan must be one of {', '.join(SUPPORTED_PLANS)}, "
                f"got {self.coingecko_plan!r}"
            )
        
        if not self.upstream_timeout_seconds > 0:
            errors.append("upstream_timeout_seconds must be positive")
        
        if not 0 < self.port < 65536:
            errors.append(f"port must be between 1 and 65535, got {self.port}")
        
        if self.log_format not in SUPPORTED_LOG_FORMATS:
            errors.append(
                f"log_format must be one of {', '.join(SUPPORTED_LOG_FORMATS)}, "
                f"got {self.log_format!r}"
            )
        
        if self.staking_data_path and not os.path.isfile(self.staking_data_path):
            errors.append(f"staking data file not found: {self.staking_data_path}")
        
        return errors
    
    def to_dict(self) -> dict:
        """Convert to dictionary for logging (API key masked)."""
        return {
            "coingecko_api_key": _mask(self.coingecko_api_key),
            "coingecko_plan": self.coingecko_plan,
            "coingecko_base_url": self.coingecko_base_url,
            "upstream_timeout_seconds": self.upstream_timeout_seconds,
            "host": self.host,
            "port": self.port,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "staking_data_path": self.staking_data_path,
            "collapse_duplicate_fetches": self.collapse_duplicate_fetches,
        }


def _mask(value: str, visible: int = 4) -> str:
    if not value:
        return ""
    if len(value) <= visible:
        return "*" * len(value)
    return value[:visible] + "*" * (len(value) - visible)
