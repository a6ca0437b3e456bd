"""
Outreach CRM Configuration
Loads settings from environment variables with sensible defaults.
"""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

# Load .env file
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)

_DEFAULT_CACHE_PATH = Path(__file__).parent.parent / 'data' / 'outreach_cache.sqlite3'


def _float_env(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError:
        _logger.critical(f"{name}={raw!r} is not a number — cannot start.")
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}")


class Config:
    """Application configuration."""

    # Remote store: primary first, fallback when primary is unreachable
    PRIMARY_API_BASE = os.getenv('PRIMARY_API_BASE', 'http://localhost:3000').rstrip('/')
    FALLBACK_API_BASE = os.getenv('FALLBACK_API_BASE', 'http://localhost:4000').rstrip('/')

    # Sync cadence (seconds)
    HEARTBEAT_SECONDS = _float_env('HEARTBEAT_SECONDS', '8')
    SYNC_INTERVAL_SECONDS = _float_env('SYNC_INTERVAL_SECONDS', '30')

    # Per-request timeout so a hung call never stalls the next tick
    REQUEST_TIMEOUT_SECONDS = _float_env('REQUEST_TIMEOUT_SECONDS', '8')

    # Local cache
    CACHE_PATH = os.getenv('CACHE_PATH', str(_DEFAULT_CACHE_PATH))
    CACHE_NAMESPACE = os.getenv('CACHE_NAMESPACE', 'gulfvs')


# Singleton instance
config = Config()
