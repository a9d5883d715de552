"""
Centralized configuration for the Pass the Bluff game server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.computer.BLUFF_PROBABILITY)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if it exists
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get float environment variable."""
    try:
        return float(os.environ.get(key, str(default)))
    except ValueError:
        return default


@dataclass
class ComputerDefaults:
    """Timing and decision odds for computer players."""
    TICK_MIN_SECONDS: float = 1.0
    TICK_MAX_SECONDS: float = 3.0
    BLUFF_PROBABILITY: float = 0.30  # chance of declaring a false name
    CALL_PROBABILITY: float = 0.25   # chance of calling bluff on a declaration


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Storage (in-memory when empty)
    REDIS_URL: str = ""
    ROOM_TTL_HOURS: int = 24
    STORE_RETRY_ATTEMPTS: int = 3

    # Room settings
    MAX_PLAYERS_PER_ROOM: int = 10
    MIN_PLAYERS_PER_ROOM: int = 3

    # How long a bluff result is shown before the next round is dealt
    BLUFF_RESULT_SECONDS: float = 5.0

    computer: ComputerDefaults = field(default_factory=ComputerDefaults)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 8000),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            REDIS_URL=get_env("REDIS_URL", ""),
            ROOM_TTL_HOURS=get_env_int("ROOM_TTL_HOURS", 24),
            STORE_RETRY_ATTEMPTS=get_env_int("STORE_RETRY_ATTEMPTS", 3),
            MAX_PLAYERS_PER_ROOM=get_env_int("MAX_PLAYERS_PER_ROOM", 10),
            MIN_PLAYERS_PER_ROOM=get_env_int("MIN_PLAYERS_PER_ROOM", 3),
            BLUFF_RESULT_SECONDS=get_env_float("BLUFF_RESULT_SECONDS", 5.0),
            computer=ComputerDefaults(
                TICK_MIN_SECONDS=get_env_float("CPU_TICK_MIN_SECONDS", 1.0),
                TICK_MAX_SECONDS=get_env_float("CPU_TICK_MAX_SECONDS", 3.0),
                BLUFF_PROBABILITY=get_env_float("CPU_BLUFF_PROBABILITY", 0.30),
                CALL_PROBABILITY=get_env_float("CPU_CALL_PROBABILITY", 0.25),
            ),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
