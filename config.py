"""
Lotus Explorer Gateway Configuration
Environment-driven configuration for the explorer API gateway
"""

import os
from typing import Dict, Any

from dotenv import load_dotenv

from lotus_script import NETWORKS as XADDRESS_NETWORKS

# Values already present in the environment win over the .env file
load_dotenv()


class Config:
    """Base configuration"""

    # API Server Configuration
    API_LISTEN_ADDRESS = os.getenv("API_LISTEN_ADDRESS", "0.0.0.0")
    API_LISTEN_PORT = int(os.getenv("API_LISTEN_PORT", "3000"))
    API_BASE_PATH = "/api/v1"
    DEBUG = os.getenv("DEBUG", "false").lower() == "true"

    # API Rate Limiting
    RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    RATE_LIMIT_WINDOW_MINUTES = int(os.getenv("API_RATE_LIMIT_WINDOW_MINUTES", "1"))
    RATE_LIMIT_MAX_REQUESTS = int(os.getenv("API_RATE_LIMIT_MAX_REQUESTS", "100"))

    # Lotus Node JSON-RPC Configuration
    JSONRPC_ADDRESS = os.getenv("JSONRPC_ADDRESS", "127.0.0.1")
    JSONRPC_PORT = int(os.getenv("JSONRPC_PORT", "10604"))
    JSONRPC_USERNAME = os.getenv("JSONRPC_USERNAME", "lotus")
    JSONRPC_PASSWORD = os.getenv("JSONRPC_PASSWORD", "lotus")

    # Chronik Indexer Configuration
    CHRONIK_URL = os.getenv("CHRONIK_URL", "https://chronik.lotusia.org")

    # Peer Geolocation Configuration
    GEOIP_URL = os.getenv("GEOIP_URL", "https://api.sefinek.net/api/v2/geoip")
    # Empty keeps the cache in-process
    GEOIP_CACHE_REDIS_URL = os.getenv("GEOIP_CACHE_REDIS_URL", "")

    # Upstream transport
    UPSTREAM_TIMEOUT = int(os.getenv("UPSTREAM_TIMEOUT", "10"))
    UPSTREAM_RETRY_COUNT = int(os.getenv("UPSTREAM_RETRY_COUNT", "3"))

    # Address encoding
    XADDRESS_PREFIX = "lotus"
    XADDRESS_NETWORK = os.getenv("XADDRESS_NETWORK", "mainnet")

    # Pagination
    DEFAULT_PAGE_SIZE = 10
    MAX_PAGE_SIZE = 40

    # CORS Configuration
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

    # Logging Configuration
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def to_dict(cls) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        return {
            key: getattr(cls, key)
            for key in dir(cls)
            if key.isupper() and not callable(getattr(cls, key))
        }

    @classmethod
    def rpc_url(cls) -> str:
        """Node JSON-RPC endpoint URL"""
        return f"http://{cls.JSONRPC_ADDRESS}:{cls.JSONRPC_PORT}"

    @classmethod
    def network_char(cls) -> str:
        """XAddress network character for the configured network"""
        return XADDRESS_NETWORKS[cls.XADDRESS_NETWORK]

    @classmethod
    def validate(cls) -> None:
        """Validate configuration"""
        errors = []

        if not cls.JSONRPC_ADDRESS:
            errors.append("JSONRPC_ADDRESS is required")

        if not cls.CHRONIK_URL:
            errors.append("CHRONIK_URL is required")

        if cls.API_LISTEN_PORT < 1 or cls.API_LISTEN_PORT > 65535:
            errors.append("API_LISTEN_PORT must be between 1 and 65535")

        if cls.JSONRPC_PORT < 1 or cls.JSONRPC_PORT > 65535:
            errors.append("JSONRPC_PORT must be between 1 and 65535")

        if cls.RATE_LIMIT_WINDOW_MINUTES < 1:
            errors.append("API_RATE_LIMIT_WINDOW_MINUTES must be positive")

        if cls.RATE_LIMIT_MAX_REQUESTS < 1:
            errors.append("API_RATE_LIMIT_MAX_REQUESTS must be positive")

        if cls.XADDRESS_NETWORK not in XADDRESS_NETWORKS:
            errors.append(
                f"XADDRESS_NETWORK must be one of {', '.join(sorted(XADDRESS_NETWORKS))}"
            )

        if errors:
            raise ValueError(f"Configuration validation failed: {', '.join(errors)}")


class DevelopmentConfig(Config):
    """Development configuration"""

    DEBUG = True
    LOG_LEVEL = "DEBUG"


class ProductionConfig(Config):
    """Production configuration"""

    DEBUG = False
    RATE_LIMIT_ENABLED = True
    LOG_LEVEL = "WARNING"


class TestConfig(Config):
    """Test configuration"""

    JSONRPC_ADDRESS = "127.0.0.1"
    CHRONIK_URL = "http://localhost:7123"
    GEOIP_URL = "http://localhost:7124/geoip"
    GEOIP_CACHE_REDIS_URL = ""
    RATE_LIMIT_ENABLED = False
    UPSTREAM_RETRY_COUNT = 0
    XADDRESS_NETWORK = "mainnet"


# Environment-based configuration selection
ENV_CONFIGS = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "test": TestConfig,
}


def get_config() -> Config:
    """Get configuration based on environment"""
    env = os.getenv("EXPLORER_ENV", "development")
    config_class = ENV_CONFIGS.get(env, DevelopmentConfig)
    config_class.validate()
    return config_class


# Export current configuration
config = get_config()
