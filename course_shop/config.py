"""
Configuration management for the course shop state layer.
Loads settings from environment variables and AWS Secrets Manager.
"""
import os
import json
import logging
import boto3
from decimal import Decimal
from typing import Optional

logger = logging.getLogger(__name__)


def _as_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Application configuration"""

    # Application settings
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "estia-learning")
    REGION: str = os.getenv("REGION", "eu-west-3")

    # Storage settings
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "memory")  # memory | redis
    STORAGE_KEY_PREFIX: str = os.getenv("STORAGE_KEY_PREFIX", "storage")
    STORAGE_TTL_SECONDS: Optional[int] = (
        int(os.getenv("STORAGE_TTL_SECONDS")) if os.getenv("STORAGE_TTL_SECONDS") else None
    )
    CART_KEY: str = os.getenv("CART_KEY", "estia_learning_cart")
    CHAT_KEY: str = os.getenv("CHAT_KEY", "estia_learning_chat")
    SESSION_KEY: str = os.getenv("SESSION_KEY", "estia_learning_session")

    # Per-client storefronts kept in memory by the API
    STOREFRONT_MAX_CLIENTS: int = int(os.getenv("STOREFRONT_MAX_CLIENTS", "10000"))
    STOREFRONT_IDLE_SECONDS: int = int(os.getenv("STOREFRONT_IDLE_SECONDS", str(STORAGE_TTL_SECONDS or 1800)))

    # Redis settings
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_AUTH_TOKEN: Optional[str] = os.getenv("REDIS_AUTH_TOKEN")
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_SSL: bool = _as_bool(os.getenv("REDIS_SSL", "false"))

    # Redis connection settings
    REDIS_SOCKET_CONNECT_TIMEOUT: int = 5
    REDIS_SOCKET_TIMEOUT: int = 5
    REDIS_RETRY_ON_TIMEOUT: bool = True
    REDIS_MAX_CONNECTIONS: int = 50

    # Cart settings
    TAX_RATE: Decimal = Decimal(os.getenv("TAX_RATE", "0.20"))
    CURRENCY_SYMBOL: str = os.getenv("CURRENCY_SYMBOL", "€")

    # Chat settings (milliseconds)
    BOT_REPLY_MIN_MS: int = int(os.getenv("BOT_REPLY_MIN_MS", "1000"))
    BOT_REPLY_MAX_MS: int = int(os.getenv("BOT_REPLY_MAX_MS", "3000"))
    WELCOME_DELAY_MS: int = int(os.getenv("WELCOME_DELAY_MS", "500"))
    NOTIFICATION_DURATION_MS: int = int(os.getenv("NOTIFICATION_DURATION_MS", "3000"))

    # Presentation
    DISPLAY_TIMEZONE: str = os.getenv("DISPLAY_TIMEZONE", "Europe/Paris")

    @classmethod
    def load_redis_secrets(cls) -> None:
        """Load Redis authentication token from AWS Secrets Manager"""
        if cls.REDIS_AUTH_TOKEN:
            return  # Already loaded from environment

        secret_name = os.getenv("REDIS_SECRET_NAME")
        if not secret_name:
            return  # No secret name provided, use no auth

        try:
            client = boto3.client("secretsmanager", region_name=cls.REGION)
            response = client.get_secret_value(SecretId=secret_name)
            secret_data = json.loads(response["SecretString"])

            cls.REDIS_AUTH_TOKEN = secret_data.get("auth_token")
            if "endpoint" in secret_data:
                cls.REDIS_HOST = secret_data["endpoint"]
        except Exception as e:
            logger.warning(f"Could not load Redis secrets from Secrets Manager: {e}")
            # Continue without auth token (may fail on connection)

# Load secrets at module import
Config.load_redis_secrets()
