import os
from dataclasses import dataclass


def _get_bool(env_name: str, default: bool = False) -> bool:
    val = os.getenv(env_name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass
class Settings:
    # App
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    # Used to build gateway callback URLs; falls back to the request host when empty
    PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "")

    # Database (SQLite by default, mysql+aiomysql://... for the MySQL variant)
    DB_URL: str = os.getenv("DB_URL", "sqlite+aiosqlite:///./data.db")
    SEED_SAMPLE_DATA: bool = _get_bool("SEED_SAMPLE_DATA", True)

    # Redis
    REDIS_HOST: str = os.getenv("REDIS_HOST", "redis")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_USERNAME: str = os.getenv("REDIS_USERNAME", "")
    REDIS_PASSWORD: str = os.getenv("REDIS_PASSWORD", "")
    REDIS_SSL: bool = _get_bool("REDIS_SSL", False)

    # Sessions ("redis" or "memory")
    SESSION_BACKEND: str = os.getenv("SESSION_BACKEND", "redis")
    SESSION_COOKIE_NAME: str = os.getenv("SESSION_COOKIE_NAME", "sid")
    SESSION_COOKIE_SECURE: bool = _get_bool("SESSION_COOKIE_SECURE", False)
    SESSION_TTL_SECONDS: int = int(os.getenv("SESSION_TTL_SECONDS", str(60 * 60 * 24 * 7)))
    SESSION_KEY_PREFIX: str = os.getenv("SESSION_KEY_PREFIX", "session:")

    # Kafka
    KAFKA_ENABLED: bool = _get_bool("KAFKA_ENABLED", False)
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")
    ORDER_EVENTS_TOPIC: str = os.getenv("ORDER_EVENTS_TOPIC", "order-events")
    KAFKA_START_TIMEOUT: float = float(os.getenv("KAFKA_START_TIMEOUT", "2"))
    KAFKA_SEND_TIMEOUT: float = float(os.getenv("KAFKA_SEND_TIMEOUT", "2"))
    KAFKA_RETRY_COOLDOWN: float = float(os.getenv("KAFKA_RETRY_COOLDOWN", "30"))

    # CinetPay
    CINETPAY_API_URL: str = os.getenv("CINETPAY_API_URL", "https://api-checkout.cinetpay.com/v2")
    CINETPAY_API_KEY: str = os.getenv("CINETPAY_API_KEY", "")
    CINETPAY_SITE_ID: str = os.getenv("CINETPAY_SITE_ID", "")
    # Enables x-token verification on the notification webhook when set
    CINETPAY_SECRET_KEY: str = os.getenv("CINETPAY_SECRET_KEY", "")
    CINETPAY_TIMEOUT: float = float(os.getenv("CINETPAY_TIMEOUT", "15"))
    CINETPAY_DEFAULT_PHONE: str = os.getenv("CINETPAY_DEFAULT_PHONE", "+22500000000")
    CINETPAY_CHANNELS: str = os.getenv("CINETPAY_CHANNELS", "ALL")
    CINETPAY_LANG: str = os.getenv("CINETPAY_LANG", "FR")

    # Checkout
    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "XOF")
    DEFAULT_PAYMENT_DESCRIPTION: str = os.getenv("DEFAULT_PAYMENT_DESCRIPTION", "Achat de produits de karité")
    FREE_SHIPPING_THRESHOLD: str = os.getenv("FREE_SHIPPING_THRESHOLD", "50.00")
    SHIPPING_FEE: str = os.getenv("SHIPPING_FEE", "5.00")


settings = Settings()
