"""
Configuration settings for the Relay Gateway.
"""
from typing import List, Literal
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Relay Gateway configuration loaded from environment variables.

    Defaults target local development. Production deployments should set
    BROKER_ADAPTER, NATS_URL and CORS_ORIGINS explicitly.
    """
    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Service settings
    service_name: str = "relay-gateway"
    service_version: str = "0.1.0"
    service_host: str = "0.0.0.0"
    service_port: int = 3000
    debug: bool = False
    cors_origins: List[str] = ["*"]

    # Broker adapter configuration
    broker_adapter: Literal["nats", "memory"] = "nats"

    # NATS settings
    nats_url: str = "nats://localhost:4222"
    nats_reconnect_time_wait: int = 2  # seconds
    nats_max_reconnect_attempts: int = -1  # -1 = infinite
    nats_subject_prefix: str = "relay.topics"
    nats_retained_prefix: str = "relay.retained"
    nats_retained_stream: str = "RELAY_RETAINED"

    # Signaling
    default_room: str = "default"
    self_test_marker: str = "SELFTEST"

    # Retention policy per topic class (signaling never reaches the broker)
    retain_data: bool = True
    retain_logs: bool = False

    # Debug log relay
    debug_channel: str = "debug"
    log_truncate_length: int = 2048


# Global settings instance
settings = Settings()
