"""Configuration module for the community feed generator."""

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, FrozenSet, List

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .db import Database


# Seed member for the Swarm community (andrarchy.bsky.social)
DEFAULT_COMMUNITY_MEMBERS = ["did:plc:ouadmsyvsfcpkxg3yyz4trqi"]


class Settings(BaseModel):
    """Application settings with environment variable support."""

    # HTTP server
    port: int = Field(default=3000)
    listenhost: str = Field(default="0.0.0.0")
    hostname: str = Field(default="localhost")

    # Storage: a SQLite path or a postgres:// connection string
    database_url: str = Field(default="swarm-feed.db")

    # Identity
    service_did: str = Field(default="")
    publisher_did: str = Field(default="")

    # Firehose Configuration
    subscription_endpoint: str = Field(default="wss://bsky.network")
    subscription_reconnect_delay: float = Field(default=3.0)
    stream_idle_timeout: float = Field(default=60.0)
    cursor_save_interval: int = Field(default=20)
    enable_subscription: bool = Field(default=True)

    # Community membership
    community_members: List[str] = Field(default_factory=lambda: list(DEFAULT_COMMUNITY_MEMBERS))

    # Feed queries
    feed_default_limit: int = Field(default=50)
    feed_max_limit: int = Field(default=100)
    trending_window_days: int = Field(default=7)

    # Observability
    metrics_enabled: bool = Field(default=True)
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    def __init__(self, **kwargs):
        # Load from environment variables
        env_values = {}

        # Map environment variables to settings
        env_mapping = {
            "PORT": "port",
            "FEEDGEN_LISTENHOST": "listenhost",
            "FEEDGEN_HOSTNAME": "hostname",
            "DATABASE_URL": "database_url",
            "FEEDGEN_SERVICE_DID": "service_did",
            "FEEDGEN_PUBLISHER_DID": "publisher_did",
            "FEEDGEN_SUBSCRIPTION_ENDPOINT": "subscription_endpoint",
            "FEEDGEN_SUBSCRIPTION_RECONNECT_DELAY": "subscription_reconnect_delay",
            "FEEDGEN_STREAM_IDLE_TIMEOUT": "stream_idle_timeout",
            "CURSOR_SAVE_INTERVAL": "cursor_save_interval",
            "ENABLE_SUBSCRIPTION": "enable_subscription",
            "COMMUNITY_MEMBERS": "community_members",
            "FEED_DEFAULT_LIMIT": "feed_default_limit",
            "FEED_MAX_LIMIT": "feed_max_limit",
            "TRENDING_WINDOW_DAYS": "trending_window_days",
            "METRICS_ENABLED": "metrics_enabled",
            "LOG_LEVEL": "log_level",
            "LOG_FORMAT": "log_format",
        }

        for env_var, field_name in env_mapping.items():
            if env_var in os.environ:
                value = os.environ[env_var]

                # Convert types
                if field_name in ["port", "cursor_save_interval", "feed_default_limit",
                                  "feed_max_limit", "trending_window_days"]:
                    try:
                        value = int(value)
                    except ValueError:
                        pass
                elif field_name in ["subscription_reconnect_delay", "stream_idle_timeout"]:
                    try:
                        value = float(value)
                    except ValueError:
                        pass
                elif field_name in ["enable_subscription", "metrics_enabled"]:
                    value = value.lower() in ("true", "1", "yes", "on")
                elif field_name == "community_members":
                    value = [did.strip() for did in value.split(",") if did.strip()]

                env_values[field_name] = value

        # Merge kwargs with env values (kwargs take precedence)
        final_values = {**env_values, **kwargs}
        super().__init__(**final_values)

        if not self.service_did:
            self.service_did = f"did:web:{self.hostname}"

    def members(self) -> FrozenSet[str]:
        """Tracked community set. Empty means every author is accepted."""
        return frozenset(self.community_members)


@dataclass
class AppContext:
    """Everything a feed algorithm needs to answer a request."""
    db: "Database"
    members: FrozenSet[str]
    settings: Settings
