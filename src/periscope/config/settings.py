"""Application settings and configuration."""
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # Server settings
    host: str = Field(default="0.0.0.0", description="Host to bind the server")
    port: int = Field(default=8087, description="Port to bind the server")
    debug: bool = Field(default=False, description="Enable debug mode")
    
    log_level: str = Field(
        default="INFO",
        description="Root logging level",
        alias="LOG_LEVEL"
    )
    
    # Mempool feed settings
    mempool_feed_url: Optional[str] = Field(
        default=None,
        description="Websocket URL of the mempool packet feed (feed disabled when unset)",
        alias="MEMPOOL_FEED_URL"
    )
    
    mempool_workchain: int = Field(
        default=0,
        description="Workchain to subscribe to",
        alias="MEMPOOL_WORKCHAIN"
    )
    
    mempool_addresses: str = Field(
        default="",
        description="Comma-separated addresses to subscribe to instead of a workchain",
        alias="MEMPOOL_ADDRESSES"
    )
    
    feed_max_retries: int = Field(
        default=10,
        description="Reconnect attempts before falling back to periodic retries",
        alias="FEED_MAX_RETRIES"
    )
    
    feed_base_retry_delay: float = Field(
        default=5.0,
        description="Base reconnect delay in seconds",
        alias="FEED_BASE_RETRY_DELAY"
    )
    
    feed_max_retry_delay: float = Field(
        default=60.0,
        description="Maximum reconnect delay in seconds",
        alias="FEED_MAX_RETRY_DELAY"
    )
    
    feed_periodic_retry_interval: float = Field(
        default=60.0,
        description="Wait in seconds before a fresh retry cycle once retries are exhausted",
        alias="FEED_PERIODIC_RETRY_INTERVAL"
    )
    
    feed_stale_after: float = Field(
        default=120.0,
        description="Seconds without data before the connection is considered dead",
        alias="FEED_STALE_AFTER"
    )
    
    # Detection settings
    price_cache_ttl_ms: int = Field(
        default=60000,
        description="Time-to-live of cached venue prices in milliseconds",
        alias="PRICE_CACHE_TTL_MS"
    )
    
    price_cache_max_entries: int = Field(
        default=1000,
        description="Maximum cached pairs per venue",
        alias="PRICE_CACHE_MAX_ENTRIES"
    )
    
    processed_tx_cache_size: int = Field(
        default=1000,
        description="Number of recent transaction keys kept for de-duplication",
        alias="PROCESSED_TX_CACHE_SIZE"
    )
    
    opportunities_broadcast_limit: int = Field(
        default=20,
        description="Number of top opportunities pushed to subscribers",
        alias="OPPORTUNITIES_BROADCAST_LIMIT"
    )
    
    simulation_mode: str = Field(
        default="deterministic",
        description="Strategy behaviour when on-chain data cannot be extracted (off, deterministic, random)",
        alias="SIMULATION_MODE"
    )
    
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "populate_by_name": True,
        "extra": "ignore"  # Ignore extra fields from .env
    }
    
    @property
    def subscription_addresses(self) -> List[str]:
        """Addresses parsed from the comma-separated setting."""
        return [addr.strip() for addr in self.mempool_addresses.split(",") if addr.strip()]


# Global settings instance
settings = Settings()
