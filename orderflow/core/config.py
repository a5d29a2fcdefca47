"""Configuration management for orderflow."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Assignment Configuration
    offer_timeout_seconds: float = Field(
        default=15.0, gt=0, description="Seconds a driver has to respond to an offer before reassignment"
    )
    max_assignment_attempts: int = Field(
        default=5, ge=1, description="Maximum number of drivers tried for a single order"
    )
    candidate_pool: list[str] = Field(
        default=["driver-1", "driver-2", "driver-3", "driver-4", "driver-5"],
        description="Ordered pool of driver IDs used by the static candidate provider",
    )

    # Customer Notification Configuration
    enable_reassignment_notifications: bool = Field(
        default=True, description="Enable/disable customer notifications on reassignment"
    )
    reassignment_notification_threshold: int = Field(
        default=1,
        ge=0,
        description="Reassignments up to and including this count are not notified to the customer",
    )
    max_notifications_per_order: int = Field(
        default=3, ge=0, description="Maximum number of customer notifications sent for a single order"
    )
    customer_webhook_url: str | None = Field(
        default=None, description="Webhook URL used to deliver customer messages (log-only when unset)"
    )
    customer_webhook_api_key: str | None = Field(default=None, description="API key sent to the customer webhook")

    # OpenRouter Configuration
    openrouter_api_key: str | None = Field(default=None, description="OpenRouter API key for LLM access")
    model_id: str = Field(
        default="openai/gpt-4o-mini",
        description="Model ID for OpenRouter used to write customer messages",
    )
    message_generation_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Time budget for generating one customer message"
    )

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment name")

    # Redis Configuration (optional)
    redis_url: str | None = Field(
        default=None, description="Redis connection URL for order storage (in-memory store when unset)"
    )

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value


# Application Constants
class Constants:
    """Application-wide constants."""

    # API Configuration
    API_TIMEOUT_SECONDS: int = 30

    # HTTP Status Codes
    HTTP_OK: int = 200
    HTTP_NOT_FOUND: int = 404
    HTTP_CONFLICT: int = 409
    HTTP_SERVICE_UNAVAILABLE: int = 503

    # Store Retry
    STORE_MAX_RETRIES: int = 3
    STORE_RETRY_BASE_DELAY_SECONDS: float = 0.1

    # Deadline handling when the store is down
    DEADLINE_RETRY_DELAY_SECONDS: float = 2.0
    DEADLINE_MAX_RETRIES: int = 5

    # Customer Delivery
    CUSTOMER_DELIVERY_MAX_RETRIES: int = 3
    CUSTOMER_DELIVERY_RETRY_DELAY_SECONDS: float = 1.0

    # LLM Generation
    MESSAGE_MAX_TOKENS: int = 300
    MESSAGE_TEMPERATURE: float = 0.7

    # Redis Configuration
    REDIS_MAX_CONNECTIONS: int = 10
    REDIS_KEY_PREFIX: str = "orderflow:work_item:"


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
