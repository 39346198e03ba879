"""SDK configuration.

Loads settings from environment variables (prefixed ``BUYFLOW_``) or a
``.env`` file, with sensible defaults.
"""

from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from buyflow.domain.state_machines import CompletionPath
from buyflow.domain.value_objects import MerchantCapability, PaymentNetwork


class Settings(BaseSettings):
    """SDK settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="BUYFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Commerce API
    api_base_url: str = "https://shop.example.com/api"
    api_key: str = "dev-api-key-change-in-production"
    request_timeout: float = Field(default=30.0, gt=0)

    # Polling while the remote service is still calculating (HTTP 202)
    poll_interval: float = Field(default=0.5, ge=0)
    poll_attempts: int = Field(default=10, ge=1)

    # Wallet payments
    merchant_id: str | None = None
    # Comma-separated in the environment, e.g. BUYFLOW_SUPPORTED_NETWORKS=visa,amex
    supported_networks: Annotated[list[PaymentNetwork], NoDecode] = Field(
        default_factory=lambda: [
            PaymentNetwork.AMEX,
            PaymentNetwork.MASTERCARD,
            PaymentNetwork.VISA,
        ]
    )
    merchant_capability: MerchantCapability = MerchantCapability.THREE_DS
    country_code: str = "US"

    # Completion path used when starting from a cart token
    cart_token_path: CompletionPath = CompletionPath.WALLET

    # Logging
    log_level: str = "INFO"
    json_logs: bool = True

    @field_validator("supported_networks", mode="before")
    @classmethod
    def _split_networks(cls, value: object) -> object:
        if isinstance(value, str):
            return [part.strip().lower() for part in value.split(",") if part.strip()]
        return value

    @field_validator("supported_networks")
    @classmethod
    def _check_networks(cls, value: list[PaymentNetwork]) -> list[PaymentNetwork]:
        # Unknown names are already rejected by the PaymentNetwork enum
        if not value:
            raise ValueError("At least one payment network must be supported")
        return list(dict.fromkeys(value))

    @field_validator("merchant_id")
    @classmethod
    def _blank_merchant_is_unset(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def wallet_configured(self) -> bool:
        return self.merchant_id is not None


settings = Settings()
