"""
Configuration module for the FixHub booking backend.
Loads environment variables and provides typed configuration.
"""

from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file
env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    environment: str = "development"  # development, staging, production
    log_level: str = "INFO"

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""

    # Identity (JWT issued by the auth service)
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"

    # Khalti (token gateway)
    khalti_secret_key: str = ""
    khalti_verify_url: str = "https://khalti.com/api/v2/payment/verify/"

    # eSewa (redirect gateway)
    esewa_product_code: str = "EPAYTEST"
    esewa_secret_key: str = ""
    esewa_form_url: str = "https://rc-epay.esewa.com.np/api/epay/main/v2/form"
    esewa_status_url: str = (
        "https://rc-epay.esewa.com.np/api/epay/transaction/status/"
    )
    esewa_success_url: str = "http://localhost:3000/payment/esewa/success"
    esewa_failure_url: str = "http://localhost:3000/payment/esewa/failure"

    # Outbound gateway calls
    gateway_timeout_seconds: float = 10.0
    gateway_max_retries: int = 3

    # Email (SMTP)
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    email_sender_name: str = "MotoFix"

    # Pricing
    default_pickup_charge_per_km: float = 50.0
    min_pickup_distance_km: float = 1.0

    # Loyalty rewards granted when a booking is paid
    loyalty_reward_min: int = 10
    loyalty_reward_max: int = 20
    loyalty_reward_step_amount: float = 200.0  # +1 point per this many rupees

    # Notification delivery
    notification_max_retries: int = 2
    notification_retry_delay_seconds: int = 30

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def validate_all_required(self) -> None:
        """
        Validate that all required settings are present.

        Raises:
            ValueError: If required fields are missing or invalid
        """
        required_fields = [
            "supabase_url",
            "supabase_key",
            "jwt_secret",
            "khalti_secret_key",
            "esewa_secret_key",
        ]

        missing = []
        for field in required_fields:
            value = getattr(self, field, None)

            if not value:
                missing.append(field)
                continue

            # Placeholder values copied from .env.example
            if str(value).lower().startswith("your_"):
                missing.append(field)

        if self.loyalty_reward_min > self.loyalty_reward_max:
            missing.append("loyalty_reward_min")

        if missing:
            raise ValueError(
                f"Missing or invalid required configuration: "
                f"{', '.join(missing)}. "
                f"Please check your .env file and ensure all required "
                f"values are set."
            )


# Global settings instance
settings = Settings()
