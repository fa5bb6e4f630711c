"""
Configuration management using Pydantic Settings
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# config.py is at: backend/app/core/config.py
# Project root is: backend/app/core/../../../
_current_file = Path(__file__).resolve()
_backend_dir = _current_file.parent.parent.parent
_project_root = _backend_dir.parent
ENV_FILE = _project_root / ".env"
# Fallback: try in backend/ directory if not found in project root
if not ENV_FILE.exists():
    ENV_FILE = _backend_dir / ".env"
if ENV_FILE.exists():
    load_dotenv(ENV_FILE, override=False)


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "AI Products Order Widget"
    app_env: str = Field(default="development", description="Application environment")
    app_version: str = Field(default="2.0.0", description="Version reported to the widget")
    secret_key: str = Field(..., description="Secret key used to sign nonces")
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, ge=1, le=65535, description="API port")
    allowed_origins: str = Field(
        default="http://localhost:8000",
        description="Allowed CORS origins (comma-separated)"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_uvicorn_access: bool = Field(default=False, description="Enable Uvicorn access logging")
    log_module_levels: Optional[str] = Field(
        default=None,
        description='Module-specific log levels (JSON string, e.g., {"app.services": "DEBUG"})'
    )
    log_format: str = Field(
        default="json",
        description="Log format: 'json' for structured logging, 'text' for plain text"
    )
    log_file_enabled: bool = Field(default=True, description="Enable file logging")
    log_file_path: str = Field(
        default="logs/order_widget.log",
        description="Path to log file (relative to project root)"
    )
    log_file_rotation: str = Field(
        default="midnight",
        description="Log file rotation: 'midnight' or 'W0'..'W6' (weekly)"
    )
    log_file_retention: int = Field(default=30, ge=1, description="Number of log files to keep")
    log_sensitive_data: bool = Field(
        default=False,
        description="Enable logging of sensitive data (tokens, card data) - NOT RECOMMENDED"
    )

    # n8n webhooks
    n8n_base_url: str = Field(
        default="https://n8n.workflows.organizedchaos.cc/webhook",
        description="Base URL of the n8n webhook host"
    )
    n8n_select_path: str = Field(default="/da176ae9-496c-4f08-baf5-6a78a6a42adb")
    n8n_create_user_path: str = Field(default="/users/create")
    n8n_charge_customer_path: str = Field(default="/charge-customer")
    n8n_submit_order_path: str = Field(default="/website-payload-purchase")
    n8n_validate_coupon_path: str = Field(default="/validate-coupon")
    n8n_porting_loa_path: str = Field(default="/porting-loa")
    n8n_update_loa_signature_path: str = Field(default="/porting-loa/sign")

    # Outbound HTTP
    http_timeout_seconds: float = Field(default=30.0, gt=0, description="Timeout for webhook calls")
    http_verify_ssl: bool = Field(default=True, description="Verify TLS certificates")

    # Pricing
    default_sales_generated_id: str = Field(
        default="4c26d41a-6c83-4e44-9b17-7a243b2aeb17",
        description="Pricing package used when the widget sends none"
    )
    pricing_table: str = Field(default="Website_Pricing")
    pricing_cache_ttl_seconds: int = Field(default=3600, ge=0)
    porting_loa_table: str = Field(default="porting_loa")

    # Nonces
    nonce_lifetime_seconds: int = Field(default=86400, ge=60, description="Nonce lifetime (seconds)")

    # Stripe (publishable key only, charging happens in n8n)
    stripe_public_key: str = Field(default="", description="Stripe publishable key for the widget")

    # Twilio
    twilio_account_sid: str = Field(default="", description="Twilio Account SID")
    twilio_auth_token: str = Field(default="", description="Twilio Auth Token")
    twilio_base_url: str = Field(default="https://api.twilio.com/2010-04-01")

    # Porting LOA
    loa_company_name: str = Field(default="Customer2.AI")
    loa_sender_name: str = Field(default="Customer2 AI System")
    loa_fallback_recipient: str = Field(default="sales@customer2.ai")
    pdf_storage_dir: str = Field(default="storage/ai-orders")

    @field_validator("n8n_base_url", "twilio_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs"""
        return v.rstrip("/")

    def _n8n_url(self, path: str) -> str:
        return f"{self.n8n_base_url}/{path.lstrip('/')}"

    @property
    def n8n_select_url(self) -> str:
        return self._n8n_url(self.n8n_select_path)

    @property
    def n8n_create_user_url(self) -> str:
        return self._n8n_url(self.n8n_create_user_path)

    @property
    def n8n_charge_customer_url(self) -> str:
        return self._n8n_url(self.n8n_charge_customer_path)

    @property
    def n8n_submit_order_url(self) -> str:
        return self._n8n_url(self.n8n_submit_order_path)

    @property
    def n8n_validate_coupon_url(self) -> str:
        return self._n8n_url(self.n8n_validate_coupon_path)

    @property
    def n8n_porting_loa_url(self) -> str:
        return self._n8n_url(self.n8n_porting_loa_path)

    @property
    def n8n_update_loa_signature_url(self) -> str:
        return self._n8n_url(self.n8n_update_loa_signature_path)

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def project_root(self) -> Path:
        return _project_root

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
