"""Configuration management using Pydantic Settings"""

from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Service
    service_name: str = "careflex-billing"
    log_level: str = "INFO"

    # Upstream patient backend
    upstream_api_base: str = "http://localhost:4000"
    upstream_dashboard_path: str = "/api/patient/dashboard"
    http_timeout_seconds: float = 5.0

    # Billing
    default_credit_limit: float = 5000.0
    default_currency: str = "GBP"
    eligibility_min_score: int = 700

    # Legacy repayment heuristic, only for payments without an explicit kind
    infer_payment_kind: bool = True
    repayment_keywords: List[str] = ["careflex", "repay"]

    # Precedence between payment rows and invoice paid markers
    total_paid_source: Literal["auto", "payments", "invoices"] = "auto"
    paid_marker_policy: Literal["recompute", "trust"] = "recompute"


settings = Settings()
