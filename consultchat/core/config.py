import json
import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Dict, Optional

from consultchat.models.plan import PLAN_KEYS


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None

    # Supabase Auth
    SUPABASE_URL: Optional[str] = None
    SUPABASE_JWT_SECRET: Optional[str] = None
    SUPABASE_JWT_AUDIENCE: str = "authenticated"

    # Gemini
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-pro"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com"
    LLM_TIMEOUT_SECONDS: float = 60.0
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_OUTPUT_TOKENS: int = 4000
    PROMPTS_JSON: Optional[str] = None

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_TIMEOUT_SECONDS: float = 20.0
    STRIPE_PRICE_BLUE: Optional[str] = None
    STRIPE_PRICE_GREEN: Optional[str] = None
    STRIPE_PRICE_GOLD: Optional[str] = None

    # App URLs
    PUBLIC_BASE_URL: Optional[str] = None
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    # Usage
    FREE_USAGE_LIMIT: int = 3
    MAX_ATTACHMENT_BYTES: int = 8 * 1024 * 1024
    DISPLAY_TIMEZONE: str = "Asia/Tokyo"

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def price_map(self) -> Dict[str, Optional[str]]:
        """Map plan keys to Stripe price IDs (None when unset)."""
        return {
            "blue": self.STRIPE_PRICE_BLUE,
            "green": self.STRIPE_PRICE_GREEN,
            "gold": self.STRIPE_PRICE_GOLD,
        }

    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


settings = Settings()


def parse_prompts(raw: Optional[str]) -> Dict[str, dict]:
    """Parse PROMPTS_JSON into a dict keyed by lower-cased plan name.

    Raises ValueError when the payload is missing or not a JSON object.
    """
    if not raw:
        raise ValueError("PROMPTS_JSON is not configured")
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"PROMPTS_JSON is not valid JSON: {exc.msg}")
    if not isinstance(parsed, dict):
        raise ValueError("PROMPTS_JSON must be a JSON object")
    return {str(key).lower(): value for key, value in parsed.items()}


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("consultchat")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "SUPABASE_JWT_SECRET",
        "GEMINI_API_KEY",
        "PROMPTS_JSON",
        "STRIPE_SECRET_KEY",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    missing += [
        f"STRIPE_PRICE_{plan.upper()}"
        for plan in PLAN_KEYS
        if not getattr(cfg, f"STRIPE_PRICE_{plan.upper()}", None)
    ]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
