"""Application configuration and settings management."""

from typing import Any, Optional

import json
from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="REFILL_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Refill Dispatch API"
    api_prefix: str = "/api"
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    low_supply_threshold_percent: float = Field(
        default=20.0,
        ge=0.0,
        le=100.0,
        description="Machines reporting a supply level strictly below this value are dispatched.",
    )
    agent_search_radii_km: tuple[float, ...] = Field(
        default=(3.0, 5.0, 10.0, 25.0),
        description="Expanding radii (km) used by the sweep to collect nearby delivery agents.",
    )
    kitchen_search_radii_km: tuple[float, ...] = Field(
        default=(2.0, 3.0, 4.0, 5.0),
        description="Expanding radii (km) searched around a machine when a kitchen declines its request.",
    )
    sweep_max_workers: int = Field(default=8, ge=1)
    notification_max_workers: int = Field(default=8, ge=1)
    transition_max_attempts: int = Field(default=3, ge=1)

    # Push gateway (FCM HTTP v1)
    push_base_url: str = Field(default="https://fcm.googleapis.com")
    push_project_id: Optional[str] = Field(
        default=None,
        description="Firebase project id used to build the messages:send endpoint.",
    )
    push_access_token: Optional[str] = Field(
        default=None,
        description="OAuth2 bearer token for the push provider.",
    )
    push_timeout_seconds: float = Field(default=10.0, gt=0.0)
    min_device_token_length: int = Field(default=140, ge=1)

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()

    @field_validator("agent_search_radii_km", "kitchen_search_radii_km", mode="before")
    @classmethod
    def _parse_radii_from_env(cls, value: Any, info: ValidationInfo) -> tuple[float, ...]:
        """Parse radii from environment variable and keep them in ascending order."""
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except (json.JSONDecodeError, TypeError):
                parsed = [item for item in value.split(",") if item.strip()]
            value = parsed if isinstance(parsed, list) else [parsed]
        if isinstance(value, (int, float)):
            value = [value]
        radii = sorted(float(item) for item in (value or ()))
        if not radii:
            raise ValueError(f"{info.field_name} must contain at least one radius")
        if any(radius <= 0 for radius in radii):
            raise ValueError(f"{info.field_name} must contain positive values")
        return tuple(radii)

    @property
    def push_configured(self) -> bool:
        return bool(self.push_project_id and self.push_access_token)


settings = Settings()
